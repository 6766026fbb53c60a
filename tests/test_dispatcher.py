"""Tests for alert decisions, overlays and confirmation prompts."""

import pytest

from guardian.alerts.dispatcher import (
    WARNING_ELEMENT_ID,
    AlertDispatcher,
    WarningOverlayRegistry,
    WarningSpec,
)
from guardian.constants import RiskLevel
from guardian.storage.state import ScanState


class _RecordingSink:
    def __init__(self):
        self.warnings = []
        self.badges = []

    async def show_warning(self, tab_id, warning):
        self.warnings.append((tab_id, warning))

    def set_badge(self, tab_id, badge):
        self.badges.append((tab_id, badge))


class _BrokenSink:
    async def show_warning(self, tab_id, warning):
        raise RuntimeError("tab closed")

    async def set_badge(self, tab_id, badge):
        raise RuntimeError("tab closed")


def _spec(auto_dismiss=10):
    return WarningSpec(WARNING_ELEMENT_ID, RiskLevel.HIGH, 65, ("x",), auto_dismiss, "https://r/")


class TestDecide:
    def test_low_and_medium_are_silent(self, make_assessment):
        dispatcher = AlertDispatcher(ScanState())
        for score in (0, 45):
            decision = dispatcher.decide(make_assessment(score))
            assert decision.warning is None
            assert decision.badge is None
            assert decision.record is True

    def test_high_auto_dismisses(self, make_assessment):
        dispatcher = AlertDispatcher(ScanState(), high_auto_dismiss_seconds=10)
        decision = dispatcher.decide(make_assessment(65, threats=["Insecure HTTP connection"]))
        assert decision.warning.auto_dismiss_seconds == 10
        assert decision.warning.element_id == WARNING_ELEMENT_ID
        assert decision.badge.text == "!"
        assert decision.badge.color == "#f59e0b"
        assert "Risk: 65/100" in decision.warning.message
        assert "Insecure HTTP connection" in decision.warning.message

    def test_critical_persists(self, make_assessment):
        decision = AlertDispatcher(ScanState()).decide(make_assessment(90))
        assert decision.warning.auto_dismiss_seconds is None
        assert decision.badge.color == "#dc2626"
        assert decision.badge.persistent is True

    def test_details_url_is_encoded(self, make_assessment):
        dispatcher = AlertDispatcher(ScanState(), report_base_url="https://report.example/submit")
        decision = dispatcher.decide(make_assessment(90, url="https://evil.example/a?b=c&d=e"))
        assert decision.warning.details_url == (
            "https://report.example/submit?url=https%3A%2F%2Fevil.example%2Fa%3Fb%3Dc%26d%3De"
        )
        assert decision.warning.to_dict()["detailsUrl"] == decision.warning.details_url


class TestOverlayRegistry:
    def test_single_overlay_per_tab(self):
        registry = WarningOverlayRegistry()
        assert registry.inject(1, _spec(), now=0.0) is True
        assert registry.inject(1, _spec(), now=1.0) is False
        assert registry.is_showing(1)
        assert registry.inject(2, _spec(), now=1.0) is True

    def test_expire_due(self):
        registry = WarningOverlayRegistry()
        registry.inject(1, _spec(10), now=0.0)
        registry.inject(2, _spec(None), now=0.0)
        assert registry.expire_due(now=5.0) == []
        assert registry.expire_due(now=10.0) == [1]
        assert not registry.is_showing(1)
        assert registry.is_showing(2)

    def test_interaction_prevents_expiry(self):
        registry = WarningOverlayRegistry()
        registry.inject(1, _spec(10), now=0.0)
        registry.mark_interacted(1)
        assert registry.expire_due(now=60.0) == []
        assert registry.dismiss(1) is True
        assert registry.dismiss(1) is False


class TestDispatch:
    @pytest.mark.asyncio
    async def test_critical_shows_warning_once_and_records(self, make_assessment):
        state = ScanState()
        sink = _RecordingSink()
        dispatcher = AlertDispatcher(state, sink=sink)

        await dispatcher.dispatch(make_assessment(90), tab_id=7)
        await dispatcher.dispatch(make_assessment(95), tab_id=7)

        assert len(sink.warnings) == 1
        assert len(sink.badges) == 2
        assert len(state.history) == 2
        assert len(state.popup_history) == 2

    @pytest.mark.asyncio
    async def test_low_records_without_ui(self, make_assessment):
        state = ScanState()
        sink = _RecordingSink()
        await AlertDispatcher(state, sink=sink).dispatch(make_assessment(10), tab_id=1)
        assert sink.warnings == []
        assert sink.badges == []
        assert len(state.history) == 1

    @pytest.mark.asyncio
    async def test_sink_failure_is_logged(self, make_assessment, caplog):
        state = ScanState()
        dispatcher = AlertDispatcher(state, sink=_BrokenSink())
        await dispatcher.dispatch(make_assessment(90), tab_id=3)
        assert "Failed to show warning for tab 3" in caplog.text
        assert len(state.history) == 1


class TestGuardAction:
    @pytest.mark.asyncio
    async def test_safe_action_proceeds_without_prompt(self, make_assessment):
        prompts = []
        state = ScanState()
        outcome = await AlertDispatcher(state).guard_action(make_assessment(10), prompts.append)
        assert outcome.proceed is True
        assert prompts == []
        assert len(state.history) == 1

    @pytest.mark.asyncio
    async def test_confirmed(self, make_assessment):
        outcome = await AlertDispatcher(ScanState()).guard_action(make_assessment(70), lambda text: True)
        assert outcome.proceed is True
        assert outcome.blocked is False

    @pytest.mark.asyncio
    async def test_declined_async(self, make_assessment):
        async def decline(text):
            return False

        state = ScanState()
        outcome = await AlertDispatcher(state).guard_action(make_assessment(85), decline)
        assert outcome.proceed is False
        assert outcome.blocked is True
        assert len(state.history) == 1

    @pytest.mark.asyncio
    async def test_prompt_failure_blocks(self, make_assessment):
        def broken(text):
            raise RuntimeError("no UI")

        outcome = await AlertDispatcher(ScanState()).guard_action(make_assessment(85), broken)
        assert outcome.blocked is True

    @pytest.mark.asyncio
    async def test_prompt_text(self, make_assessment):
        seen = []

        def confirm(text):
            seen.append(text)
            return True

        await AlertDispatcher(ScanState()).guard_action(
            make_assessment(85, url="https://evil.example/"), confirm
        )
        assert "https://evil.example/" in seen[0]
        assert "Are you sure you want to continue?" in seen[0]
