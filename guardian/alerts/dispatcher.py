"""Alert decisions for risky assessments and their presentation."""

from __future__ import annotations

import inspect
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol, Union
from urllib.parse import quote

from ..analyzer.models import RiskAssessment
from ..config import DEFAULT_REPORT_BASE_URL
from ..constants import RiskLevel
from ..storage.state import ScanState

logger = logging.getLogger(__name__)

WARNING_ELEMENT_ID = "guardian-ai-warning"

BADGE_COLORS = {
    RiskLevel.CRITICAL: "#dc2626",
    RiskLevel.HIGH: "#f59e0b",
}


@dataclass(frozen=True)
class WarningSpec:
    """Pure description of the in-page warning banner."""

    element_id: str
    risk_level: RiskLevel
    risk_score: int
    threats: tuple[str, ...]
    auto_dismiss_seconds: Optional[int]
    details_url: str

    @property
    def message(self) -> str:
        return (
            "Guardian AI Security Warning: This website has been flagged as potentially "
            f"dangerous (Risk: {self.risk_score}/100). Threats detected: {', '.join(self.threats)}"
        )

    def to_dict(self) -> dict:
        return {
            "elementId": self.element_id,
            "riskLevel": str(self.risk_level),
            "riskScore": self.risk_score,
            "threats": list(self.threats),
            "autoDismissSeconds": self.auto_dismiss_seconds,
            "detailsUrl": self.details_url,
            "message": self.message,
        }


@dataclass(frozen=True)
class BadgeSpec:
    text: str
    color: str
    persistent: bool = True


@dataclass(frozen=True)
class AlertDecision:
    warning: Optional[WarningSpec] = None
    badge: Optional[BadgeSpec] = None
    record: bool = True


@dataclass(frozen=True)
class ActionOutcome:
    proceed: bool
    blocked: bool


class PresentationSink(Protocol):
    """Host-side renderer for warnings and toolbar badges."""

    async def show_warning(self, tab_id, warning: WarningSpec) -> None:  # pragma: no cover - interface
        ...

    async def set_badge(self, tab_id, badge: BadgeSpec) -> None:  # pragma: no cover - interface
        ...


ConfirmCallback = Callable[[str], Union[bool, Awaitable[bool]]]


@dataclass
class _Overlay:
    spec: WarningSpec
    shown_at: float
    interacted: bool = False


class WarningOverlayRegistry:
    """Tracks which tabs currently show a warning. At most one per tab."""

    def __init__(self):
        self._overlays: dict[object, _Overlay] = {}

    def inject(self, tab_id, spec: WarningSpec, now: Optional[float] = None) -> bool:
        """Register a warning. Returns False if one is already present."""
        if tab_id in self._overlays:
            return False
        self._overlays[tab_id] = _Overlay(spec, time.monotonic() if now is None else now)
        return True

    def get(self, tab_id) -> Optional[WarningSpec]:
        overlay = self._overlays.get(tab_id)
        return overlay.spec if overlay else None

    def is_showing(self, tab_id) -> bool:
        return tab_id in self._overlays

    def mark_interacted(self, tab_id) -> None:
        overlay = self._overlays.get(tab_id)
        if overlay:
            overlay.interacted = True

    def dismiss(self, tab_id) -> bool:
        return self._overlays.pop(tab_id, None) is not None

    def expire_due(self, now: Optional[float] = None) -> list:
        """Remove auto-dismissable overlays whose delay has elapsed."""
        now = time.monotonic() if now is None else now
        expired = [
            tab_id
            for tab_id, overlay in self._overlays.items()
            if overlay.spec.auto_dismiss_seconds is not None
            and not overlay.interacted
            and now - overlay.shown_at >= overlay.spec.auto_dismiss_seconds
        ]
        for tab_id in expired:
            del self._overlays[tab_id]
        return expired


class AlertDispatcher:
    """Turns assessments into warnings, badges and history records."""

    def __init__(
        self,
        state: ScanState,
        sink: Optional[PresentationSink] = None,
        report_base_url: str = DEFAULT_REPORT_BASE_URL,
        high_auto_dismiss_seconds: int = 10,
        overlays: Optional[WarningOverlayRegistry] = None,
    ):
        self.state = state
        self.sink = sink
        self.report_base_url = report_base_url
        self.high_auto_dismiss_seconds = high_auto_dismiss_seconds
        self.overlays = overlays or WarningOverlayRegistry()

    def details_url(self, url: str) -> str:
        return f"{self.report_base_url}?url={quote(url or '', safe='')}"

    def decide(self, assessment: RiskAssessment) -> AlertDecision:
        level = assessment.risk_level
        if not level.is_alerting:
            return AlertDecision()

        warning = WarningSpec(
            element_id=WARNING_ELEMENT_ID,
            risk_level=level,
            risk_score=assessment.risk_score,
            threats=assessment.threats,
            auto_dismiss_seconds=None if level is RiskLevel.CRITICAL else self.high_auto_dismiss_seconds,
            details_url=self.details_url(assessment.url),
        )
        badge = BadgeSpec(text="!", color=BADGE_COLORS[level], persistent=True)
        return AlertDecision(warning=warning, badge=badge)

    async def dispatch(self, assessment: RiskAssessment, tab_id=None) -> AlertDecision:
        """Apply the decision for an assessment and record it."""
        decision = self.decide(assessment)

        if decision.warning:
            logger.info(
                "Threat warning for %s (%s, %d/100)",
                assessment.url,
                assessment.risk_level,
                assessment.risk_score,
            )
            if self.overlays.inject(tab_id, decision.warning):
                await self._call_sink("show_warning", tab_id, decision.warning)
        if decision.badge:
            await self._call_sink("set_badge", tab_id, decision.badge)

        if decision.record:
            self.state.record(assessment)
        return decision

    async def _call_sink(self, method: str, tab_id, payload) -> None:
        if self.sink is None:
            return
        try:
            result = getattr(self.sink, method)(tab_id, payload)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            logger.error("Failed to %s for tab %s: %s", method.replace("_", " "), tab_id, exc)

    async def guard_action(
        self,
        assessment: RiskAssessment,
        confirm: ConfirmCallback,
        prompt: Optional[str] = None,
    ) -> ActionOutcome:
        """Ask the user before a risky navigation or submission."""
        if not assessment.risk_level.is_alerting:
            self.state.record(assessment)
            return ActionOutcome(proceed=True, blocked=False)

        text = prompt or (
            f"Guardian AI Warning: This action ({assessment.url}) appears risky. "
            "Are you sure you want to continue?"
        )
        try:
            answer = confirm(text)
            if inspect.isawaitable(answer):
                answer = await answer
        except Exception as exc:
            logger.warning("Confirmation prompt failed, blocking action: %s", exc)
            answer = False

        self.state.record(assessment)
        if answer:
            return ActionOutcome(proceed=True, blocked=False)
        logger.info("User blocked risky action on %s", assessment.url)
        return ActionOutcome(proceed=False, blocked=True)
