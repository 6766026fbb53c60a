"""Global pytest configuration."""

from __future__ import annotations

import asyncio
import inspect
import os
from collections.abc import AsyncGenerator
from datetime import datetime, timezone

import pytest

from guardian.analyzer.metrics import metrics
from guardian.analyzer.models import IndicatorType, RiskAssessment, ThreatIndicator
from guardian.analyzer.threat_intel import ThreatIntelStore
from guardian.constants import ScanType, risk_level_for_score

# Never download models during tests even if .env enables them.
os.environ.setdefault("ML_ENABLED", "false")


@pytest.fixture(scope="session")
def event_loop() -> AsyncGenerator[asyncio.AbstractEventLoop, None]:
    """Provide a shared event loop for async tests and fixtures."""

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        yield loop
    finally:
        loop.close()


def _get_loop(request: pytest.FixtureRequest) -> asyncio.AbstractEventLoop:
    try:
        loop = request.getfixturevalue("event_loop")
    except pytest.FixtureLookupError:
        loop = asyncio.new_event_loop()
    if loop.is_closed():
        loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    return loop


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem):  # type: ignore[override]
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        testargs = {
            name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames
        }
        loop = testargs.get("event_loop") or asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        loop.run_until_complete(pyfuncitem.obj(**testargs))
        return True
    return None


@pytest.hookimpl(tryfirst=True)
def pytest_fixture_setup(fixturedef, request):  # type: ignore[override]
    func = fixturedef.func
    if inspect.iscoroutinefunction(func):
        loop = _get_loop(request)
        kwargs = {arg: request.getfixturevalue(arg) for arg in fixturedef.argnames}
        return loop.run_until_complete(func(**kwargs))

    if inspect.isasyncgenfunction(func):
        loop = _get_loop(request)
        kwargs = {arg: request.getfixturevalue(arg) for arg in fixturedef.argnames}
        agen = func(**kwargs)
        value = loop.run_until_complete(agen.__anext__())

        def finalize() -> None:
            try:
                loop.run_until_complete(agen.__anext__())
            except StopAsyncIteration:
                pass

        request.addfinalizer(finalize)
        return value

    return None


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "asyncio: mark test as requiring asyncio support")


@pytest.fixture(autouse=True)
def reset_metrics():
    """Metrics are a process-wide singleton; start each test clean."""
    metrics.reset()
    yield
    metrics.reset()


def _indicator(indicator: str, category: str = "phishing", confidence: int = 90) -> ThreatIndicator:
    return ThreatIndicator(
        indicator=indicator,
        type=IndicatorType.DOMAIN,
        category=category,
        confidence=confidence,
        last_seen=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def threat_store() -> ThreatIntelStore:
    return ThreatIntelStore(
        [
            _indicator("malicious-phishing-site.com", "phishing", 95),
            _indicator("fake-bank-login.net", "phishing", 90),
            _indicator("scam-lottery-winner.org", "scam", 85),
        ]
    )


@pytest.fixture
def make_assessment():
    """Factory for RiskAssessment values with a level matching the score."""

    def _make(score: int = 0, url: str = "https://example.com/", threats=(), scan_type=ScanType.QUICK):
        return RiskAssessment(
            url=url,
            domain=url.split("/")[2] if "://" in url else url,
            risk_score=score,
            risk_level=risk_level_for_score(score),
            threats=tuple(threats),
            timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
            scan_type=scan_type,
        )

    return _make
