"""Merge independent signals into a single risk assessment."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Optional

from ..constants import ScanType, clamp_score, risk_level_for_score
from .metrics import metrics
from .models import RiskAssessment, Signal, SignalResult, VisualAnalysis
from .visual_detector import to_signal


def as_signal_result(signal: Signal) -> SignalResult:
    if isinstance(signal, VisualAnalysis):
        return to_signal(signal)
    return signal


def merge_threats(signals: Iterable[SignalResult]) -> tuple[str, ...]:
    """Concatenate threats in order, dropping empties and repeats."""
    seen: set[str] = set()
    merged: list[str] = []
    for signal in signals:
        for threat in signal.threats:
            if not threat or threat in seen:
                continue
            seen.add(threat)
            merged.append(threat)
    return tuple(merged)


def aggregate(
    url: str,
    domain: str,
    signals: Iterable[Signal],
    scan_type: ScanType = ScanType.QUICK,
    now: Optional[datetime] = None,
) -> RiskAssessment:
    """Sum signal scores (clamped to 0-100) and classify."""
    results = [as_signal_result(s) for s in signals]
    for result in results:
        metrics.record_signal(result.source, result.risk_score, result.threats)

    score = clamp_score(sum(r.risk_score for r in results))
    return RiskAssessment(
        url=url,
        domain=domain,
        risk_score=score,
        risk_level=risk_level_for_score(score),
        threats=merge_threats(results),
        timestamp=now or datetime.now(timezone.utc),
        scan_type=scan_type,
    )
