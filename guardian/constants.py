"""Centralized constants for Guardian.

Risk levels and their score breakpoints live here so that every call site
(page scans, link clicks, form submissions, the CLI and the message router)
classifies a score the same way.
"""

from enum import Enum, IntEnum


class RiskLevel(IntEnum):
    """Risk levels with ranking for comparison."""

    LOW = 0
    MEDIUM = 1
    HIGH = 2
    CRITICAL = 3

    @classmethod
    def from_string(cls, value: str | None) -> "RiskLevel":
        """Convert string level to enum, defaulting to LOW."""
        if not value:
            return cls.LOW
        mapping = {
            "low": cls.LOW,
            "medium": cls.MEDIUM,
            "high": cls.HIGH,
            "critical": cls.CRITICAL,
        }
        return mapping.get(value.lower(), cls.LOW)

    @property
    def is_alerting(self) -> bool:
        return self >= RiskLevel.HIGH

    def __str__(self) -> str:
        return self.name.lower()


class ScanType(str, Enum):
    """Depth of a scan."""

    QUICK = "quick"
    DETAILED = "detailed"


# Lower bound (inclusive) of each level, highest first.
RISK_BREAKPOINTS: tuple[tuple[int, RiskLevel], ...] = (
    (80, RiskLevel.CRITICAL),
    (60, RiskLevel.HIGH),
    (30, RiskLevel.MEDIUM),
)

MAX_RISK_SCORE = 100


def clamp_score(score: int | float) -> int:
    """Clamp a raw score into [0, 100]."""
    return max(0, min(MAX_RISK_SCORE, int(score)))


def risk_level_for_score(score: int | float) -> RiskLevel:
    """Map a risk score onto its level using the fixed breakpoints."""
    value = clamp_score(score)
    for lower_bound, level in RISK_BREAKPOINTS:
        if value >= lower_bound:
            return level
    return RiskLevel.LOW
