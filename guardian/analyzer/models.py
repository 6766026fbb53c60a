"""Analyzer data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from ..constants import RiskLevel, ScanType, clamp_score, risk_level_for_score


class IndicatorType(str, Enum):
    """Kind of value a threat indicator describes."""

    DOMAIN = "domain"
    URL = "url"
    IP = "ip"


@dataclass(frozen=True)
class ThreatIndicator:
    """A known-bad domain/URL/IP record from a threat feed."""

    indicator: str
    type: IndicatorType
    category: str
    confidence: int
    last_seen: datetime

    def to_dict(self) -> dict:
        return {
            "indicator": self.indicator,
            "type": self.type.value,
            "category": self.category,
            "confidence": self.confidence,
            "lastSeen": self.last_seen.isoformat(),
        }


@dataclass(frozen=True)
class SignalResult:
    """One analyzer's independent contribution toward a risk score."""

    risk_score: int = 0
    threats: tuple[str, ...] = ()
    source: str = ""

    @classmethod
    def empty(cls, source: str = "") -> "SignalResult":
        """A signal that contributes nothing (analyzer unavailable)."""
        return cls(0, (), source)


@dataclass(frozen=True)
class BrandReference:
    """Static reference data for one brand."""

    name: str
    common_colors: frozenset[str]
    key_elements: frozenset[str]
    logo_url: Optional[str] = None


@dataclass(frozen=True)
class BrandSimilarity:
    brand: str
    similarity: float


@dataclass(frozen=True)
class LogoDetection:
    brand: str
    confidence: float


@dataclass
class VisualAnalysis:
    """Result of the visual brand-similarity detector."""

    brand_similarities: list[BrandSimilarity] = field(default_factory=list)
    ui_elements: list[str] = field(default_factory=list)
    layout_suspicion: int = 0
    logo_detections: list[LogoDetection] = field(default_factory=list)
    text_similarity: Optional[float] = None
    screenshot_captured: bool = False

    def to_dict(self) -> dict:
        return {
            "brandSimilarities": [
                {"brand": b.brand, "similarity": round(b.similarity, 2)}
                for b in self.brand_similarities
            ],
            "uiElements": list(self.ui_elements),
            "layoutSuspicion": self.layout_suspicion,
            "logoDetections": [
                {"brand": d.brand, "confidence": round(d.confidence, 3)}
                for d in self.logo_detections
            ],
            "textSimilarity": self.text_similarity,
        }


# Tagged union accepted by the aggregator.
Signal = Union[SignalResult, VisualAnalysis]


@dataclass(frozen=True)
class InputField:
    type: str = "text"
    name: str = ""
    required: bool = False
    placeholder: str = ""


@dataclass(frozen=True)
class FormData:
    action: str = ""
    method: str = "get"
    inputs: tuple[InputField, ...] = ()


@dataclass(frozen=True)
class LinkData:
    href: str
    text: str = ""
    target: str = ""


@dataclass(frozen=True)
class ScriptSummary:
    count: int = 0
    external: tuple[str, ...] = ()
    has_inline: bool = False
    suspicious: bool = False


@dataclass(frozen=True)
class PageStructure:
    """Structure extracted from a page, shared read-only by all content checks."""

    url: str
    title: str = ""
    text: str = ""
    html: str = ""
    forms: tuple[FormData, ...] = ()
    links: tuple[LinkData, ...] = ()
    scripts: ScriptSummary = field(default_factory=ScriptSummary)
    metadata: dict = field(default_factory=dict, hash=False, compare=False)


@dataclass(frozen=True)
class RiskAssessment:
    """Final verdict for one scan."""

    url: str
    domain: str
    risk_score: int
    risk_level: RiskLevel
    threats: tuple[str, ...]
    timestamp: datetime
    scan_type: ScanType

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "domain": self.domain,
            "riskScore": self.risk_score,
            "riskLevel": str(self.risk_level),
            "threats": list(self.threats),
            "timestamp": self.timestamp.isoformat(),
            "scanType": self.scan_type.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RiskAssessment":
        raw_ts = data.get("timestamp")
        try:
            timestamp = datetime.fromisoformat(raw_ts) if raw_ts else datetime.now(timezone.utc)
        except (TypeError, ValueError):
            timestamp = datetime.now(timezone.utc)
        try:
            scan_type = ScanType(data.get("scanType") or ScanType.QUICK.value)
        except ValueError:
            scan_type = ScanType.QUICK
        try:
            score = clamp_score(data.get("riskScore") or 0)
        except (TypeError, ValueError):
            score = 0
        # Level always follows the score.
        threats = dict.fromkeys(str(t) for t in (data.get("threats") or []) if t)
        return cls(
            url=str(data.get("url") or ""),
            domain=str(data.get("domain") or ""),
            risk_score=score,
            risk_level=risk_level_for_score(score),
            threats=tuple(threats),
            timestamp=timestamp,
            scan_type=scan_type,
        )
