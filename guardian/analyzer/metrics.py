"""Detection metrics tracking.

Records which signal sources fire and how verdicts are distributed so the
heuristic weights can be tuned from real traffic.
"""

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class SourceMetrics:
    """Metrics for a single signal source."""

    fired: int = 0  # Times the source contributed a non-zero score
    failures: int = 0  # Times the source was unavailable (error/timeout)
    total_score: int = 0
    last_fired: Optional[datetime] = None
    threat_hits: dict = field(default_factory=lambda: defaultdict(int))

    def record_fire(self, score: int, threats) -> None:
        self.fired += 1
        self.total_score += score
        self.last_fired = datetime.now()
        for threat in threats:
            self.threat_hits[threat] += 1


class DetectionMetrics:
    """Thread-safe metrics collector for scan analysis."""

    _instance: Optional["DetectionMetrics"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "DetectionMetrics":
        """Singleton pattern for global metrics access."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        if self._initialized:
            return
        self._initialized = True
        self._lock = threading.Lock()
        self._sources: dict[str, SourceMetrics] = defaultdict(SourceMetrics)
        self._verdicts: dict[str, int] = defaultdict(int)
        self._total_scans: int = 0
        self._whitelisted: int = 0
        self._started: datetime = datetime.now()

    def record_signal(self, source: str, score: int, threats=()) -> None:
        """Record a signal that contributed to a verdict."""
        if score <= 0 and not threats:
            return
        with self._lock:
            self._sources[source or "unknown"].record_fire(score, threats)

    def record_failure(self, source: str) -> None:
        """Record an analyzer that errored or timed out."""
        with self._lock:
            self._sources[source or "unknown"].failures += 1

    def record_verdict(self, risk_level: str) -> None:
        """Record a final risk level."""
        with self._lock:
            self._verdicts[str(risk_level)] += 1
            self._total_scans += 1

    def record_whitelisted(self) -> None:
        with self._lock:
            self._whitelisted += 1

    def get_summary(self) -> dict:
        """Get a summary of all metrics."""
        with self._lock:
            uptime = datetime.now() - self._started
            return {
                "uptime_seconds": int(uptime.total_seconds()),
                "total_scans": self._total_scans,
                "whitelisted_skips": self._whitelisted,
                "verdicts": dict(self._verdicts),
                "sources": {
                    name: {
                        "fired": src.fired,
                        "failures": src.failures,
                        "total_score": src.total_score,
                        "last_fired": src.last_fired.isoformat() if src.last_fired else None,
                        "top_threats": self._get_top_threats(src, 5),
                    }
                    for name, src in self._sources.items()
                },
            }

    def _get_top_threats(self, source: SourceMetrics, n: int) -> list[dict]:
        """Get top N threats by hit count."""
        ranked = sorted(source.threat_hits.items(), key=lambda x: x[1], reverse=True)[:n]
        return [{"threat": t[:80], "hits": hits} for t, hits in ranked]

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._sources.clear()
            self._verdicts.clear()
            self._total_scans = 0
            self._whitelisted = 0
            self._started = datetime.now()


# Global instance
metrics = DetectionMetrics()
