"""Domain reputation: threat-feed lookup plus suspicious naming patterns."""

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional

from ..config import DEFAULT_DOMAIN_PATTERNS
from .models import SignalResult
from .threat_intel import ThreatIntelStore

logger = logging.getLogger(__name__)


class DomainReputationAnalyzer:
    """Scores a domain against the threat store and keyword patterns."""

    source = "domain"

    def __init__(self, store: ThreatIntelStore, patterns: Optional[Iterable[str]] = None):
        self.store = store
        self.patterns = [re.compile(p) for p in (patterns or DEFAULT_DOMAIN_PATTERNS)]

    def analyze(self, domain: str) -> SignalResult:
        score = 0
        reasons: list[str] = []
        domain_lower = (domain or "").strip().lower()

        # Read one consistent snapshot before scoring.
        indicator = self.store.snapshot().get(domain_lower)
        if indicator:
            score += indicator.confidence
            reasons.append(f"Known {indicator.category} site")
            logger.debug("Threat store hit for %s (%s)", domain_lower, indicator.category)

        if any(p.search(domain_lower) for p in self.patterns):
            score += 40
            reasons.append("Domain name contains suspicious keywords")

        return SignalResult(score, tuple(reasons), self.source)
