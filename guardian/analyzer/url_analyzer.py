"""Structural URL heuristics."""

from __future__ import annotations

import re
from typing import Iterable, Optional
from urllib.parse import urlsplit

from ..config import DEFAULT_SUSPICIOUS_TLDS
from .models import SignalResult

IP_HOST_PATTERN = re.compile(r"\d+\.\d+\.\d+\.\d+")

MALFORMED_URL_PENALTY = 20
MALFORMED_URL_REASON = "Malformed URL structure"


class UrlAnalyzer:
    """Scores the shape of a URL: IP hosts, scheme, TLD, subdomains and length."""

    source = "url"

    def __init__(self, suspicious_tlds: Optional[Iterable[str]] = None):
        self.suspicious_tlds = tuple(
            tld.lower() for tld in (suspicious_tlds or DEFAULT_SUSPICIOUS_TLDS)
        )

    def analyze(self, url: str) -> SignalResult:
        """Score a URL. Never raises; unparseable input gets a fixed penalty."""
        try:
            parts = urlsplit(url or "")
            host = (parts.hostname or "").lower()
            parts.port  # raises ValueError on an out-of-range port
        except (TypeError, ValueError):
            return self._malformed()
        if not parts.scheme or not host:
            return self._malformed()

        score = 0
        reasons: list[str] = []

        if IP_HOST_PATTERN.search(host):
            score += 30
            reasons.append("Uses IP address instead of domain")

        if parts.scheme.lower() != "https":
            score += 20
            reasons.append("Insecure HTTP connection")

        if any(host.endswith(tld) for tld in self.suspicious_tlds):
            score += 25
            reasons.append("Suspicious top-level domain")

        subdomains = len(host.split(".")) - 2
        if subdomains > 3:
            score += 15
            reasons.append("Excessive subdomain usage")

        if len(url) > 100:
            score += 10
            reasons.append("Unusually long URL")

        return SignalResult(score, tuple(reasons), self.source)

    def _malformed(self) -> SignalResult:
        return SignalResult(MALFORMED_URL_PENALTY, (MALFORMED_URL_REASON,), self.source)


_default = UrlAnalyzer()


def analyze_url(url: str) -> SignalResult:
    """Score a URL with the default TLD list."""
    return _default.analyze(url)
