"""Content heuristics over an extracted page structure."""

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional
from urllib.parse import urljoin, urlsplit

from ..config import (
    DEFAULT_PHISHING_KEYWORDS,
    DEFAULT_SUSPICIOUS_SCRIPT_HOSTS,
    DEFAULT_URL_SHORTENERS,
)
from .models import FormData, LinkData, PageStructure, ScriptSummary, SignalResult

logger = logging.getLogger(__name__)

SENSITIVE_INPUT_TYPES = {"password", "email", "tel", "number"}
SENSITIVE_NAME_PATTERN = re.compile(r"ssn|social|credit|card|account|bank", re.I)

URGENCY_PATTERNS = [
    re.compile(r"within \d+ (hours?|minutes?|days?)", re.I),
    re.compile(r"expires? (today|tomorrow|soon)", re.I),
    re.compile(r"final (notice|warning)", re.I),
    re.compile(r"immediate(ly)? (action|response) required", re.I),
]

FINANCIAL_REQUEST_PATTERNS = [
    re.compile(r"enter.*(credit card|bank account|ssn|social security)", re.I),
    re.compile(r"provide.*(payment|financial|banking) (information|details)", re.I),
    re.compile(r"verify.*(account|payment) (information|details)", re.I),
]

DOMAIN_TOKEN_PATTERN = re.compile(r"[a-z0-9-]+\.[a-z]{2,}")


DEFAULT_PORTS = {"http": 80, "https": 443}


def _origin(url: str) -> Optional[tuple[str, str, Optional[int]]]:
    """(scheme, host, port) with default ports filled in, or None."""
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return None
    if not parts.scheme or not parts.hostname:
        return None
    scheme = parts.scheme.lower()
    return scheme, parts.hostname.lower(), port or DEFAULT_PORTS.get(scheme)


def _action_origin(page_url: str, action: str) -> Optional[tuple[str, str, Optional[int]]]:
    try:
        return _origin(urljoin(page_url, action))
    except ValueError:
        return None


def _hostname(url: str) -> Optional[str]:
    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None
    return (parts.hostname or "").lower()


class ContentAnalyzer:
    """Form, text, link and script checks. Each check is an independent signal."""

    def __init__(
        self,
        phishing_keywords: Optional[Iterable[str]] = None,
        url_shorteners: Optional[Iterable[str]] = None,
        suspicious_script_hosts: Optional[Iterable[str]] = None,
        keyword_points: int = 8,
        keyword_category_cap: Optional[int] = None,
    ):
        self.phishing_keywords = [k.lower() for k in (phishing_keywords or DEFAULT_PHISHING_KEYWORDS)]
        self.url_shorteners = list(url_shorteners or DEFAULT_URL_SHORTENERS)
        self.suspicious_script_hosts = list(suspicious_script_hosts or DEFAULT_SUSPICIOUS_SCRIPT_HOSTS)
        self.keyword_points = keyword_points
        self.keyword_category_cap = keyword_category_cap

    def analyze(self, page: PageStructure) -> list[SignalResult]:
        """Run all four checks; results are not summed here."""
        return [
            self.analyze_forms(page.forms, page.url),
            self.analyze_text(page.text),
            self.analyze_links(page.links, page.url),
            self.analyze_scripts(page.scripts),
        ]

    def analyze_forms(self, forms: Iterable[FormData], page_url: str) -> SignalResult:
        score = 0
        reasons: list[str] = []
        origin = _origin(page_url)
        try:
            insecure = urlsplit(page_url).scheme.lower() != "https"
        except ValueError:
            insecure = True

        for form in forms:
            if form.action and (origin is None or _action_origin(page_url, form.action) != origin):
                score += 20
                reasons.append("Form submits to external domain")

            if insecure and any(i.type == "password" for i in form.inputs):
                score += 30
                reasons.append("Password field on insecure connection")

            sensitive = [
                i
                for i in form.inputs
                if i.type in SENSITIVE_INPUT_TYPES
                or SENSITIVE_NAME_PATTERN.search(i.name or i.placeholder or "")
            ]
            if len(sensitive) > 3:
                score += 25
                reasons.append("Form requests multiple sensitive information types")

            hidden = [i for i in form.inputs if i.type == "hidden"]
            if len(hidden) > 5:
                score += 15
                reasons.append("Form contains many hidden fields")

        return SignalResult(score, tuple(reasons), "forms")

    def _category_points(self, count: int, points: int) -> int:
        total = count * points
        if self.keyword_category_cap is not None:
            total = min(total, self.keyword_category_cap)
        return total

    def analyze_text(self, text: str) -> SignalResult:
        score = 0
        reasons: list[str] = []
        if not text:
            return SignalResult(0, (), "text")

        text_lower = text.lower()

        keyword_count = sum(1 for k in self.phishing_keywords if k in text_lower)
        if keyword_count:
            score += self._category_points(keyword_count, self.keyword_points)
            reasons.append(f"Contains {keyword_count} phishing keywords")

        urgency_count = sum(1 for p in URGENCY_PATTERNS if p.search(text))
        if urgency_count:
            score += self._category_points(urgency_count, 15)
            reasons.append("Uses high-pressure/urgency tactics")

        financial_count = sum(1 for p in FINANCIAL_REQUEST_PATTERNS if p.search(text))
        if financial_count:
            score += self._category_points(financial_count, 20)
            reasons.append("Requests sensitive financial information")

        return SignalResult(score, tuple(reasons), "text")

    def analyze_links(self, links: Iterable[LinkData], page_url: str) -> SignalResult:
        score = 0
        reasons: list[str] = []
        links = list(links)
        if not links:
            return SignalResult(0, (), "links")

        page_host = _hostname(page_url) or ""

        external = 0
        mismatched = False
        for link in links:
            host = _hostname(link.href)
            if host is None:
                continue
            if host != page_host:
                external += 1
            if link.text and not mismatched:
                mentioned = DOMAIN_TOKEN_PATTERN.findall(link.text.lower())
                mismatched = any(d != host and d not in host for d in mentioned)

        if external > len(links) * 0.7:
            score += 20
            reasons.append("High ratio of external links")

        if any(s in link.href for link in links for s in self.url_shorteners):
            score += 15
            reasons.append("Contains URL shortener links")

        if mismatched:
            score += 25
            reasons.append("Links with mismatched text and destination")

        return SignalResult(score, tuple(reasons), "links")

    def analyze_scripts(self, scripts: Optional[ScriptSummary]) -> SignalResult:
        score = 0
        reasons: list[str] = []
        if scripts is None:
            return SignalResult(0, (), "scripts")

        if scripts.suspicious:
            score += 30
            reasons.append("Contains obfuscated JavaScript")

        if len(scripts.external) > 10:
            score += 15
            reasons.append("Loads many external scripts")

        if any(h in src for src in scripts.external for h in self.suspicious_script_hosts):
            score += 25
            reasons.append("Loads scripts from suspicious sources")

        return SignalResult(score, tuple(reasons), "scripts")
