"""App-store listing analysis: permissions, developer, metadata and clone checks."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

from rapidfuzz.distance import Levenshtein

from ..constants import RiskLevel, clamp_score, risk_level_for_score

logger = logging.getLogger(__name__)

SUSPICIOUS_PERMISSIONS: frozenset[str] = frozenset(
    {
        "SYSTEM_ALERT_WINDOW",
        "DEVICE_ADMIN",
        "ACCESSIBILITY_SERVICE",
        "READ_SMS",
        "SEND_SMS",
        "RECEIVE_SMS",
        "READ_PHONE_STATE",
        "RECORD_AUDIO",
        "CAMERA",
        "ACCESS_FINE_LOCATION",
        "READ_CONTACTS",
        "WRITE_CONTACTS",
        "GET_ACCOUNTS",
        "READ_CALL_LOG",
        "WRITE_CALL_LOG",
        "CALL_PHONE",
        "PROCESS_OUTGOING_CALLS",
        "WRITE_EXTERNAL_STORAGE",
        "READ_EXTERNAL_STORAGE",
        "INSTALL_PACKAGES",
        "DELETE_PACKAGES",
        "CLEAR_APP_CACHE",
        "CLEAR_APP_USER_DATA",
    }
)

FLEECEWARE_PATTERNS: tuple[str, ...] = (
    "step counter premium",
    "fortune teller pro",
    "palm reader premium",
    "horoscope plus",
    "qr scanner pro",
    "wifi analyzer premium",
    "battery optimizer pro",
    "cleaner master premium",
    "antivirus premium",
    "vpn premium",
)

MALICIOUS_KEYWORDS: tuple[str, ...] = (
    "covidlock",
    "coronavirus tracker",
    "covid tracker",
    "free whatsapp",
    "whatsapp plus",
    "gb whatsapp",
    "free netflix",
    "netflix premium",
    "netflix hack",
    "free spotify",
    "spotify premium",
    "spotify hack",
    "instagram hack",
    "facebook hack",
    "snapchat hack",
    "bank account hack",
    "credit card generator",
    "fake gps",
    "location spoofer",
    "imei changer",
    "root access",
    "superuser",
    "bootloader unlock",
)

KNOWN_CLONE_NAMES: tuple[str, ...] = (
    "whatsapp plus",
    "gb whatsapp",
    "whatsapp gold",
    "netflix premium",
    "netflix free",
    "netflix hack",
    "facebook lite",
    "messenger plus",
    "instagram plus",
)

# App type -> (name keywords, permissions expected for that type)
APP_TYPES: tuple[tuple[str, tuple[str, ...], frozenset[str]], ...] = (
    ("messaging", ("whatsapp", "messenger", "chat"), frozenset({"CAMERA", "RECORD_AUDIO", "READ_CONTACTS", "INTERNET"})),
    ("banking", ("bank", "wallet", "pay"), frozenset({"INTERNET", "ACCESS_NETWORK_STATE", "CAMERA"})),
    ("fitness", ("fitness", "step", "health"), frozenset({"ACCESS_FINE_LOCATION", "INTERNET"})),
    ("utility", ("calculator", "cleaner", "scanner"), frozenset({"INTERNET", "ACCESS_NETWORK_STATE"})),
    ("game", ("game", "puzzle", "play"), frozenset({"INTERNET", "ACCESS_NETWORK_STATE"})),
)

CLONE_RISK = 70


@dataclass(frozen=True)
class KnownApp:
    app_id: str
    name: str
    developer: str


DEFAULT_KNOWN_APPS: tuple[KnownApp, ...] = (
    KnownApp("com.whatsapp", "WhatsApp Messenger", "WhatsApp LLC"),
    KnownApp("com.netflix.mediaclient", "Netflix", "Netflix, Inc."),
)


def normalize_permission(value: str) -> str:
    """`android.permission.READ_SMS` and `read_sms` both become `READ_SMS`."""
    return str(value or "").strip().rsplit(".", 1)[-1].upper()


@dataclass
class AppListing:
    """Store metadata for one app, as submitted by a host."""

    app_id: str = ""
    name: str = ""
    platform: str = "android"
    developer: str = ""
    rating: float = 0.0
    review_count: int = 0
    install_count: str = ""
    permissions: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "AppListing":
        def _number(raw, kind):
            try:
                return kind(raw or 0)
            except (TypeError, ValueError):
                return kind(0)

        return cls(
            app_id=str(data.get("appId") or ""),
            name=str(data.get("appName") or ""),
            platform=str(data.get("platform") or "android").lower(),
            developer=str(data.get("developerName") or ""),
            rating=_number(data.get("rating"), float),
            review_count=_number(data.get("reviewCount"), int),
            install_count=str(data.get("installCount") or ""),
            permissions=[normalize_permission(p) for p in data.get("permissions") or [] if p],
        )


@dataclass
class AppAnalysis:
    """Verdict for one app listing."""

    app_id: str
    name: str
    risk_score: int
    risk_level: RiskLevel
    categories: list[str] = field(default_factory=list)
    suspicious_permissions: list[str] = field(default_factory=list)
    unusual_permissions: list[str] = field(default_factory=list)
    permission_risk: int = 0
    developer_reputation: int = 0
    developer_flags: list[str] = field(default_factory=list)
    metadata_flags: list[str] = field(default_factory=list)
    clone_of: Optional[str] = None
    clone_indicators: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    @property
    def is_clone(self) -> bool:
        return self.clone_of is not None

    def to_dict(self) -> dict:
        return {
            "appId": self.app_id,
            "appName": self.name,
            "riskScore": self.risk_score,
            "riskLevel": str(self.risk_level),
            "threatCategories": list(self.categories),
            "permissionAnalysis": {
                "suspiciousPermissions": list(self.suspicious_permissions),
                "unusualPermissions": list(self.unusual_permissions),
                "permissionRiskScore": self.permission_risk,
            },
            "developerAnalysis": {
                "developerReputation": self.developer_reputation,
                "suspiciousPatterns": list(self.developer_flags),
            },
            "suspiciousMetadata": list(self.metadata_flags),
            "cloneDetection": {
                "isLikelyClone": self.is_clone,
                "originalApp": self.clone_of,
                "cloneIndicators": list(self.clone_indicators),
            },
            "recommendations": list(self.recommendations),
        }


def app_type(name: str) -> Optional[str]:
    lowered = name.lower()
    for kind, keywords, _ in APP_TYPES:
        if any(k in lowered for k in keywords):
            return kind
    return None


def _expected_permissions(name: str) -> frozenset[str]:
    kind = app_type(name)
    for candidate, _, expected in APP_TYPES:
        if candidate == kind:
            return expected
    return frozenset()


class AppListingAnalyzer:
    """Scores an app listing for clones, fleeceware and risky permissions."""

    def __init__(self, known_apps: Iterable[KnownApp] = DEFAULT_KNOWN_APPS):
        self.known_apps = tuple(known_apps)

    def analyze(self, listing: AppListing) -> AppAnalysis:
        suspicious, unusual, permission_risk = self.permission_risk(listing)
        reputation, developer_flags = self.developer_reputation(listing.developer)
        metadata_flags = self.metadata_flags(listing)
        clone_of, clone_indicators = self.detect_clone(listing)

        raw = permission_risk * 0.3 + (100 - reputation) * 0.25
        if clone_of:
            raw += CLONE_RISK * 0.25
        raw += len(metadata_flags) * 10 * 0.2
        score = clamp_score(round(raw))
        level = risk_level_for_score(score)

        name = listing.name.lower()
        categories = []
        if clone_of:
            categories.append("App Clone")
        if any(p in name for p in FLEECEWARE_PATTERNS):
            categories.append("Fleeceware")
        if any(k in name for k in MALICIOUS_KEYWORDS):
            categories.append("Malware")
        if suspicious:
            categories.append("Privacy Risk")

        analysis = AppAnalysis(
            app_id=listing.app_id,
            name=listing.name,
            risk_score=score,
            risk_level=level,
            categories=categories,
            suspicious_permissions=suspicious,
            unusual_permissions=unusual,
            permission_risk=permission_risk,
            developer_reputation=reputation,
            developer_flags=developer_flags,
            metadata_flags=metadata_flags,
            clone_of=clone_of,
            clone_indicators=clone_indicators,
            recommendations=recommendations(level, categories),
        )
        logger.debug("App %s scored %d (%s) %s", listing.app_id, score, level, categories)
        return analysis

    @staticmethod
    def permission_risk(listing: AppListing) -> tuple[list[str], list[str], int]:
        """Return (suspicious permissions, unusual permissions, risk 0-100)."""
        permissions = [normalize_permission(p) for p in listing.permissions]
        suspicious = [p for p in permissions if p in SUSPICIOUS_PERMISSIONS]
        expected = _expected_permissions(listing.name)
        unusual = [p for p in suspicious if p not in expected]

        name = listing.name.lower()
        risk = len(suspicious) * 15
        if ("step" in name or "fitness" in name) and {"CAMERA", "RECORD_AUDIO"} & set(permissions):
            risk += 30
        if "calc" in name and {"READ_SMS", "SEND_SMS"} & set(permissions):
            risk += 40
        risk += len(unusual) * 10
        return suspicious, unusual, min(100, risk)

    @staticmethod
    def developer_reputation(developer: str) -> tuple[int, list[str]]:
        reputation = 70
        if len(developer) < 5:
            reputation -= 20
        if re.search(r"\d{3,}", developer):
            reputation -= 15
        lowered = developer.lower()
        if "hack" in lowered or "crack" in lowered:
            reputation -= 50

        flags = []
        if "LLC" in developer and len(developer) < 10:
            flags.append("Suspicious LLC name")
        if re.fullmatch(r"[A-Z]{2,}", developer):
            flags.append("All caps developer name")
        return max(0, reputation), flags

    @staticmethod
    def metadata_flags(listing: AppListing) -> list[str]:
        flags = []
        if listing.rating < 3.0 and "1,000,000" in listing.install_count:
            flags.append("Low rating despite high install count")
        if listing.review_count < 1000 and "100,000" in listing.install_count:
            flags.append("Few reviews for install count")
        name = listing.name.lower()
        if any(p in name for p in FLEECEWARE_PATTERNS):
            flags.append("Potential fleeceware pattern")
        if any(k in name for k in MALICIOUS_KEYWORDS):
            flags.append("Contains malicious keywords")
        return flags

    def detect_clone(self, listing: AppListing) -> tuple[Optional[str], list[str]]:
        """Return (name of the imitated app or None, indicators)."""
        name = listing.name.lower()
        clone_of: Optional[str] = None
        best = 0.0
        indicators: list[str] = []
        for known in self.known_apps:
            similarity = Levenshtein.normalized_similarity(name, known.name.lower())
            if similarity > 0.7 and listing.app_id != known.app_id and similarity > best:
                clone_of = known.name
                best = similarity
                indicators.append(f"Similar name to {known.name}")
            if similarity > 0.6 and listing.developer != known.developer:
                indicators.append("Different developer for similar app")
        if any(c in name for c in KNOWN_CLONE_NAMES):
            indicators.append("Known clone app pattern")
        return clone_of, indicators


def recommendations(level: RiskLevel, categories: list[str]) -> list[str]:
    advice = []
    if level.is_alerting:
        advice.append("Do not install this app")
        advice.append("Report this app to the app store")
    if "App Clone" in categories:
        advice.append("Install the original app from the official developer instead")
    if "Privacy Risk" in categories:
        advice.append("Review app permissions carefully before granting access")
    if "Fleeceware" in categories:
        advice.append("Be aware of hidden subscription fees")
    return advice
