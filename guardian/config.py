"""Configuration management for Guardian."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Set

import yaml
from dotenv import load_dotenv

from .utils.domains import normalize_whitelist_domain

logger = logging.getLogger(__name__)


# Default heuristics for the analyzers. These can be overridden
# via config/heuristics.yaml without touching code.
DEFAULT_SUSPICIOUS_TLDS: list[str] = [".tk", ".ml", ".ga", ".cf", ".click", ".download"]

DEFAULT_DOMAIN_PATTERNS: list[str] = [
    r"fake",
    r"phishing",
    r"scam",
    r"fraud",
    r"spam",
    r"secure.*bank",
    r"verify.*account",
    r"update.*payment",
]

DEFAULT_PHISHING_KEYWORDS: list[str] = [
    "verify account",
    "suspended",
    "click here",
    "urgent",
    "immediate",
    "winner",
    "congratulations",
    "claim prize",
    "act now",
    "limited time",
    "confirm identity",
    "update payment",
    "security alert",
    "locked account",
]

DEFAULT_URL_SHORTENERS: list[str] = ["bit.ly", "tinyurl.com", "t.co", "short.link", "ow.ly"]

DEFAULT_SUSPICIOUS_SCRIPT_HOSTS: list[str] = ["bit.ly", "tinyurl.com", "dropbox.com/s/", "pastebin.com"]

DEFAULT_LAYOUT_WEIGHTS: dict[str, int] = {
    "login_with_urgency": 45,
    "password_without_https": 40,
    "popup_with_urgency": 35,
    "redirect_script": 30,
    "download_with_urgency": 50,
    "unsafe_iframe": 60,
    "obfuscation": 40,
    "hidden_inputs": 25,
}

DEFAULT_REPORT_BASE_URL = "https://guardian-ai-scan.lovableproject.com/submit"


@dataclass
class Config:
    """Application configuration loaded from environment."""

    # Message/health host
    host: str = "127.0.0.1"
    port: int = 8090
    health_enabled: bool = True

    # Threat intelligence
    threat_feed_url: str = ""
    threat_feed_refresh_minutes: int = 60

    # Scanning
    analysis_timeout: float = 10.0
    rescan_quiet_seconds: float = 1.0
    rescan_throttle_seconds: float = 2.0

    # Visual detector
    ml_enabled: bool = True
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    image_model: str = "google/mobilenet_v2_1.0_224"
    screenshots_enabled: bool = False
    screenshot_timeout: int = 15

    # Registration age (RDAP)
    domain_age_enabled: bool = False
    rdap_url: str = "https://rdap.org/domain/"

    # Alerts
    report_base_url: str = DEFAULT_REPORT_BASE_URL
    high_auto_dismiss_seconds: int = 10

    # History caps (background store vs. popup-facing store)
    history_cap: int = 1000
    popup_history_cap: int = 100

    # Paths
    data_dir: Path = field(default_factory=lambda: Path("./data"))
    config_dir: Path = field(default_factory=lambda: Path("./config"))

    # Loaded lists
    whitelist: Set[str] = field(default_factory=set)

    # Heuristics (override via config/heuristics.yaml)
    suspicious_tlds: list[str] = field(default_factory=lambda: list(DEFAULT_SUSPICIOUS_TLDS))
    domain_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_DOMAIN_PATTERNS))
    phishing_keywords: list[str] = field(default_factory=lambda: list(DEFAULT_PHISHING_KEYWORDS))
    url_shorteners: list[str] = field(default_factory=lambda: list(DEFAULT_URL_SHORTENERS))
    suspicious_script_hosts: list[str] = field(
        default_factory=lambda: list(DEFAULT_SUSPICIOUS_SCRIPT_HOSTS)
    )
    keyword_points: int = 8
    keyword_category_cap: int | None = None
    brand_ml_threshold: float = 35.0
    brand_fallback_threshold: float = 20.0
    layout_weights: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_LAYOUT_WEIGHTS))

    def __post_init__(self):
        """Ensure paths exist and load lists."""
        self.data_dir = Path(self.data_dir)
        self.config_dir = Path(self.config_dir)

        self.data_dir.mkdir(parents=True, exist_ok=True)

        self._load_lists()

    @property
    def database_path(self) -> Path:
        return self.data_dir / "guardian.db"

    def _load_lists(self):
        """Load the seed whitelist from the config directory."""
        whitelist_path = self.config_dir / "whitelist.txt"
        if whitelist_path.exists():
            raw = self._load_list_file(whitelist_path)
            self.whitelist |= {normalize_whitelist_domain(item) or item for item in raw}

    @staticmethod
    def _load_list_file(path: Path) -> Set[str]:
        """Load a list file, ignoring comments and empty lines."""
        items = set()
        with open(path) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#"):
                    items.add(line.lower())
        return items


def _load_heuristics(config_dir: Path) -> dict:
    """Load heuristic overrides from config/heuristics.yaml (optional)."""
    path = Path(config_dir or ".") / "heuristics.yaml"
    if not path.exists():
        return {}

    try:
        data = yaml.safe_load(path.read_text()) or {}
    except Exception as exc:
        logger.warning("Failed to parse heuristics.yaml: %s", exc)
        return {}
    if not isinstance(data, dict):
        return {}

    def _coerce_str_list(raw) -> list[str] | None:
        if not isinstance(raw, (list, tuple, set)):
            return None
        items = [str(item).strip() for item in raw if str(item or "").strip()]
        return items or None

    def _coerce_int(raw) -> int | None:
        try:
            return int(raw)
        except (TypeError, ValueError):
            return None

    def _coerce_float(raw) -> float | None:
        try:
            return float(raw)
        except (TypeError, ValueError):
            return None

    def _coerce_weights(raw) -> dict[str, int] | None:
        if not isinstance(raw, dict):
            return None
        weights = dict(DEFAULT_LAYOUT_WEIGHTS)
        for key, value in raw.items():
            points = _coerce_int(value)
            if key in weights and points is not None:
                weights[key] = points
        return weights

    url_cfg = data.get("url", {}) or {}
    domain_cfg = data.get("domain", {}) or {}
    content_cfg = data.get("content", {}) or {}
    visual_cfg = data.get("visual", {}) or {}

    return {
        "suspicious_tlds": _coerce_str_list(url_cfg.get("suspicious_tlds")),
        "domain_patterns": _coerce_str_list(domain_cfg.get("patterns")),
        "phishing_keywords": _coerce_str_list(content_cfg.get("phishing_keywords")),
        "url_shorteners": _coerce_str_list(content_cfg.get("url_shorteners")),
        "suspicious_script_hosts": _coerce_str_list(content_cfg.get("suspicious_script_hosts")),
        "keyword_points": _coerce_int(content_cfg.get("keyword_points")),
        "keyword_category_cap": _coerce_int(content_cfg.get("keyword_category_cap")),
        "brand_ml_threshold": _coerce_float(visual_cfg.get("brand_ml_threshold")),
        "brand_fallback_threshold": _coerce_float(visual_cfg.get("brand_fallback_threshold")),
        "layout_weights": _coerce_weights(visual_cfg.get("layout_weights")),
    }


def load_config() -> Config:
    """Load configuration from environment variables."""
    load_dotenv()

    config_dir = Path(os.getenv("CONFIG_DIR", "./config"))
    heuristics = {k: v for k, v in _load_heuristics(config_dir).items() if v is not None}

    return Config(
        host=os.getenv("GUARDIAN_HOST", "127.0.0.1"),
        port=int(os.getenv("GUARDIAN_PORT", "8090")),
        health_enabled=os.getenv("HEALTH_ENABLED", "true").lower() == "true",
        threat_feed_url=os.getenv("THREAT_FEED_URL", ""),
        threat_feed_refresh_minutes=int(os.getenv("THREAT_FEED_REFRESH_MINUTES", "60")),
        analysis_timeout=float(os.getenv("ANALYSIS_TIMEOUT", "10")),
        rescan_quiet_seconds=float(os.getenv("RESCAN_QUIET_SECONDS", "1.0")),
        rescan_throttle_seconds=float(os.getenv("RESCAN_THROTTLE_SECONDS", "2.0")),
        ml_enabled=os.getenv("ML_ENABLED", "true").lower() == "true",
        embedding_model=os.getenv("EMBEDDING_MODEL", "sentence-transformers/all-MiniLM-L6-v2"),
        image_model=os.getenv("IMAGE_MODEL", "google/mobilenet_v2_1.0_224"),
        screenshots_enabled=os.getenv("SCREENSHOTS_ENABLED", "false").lower() == "true",
        screenshot_timeout=int(os.getenv("SCREENSHOT_TIMEOUT", "15")),
        domain_age_enabled=os.getenv("DOMAIN_AGE_ENABLED", "false").lower() == "true",
        rdap_url=os.getenv("RDAP_URL", "https://rdap.org/domain/"),
        report_base_url=os.getenv("REPORT_BASE_URL", DEFAULT_REPORT_BASE_URL),
        high_auto_dismiss_seconds=int(os.getenv("HIGH_AUTO_DISMISS_SECONDS", "10")),
        history_cap=int(os.getenv("HISTORY_CAP", "1000")),
        popup_history_cap=int(os.getenv("POPUP_HISTORY_CAP", "100")),
        data_dir=Path(os.getenv("DATA_DIR", "./data")),
        config_dir=config_dir,
        **heuristics,
    )


def validate_config(config: Config) -> list[str]:
    """Validate configuration and return list of error messages."""
    errors: list[str] = []
    if config.history_cap <= 0:
        errors.append("HISTORY_CAP must be positive")
    if config.popup_history_cap <= 0:
        errors.append("POPUP_HISTORY_CAP must be positive")
    if config.analysis_timeout <= 0:
        errors.append("ANALYSIS_TIMEOUT must be positive")
    if config.rescan_quiet_seconds < 0 or config.rescan_throttle_seconds < 0:
        errors.append("RESCAN_QUIET_SECONDS/RESCAN_THROTTLE_SECONDS must not be negative")
    if not 1 <= config.port <= 65535:
        errors.append("GUARDIAN_PORT must be between 1 and 65535")

    if not config.threat_feed_url and not (config.config_dir / "threat_intel.yaml").exists():
        logger.info("No THREAT_FEED_URL or threat_intel.yaml configured; threat intelligence will be empty")

    return errors
