"""Reference data for commonly impersonated brands."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml

from .models import BrandReference

logger = logging.getLogger(__name__)


def _brand(name: str, logo_url: str, colors: list[str], elements: list[str]) -> BrandReference:
    return BrandReference(
        name=name,
        common_colors=frozenset(colors),
        key_elements=frozenset(elements),
        logo_url=logo_url,
    )


DEFAULT_BRANDS: tuple[BrandReference, ...] = (
    _brand(
        "PayPal",
        "/brand-logos/paypal.png",
        ["#003087", "#009cde", "#012169"],
        ["blue gradient", "paypal text", "secure payment", "login form", "two overlapping shapes"],
    ),
    _brand(
        "Amazon",
        "/brand-logos/amazon.png",
        ["#ff9900", "#232f3e"],
        ["orange smile arrow", "black text", "search bar", "cart icon"],
    ),
    _brand(
        "Microsoft",
        "/brand-logos/microsoft.png",
        ["#00BCF2", "#80BB01", "#FFBB00", "#F25022"],
        ["four colored squares", "microsoft text", "office 365", "outlook"],
    ),
    _brand(
        "Google",
        "/brand-logos/google.png",
        ["#4285F4", "#EA4335", "#FBBC05", "#34A853"],
        ["multicolor letters", "search box", "gmail", "sign in button"],
    ),
    _brand(
        "Apple",
        "/brand-logos/apple.png",
        ["#000000", "#ffffff", "#1d1d1f"],
        ["apple logo", "clean design", "minimal layout", "icloud"],
    ),
    _brand(
        "Netflix",
        "/brand-logos/netflix.png",
        ["#E50914", "#000000"],
        ["red logo", "black background", "streaming", "play button"],
    ),
    _brand(
        "Banking",
        "/brand-logos/bank.png",
        ["#003366", "#ffffff", "#C9B037"],
        ["security icons", "login form", "online banking", "shield icon"],
    ),
)

# UI fingerprints that make a brand impersonation more plausible.
BRAND_CONTEXTS: dict[str, frozenset[str]] = {
    "paypal": frozenset({"login-form", "payment-form", "security-badge"}),
    "amazon": frozenset({"login-form", "submit-button"}),
    "microsoft": frozenset({"login-form", "email-input"}),
    "google": frozenset({"login-form", "email-input", "social-login"}),
    "apple": frozenset({"login-form", "security-badge"}),
    "netflix": frozenset({"login-form", "password-input"}),
    "banking": frozenset({"login-form", "security-badge", "captcha"}),
}


def brand_text(brand: BrandReference) -> str:
    """Text used to embed a brand: its name followed by its key elements."""
    return " ".join([brand.name, *sorted(brand.key_elements)])


def has_relevant_context(brand: BrandReference, ui_elements: list[str]) -> bool:
    context = BRAND_CONTEXTS.get(brand.name.lower(), frozenset())
    return any(element in context for element in ui_elements)


def load_brands(config_dir: Optional[Path] = None) -> tuple[BrandReference, ...]:
    """Return the brand table, replaced by config/brands.yaml when that file exists."""
    if config_dir is None:
        return DEFAULT_BRANDS
    path = Path(config_dir) / "brands.yaml"
    if not path.exists():
        return DEFAULT_BRANDS

    try:
        data = yaml.safe_load(path.read_text()) or {}
    except Exception as exc:
        logger.warning("Failed to parse brands.yaml: %s", exc)
        return DEFAULT_BRANDS

    brands = []
    for item in data.get("brands", []) if isinstance(data, dict) else []:
        if not isinstance(item, dict) or not item.get("name"):
            continue
        brands.append(
            _brand(
                str(item["name"]),
                item.get("logo_url") or "",
                [str(c) for c in item.get("colors") or []],
                [str(e) for e in item.get("key_elements") or []],
            )
        )
    if not brands:
        return DEFAULT_BRANDS
    logger.info("Loaded %d brands from %s", len(brands), path)
    return tuple(brands)
