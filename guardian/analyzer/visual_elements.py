"""Regex fingerprints and deterministic scoring used by the visual detector."""

from __future__ import annotations

import re
from typing import Iterable, Optional

from ..config import DEFAULT_LAYOUT_WEIGHTS
from .models import BrandReference, BrandSimilarity, LogoDetection

UI_ELEMENT_PATTERNS: dict[str, re.Pattern] = {
    "login-form": re.compile(r"<form[^>]*(?:login|signin|sign-in)[^>]*>", re.I),
    "password-input": re.compile(r"<input[^>]*type=[\"']password[\"'][^>]*>", re.I),
    "email-input": re.compile(r"<input[^>]*type=[\"']email[\"'][^>]*>", re.I),
    "submit-button": re.compile(r"<(?:button|input)[^>]*(?:submit|login|signin)[^>]*>", re.I),
    "security-badge": re.compile(r"(?:secure|verified|ssl|https|trusted|safe|protection)", re.I),
    "urgency-text": re.compile(
        r"(?:urgent|immediate|expires|limited time|act now|verify now|suspend|locked)", re.I
    ),
    "logo-image": re.compile(r"<img[^>]*(?:logo|brand)[^>]*>", re.I),
    "social-login": re.compile(
        r"(?:facebook|google|twitter|linkedin|github).*(?:login|signin|connect)", re.I
    ),
    "payment-form": re.compile(r"<input[^>]*(?:card|payment|billing)[^>]*>", re.I),
    "phone-input": re.compile(r"<input[^>]*(?:phone|mobile|tel)[^>]*>", re.I),
    "captcha": re.compile(r"(?:captcha|recaptcha|verification)", re.I),
    "popup-modal": re.compile(r"<div[^>]*(?:modal|popup|overlay)[^>]*>", re.I),
    "download-link": re.compile(r"<a[^>]*(?:download|install)[^>]*>", re.I),
    "redirect-script": re.compile(r"<script[^>]*(?:location|redirect|window\.open)[^>]*>", re.I),
}

UNSAFE_IFRAME_PATTERN = re.compile(r"<iframe[^>]*src=[\"'][^\"']*(?:data:|javascript:)[^\"']*[\"']")
OBFUSCATION_PATTERN = re.compile(r"eval\(|document\.write\(|unescape\(|atob\(")
HIDDEN_INPUT_PATTERN = re.compile(r"<input[^>]*type=[\"']hidden[\"'][^>]*>", re.I)
TAG_PATTERN = re.compile(r"<[^>]*>")

TEXT_LOGO_CONFIDENCE = 0.75

# Image classifier labels that hint at a service category.
LABEL_BRAND_MAP: dict[str, str] = {
    "envelope": "Email Service",
    "laptop": "Technology",
    "cellular telephone": "Mobile Service",
    "bank": "Banking",
}


def extract_ui_elements(content: str) -> list[str]:
    """Return the UI fingerprints present in raw HTML, in fixed order."""
    if not content:
        return []
    return [name for name, pattern in UI_ELEMENT_PATTERNS.items() if pattern.search(content)]


def page_text(content: str, limit: int) -> str:
    """Strip tags and keep the first `limit` characters."""
    return TAG_PATTERN.sub(" ", content or "")[:limit]


def count_mentions(brand: BrandReference, content: str) -> int:
    return len(re.findall(re.escape(brand.name.lower()), content or "", re.I))


def color_hits(brand: BrandReference, content: str) -> int:
    content_lower = (content or "").lower()
    return sum(1 for color in brand.common_colors if color.lower() in content_lower)


def sort_similarities(similarities: Iterable[BrandSimilarity]) -> list[BrandSimilarity]:
    return sorted(similarities, key=lambda s: s.similarity, reverse=True)


def basic_brand_similarities(
    brands: Iterable[BrandReference], content: str, threshold: float = 20.0
) -> list[BrandSimilarity]:
    """Keyword-only brand similarity used when models are unavailable."""
    content_lower = (content or "").lower()
    results = []
    for brand in brands:
        similarity = count_mentions(brand, content) * 30
        similarity += sum(15 for element in brand.key_elements if element.lower() in content_lower)
        similarity = min(100, similarity)
        if similarity > threshold:
            results.append(BrandSimilarity(brand.name, float(similarity)))
    return sort_similarities(results)


def layout_suspicion(
    ui_elements: list[str], content: str, weights: Optional[dict[str, int]] = None
) -> int:
    """Score suspicious layout combinations, clamped to 100."""
    w = dict(DEFAULT_LAYOUT_WEIGHTS)
    if weights:
        w.update(weights)
    content = content or ""
    elements = set(ui_elements)

    score = 0
    if "login-form" in elements and "urgency-text" in elements:
        score += w["login_with_urgency"]
    if "password-input" in elements and "https" not in content:
        score += w["password_without_https"]
    if "popup-modal" in elements and "urgency-text" in elements:
        score += w["popup_with_urgency"]
    if "redirect-script" in elements:
        score += w["redirect_script"]
    if "download-link" in elements and "urgency-text" in elements:
        score += w["download_with_urgency"]
    if UNSAFE_IFRAME_PATTERN.search(content):
        score += w["unsafe_iframe"]
    if OBFUSCATION_PATTERN.search(content):
        score += w["obfuscation"]
    if len(HIDDEN_INPUT_PATTERN.findall(content)) > 3:
        score += w["hidden_inputs"]

    return min(100, score)


def text_logo_detections(brands: Iterable[BrandReference], content: str) -> list[LogoDetection]:
    """Brand names mentioned near "logo" or "brand" in the markup."""
    detections = []
    for brand in brands:
        name = re.escape(brand.name.lower())
        pattern = re.compile(f"{name}.*logo|logo.*{name}|{name}.*brand", re.I)
        if pattern.search(content or ""):
            detections.append(LogoDetection(brand.name, TEXT_LOGO_CONFIDENCE))
    return detections


def map_label_to_brand(label: str) -> Optional[str]:
    label_lower = (label or "").lower()
    if "web site" in label_lower or "screen" in label_lower:
        return None
    # ImageNet labels list synonyms: "laptop, laptop computer"
    return LABEL_BRAND_MAP.get(label_lower) or LABEL_BRAND_MAP.get(label_lower.split(",")[0].strip())
