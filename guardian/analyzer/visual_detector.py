"""Visual brand-similarity detector with a keyword fallback."""

from __future__ import annotations

import asyncio
import io
import logging
from typing import Iterable, Optional

import numpy as np
from PIL import Image

from ..config import Config
from .brands import DEFAULT_BRANDS, brand_text, has_relevant_context, load_brands
from .ml_models import ModelResource, cosine_similarity
from .models import BrandReference, BrandSimilarity, LogoDetection, SignalResult, VisualAnalysis
from .visual_elements import (
    basic_brand_similarities,
    color_hits,
    count_mentions,
    extract_ui_elements,
    layout_suspicion,
    map_label_to_brand,
    page_text,
    sort_similarities,
    text_logo_detections,
)

logger = logging.getLogger(__name__)

PHISHING_TEMPLATES: tuple[str, ...] = (
    "verify your account immediately",
    "your account has been suspended",
    "click here to secure your account",
    "update your payment information",
    "confirm your identity",
)


class VisualBrandDetector:
    """Scores how closely a page imitates a known brand."""

    source = "visual"

    def __init__(
        self,
        models: Optional[ModelResource] = None,
        brands: Iterable[BrandReference] = DEFAULT_BRANDS,
        ml_threshold: float = 35.0,
        fallback_threshold: float = 20.0,
        layout_weights: Optional[dict[str, int]] = None,
    ):
        self.models = models or ModelResource()
        self.brands = tuple(brands)
        self.ml_threshold = ml_threshold
        self.fallback_threshold = fallback_threshold
        self.layout_weights = layout_weights
        self._brand_embeddings: dict[str, np.ndarray] = {}
        self._template_embeddings: list[np.ndarray] = []
        self.models.add_warmup(self._precompute_embeddings)

    @classmethod
    def from_config(cls, config: Config) -> "VisualBrandDetector":
        models = ModelResource(
            embedding_model=config.embedding_model,
            image_model=config.image_model,
            enabled=config.ml_enabled,
        )
        return cls(
            models=models,
            brands=load_brands(config.config_dir),
            ml_threshold=config.brand_ml_threshold,
            fallback_threshold=config.brand_fallback_threshold,
            layout_weights=config.layout_weights,
        )

    async def analyze(
        self, url: str, html: str, screenshot: Optional[bytes] = None
    ) -> VisualAnalysis:
        content = html or ""
        ui_elements = extract_ui_elements(content)
        layout = layout_suspicion(ui_elements, content, self.layout_weights)

        if not await self.models.ensure_ready():
            return VisualAnalysis(
                brand_similarities=basic_brand_similarities(
                    self.brands, content, self.fallback_threshold
                ),
                ui_elements=ui_elements,
                layout_suspicion=layout,
                logo_detections=text_logo_detections(self.brands, content),
                text_similarity=None,
                screenshot_captured=screenshot is not None,
            )

        try:
            similarities = await asyncio.to_thread(self._ml_brand_similarities, content, ui_elements)
        except Exception as exc:
            logger.warning("ML brand detection failed for %s, using basic method: %s", url, exc)
            similarities = basic_brand_similarities(self.brands, content, self.fallback_threshold)

        logos = await self._detect_logos(url, content, screenshot)

        text_similarity: Optional[float] = None
        if content:
            try:
                text_similarity = await asyncio.to_thread(self._template_similarity, content)
            except Exception as exc:
                logger.warning("Text similarity calculation failed for %s: %s", url, exc)

        return VisualAnalysis(
            brand_similarities=similarities,
            ui_elements=ui_elements,
            layout_suspicion=layout,
            logo_detections=logos,
            text_similarity=text_similarity,
            screenshot_captured=screenshot is not None,
        )

    def _precompute_embeddings(self) -> None:
        for brand in self.brands:
            self._brand_embeddings[brand.name] = self.models.embed(brand_text(brand))
        self._template_embeddings = [self.models.embed(t) for t in PHISHING_TEMPLATES]
        logger.debug("Precomputed %d brand embeddings", len(self._brand_embeddings))

    def _brand_embedding(self, brand: BrandReference) -> np.ndarray:
        cached = self._brand_embeddings.get(brand.name)
        if cached is None:
            cached = self.models.embed(brand_text(brand))
            self._brand_embeddings[brand.name] = cached
        return cached

    def _ml_brand_similarities(self, content: str, ui_elements: list[str]) -> list[BrandSimilarity]:
        page_embedding = self.models.embed(page_text(content, 1000))
        results = []
        for brand in self.brands:
            similarity = cosine_similarity(page_embedding, self._brand_embedding(brand)) * 60
            similarity += count_mentions(brand, content) * 25
            if has_relevant_context(brand, ui_elements):
                similarity += 30
            similarity += color_hits(brand, content) * 10
            similarity = min(100.0, similarity)
            if similarity > self.ml_threshold:
                results.append(BrandSimilarity(brand.name, similarity))
        return sort_similarities(results)

    def _template_similarity(self, content: str) -> float:
        if not self._template_embeddings:
            self._template_embeddings = [self.models.embed(t) for t in PHISHING_TEMPLATES]
        page_embedding = self.models.embed(page_text(content, 500))
        best = max(cosine_similarity(page_embedding, t) for t in self._template_embeddings)
        return max(0.0, best) * 100

    def _classify_screenshot(self, screenshot: bytes) -> list[LogoDetection]:
        image = Image.open(io.BytesIO(screenshot))
        detections = []
        for result in self.models.classify(image):
            brand = map_label_to_brand(result["label"])
            if brand:
                detections.append(LogoDetection(brand, result["score"]))
        return detections

    async def _detect_logos(
        self, url: str, content: str, screenshot: Optional[bytes]
    ) -> list[LogoDetection]:
        text_detections = text_logo_detections(self.brands, content)
        if not screenshot:
            return text_detections

        try:
            detections = await asyncio.to_thread(self._classify_screenshot, screenshot)
        except Exception as exc:
            logger.warning("Logo classification failed for %s, using text detection: %s", url, exc)
            return text_detections

        seen = {d.brand for d in detections}
        detections.extend(d for d in text_detections if d.brand not in seen)
        return sorted(detections, key=lambda d: d.confidence, reverse=True)


def to_signal(visual: VisualAnalysis) -> SignalResult:
    """Convert a visual analysis into a score contribution."""
    score = 0
    reasons: list[str] = []
    if visual.layout_suspicion > 50:
        score += 30
        reasons.append("Suspicious page layout")
    for similarity in visual.brand_similarities:
        if similarity.similarity > 70:
            score += 25
            reasons.append(f"Potential {similarity.brand} impersonation")
    return SignalResult(min(100, score), tuple(reasons), "visual")
