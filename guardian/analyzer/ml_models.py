"""Lazily loaded Hugging Face pipelines for the visual detector."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Optional

import numpy as np
import torch
from PIL import Image
from transformers import pipeline

logger = logging.getLogger(__name__)


class ModelState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


PipelineLoader = Callable[[str, str], tuple[Any, Any]]


def load_pipelines(embedding_model: str, image_model: str) -> tuple[Any, Any]:
    """Build (feature-extraction, image-classification) pipelines. Blocking."""
    device = 0 if torch.cuda.is_available() else -1
    embedder = pipeline("feature-extraction", model=embedding_model, device=device)
    classifier = pipeline("image-classification", model=image_model, device=device)
    return embedder, classifier


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    denom = float(np.linalg.norm(a) * np.linalg.norm(b))
    if denom == 0.0:
        return 0.0
    return float(np.dot(a, b) / denom)


class ModelResource:
    """Owns the model pipelines and their load state.

    Initialization happens at most once, in a single shared task. Callers that
    time out or are cancelled while waiting leave that task running. A failed
    load is permanent for the life of the process; callers then use the
    keyword fallbacks.

    Warmups registered with add_warmup run in a worker thread after the
    pipelines load and before the resource reports READY.
    """

    def __init__(
        self,
        embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2",
        image_model: str = "google/mobilenet_v2_1.0_224",
        enabled: bool = True,
        loader: Optional[PipelineLoader] = None,
    ):
        self.embedding_model = embedding_model
        self.image_model = image_model
        self.state = ModelState.UNINITIALIZED if enabled else ModelState.FAILED
        self._loader = loader or load_pipelines
        self._init_task: Optional[asyncio.Task] = None
        self._warmups: list[Callable[[], None]] = []
        self._embedder: Any = None
        self._classifier: Any = None

    @property
    def ready(self) -> bool:
        return self.state is ModelState.READY

    def add_warmup(self, warmup: Callable[[], None]) -> None:
        """Register a blocking callable to run once the pipelines are loaded."""
        self._warmups.append(warmup)

    async def ensure_ready(self) -> bool:
        """Load the pipelines if needed. Returns True when models are usable."""
        if self.state is ModelState.READY:
            return True
        if self.state is ModelState.FAILED:
            return False

        if self._init_task is None:
            self._init_task = asyncio.create_task(self._initialize())
        return await asyncio.shield(self._init_task)

    async def _initialize(self) -> bool:
        self.state = ModelState.INITIALIZING
        logger.info("Loading visual models (%s, %s)", self.embedding_model, self.image_model)
        try:
            self._embedder, self._classifier = await asyncio.to_thread(
                self._loader, self.embedding_model, self.image_model
            )
        except Exception as exc:
            logger.warning("Visual model initialization failed, using fallback analysis: %s", exc)
            self._embedder = None
            self._classifier = None
            self.state = ModelState.FAILED
            return False

        for warmup in self._warmups:
            try:
                await asyncio.to_thread(warmup)
            except Exception as exc:
                logger.warning("Visual model warmup failed: %s", exc)

        self.state = ModelState.READY
        logger.info("Visual models ready")
        return True

    def embed(self, text: str) -> np.ndarray:
        """Mean-pooled, L2-normalized sentence embedding."""
        if self._embedder is None:
            raise RuntimeError("Embedding model not ready")
        with torch.no_grad():
            output = self._embedder(text, truncation=True)
        arr = np.asarray(output, dtype=np.float32)
        while arr.ndim > 2:
            arr = arr[0]
        vec = arr.mean(axis=0) if arr.ndim == 2 else arr
        norm = float(np.linalg.norm(vec))
        return vec / norm if norm else vec

    def classify(self, image: Image.Image, top_k: int = 5) -> list[dict]:
        """Return [{"label": str, "score": float}, ...] for an image."""
        if self._classifier is None:
            raise RuntimeError("Image model not ready")
        with torch.no_grad():
            results = self._classifier(image.convert("RGB"), top_k=top_k)
        return [
            {"label": str(r.get("label", "")), "score": float(r.get("score", 0.0))}
            for r in results or []
        ]
