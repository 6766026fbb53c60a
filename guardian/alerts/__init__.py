"""Alert decisions and presentation for Guardian."""

from .dispatcher import AlertDispatcher, WarningOverlayRegistry

__all__ = ["AlertDispatcher", "WarningOverlayRegistry"]
