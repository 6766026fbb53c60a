"""Storage modules for Guardian."""

from .database import Database
from .state import ScanHistory, ScanState

__all__ = ["Database", "ScanHistory", "ScanState"]
