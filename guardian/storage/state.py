"""Scan state: whitelist, bounded history and the shared threat store."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Iterable, Optional

from ..analyzer.models import RiskAssessment
from ..analyzer.threat_intel import ThreatIntelStore
from ..errors import PersistenceError
from ..utils.domains import normalize_whitelist_domain, whitelist_contains
from .database import Database

logger = logging.getLogger(__name__)

BACKGROUND_STORE = "background"
POPUP_STORE = "popup"


class ScanHistory:
    """Newest-first sequence of assessments bounded by `cap`."""

    def __init__(self, cap: int):
        if cap <= 0:
            raise ValueError("history cap must be positive")
        self.cap = cap
        self._entries: deque[RiskAssessment] = deque(maxlen=cap)

    def add(self, assessment: RiskAssessment) -> None:
        self._entries.appendleft(assessment)

    def entries(self) -> list[RiskAssessment]:
        return list(self._entries)

    def replace(self, entries: Iterable[RiskAssessment]) -> None:
        """Load entries given newest first; extras beyond the cap are dropped."""
        self._entries = deque(list(entries)[: self.cap], maxlen=self.cap)

    def __len__(self) -> int:
        return len(self._entries)


class ScanState:
    """State shared by the scan engine, alert dispatcher and message router."""

    def __init__(
        self,
        threat_store: Optional[ThreatIntelStore] = None,
        whitelist: Iterable[str] = (),
        history_cap: int = 1000,
        popup_history_cap: int = 100,
        database: Optional[Database] = None,
        flush_delay: float = 2.0,
    ):
        self.threat_store = threat_store or ThreatIntelStore()
        self.whitelist: set[str] = set()
        for domain in whitelist:
            self.add_whitelist(domain, persist=False)
        self.history = ScanHistory(history_cap)
        self.popup_history = ScanHistory(popup_history_cap)
        self.database = database
        self.flush_delay = flush_delay
        self._flush_handle: Optional[asyncio.TimerHandle] = None
        self._flush_tasks: set[asyncio.Task] = set()
        self._whitelist_dirty = False
        self._history_dirty = False

    # Whitelist

    def is_whitelisted(self, domain: str) -> bool:
        return whitelist_contains(domain, self.whitelist)

    def add_whitelist(self, domain: str, persist: bool = True) -> bool:
        normalized = normalize_whitelist_domain(domain)
        if not normalized:
            return False
        self.whitelist.add(normalized)
        if persist:
            self._whitelist_dirty = True
            self._schedule_flush()
        return True

    def remove_whitelist(self, domain: str) -> bool:
        normalized = normalize_whitelist_domain(domain)
        if normalized not in self.whitelist:
            return False
        self.whitelist.discard(normalized)
        self._whitelist_dirty = True
        self._schedule_flush()
        return True

    # History

    def record(self, assessment: RiskAssessment) -> None:
        """Add an assessment to both history stores."""
        self.history.add(assessment)
        self.popup_history.add(assessment)
        self._history_dirty = True
        self._schedule_flush()

    # Persistence

    async def load(self) -> None:
        """Merge persisted whitelist and history into memory."""
        if not self.database:
            return
        try:
            self.whitelist |= await self.database.load_whitelist()
            self.history.replace(await self.database.load_history(BACKGROUND_STORE, self.history.cap))
            self.popup_history.replace(
                await self.database.load_history(POPUP_STORE, self.popup_history.cap)
            )
        except PersistenceError as exc:
            logger.warning("Failed to load persisted state, starting empty: %s", exc)
            return
        logger.info(
            "Loaded %d whitelisted domains and %d history entries",
            len(self.whitelist),
            len(self.history),
        )

    def _schedule_flush(self) -> None:
        if not self.database:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if self._flush_handle:
            self._flush_handle.cancel()
        self._flush_handle = loop.call_later(self.flush_delay, self._start_flush)

    def _start_flush(self) -> None:
        self._flush_handle = None
        task = asyncio.create_task(self.flush())
        self._flush_tasks.add(task)
        task.add_done_callback(self._flush_tasks.discard)

    async def flush(self) -> None:
        """Write pending changes. Failures are logged and retried on the next flush."""
        if not self.database:
            return
        try:
            if self._whitelist_dirty:
                self._whitelist_dirty = False
                await self.database.save_whitelist(self.whitelist)
            if self._history_dirty:
                self._history_dirty = False
                await self.database.replace_history(BACKGROUND_STORE, self.history.entries())
                await self.database.replace_history(POPUP_STORE, self.popup_history.entries())
        except PersistenceError as exc:
            logger.warning("Failed to persist scan state: %s", exc)
            self._whitelist_dirty = True
            self._history_dirty = True

    async def close(self) -> None:
        """Cancel the pending debounce and flush immediately."""
        if self._flush_handle:
            self._flush_handle.cancel()
            self._flush_handle = None
        if self._flush_tasks:
            await asyncio.gather(*self._flush_tasks, return_exceptions=True)
        await self.flush()
