"""Re-scan scheduling for live pages.

DOM mutations arrive in bursts. ``RescanTrigger`` coalesces a burst into one
scan after a quiet window and enforces a minimum interval between scans.
``PageScanContext`` keeps at most one scan in flight per page; a trigger that
lands during a scan queues exactly one follow-up.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from ..analyzer.models import RiskAssessment

logger = logging.getLogger(__name__)


class RescanTrigger:
    """Debounce + throttle around a scan callback."""

    def __init__(
        self,
        callback: Callable[[], None],
        quiet_seconds: float = 1.0,
        throttle_seconds: float = 2.0,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.callback = callback
        self.quiet_seconds = quiet_seconds
        self.throttle_seconds = throttle_seconds
        self._loop = loop
        self.last_run: Optional[float] = None
        self.pending: Optional[asyncio.TimerHandle] = None

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def notify(self) -> None:
        """Record a mutation; (re)arm the quiet-window timer."""
        if self.pending:
            self.pending.cancel()
        self.pending = self.loop.call_later(self.quiet_seconds, self._fire)

    def _fire(self) -> None:
        self.pending = None
        now = self.loop.time()
        if self.last_run is not None:
            elapsed = now - self.last_run
            if elapsed < self.throttle_seconds:
                self.pending = self.loop.call_later(self.throttle_seconds - elapsed, self._fire)
                return
        self.last_run = now
        try:
            self.callback()
        except Exception as exc:
            logger.error("Re-scan callback failed: %s", exc)

    def cancel(self) -> None:
        if self.pending:
            self.pending.cancel()
            self.pending = None


class PageScanContext:
    """Per-page scan coordinator: single flight, one queued follow-up."""

    def __init__(
        self,
        engine,
        url: str,
        content: Optional[str] = None,
        tab_id=None,
        quiet_seconds: float = 1.0,
        throttle_seconds: float = 2.0,
    ):
        self.engine = engine
        self.url = url
        self.content = content
        self.tab_id = tab_id
        self.rerun_pending = False
        self.last_result: Optional[RiskAssessment] = None
        self.scan_count = 0
        self.closed = False
        self._task: Optional[asyncio.Task] = None
        self.trigger = RescanTrigger(self.request_scan, quiet_seconds, throttle_seconds)

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    def update(self, url: Optional[str] = None, content: Optional[str] = None) -> None:
        if url:
            self.url = url
        if content is not None:
            self.content = content

    def notify_mutation(self, content: Optional[str] = None) -> None:
        """Page content changed; schedule a debounced re-scan."""
        if self.closed:
            return
        self.update(content=content)
        self.trigger.notify()

    def request_scan(self) -> Optional[asyncio.Task]:
        """Start a scan now, or queue one behind the in-flight scan."""
        if self.closed:
            return None
        if self.in_flight:
            self.rerun_pending = True
            return self._task
        self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    async def scan_now(self) -> Optional[RiskAssessment]:
        """Run (or join) a scan and wait for the queue to drain."""
        task = self.request_scan()
        if task is None:
            return None
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            # Page closed mid-scan; the caller itself was not cancelled.
            if not self.closed:
                raise
            return None
        return self.last_result

    async def _run(self) -> None:
        while True:
            self.rerun_pending = False
            try:
                self.last_result = await self.engine.scan(
                    self.url, self.content, tab_id=self.tab_id
                )
                self.scan_count += 1
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("Page scan failed for %s: %s", self.url, exc)
            if not self.rerun_pending or self.closed:
                break

    def close(self) -> None:
        """Page unload: drop timers and the in-flight scan."""
        self.closed = True
        self.trigger.cancel()
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None
