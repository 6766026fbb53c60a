"""Main entry point for the Guardian scanning service."""

import asyncio
import logging
import signal
import sys
from datetime import datetime, timezone

from .alerts.dispatcher import AlertDispatcher
from .analyzer.metrics import metrics
from .analyzer.screenshot import ScreenshotCapturer
from .analyzer.threat_intel import ThreatIntelLoader, ThreatIntelStore
from .analyzer.visual_detector import VisualBrandDetector
from .config import Config, load_config, validate_config
from .monitoring.health import HealthServer
from .pipeline.messages import MessageRouter
from .pipeline.scanner import ScanEngine
from .storage.database import Database
from .storage.state import ScanState

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
    ],
)
logger = logging.getLogger(__name__)


class GuardianService:
    """Owns the scan state and every long-lived component."""

    def __init__(self, config: Config):
        self.config = config
        self._running = False
        self._tasks: list[asyncio.Task] = []
        self._stop_event = asyncio.Event()
        self._stop_lock = asyncio.Lock()
        self._stop_task: asyncio.Task | None = None
        self._started_at = datetime.now(timezone.utc)

        self.database = Database(config.database_path)
        self.threat_store = ThreatIntelStore()
        self.threat_loader = ThreatIntelLoader(
            config.config_dir,
            store=self.threat_store,
            feed_url=config.threat_feed_url,
            refresh_minutes=config.threat_feed_refresh_minutes,
        )
        self.state = ScanState(
            threat_store=self.threat_store,
            whitelist=config.whitelist,
            history_cap=config.history_cap,
            popup_history_cap=config.popup_history_cap,
            database=self.database,
        )
        self.dispatcher = AlertDispatcher(
            self.state,
            report_base_url=config.report_base_url,
            high_auto_dismiss_seconds=config.high_auto_dismiss_seconds,
        )
        self.screenshotter = ScreenshotCapturer(
            timeout=config.screenshot_timeout,
            enabled=config.screenshots_enabled,
        )
        self.visual_detector = VisualBrandDetector.from_config(config)
        self.engine = ScanEngine.from_config(
            config,
            self.state,
            dispatcher=self.dispatcher,
            visual_detector=self.visual_detector,
            screenshotter=self.screenshotter,
        )
        self.router = MessageRouter(
            self.engine,
            self.state,
            quiet_seconds=config.rescan_quiet_seconds,
            throttle_seconds=config.rescan_throttle_seconds,
        )
        self.health_server = HealthServer(
            host=config.host,
            port=config.port,
            status_provider=self._health_snapshot,
            message_handler=self.router.handle,
            enabled=config.health_enabled,
        )

    def _health_snapshot(self) -> dict:
        """Provide a lightweight status dict for health endpoints."""
        uptime = (datetime.now(timezone.utc) - self._started_at).total_seconds()
        summary = metrics.get_summary()
        return {
            "status": "ok" if self._running else "stopped",
            "uptime_seconds": round(uptime, 1),
            "threat_indicators": len(self.threat_store),
            "whitelisted_domains": len(self.state.whitelist),
            "history_entries": len(self.state.history),
            "open_pages": len(self.router.contexts),
            "visual_model_state": self.visual_detector.models.state.value,
            "total_scans": summary["total_scans"],
            "verdicts": summary["verdicts"],
        }

    async def start(self):
        """Start all service components."""
        logger.info("Starting Guardian service...")
        self._running = True

        try:
            await self.database.connect()
            await self.state.load()
            logger.info("Database connected")
        except Exception as exc:
            logger.error("Persistence unavailable, running in-memory only: %s", exc)
            self.state.database = None

        await self.threat_loader.refresh()

        self._tasks = [
            asyncio.create_task(self.threat_loader.run_periodic(self._stop_event)),
            asyncio.create_task(self._overlay_expiry_worker()),
        ]

        await self.health_server.start()
        logger.info("Guardian service running")

        try:
            await asyncio.gather(*self._tasks)
        except asyncio.CancelledError:
            logger.info("Service tasks cancelled")

    async def _overlay_expiry_worker(self):
        """Drop auto-dismissable warnings once their delay has passed."""
        while self._running:
            try:
                expired = self.dispatcher.overlays.expire_due()
                if expired:
                    logger.debug("Auto-dismissed warnings for tabs %s", expired)
                await asyncio.sleep(1)
            except asyncio.CancelledError:
                break

    async def stop(self):
        """Stop all service components."""
        async with self._stop_lock:
            if self._stop_task is None:
                self._stop_task = asyncio.create_task(self._stop_impl())
            stop_task = self._stop_task
        await stop_task

    async def _stop_impl(self):
        """One-shot shutdown implementation (idempotent via stop())."""
        logger.info("Stopping Guardian service...")
        self._running = False
        self._stop_event.set()

        self.router.close()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        await self.health_server.stop()
        await self.screenshotter.stop()
        await self.state.close()
        await self.database.close()

        logger.info("Guardian service stopped")


async def run_service():
    """Run the Guardian service."""
    config = load_config()

    validation_errors = validate_config(config)
    if validation_errors:
        for err in validation_errors:
            logger.error(err)
        sys.exit(1)

    service = GuardianService(config)

    # Handle shutdown signals
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda: asyncio.create_task(service.stop()))

    try:
        await service.start()
    except KeyboardInterrupt:
        pass
    finally:
        await service.stop()


def main():
    """Entry point."""
    asyncio.run(run_service())


if __name__ == "__main__":
    main()
