"""Request/response contract between hosts (extension, web form, batch) and the core."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

from ..analyzer.app_analyzer import AppListing, AppListingAnalyzer
from ..analyzer.models import RiskAssessment
from ..constants import ScanType
from ..storage.state import ScanState
from .scanner import ScanEngine
from .scheduler import PageScanContext

logger = logging.getLogger(__name__)

Handler = Callable[[dict], Awaitable[dict]]


class MessageRouter:
    """Dispatches typed messages. Always answers with a dict, never raises."""

    def __init__(
        self,
        engine: ScanEngine,
        state: ScanState,
        quiet_seconds: float = 1.0,
        throttle_seconds: float = 2.0,
        app_analyzer: Optional[AppListingAnalyzer] = None,
    ):
        self.engine = engine
        self.app_analyzer = app_analyzer or AppListingAnalyzer()
        self.state = state
        self.quiet_seconds = quiet_seconds
        self.throttle_seconds = throttle_seconds
        self.contexts: dict[object, PageScanContext] = {}
        self._handlers: dict[str, Handler] = {
            "scan_url": self._scan_url,
            "get_threat_intelligence": self._get_threat_intelligence,
            "update_whitelist": self._update_whitelist,
            "get_scan_history": self._get_scan_history,
            "perform_scan": self._perform_scan,
            "threat_detected": self._threat_detected,
            "page_mutation": self._page_mutation,
            "page_unload": self._page_unload,
            "analyze_app": self._analyze_app,
        }

    async def handle(self, message: dict) -> dict:
        if not isinstance(message, dict):
            return {"success": False, "error": "Message must be an object"}
        handler = self._handlers.get(message.get("type"))
        if handler is None:
            return {"success": False, "error": "Unknown message type"}
        try:
            return await handler(message)
        except Exception as exc:
            logger.error("Error handling %s message: %s", message.get("type"), exc)
            return {"success": False, "error": str(exc)}

    async def _scan_url(self, message: dict) -> dict:
        url = message.get("url")
        if not url:
            return {"success": False, "error": "url is required"}
        result = await self.engine.scan(url, message.get("content"), scan_type=ScanType.DETAILED)
        return {"success": True, "result": result.to_dict()}

    async def _get_threat_intelligence(self, message: dict) -> dict:
        threat = self.state.threat_store.get(message.get("indicator") or "")
        return {"success": True, "threat": threat.to_dict() if threat else None}

    async def _update_whitelist(self, message: dict) -> dict:
        domain = message.get("domain") or ""
        action = message.get("action")
        if action == "add":
            if not self.state.add_whitelist(domain):
                return {"success": False, "error": f"Invalid domain: {domain!r}"}
        elif action == "remove":
            self.state.remove_whitelist(domain)
        else:
            return {"success": False, "error": f"Invalid whitelist action: {action!r}"}
        logger.info("Whitelist %s: %s", action, domain)
        return {"success": True}

    async def _get_scan_history(self, message: dict) -> dict:
        return {
            "success": True,
            "history": [entry.to_dict() for entry in self.state.history.entries()],
        }

    def context_for(self, tab_id, url: Optional[str] = None) -> Optional[PageScanContext]:
        context = self.contexts.get(tab_id)
        if context is None and url:
            context = PageScanContext(
                self.engine,
                url,
                tab_id=tab_id,
                quiet_seconds=self.quiet_seconds,
                throttle_seconds=self.throttle_seconds,
            )
            self.contexts[tab_id] = context
        return context

    def close_context(self, tab_id) -> None:
        context = self.contexts.pop(tab_id, None)
        if context:
            context.close()

    async def _perform_scan(self, message: dict) -> dict:
        tab_id = message.get("tabId")
        context = self.context_for(tab_id, message.get("url"))
        if context is None:
            return {"success": False, "error": "No page to scan"}
        context.update(message.get("url"), message.get("content"))
        await context.scan_now()
        return {"success": True}

    async def _page_mutation(self, message: dict) -> dict:
        tab_id = message.get("tabId")
        context = self.context_for(tab_id, message.get("url"))
        if context is None:
            return {"success": False, "error": "No page to scan"}
        context.update(url=message.get("url"))
        context.notify_mutation(message.get("content"))
        return {"success": True}

    async def _page_unload(self, message: dict) -> dict:
        self.close_context(message.get("tabId"))
        return {"success": True}

    async def _analyze_app(self, message: dict) -> dict:
        listing = AppListing.from_dict(message.get("app") or {})
        if not listing.app_id and not listing.name:
            return {"success": False, "error": "app is required"}
        result = self.app_analyzer.analyze(listing)
        return {"success": True, "result": result.to_dict()}

    async def _threat_detected(self, message: dict) -> dict:
        analysis = message.get("analysis") or {}
        assessment = RiskAssessment.from_dict(analysis)
        logger.warning(
            "Threat reported by page: %s (%s, %d/100)",
            assessment.url,
            assessment.risk_level,
            assessment.risk_score,
        )
        self.state.record(assessment)
        return {"success": True}

    def close(self) -> None:
        for tab_id in list(self.contexts):
            self.close_context(tab_id)
