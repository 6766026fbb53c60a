"""Health, metrics and message endpoints for Guardian."""

from __future__ import annotations

import json
import logging
from typing import Awaitable, Callable, Optional

from aiohttp import web

logger = logging.getLogger(__name__)


class HealthServer:
    """Serves lightweight health/metrics endpoints and the message API."""

    def __init__(
        self,
        host: str,
        port: int,
        status_provider: Callable[[], dict],
        message_handler: Optional[Callable[[dict], Awaitable[dict]]] = None,
        enabled: bool = True,
    ):
        self.host = host
        self.port = port
        self.status_provider = status_provider
        self.message_handler = message_handler
        self.enabled = enabled
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/healthz", self._handle_health)
        app.router.add_get("/metrics", self._handle_metrics)
        if self.message_handler is not None:
            app.router.add_post("/api/message", self._handle_message)
        return app

    async def start(self):
        """Start the server."""
        if not self.enabled:
            logger.info("Health server disabled")
            return

        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self.host, self.port)
        await self._site.start()
        logger.info("Health server listening on %s:%s", self.host, self.port)

    async def stop(self):
        """Stop the server."""
        if self._site:
            await self._site.stop()
        if self._runner:
            await self._runner.cleanup()
        self._runner = None
        self._site = None

    def _status(self) -> dict:
        try:
            return self.status_provider() or {}
        except Exception as exc:
            logger.warning("Health status provider failed: %s", exc)
            return {"status": "error", "message": str(exc)}

    async def _handle_health(self, request):  # noqa: ANN001
        """Return JSON health status."""
        payload = self._status()
        payload.setdefault("status", "ok")
        return web.json_response(payload, headers={"Access-Control-Allow-Origin": "*"})

    async def _handle_metrics(self, request):  # noqa: ANN001
        """Expose numeric status fields as text metrics (Prometheus-ish)."""
        data = self._status()

        lines = []
        for key, value in data.items():
            metric_key = str(key).replace(".", "_").replace("-", "_")
            if isinstance(value, bool):
                value = int(value)
            if isinstance(value, (int, float)):
                lines.append(f"guardian_{metric_key} {value}")
            elif isinstance(value, dict) and metric_key == "verdicts":
                for level, count in value.items():
                    lines.append(f'guardian_verdicts{{level="{level}"}} {count}')
        if not lines:
            lines.append('guardian_status{state="empty"} 1')

        return web.Response(text="\n".join(lines) + "\n")

    async def _handle_message(self, request):  # noqa: ANN001
        """Forward a JSON message to the router."""
        try:
            message = await request.json()
        except (json.JSONDecodeError, ValueError):
            return web.json_response({"success": False, "error": "Malformed JSON body"}, status=400)
        if not isinstance(message, dict):
            return web.json_response({"success": False, "error": "Message must be an object"}, status=400)

        response = await self.message_handler(message)
        return web.json_response(response, headers={"Access-Control-Allow-Origin": "*"})
