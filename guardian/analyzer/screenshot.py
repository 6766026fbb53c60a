"""Best-effort page screenshots via headless Chromium."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from playwright.async_api import Browser, Error as PlaywrightError, async_playwright

logger = logging.getLogger(__name__)


class ScreenshotCapturer:
    """Captures full-page PNG screenshots. Returns None instead of raising."""

    def __init__(self, timeout: int = 15, enabled: bool = True, headless: bool = True):
        self.timeout = timeout * 1000  # Convert to ms
        self.enabled = enabled
        self.headless = headless
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._lock = asyncio.Lock()

    async def start(self):
        """Start the browser instance."""
        async with self._lock:
            if self._browser:
                return
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=[
                    "--disable-dev-shm-usage",
                    "--no-sandbox",
                    "--disable-gpu",
                ],
            )
            logger.info("Screenshot browser started")

    async def stop(self):
        """Stop the browser instance."""
        if self._browser:
            await self._browser.close()
        if self._playwright:
            await self._playwright.stop()
        self._browser = None
        self._playwright = None

    async def capture(self, url: str) -> Optional[bytes]:
        if not self.enabled or not url:
            return None

        context = None
        try:
            if not self._browser:
                await self.start()
            context = await self._browser.new_context(
                viewport={"width": 1280, "height": 800},
                ignore_https_errors=True,
            )
            page = await context.new_page()
            await page.goto(url, wait_until="domcontentloaded", timeout=self.timeout)
            return await page.screenshot(full_page=True, timeout=self.timeout)
        except (PlaywrightError, asyncio.TimeoutError) as exc:
            logger.warning("Screenshot capture failed for %s: %s", url, exc)
            return None
        except Exception as exc:
            logger.warning("Unexpected screenshot error for %s: %s", url, exc)
            return None
        finally:
            if context:
                try:
                    await context.close()
                except Exception as exc:
                    logger.debug("Failed to close screenshot context: %s", exc)
