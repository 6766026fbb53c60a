"""Threat intelligence store and loader for Guardian."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

import aiohttp
import yaml

from ..constants import clamp_score
from ..errors import ThreatFeedError
from .models import IndicatorType, ThreatIndicator

logger = logging.getLogger(__name__)


def parse_indicator(item: dict) -> Optional[ThreatIndicator]:
    """Build a ThreatIndicator from a feed/file record, or None if unusable."""
    if not isinstance(item, dict):
        return None
    value = str(item.get("indicator") or "").strip().lower()
    if not value:
        return None

    try:
        indicator_type = IndicatorType(str(item.get("type") or "domain").lower())
    except ValueError:
        indicator_type = IndicatorType.DOMAIN

    try:
        confidence = clamp_score(item.get("confidence") or 0)
    except (TypeError, ValueError):
        confidence = 0

    raw_seen = item.get("lastSeen") or item.get("last_seen")
    if isinstance(raw_seen, datetime):
        last_seen = raw_seen
    else:
        try:
            last_seen = datetime.fromisoformat(str(raw_seen)) if raw_seen else None
        except ValueError:
            last_seen = None
    if last_seen is None:
        last_seen = datetime.now(timezone.utc)
    elif last_seen.tzinfo is None:
        last_seen = last_seen.replace(tzinfo=timezone.utc)

    return ThreatIndicator(
        indicator=value,
        type=indicator_type,
        category=str(item.get("category") or "malicious"),
        confidence=confidence,
        last_seen=last_seen,
    )


class ThreatIntelStore:
    """In-memory map of known-bad indicators.

    Readers always see a complete dictionary: refreshes build a new dict and
    swap the reference in one assignment, so no reader observes a partially
    loaded feed.
    """

    def __init__(self, indicators: Iterable[ThreatIndicator] = ()):
        self._indicators: Mapping[str, ThreatIndicator] = MappingProxyType(
            {ind.indicator.lower(): ind for ind in indicators}
        )
        self.updated_at: Optional[datetime] = None

    def get(self, indicator: str) -> Optional[ThreatIndicator]:
        """Exact (case-insensitive) lookup."""
        if not indicator:
            return None
        return self._indicators.get(indicator.strip().lower())

    def snapshot(self) -> Mapping[str, ThreatIndicator]:
        """Return the current read-only mapping."""
        return self._indicators

    def replace(self, indicators: Iterable[ThreatIndicator]) -> int:
        """Swap in a new set of indicators. Later duplicates win."""
        fresh: dict[str, ThreatIndicator] = {}
        for ind in indicators:
            fresh[ind.indicator.lower()] = ind
        self._indicators = MappingProxyType(fresh)
        self.updated_at = datetime.now(timezone.utc)
        return len(fresh)

    def __len__(self) -> int:
        return len(self._indicators)


class ThreatIntelLoader:
    """Loads indicators from config/threat_intel.yaml and an optional HTTP feed."""

    def __init__(
        self,
        config_dir: Path,
        store: Optional[ThreatIntelStore] = None,
        feed_url: str = "",
        refresh_minutes: int = 60,
        timeout: int = 10,
    ):
        self.config_dir = Path(config_dir)
        self.intel_file = self.config_dir / "threat_intel.yaml"
        self.store = store or ThreatIntelStore()
        self.feed_url = feed_url
        self.refresh_minutes = refresh_minutes
        self.timeout = timeout
        self._feed_cache: list[ThreatIndicator] = []

    def load_file(self) -> list[ThreatIndicator]:
        """Read indicators from the local YAML file."""
        if not self.intel_file.exists():
            logger.warning("Threat intel file not found: %s", self.intel_file)
            return []

        try:
            with open(self.intel_file) as f:
                data = yaml.safe_load(f) or {}
        except Exception as exc:
            logger.error("Error loading threat intel: %s", exc)
            return []

        records = data.get("indicators", []) if isinstance(data, dict) else data
        indicators = []
        for item in records or []:
            parsed = parse_indicator(item)
            if parsed:
                indicators.append(parsed)
        return indicators

    async def fetch_feed(self, session: Optional[aiohttp.ClientSession] = None) -> list[ThreatIndicator]:
        """Fetch indicators from the configured HTTP feed (JSON)."""
        if not self.feed_url:
            return []

        owns_session = session is None
        session = session or aiohttp.ClientSession()
        try:
            async with session.get(self.feed_url, timeout=self.timeout) as resp:
                if resp.status != 200:
                    raise ThreatFeedError(f"Feed returned HTTP {resp.status}")
                payload = await resp.json(content_type=None)
        except ThreatFeedError:
            raise
        except asyncio.TimeoutError as exc:
            raise ThreatFeedError(f"Feed request timed out: {self.feed_url}") from exc
        except (aiohttp.ClientError, ValueError) as exc:
            raise ThreatFeedError(f"Feed request failed: {exc}") from exc
        finally:
            if owns_session:
                await session.close()

        records = payload.get("indicators", []) if isinstance(payload, dict) else payload
        if not isinstance(records, list):
            raise ThreatFeedError("Feed payload is not a list of indicators")
        return [ind for ind in (parse_indicator(item) for item in records) if ind]

    async def refresh(self, session: Optional[aiohttp.ClientSession] = None) -> int:
        """Rebuild the store from file + feed. Feed failures keep the last good feed data."""
        file_indicators = self.load_file()
        try:
            self._feed_cache = await self.fetch_feed(session)
        except ThreatFeedError as exc:
            logger.warning("Failed to update threat intelligence: %s", exc)

        count = self.store.replace([*file_indicators, *self._feed_cache])
        logger.info("Updated threat intelligence: %d indicators", count)
        return count

    async def run_periodic(self, stop_event: asyncio.Event) -> None:
        """Refresh on an interval until stop_event is set."""
        interval = max(60, int(self.refresh_minutes) * 60)
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
                break
            except asyncio.TimeoutError:
                pass
            try:
                await self.refresh()
            except Exception as exc:
                logger.error("Threat intel refresh failed: %s", exc)
