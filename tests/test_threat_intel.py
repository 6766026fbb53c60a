"""Tests for the threat intelligence store and loader."""

import asyncio

import aiohttp
import pytest

from guardian.analyzer.threat_intel import ThreatIntelLoader, ThreatIntelStore, parse_indicator
from guardian.errors import ThreatFeedError


class _FakeResponse:
    def __init__(self, status=200, payload=None, exc=None):
        self.status = status
        self._payload = payload
        self._exc = exc

    async def __aenter__(self):
        if self._exc:
            raise self._exc
        return self

    async def __aexit__(self, *args):
        return False

    async def json(self, content_type=None):
        return self._payload


class _FakeSession:
    def __init__(self, response):
        self.response = response
        self.requested = []

    def get(self, url, timeout=None):
        self.requested.append(url)
        return self.response


def _write_intel(config_dir, body):
    (config_dir / "threat_intel.yaml").write_text(body)


class TestParseIndicator:
    def test_confidence_is_clamped(self):
        ind = parse_indicator({"indicator": "Evil.COM", "category": "phishing", "confidence": 250})
        assert ind.indicator == "evil.com"
        assert ind.confidence == 100

    def test_missing_indicator_is_skipped(self):
        assert parse_indicator({"category": "phishing"}) is None
        assert parse_indicator("evil.com") is None

    def test_unknown_type_defaults_to_domain(self):
        ind = parse_indicator({"indicator": "1.2.3.4", "type": "asn"})
        assert ind.type.value == "domain"

    def test_last_seen_parsed(self):
        ind = parse_indicator({"indicator": "x.com", "lastSeen": "2024-05-01T10:00:00"})
        assert ind.last_seen.year == 2024
        assert ind.last_seen.tzinfo is not None


class TestThreatIntelStore:
    def test_lookup_is_case_insensitive(self, threat_store):
        hit = threat_store.get("FAKE-BANK-LOGIN.NET")
        assert hit is not None
        assert hit.confidence == 90
        assert threat_store.get("www.fake-bank-login.net") is None

    def test_miss_returns_none(self, threat_store):
        assert threat_store.get("example.com") is None
        assert threat_store.get("") is None

    def test_replace_swaps_snapshot(self, threat_store):
        before = threat_store.snapshot()
        count = threat_store.replace([parse_indicator({"indicator": "new-bad.com", "confidence": 70})])
        assert count == 1
        # Old snapshot is untouched; new lookups see only the new data.
        assert "fake-bank-login.net" in before
        assert threat_store.get("fake-bank-login.net") is None
        assert threat_store.get("new-bad.com").confidence == 70

    def test_snapshot_is_read_only(self, threat_store):
        with pytest.raises(TypeError):
            threat_store.snapshot()["x.com"] = None


class TestThreatIntelLoader:
    def test_load_file(self, tmp_path):
        _write_intel(
            tmp_path,
            """
indicators:
  - indicator: fake-bank-login.net
    category: phishing
    confidence: 90
  - category: missing-indicator
""",
        )
        loader = ThreatIntelLoader(tmp_path)
        indicators = loader.load_file()
        assert [i.indicator for i in indicators] == ["fake-bank-login.net"]

    def test_missing_file_is_empty(self, tmp_path):
        assert ThreatIntelLoader(tmp_path).load_file() == []

    def test_invalid_yaml_is_empty(self, tmp_path):
        _write_intel(tmp_path, "indicators: [unclosed")
        assert ThreatIntelLoader(tmp_path).load_file() == []

    @pytest.mark.asyncio
    async def test_fetch_feed(self, tmp_path):
        session = _FakeSession(
            _FakeResponse(payload={"indicators": [{"indicator": "feed-bad.com", "confidence": 80}]})
        )
        loader = ThreatIntelLoader(tmp_path, feed_url="https://feed.example/intel.json")
        indicators = await loader.fetch_feed(session)
        assert indicators[0].indicator == "feed-bad.com"
        assert session.requested == ["https://feed.example/intel.json"]

    @pytest.mark.asyncio
    async def test_fetch_feed_http_error(self, tmp_path):
        loader = ThreatIntelLoader(tmp_path, feed_url="https://feed.example/intel.json")
        with pytest.raises(ThreatFeedError):
            await loader.fetch_feed(_FakeSession(_FakeResponse(status=503)))

    @pytest.mark.asyncio
    async def test_fetch_feed_timeout(self, tmp_path):
        loader = ThreatIntelLoader(tmp_path, feed_url="https://feed.example/intel.json")
        with pytest.raises(ThreatFeedError):
            await loader.fetch_feed(_FakeSession(_FakeResponse(exc=asyncio.TimeoutError())))

    @pytest.mark.asyncio
    async def test_refresh_keeps_stale_feed_data_on_failure(self, tmp_path):
        _write_intel(tmp_path, "indicators:\n  - indicator: file-bad.com\n    confidence: 60\n")
        store = ThreatIntelStore()
        loader = ThreatIntelLoader(tmp_path, store=store, feed_url="https://feed.example/intel.json")

        ok = _FakeSession(_FakeResponse(payload=[{"indicator": "feed-bad.com", "confidence": 80}]))
        assert await loader.refresh(ok) == 2

        broken = _FakeSession(_FakeResponse(exc=aiohttp.ClientConnectionError("down")))
        assert await loader.refresh(broken) == 2
        assert store.get("feed-bad.com") is not None
        assert store.get("file-bad.com") is not None

    @pytest.mark.asyncio
    async def test_refresh_without_feed(self, tmp_path):
        _write_intel(tmp_path, "indicators:\n  - indicator: file-bad.com\n")
        store = ThreatIntelStore()
        assert await ThreatIntelLoader(tmp_path, store=store).refresh() == 1
        assert store.updated_at is not None
