"""Tests for the RDAP registration-age signal."""

import asyncio
from datetime import datetime, timedelta, timezone

import aiohttp
import pytest

from guardian.analyzer.domain_age import (
    DomainAgeAnalyzer,
    DomainRegistration,
    parse_registration,
    registration_signal,
)
from guardian.errors import RegistrationLookupError

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _rdap(registered=None, expires=None, registrant_name="Example Corp"):
    events = []
    if registered:
        events.append({"eventAction": "registration", "eventDate": registered})
    if expires:
        events.append({"eventAction": "expiration", "eventDate": expires})
    return {
        "events": events,
        "entities": [
            {
                "roles": ["registrar"],
                "vcardArray": ["vcard", [["version", {}, "text", "4.0"], ["fn", {}, "text", "NameCheap, Inc."]]],
            },
            {
                "roles": ["registrant"],
                "vcardArray": ["vcard", [["fn", {}, "text", registrant_name]]],
            },
        ],
    }


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

    def get(self, url, headers=None, timeout=None):
        self.requested.append(url)
        return self.response


class TestParseRegistration:
    def test_events_and_registrar(self):
        reg = parse_registration(
            "example.com", _rdap("2024-05-20T10:00:00Z", "2025-05-20T10:00:00Z")
        )
        assert reg.registered == datetime(2024, 5, 20, 10, tzinfo=timezone.utc)
        assert reg.expires.year == 2025
        assert reg.registrar == "NameCheap, Inc."
        assert reg.privacy is False

    def test_redacted_registrant(self):
        reg = parse_registration("example.com", _rdap(registrant_name="REDACTED FOR PRIVACY"))
        assert reg.privacy is True

    def test_bad_dates_are_ignored(self):
        reg = parse_registration("example.com", _rdap("not-a-date"))
        assert reg.registered is None

    def test_non_object_payload(self):
        with pytest.raises(RegistrationLookupError):
            parse_registration("example.com", ["nope"])


class TestRegistrationSignal:
    def test_very_new_domain(self):
        reg = DomainRegistration("example.com", registered=NOW - timedelta(days=3))
        signal = registration_signal(reg, NOW)
        assert signal.risk_score == 40
        assert signal.threats == ("Very recently registered domain (< 30 days)",)
        assert signal.source == "domain_age"

    def test_recent_domain_expiring_with_privacy(self):
        reg = DomainRegistration(
            "example.com",
            registered=NOW - timedelta(days=60),
            expires=NOW + timedelta(days=10),
            privacy=True,
        )
        signal = registration_signal(reg, NOW)
        assert signal.risk_score == 20 + 15 + 15
        assert signal.threats == (
            "Recently registered domain (< 90 days)",
            "Domain expires soon (possible abandonment)",
            "Domain registration privacy protection enabled",
        )

    def test_established_domain(self):
        reg = DomainRegistration(
            "example.com",
            registered=NOW - timedelta(days=4000),
            expires=NOW + timedelta(days=300),
        )
        assert registration_signal(reg, NOW).risk_score == 0

    def test_unknown_dates(self):
        assert registration_signal(DomainRegistration("example.com"), NOW).risk_score == 0


class TestDomainAgeAnalyzer:
    @pytest.mark.asyncio
    async def test_looks_up_registrable_domain_once(self):
        registered = (datetime.now(timezone.utc) - timedelta(days=2)).isoformat()
        session = _FakeSession(_FakeResponse(payload=_rdap(registered)))
        analyzer = DomainAgeAnalyzer("https://rdap.example/domain", session=session)

        first = await analyzer.analyze("login.new-shop.co.uk")
        second = await analyzer.analyze("www.new-shop.co.uk")
        assert first.risk_score == 40
        assert second == first
        assert session.requested == ["https://rdap.example/domain/new-shop.co.uk"]

    @pytest.mark.asyncio
    async def test_http_error_is_an_empty_signal(self):
        analyzer = DomainAgeAnalyzer(session=_FakeSession(_FakeResponse(status=404)))
        signal = await analyzer.analyze("example.com")
        assert signal.risk_score == 0
        assert signal.threats == ()

    @pytest.mark.asyncio
    async def test_lookup_errors_raise(self):
        for exc in (asyncio.TimeoutError(), aiohttp.ClientConnectionError("refused")):
            analyzer = DomainAgeAnalyzer(session=_FakeSession(_FakeResponse(exc=exc)))
            with pytest.raises(RegistrationLookupError):
                await analyzer.lookup("example.com")

    @pytest.mark.asyncio
    async def test_ip_and_single_label_hosts_are_skipped(self):
        session = _FakeSession(_FakeResponse(payload=_rdap()))
        analyzer = DomainAgeAnalyzer(session=session)
        assert (await analyzer.analyze("localhost")).risk_score == 0
        assert (await analyzer.analyze("192.168.1.1")).risk_score == 0
        assert session.requested == []
