"""Domain registration age from public RDAP records.

A failed lookup contributes nothing; registration data is never guessed.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import aiohttp

from ..errors import RegistrationLookupError
from ..utils.domains import registered_domain
from .models import SignalResult

logger = logging.getLogger(__name__)

DEFAULT_RDAP_URL = "https://rdap.org/domain/"
PRIVACY_MARKERS = ("privacy", "redacted", "proxy", "withheld")


@dataclass(frozen=True)
class DomainRegistration:
    domain: str
    registered: Optional[datetime] = None
    expires: Optional[datetime] = None
    registrar: Optional[str] = None
    privacy: bool = False

    def age_days(self, now: datetime) -> Optional[int]:
        if self.registered is None:
            return None
        return (now - self.registered).days

    def days_until_expiry(self, now: datetime) -> Optional[int]:
        if self.expires is None:
            return None
        return (self.expires - now).days


def _parse_date(value) -> Optional[datetime]:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _vcard_value(vcard_array: object, field: str) -> Optional[str]:
    if not isinstance(vcard_array, list) or len(vcard_array) < 2:
        return None
    entries = vcard_array[1]
    if not isinstance(entries, list):
        return None
    for entry in entries:
        if isinstance(entry, list) and len(entry) >= 4 and str(entry[0]).lower() == field:
            if isinstance(entry[3], str) and entry[3].strip():
                return entry[3].strip()
    return None


def parse_registration(domain: str, data: object) -> DomainRegistration:
    """Pull registration/expiration events and registrant privacy from RDAP JSON."""
    if not isinstance(data, dict):
        raise RegistrationLookupError(f"RDAP payload for {domain} is not an object")

    registered = expires = None
    for event in data.get("events") or []:
        if not isinstance(event, dict):
            continue
        action = str(event.get("eventAction") or "").lower()
        if action == "registration":
            registered = _parse_date(event.get("eventDate"))
        elif action == "expiration":
            expires = _parse_date(event.get("eventDate"))

    registrar = None
    privacy = False
    for entity in data.get("entities") or []:
        if not isinstance(entity, dict):
            continue
        roles = entity.get("roles") or []
        name = _vcard_value(entity.get("vcardArray"), "fn")
        if "registrar" in roles:
            registrar = name or registrar
        if "registrant" in roles:
            if name is None or any(m in name.lower() for m in PRIVACY_MARKERS):
                privacy = True

    for remark in data.get("remarks") or []:
        title = str(remark.get("title") or "").lower() if isinstance(remark, dict) else ""
        if "redact" in title:
            privacy = True

    return DomainRegistration(domain, registered, expires, registrar, privacy)


def registration_signal(registration: DomainRegistration, now: Optional[datetime] = None) -> SignalResult:
    """Score a registration record. Young domains weigh most."""
    now = now or datetime.now(timezone.utc)
    score = 0
    threats: list[str] = []

    age = registration.age_days(now)
    if age is not None:
        if age < 30:
            score += 40
            threats.append("Very recently registered domain (< 30 days)")
        elif age < 90:
            score += 20
            threats.append("Recently registered domain (< 90 days)")

    expiry = registration.days_until_expiry(now)
    if expiry is not None and expiry < 30:
        score += 15
        threats.append("Domain expires soon (possible abandonment)")

    if registration.privacy:
        score += 15
        threats.append("Domain registration privacy protection enabled")

    return SignalResult(min(100, score), tuple(threats), DomainAgeAnalyzer.source)


class DomainAgeAnalyzer:
    """Looks up registration dates over RDAP, with a short in-memory cache."""

    source = "domain_age"

    def __init__(
        self,
        rdap_url: str = DEFAULT_RDAP_URL,
        timeout: int = 10,
        cache_seconds: int = 3600,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.rdap_url = rdap_url.rstrip("/") + "/"
        self.timeout = timeout
        self.cache_seconds = cache_seconds
        self.session = session
        self._cache: dict[str, tuple[float, DomainRegistration]] = {}

    async def lookup(self, domain: str) -> DomainRegistration:
        """Fetch the RDAP record for a registrable domain. Raises RegistrationLookupError."""
        cached = self._cache.get(domain)
        if cached and cached[0] > time.monotonic():
            return cached[1]

        url = f"{self.rdap_url}{domain}"
        owns_session = self.session is None
        session = self.session or aiohttp.ClientSession()
        try:
            async with session.get(
                url, headers={"Accept": "application/rdap+json"}, timeout=self.timeout
            ) as resp:
                if resp.status != 200:
                    raise RegistrationLookupError(f"RDAP returned HTTP {resp.status} for {domain}")
                payload = await resp.json(content_type=None)
        except RegistrationLookupError:
            raise
        except asyncio.TimeoutError as exc:
            raise RegistrationLookupError(f"RDAP lookup timed out for {domain}") from exc
        except (aiohttp.ClientError, ValueError) as exc:
            raise RegistrationLookupError(f"RDAP lookup failed for {domain}: {exc}") from exc
        finally:
            if owns_session:
                await session.close()

        registration = parse_registration(domain, payload)
        self._cache[domain] = (time.monotonic() + self.cache_seconds, registration)
        return registration

    async def analyze(self, host: str) -> SignalResult:
        domain = registered_domain(host)
        if not domain or "." not in domain or domain.replace(".", "").isdigit():
            return SignalResult.empty(self.source)
        try:
            registration = await self.lookup(domain)
        except RegistrationLookupError as exc:
            logger.debug("Domain age unavailable: %s", exc)
            return SignalResult.empty(self.source)
        return registration_signal(registration)
