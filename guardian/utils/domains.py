"""Domain normalization utilities."""

from __future__ import annotations

from urllib.parse import urlparse

import tldextract


def canonicalize_domain(value: str) -> str:
    """
    Normalize a domain/URL to a canonical host key.

    - Lowercase
    - Strip leading "www."
    - Preserve port (if present)
    - Ignore path/query/fragment
    """
    raw = (value or "").strip()
    if not raw:
        return ""

    candidate = raw if "://" in raw else f"https://{raw}"
    try:
        parsed = urlparse(candidate)
        host = (parsed.hostname or raw.split("/")[0]).strip().lower().strip(".")
        port = parsed.port
    except ValueError:
        return ""
    if not host:
        return ""

    if host.startswith("www.") and len(host) > 4:
        host = host[4:]

    if port:
        host = f"{host}:{port}"

    return host


def _strip_port(host: str) -> str:
    if not host:
        return ""
    if host.count(":") == 1:
        return host.split(":", 1)[0]
    return host


def extract_hostname(url: str) -> str:
    """Return the lowercase hostname of a URL, or "" when it has none."""
    try:
        return (urlparse(url or "").hostname or "").lower()
    except ValueError:
        return ""


def registered_domain(value: str) -> str:
    """Return the registrable domain for a host or URL (best-effort)."""
    host = canonicalize_domain(value)
    if not host:
        return ""
    host = _strip_port(host)
    extracted = tldextract.extract(host)
    if extracted.domain and extracted.suffix:
        return f"{extracted.domain}.{extracted.suffix}".lower()
    return host.lower()


def normalize_whitelist_domain(value: str) -> str:
    """Normalize whitelist entries to a host key (lowercase, no www, no port)."""
    return _strip_port(canonicalize_domain(value))


def whitelist_contains(domain: str, whitelist: set[str] | frozenset[str]) -> bool:
    """Check if a domain matches the whitelist (exact host or registrable domain)."""
    if not whitelist:
        return False
    host = _strip_port(canonicalize_domain(domain))
    if not host:
        return False
    if host in whitelist:
        return True
    registered = registered_domain(host)
    return registered in whitelist
