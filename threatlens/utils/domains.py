"""Domain and URL normalization utilities."""

from __future__ import annotations

import ipaddress
from urllib.parse import urlparse

import tldextract

from ..errors import InvalidInput

ALLOWED_SCHEMES = ("http", "https")


def parse_target_url(value: str):
    """
    Parse and validate a scan URL.

    - Scheme must be http or https
    - Host must be present
    - Port (if present) must be numeric and in range

    Raises InvalidInput on any of the above.
    """
    raw = (value or "").strip()
    if not raw:
        raise InvalidInput("URL is required")
    if any(ch.isspace() for ch in raw):
        raise InvalidInput(f"URL contains whitespace: {raw!r}")

    parsed = urlparse(raw)
    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        raise InvalidInput(f"Unsupported URL scheme: {parsed.scheme or '(none)'}")
    if not parsed.hostname:
        raise InvalidInput(f"URL has no host: {raw}")
    try:
        parsed.port
    except ValueError as exc:
        raise InvalidInput(f"Invalid port in URL: {raw}") from exc
    return parsed


def extract_hostname(value: str) -> str:
    """Return the lower-cased hostname for a URL or bare host (best-effort)."""
    raw = (value or "").strip()
    if not raw:
        return ""
    candidate = raw if "://" in raw else f"https://{raw}"
    try:
        host = urlparse(candidate).hostname or ""
    except ValueError:
        host = ""
    return host.strip().lower().strip(".")


def canonicalize_domain(value: str) -> str:
    """
    Normalize a domain/URL to a canonical host key.

    - Lowercase
    - Strip leading "www."
    - Ignore scheme/port/path/query/fragment
    """
    host = extract_hostname(value)
    if host.startswith("www.") and len(host) > 4:
        host = host[4:]
    return host


def registered_domain(value: str) -> str:
    """Return the registrable domain for a host or URL (best-effort)."""
    host = canonicalize_domain(value)
    if not host:
        return ""
    if is_ip_address(host):
        return host
    extracted = tldextract.extract(host)
    if extracted.domain and extracted.suffix:
        return f"{extracted.domain}.{extracted.suffix}".lower()
    return host


def is_ip_address(host: str) -> bool:
    try:
        ipaddress.ip_address((host or "").strip("[]"))
    except ValueError:
        return False
    return True


def domain_matches(domain: str, candidates) -> str | None:
    """Return the first candidate equal to or contained in ``domain``."""
    host = (domain or "").lower()
    if not host:
        return None
    for candidate in candidates:
        value = (candidate or "").strip().lower()
        if value and (host == value or value in host):
            return candidate
    return None
