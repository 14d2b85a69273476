"""URL utility functions for canonicalization and fingerprinting.

Provides tools for normalizing URLs so that duplicate suppression in the
frontier treats trivially different spellings of one address as the same URL.
"""

import hashlib
from typing import Optional
from urllib.parse import urlsplit, urlunsplit, parse_qsl, urlencode

import tldextract


DEFAULT_PORTS = {"http": 80, "https": 443}

# Offline extractor: the bundled public suffix snapshot is enough for
# registered-domain comparison and avoids network access at import time.
_DOMAIN_EXTRACTOR = tldextract.TLDExtract(cache_dir=None, suffix_list_urls=())


def canonicalize(url: str) -> str:
    """Canonicalize a URL for consistent comparison and deduplication.

    Steps:
    1. Lower-case scheme and host
    2. Drop the port when it is the scheme's default
    3. Remove fragment
    4. Normalize path (collapse duplicate slashes, remove trailing slash for non-root)
    5. Sort query parameters

    Args:
        url: URL to canonicalize

    Returns:
        Canonical form of the URL
    """
    parts = urlsplit(url.strip())

    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    try:
        port = parts.port
    except ValueError:
        port = None

    netloc = f"[{host}]" if ":" in host else host
    if parts.username:
        userinfo = parts.username
        if parts.password:
            userinfo += f":{parts.password}"
        netloc = f"{userinfo}@{netloc}"
    if port is not None and port != DEFAULT_PORTS.get(scheme):
        netloc = f"{netloc}:{port}"

    path = parts.path or "/"
    while "//" in path:
        path = path.replace("//", "/")
    if path != "/" and path.endswith("/"):
        path = path[:-1]

    query = ""
    if parts.query:
        params = parse_qsl(parts.query, keep_blank_values=True)
        query = urlencode(sorted(params))

    return urlunsplit((scheme, netloc, path, query, ""))


def fingerprint(url: str) -> str:
    """Return the duplicate-suppression key of a URL.

    Args:
        url: URL to fingerprint

    Returns:
        Hex digest of sha256(canonicalize(url))
    """
    return hashlib.sha256(canonicalize(url).encode("utf-8")).hexdigest()


def is_valid_url(url: str) -> bool:
    """Check if URL is an absolute http(s) URL.

    Args:
        url: URL to validate

    Returns:
        True if URL can be parsed and has an http(s) scheme and a host
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return parts.scheme.lower() in DEFAULT_PORTS and bool(parts.hostname)


def registered_domain(url: str) -> Optional[str]:
    """Return the registered domain of a URL (e.g. ``example.co.uk``).

    Hosts without a public suffix (IP addresses, ``localhost``) are returned
    as-is. Returns None for URLs without a host.
    """
    host = urlsplit(url).hostname
    if not host:
        return None

    extracted = _DOMAIN_EXTRACTOR(host)
    if extracted.domain and extracted.suffix:
        return f"{extracted.domain}.{extracted.suffix}".lower()
    return host.lower()
