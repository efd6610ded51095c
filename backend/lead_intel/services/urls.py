from __future__ import annotations

import re
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

BLOCKED_HOSTS = {"localhost", "127.0.0.1", "0.0.0.0", "::1", "[::1]"}
MAX_URL_LENGTH = 2048
HTTP_SCHEMES = ("http", "https")

# Non-web schemes such as "mailto:"; a port ("acme.com:8080") has a dot before its colon
_BARE_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+-]*:(?!\d)", re.IGNORECASE)


def normalize_url(url: str) -> Optional[str]:
    """
    Canonical form used for deduplication.

    - scheme forced (https when missing), lowercased
    - host lowercased
    - fragment stripped
    - trailing slash stripped from non-root paths

    Returns None for values that cannot be parsed into scheme://host, for
    non-web schemes such as mailto: and for hosts carrying userinfo.
    """
    if not url or not isinstance(url, str):
        return None
    url = url.strip()
    if "://" not in url:
        if _BARE_SCHEME_RE.match(url):
            return None
        url = "https://" + url.lstrip("/")
    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    if not parts.netloc or "@" in parts.netloc:
        return None

    scheme = (parts.scheme or "https").lower()
    host = parts.netloc.lower()
    path = parts.path or "/"
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    return urlunsplit((scheme, host, path, parts.query, ""))


def extract_host(url: Optional[str]) -> Optional[str]:
    """'https://WWW.Acme.com/about' -> 'acme.com'"""
    if not url:
        return None
    try:
        if "://" not in url:
            url = "https://" + url
        host = (urlsplit(url).hostname or "").lower()
    except ValueError:
        return None
    if host.startswith("www."):
        host = host[4:]
    return host or None


def is_safe_url(url: Optional[str]) -> bool:
    """Only public http(s) URLs may be scraped or crawled."""
    if not url or len(url) > MAX_URL_LENGTH:
        return False
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    if parts.scheme not in HTTP_SCHEMES or "@" in parts.netloc:
        return False
    host = (parts.hostname or "").lower()
    return bool(host) and host not in BLOCKED_HOSTS and "." in host


def same_site(url: str, host: str) -> bool:
    candidate = extract_host(url)
    if not candidate or not host:
        return False
    return candidate == host or candidate.endswith("." + host)
