"""
URL helpers shared by the discovery phases.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urldefrag, urljoin, urlparse

_ALLOWED_SCHEMES = ('http', 'https')

# Prefixes that never point at a navigable page
_NON_NAVIGABLE_PREFIXES = ('mailto:', 'tel:', 'javascript:', 'data:', 'sms:')


def strip_fragment(url: str) -> str:
    """Drop the ``#...`` part of *url* (canonical form used for dedup)."""
    return urldefrag(url)[0]


def extract_domain(url: str) -> str:
    """Extract the lower-cased hostname from URL."""
    return (urlparse(url).hostname or '').lower()


def is_valid_url(url: str) -> bool:
    """Check if URL is an absolute http(s) URL with a host."""
    try:
        parsed = urlparse(url)
        return all([parsed.scheme in _ALLOWED_SCHEMES, parsed.netloc])
    except Exception:
        return False


def is_same_domain(url: str, root_url: str) -> bool:
    """True when *url* is http(s) and shares the root's hostname."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    if parsed.scheme not in _ALLOWED_SCHEMES:
        return False
    return (parsed.hostname or '').lower() == extract_domain(root_url)


def resolve_href(href: str, base_url: str) -> Optional[str]:
    """Resolve a raw ``href``/``src`` value against *base_url*.

    Returns None for empty, fragment-only and non-navigable values.
    """
    if not href:
        return None
    href = href.strip()
    if not href or href.startswith('#'):
        return None
    if href.lower().startswith(_NON_NAVIGABLE_PREFIXES):
        return None
    try:
        return urljoin(base_url, href)
    except ValueError:
        return None


def origin_of(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def sanitize_label(label: str) -> str:
    """Replace every character outside ``[A-Za-z0-9]`` with ``-``."""
    return re.sub(r'[^a-zA-Z0-9]', '-', label or '')


def utc_now_iso() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def file_timestamp(iso: Optional[str] = None) -> str:
    """Filesystem-safe form of an ISO timestamp (``:`` and ``.`` become ``-``)."""
    return re.sub(r'[:.]', '-', iso or utc_now_iso())


def clean_text(text: str) -> str:
    """Collapse whitespace runs into single spaces."""
    if not text:
        return ""
    return re.sub(r'\s+', ' ', text).strip()


def count_words(text: str) -> int:
    text = clean_text(text)
    return len(text.split(' ')) if text else 0
