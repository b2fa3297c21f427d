"""
Sitemap Probe
=============
Tries the well-known sitemap locations of a site and turns the first
one that yields same-domain URLs into ``PageRecord`` seeds.

Sitemap-index files are not followed: their ``<loc>`` entries point at
child sitemaps, which are recorded like any other URL.
"""

from __future__ import annotations

import asyncio
import logging
import re
import xml.etree.ElementTree as ET
from typing import Callable, List, Optional

import requests

from .models import PageRecord, PageSource
from .utils import is_same_domain, origin_of

logger = logging.getLogger(__name__)

SITEMAP_CANDIDATES = ('/sitemap.xml', '/sitemap_index.xml', '/sitemaps/sitemap.xml')

_LOC_RE = re.compile(r'<loc>\s*(.*?)\s*</loc>', re.IGNORECASE | re.DOTALL)

# (url) -> body text, or None when the candidate is missing
TextFetcher = Callable[[str], Optional[str]]


def parse_sitemap_locs(xml_text: str) -> List[str]:
    """Return every ``<loc>`` value in document order.

    Uses ElementTree first; malformed XML falls back to a plain regex scan.
    """
    if not xml_text:
        return []
    try:
        root = ET.fromstring(xml_text.strip().encode('utf-8'))
    except ET.ParseError:
        return [m.strip() for m in _LOC_RE.findall(xml_text) if m.strip()]

    # Handle namespace (sitemaps use xmlns)
    ns = ''
    if root.tag.startswith('{'):
        ns = root.tag.split('}')[0] + '}'

    return [loc.text.strip() for loc in root.iter(f'{ns}loc') if loc.text and loc.text.strip()]


class SitemapProbe:
    """Seeds discovery from ``sitemap.xml`` style files."""

    def __init__(
        self,
        *,
        user_agent: str = "AccessibilityTestingBot/1.0",
        timeout: float = 10,
        fetch_text: Optional[TextFetcher] = None,
        candidates=SITEMAP_CANDIDATES,
    ):
        self.user_agent = user_agent
        self.timeout = timeout
        self.candidates = tuple(candidates)
        self._fetch_text = fetch_text or self._requests_fetch
        self.sitemap_url: Optional[str] = None

    def _requests_fetch(self, url: str) -> Optional[str]:
        resp = requests.get(
            url,
            headers={'User-Agent': self.user_agent, 'Accept': 'application/xml,text/xml,*/*'},
            timeout=self.timeout,
        )
        if resp.status_code >= 400:
            return None
        return resp.text

    async def probe(self, root_url: str) -> List[PageRecord]:
        """Return sitemap-sourced records from the first productive candidate."""
        loop = asyncio.get_running_loop()
        origin = origin_of(root_url)

        for candidate in self.candidates:
            sitemap_url = origin + candidate
            try:
                body = await loop.run_in_executor(None, self._fetch_text, sitemap_url)
            except Exception as e:
                logger.debug(f"[SITEMAP] {sitemap_url} unavailable: {e}")
                continue
            if not body:
                continue

            records = self._to_records(parse_sitemap_locs(body), root_url)
            if records:
                self.sitemap_url = sitemap_url
                logger.info(f"[SITEMAP] {len(records)} URLs from {sitemap_url}")
                return records
            logger.debug(f"[SITEMAP] {sitemap_url} had no same-domain URLs")

        logger.info("[SITEMAP] No usable sitemap found")
        return []

    @staticmethod
    def _to_records(locs: List[str], root_url: str) -> List[PageRecord]:
        seen = set()
        records: List[PageRecord] = []
        for loc in locs:
            if loc in seen or not is_same_domain(loc, root_url):
                continue
            seen.add(loc)
            records.append(PageRecord(
                url=loc,
                title="From Sitemap",
                depth=0,
                parent_url="sitemap.xml",
                status_code="unknown",
                content_type="unknown",
                source=PageSource.SITEMAP,
            ))
        return records
