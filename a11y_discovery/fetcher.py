"""
Page Fetchers
=============
Two interchangeable ways to load one page:

- ``HttpFetcher``    — plain ``requests`` GET, run in the default executor
                       so the event loop stays responsive.
- ``BrowserFetcher`` — navigates a single reusable Playwright page inside
                       a (possibly authenticated) ``BrowserContext``.

Both return a ``FetchResult`` or raise ``FetchError``.  HTTP status codes
>= 400 count as failures.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Optional

import requests
from bs4 import BeautifulSoup
from playwright.async_api import BrowserContext, Page
from playwright.async_api import TimeoutError as PlaywrightTimeout

from .errors import FetchError
from .utils import clean_text, count_words

logger = logging.getLogger(__name__)

_BS_PARSER = "lxml"

# Tags whose text is not visible page content
_NON_CONTENT_TAGS = ['script', 'style', 'noscript', 'template']


@dataclass
class FetchResult:
    url: str                      # requested URL
    final_url: str                # after redirects
    status_code: int
    content_type: str = ""
    html: str = ""
    title: str = ""
    word_count: int = 0
    last_modified: Optional[str] = None

    @property
    def redirected(self) -> bool:
        return self.final_url.rstrip('/') != self.url.rstrip('/')


def summarize_html(html: str) -> tuple:
    """Return ``(title, word_count)`` for an HTML document."""
    try:
        soup = BeautifulSoup(html or "", _BS_PARSER)
    except Exception:
        return "", 0
    title = clean_text(soup.title.get_text()) if soup.title else ""
    for tag in soup(_NON_CONTENT_TAGS):
        tag.decompose()
    body = soup.body or soup
    return title, count_words(body.get_text(" "))


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

class HttpFetcher:
    """Anonymous (or header-authenticated) fetch via ``requests``."""

    def __init__(
        self,
        *,
        user_agent: str = "AccessibilityTestingBot/1.0",
        timeout: float = 10,
        extra_headers: Optional[Dict[str, str]] = None,
        session: Optional[requests.Session] = None,
    ):
        self.timeout = timeout
        self.headers = {
            'User-Agent': user_agent,
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
            'Accept-Language': 'en-US,en;q=0.9',
        }
        if extra_headers:
            self.headers.update(extra_headers)
        self._session = session or requests.Session()

    def add_headers(self, headers: Dict[str, str]) -> None:
        """Send *headers* with every later request (API-key auth)."""
        self.headers.update(headers)

    async def fetch(self, url: str) -> FetchResult:
        loop = asyncio.get_running_loop()

        def _sync_fetch():
            return self._session.get(url, headers=self.headers, timeout=self.timeout,
                                     allow_redirects=True)

        try:
            response = await loop.run_in_executor(None, _sync_fetch)
        except requests.Timeout:
            raise FetchError(url, f"Timeout after {self.timeout}s")
        except requests.RequestException as e:
            raise FetchError(url, f"Request failed: {e}")

        if response.status_code >= 400:
            raise FetchError(url, f"HTTP {response.status_code}", response.status_code)

        content_type = response.headers.get('Content-Type', '')
        html = response.text if 'html' in content_type.lower() or not content_type else ""
        title, words = summarize_html(html)
        return FetchResult(
            url=url,
            final_url=response.url or url,
            status_code=response.status_code,
            content_type=content_type,
            html=html,
            title=title,
            word_count=words,
            last_modified=response.headers.get('Last-Modified'),
        )

    async def close(self) -> None:
        self._session.close()


# ---------------------------------------------------------------------------
# Browser
# ---------------------------------------------------------------------------

class BrowserFetcher:
    """Fetch through one reusable page of a Playwright context."""

    def __init__(self, context: BrowserContext, *, timeout_ms: int = 10_000):
        self.context = context
        self.timeout_ms = timeout_ms
        self._page: Optional[Page] = None

    async def _get_page(self) -> Page:
        if self._page is None or self._page.is_closed():
            self._page = await self.context.new_page()
        return self._page

    async def fetch(self, url: str) -> FetchResult:
        page = await self._get_page()
        try:
            response = await page.goto(url, wait_until="domcontentloaded", timeout=self.timeout_ms)
        except PlaywrightTimeout:
            raise FetchError(url, f"Timeout after {self.timeout_ms}ms")
        except Exception as e:
            raise FetchError(url, f"Navigation failed: {e}")

        status = response.status if response else 0
        if status >= 400:
            raise FetchError(url, f"HTTP {status}", status)

        headers = {}
        if response:
            try:
                headers = await response.all_headers()
            except Exception:
                headers = response.headers or {}

        try:
            html = await page.content()
        except Exception as e:
            raise FetchError(url, f"Could not read page content: {e}")

        title, words = summarize_html(html)
        if not title:
            try:
                title = clean_text(await page.title())
            except Exception:
                pass

        return FetchResult(
            url=url,
            final_url=page.url,
            status_code=status or 200,
            content_type=headers.get('content-type', 'text/html'),
            html=html,
            title=title,
            word_count=words,
            last_modified=headers.get('last-modified'),
        )

    async def close(self) -> None:
        if self._page is not None:
            try:
                await self._page.close()
            except Exception:
                pass
            self._page = None
