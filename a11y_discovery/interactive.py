"""
Interactive Explorer
====================
Drives a real browser page to surface routes that static HTML never
mentions: client-side navigation, menus rendered on demand, AJAX views
and in-memory router tables.

Per explored page:
    1. Load, wait for network idle, then a fixed settle delay
    2. Click a bounded number of matches per selector category; when a
       click changes the URL, record it and navigate back
    3. Expand ``aria-expanded="false"`` / ``data-target`` toggles and
       re-scan the DOM for anchors that appeared
    4. Passively record first-party XHR/fetch/document requests
    5. Evaluate a small script that looks for router-table globals

Failure policy: every selector, click and evaluation is individually
guarded.  ``explore()`` never raises; a broken page yields zero routes.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from typing import Dict, List, Optional, Set
from urllib.parse import urlparse

from playwright.async_api import BrowserContext, Page
from playwright.async_api import TimeoutError as PlaywrightTimeout

from .link_discovery import has_page_extension, is_valid_route
from .utils import is_same_domain

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Selector catalogue (category → selectors), tried in this order
# ---------------------------------------------------------------------------
SELECTOR_LAYERS: Dict[str, List[str]] = OrderedDict([
    ("navigation", [
        'nav a', '[role="navigation"] a', 'header a', '.navbar a', '.nav-link',
        '.menu a', '[role="menuitem"]',
    ]),
    ("admin-navigation", [
        '.sidebar a', 'aside a', '.side-nav a', '.admin-menu a',
        '[class*="sidebar"] [role="link"]', '.breadcrumb a',
    ]),
    ("dropdowns", [
        '.dropdown-toggle', '[aria-haspopup="true"]', '[aria-haspopup="menu"]',
        'details > summary', '.accordion-button', '.accordion-header',
    ]),
    ("buttons", [
        'button[onclick]', '[role="button"][onclick]', '[onclick]:not(a)',
        'button[data-href]', 'button[data-url]', 'button[data-route]',
    ]),
    ("tabs", [
        '[role="tab"]', '.nav-tabs a', '.tab', '.tabs button',
    ]),
])

_EXPANDABLE_SELECTOR = (
    '[aria-expanded="false"], [data-target], [data-bs-target], '
    '[data-toggle], [data-bs-toggle]'
)

_ANCHOR_SCAN_JS = """() => Array.from(document.querySelectorAll('a[href]'))
    .map(a => a.href).filter(h => h && !h.startsWith('javascript:'))"""

# Globals whose names suggest a routing table; returns quoted path literals found in them
_ROUTER_TABLE_JS = r"""() => {
    const out = new Set();
    const rx = /["'](\/[A-Za-z0-9_\-\/.]{1,80})["']/g;
    const hint = /(route|router|routes|nav|menu|path|sitemap|links)/i;
    for (const key of Object.keys(window)) {
        if (!hint.test(key)) continue;
        let text = '';
        try { text = JSON.stringify(window[key]); } catch (e) { continue; }
        if (!text) continue;
        let m;
        while ((m = rx.exec(text)) !== null) out.add(m[1]);
    }
    return Array.from(out).slice(0, 500);
}"""

_CAPTURED_RESOURCE_TYPES = ("xhr", "fetch", "document")


class InteractiveExplorer:
    """Explores one page at a time inside a caller-owned ``BrowserContext``."""

    def __init__(
        self,
        context: BrowserContext,
        *,
        settle_delay_s: float = 2.0,
        max_clicks_per_selector: int = 3,
        click_timeout_ms: int = 1500,
        nav_timeout_ms: int = 10_000,
        selector_layers: Optional[Dict[str, List[str]]] = None,
    ):
        self.context = context
        self.settle_delay_s = settle_delay_s
        self.max_clicks_per_selector = max_clicks_per_selector
        self.click_timeout_ms = click_timeout_ms
        self.nav_timeout_ms = nav_timeout_ms
        self.selector_layers = selector_layers or SELECTOR_LAYERS

    async def explore(self, url: str) -> Set[str]:
        """Return same-domain routes discovered by interacting with *url*."""
        routes: Set[str] = set()
        page: Optional[Page] = None

        def on_request(request) -> None:
            try:
                if request.resource_type in _CAPTURED_RESOURCE_TYPES:
                    self._add(request.url, url, routes)
            except Exception:
                pass

        try:
            page = await self.context.new_page()
            page.on("request", on_request)
            if not await self._load(page, url):
                return set()

            for category, selectors in self.selector_layers.items():
                for selector in selectors:
                    await self._click_through(page, url, selector, routes)
                logger.debug(f"[INTERACTIVE] {category}: {len(routes)} routes so far")

            await self._expand_toggles(page, url, routes)
            await self._scan_anchors(page, url, routes)
            await self._scan_router_tables(page, url, routes)
        except Exception as e:
            logger.debug(f"[INTERACTIVE] Exploration of {url[:80]} aborted: {e}")
        finally:
            if page is not None:
                try:
                    page.remove_listener("request", on_request)
                except Exception:
                    pass
                try:
                    await page.close()
                except Exception:
                    pass

        routes.discard(url)
        logger.info(f"[INTERACTIVE] {len(routes)} candidate routes from {url[:80]}")
        return routes

    # ── Steps ────────────────────────────────────────────────────

    async def _load(self, page: Page, url: str) -> bool:
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=self.nav_timeout_ms)
        except Exception as e:
            logger.debug(f"[INTERACTIVE] Could not load {url[:80]}: {e}")
            return False
        try:
            await page.wait_for_load_state("networkidle", timeout=self.nav_timeout_ms)
        except PlaywrightTimeout:
            pass
        await asyncio.sleep(self.settle_delay_s)
        return True

    async def _click_through(self, page: Page, origin: str, selector: str, routes: Set[str]) -> None:
        """Click up to N matches of *selector*, restoring *origin* after each navigation."""
        for index in range(self.max_clicks_per_selector):
            try:
                # Re-query every time: handles go stale after navigating back
                elements = await page.query_selector_all(selector)
                if index >= len(elements):
                    return
                element = elements[index]
                if not await element.is_visible():
                    continue

                before = page.url
                await element.click(timeout=self.click_timeout_ms, no_wait_after=True)
                await asyncio.sleep(min(self.settle_delay_s, 1.0))
                after = page.url
            except Exception:
                continue

            if after != before:
                self._add(after, origin, routes)
                if not await self._restore(page, origin):
                    return

    async def _restore(self, page: Page, origin: str) -> bool:
        try:
            await page.goto(origin, wait_until="domcontentloaded", timeout=self.nav_timeout_ms)
            await asyncio.sleep(min(self.settle_delay_s, 1.0))
            return True
        except Exception as e:
            logger.debug(f"[INTERACTIVE] Could not return to {origin[:80]}: {e}")
            return False

    async def _expand_toggles(self, page: Page, origin: str, routes: Set[str]) -> None:
        try:
            toggles = await page.query_selector_all(_EXPANDABLE_SELECTOR)
        except Exception:
            return
        budget = self.max_clicks_per_selector * len(self.selector_layers)
        for element in toggles[:budget]:
            try:
                await element.evaluate("el => el.click()")
                await asyncio.sleep(0.2)
            except Exception:
                continue
            if page.url != origin:
                self._add(page.url, origin, routes)
                if not await self._restore(page, origin):
                    return

    async def _scan_anchors(self, page: Page, origin: str, routes: Set[str]) -> None:
        try:
            hrefs = await page.evaluate(_ANCHOR_SCAN_JS)
        except Exception:
            return
        for href in hrefs or []:
            self._add(href, origin, routes)

    async def _scan_router_tables(self, page: Page, origin: str, routes: Set[str]) -> None:
        try:
            paths = await page.evaluate(_ROUTER_TABLE_JS)
        except Exception:
            return
        parsed = urlparse(origin)
        for path in paths or []:
            if is_valid_route(path):
                self._add(f"{parsed.scheme}://{parsed.netloc}{path}", origin, routes)

    @staticmethod
    def _add(url: str, origin: str, routes: Set[str]) -> None:
        if not url or not is_same_domain(url, origin):
            return
        if not has_page_extension(urlparse(url).path):
            return
        routes.add(url)
