"""
Browser Session
===============
Scoped ownership of the Playwright process, browser and contexts used by
one crawl.

The browser is launched lazily on the first ``new_context()`` call, so a
crawl that never needs a real browser (anonymous, non-interactive) never
starts one.  ``close()`` releases every context it handed out, then the
browser, then Playwright itself; each step is guarded so one failed close
never prevents the next.

Usage::

    async with BrowserSession(headless=True) as session:
        context = await session.new_context(storage_state="state.json")
        ...
    # everything closed here, also on exceptions
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from playwright.async_api import Browser, BrowserContext, async_playwright

logger = logging.getLogger(__name__)

_LAUNCH_ARGS = [
    '--no-sandbox',
    '--disable-dev-shm-usage',
    '--disable-blink-features=AutomationControlled',
]


class BrowserSession:
    """Owns one Chromium instance and every context created from it."""

    def __init__(
        self,
        *,
        headless: bool = True,
        user_agent: str = "",
        viewport: Optional[Dict[str, int]] = None,
    ):
        self.headless = headless
        self.user_agent = user_agent
        self.viewport = viewport or {"width": 1366, "height": 900}
        self._pw = None
        self._browser: Optional[Browser] = None
        self._contexts: List[BrowserContext] = []

        # Resource ledger (inspected by tests and the final log line)
        self.browsers_launched = 0
        self.browsers_closed = 0
        self.contexts_opened = 0
        self.contexts_closed = 0

    @property
    def open_contexts(self) -> int:
        return self.contexts_opened - self.contexts_closed

    @property
    def is_started(self) -> bool:
        return self._browser is not None

    async def __aenter__(self) -> "BrowserSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _ensure_browser(self) -> Browser:
        if self._browser is None:
            self._pw = await async_playwright().start()
            self._browser = await self._pw.chromium.launch(
                headless=self.headless,
                args=_LAUNCH_ARGS,
            )
            self.browsers_launched += 1
            logger.info(f"[BROWSER] Chromium launched (headless={self.headless})")
        return self._browser

    async def new_context(
        self,
        *,
        storage_state: Optional[Any] = None,
        extra_http_headers: Optional[Dict[str, str]] = None,
    ) -> BrowserContext:
        """Create a tracked context, optionally seeded with a saved session."""
        browser = await self._ensure_browser()
        ctx_kwargs: Dict[str, Any] = {"viewport": self.viewport, "locale": "en-US"}
        if self.user_agent:
            ctx_kwargs["user_agent"] = self.user_agent
        if storage_state:
            ctx_kwargs["storage_state"] = storage_state
        if extra_http_headers:
            ctx_kwargs["extra_http_headers"] = extra_http_headers

        context = await browser.new_context(**ctx_kwargs)
        self._contexts.append(context)
        self.contexts_opened += 1
        return context

    async def close_context(self, context: Optional[BrowserContext]) -> None:
        if context is None or context not in self._contexts:
            return
        self._contexts.remove(context)
        try:
            await context.close()
        except Exception as e:
            logger.debug(f"[BROWSER] Context close error: {e}")
        self.contexts_closed += 1

    async def close(self) -> None:
        """Release contexts, browser and Playwright (idempotent)."""
        for context in list(self._contexts):
            await self.close_context(context)

        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as e:
                logger.debug(f"[BROWSER] Browser close error: {e}")
            self._browser = None
            self.browsers_closed += 1

        if self._pw is not None:
            try:
                await self._pw.stop()
            except Exception as e:
                logger.debug(f"[BROWSER] Playwright stop error: {e}")
            self._pw = None

        if self.browsers_launched:
            logger.info(
                f"[BROWSER] Closed ({self.contexts_closed}/{self.contexts_opened} contexts released)"
            )
