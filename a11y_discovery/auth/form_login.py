"""
Form Login
==========
Playwright-driven username/password login.

Handles:
    - Configured selectors, or auto-detection from generic selector banks
    - Multi-step flows (username, "Next", then password)
    - Submit via button, or Enter on the password field as a fallback
    - Visible error banners (fail fast)
    - Success verification through a pluggable ``LoginSuccessDetector``

Credentials are never logged; only the login URL and the outcome are.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeout

from .config import (
    DEFAULT_PASSWORD_SELECTOR,
    DEFAULT_SUBMIT_SELECTOR,
    DEFAULT_USERNAME_SELECTOR,
    Credentials,
    FormAuthConfig,
)
from .detectors import LoginSuccessDetector, default_success_detector

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Auto-detection selector banks (tried in order after the generic default)
# ---------------------------------------------------------------------------

_USERNAME_SELECTORS: List[str] = [
    DEFAULT_USERNAME_SELECTOR,
    '#user_login', '#user_name', '#userName', '#user', '#login',
    'input[name="user_name"]', 'input[name="login"]', 'input[name="log"]',
    'input[name="loginfmt"]',          # Microsoft
    'input[name="j_username"]',        # Java EE / Shibboleth
    'input[name="userid"]',
    'input[type="text"][autocomplete="username"]',
    'input[type="text"]:not([type="hidden"])',
]

_PASSWORD_SELECTORS: List[str] = [
    DEFAULT_PASSWORD_SELECTOR,
    '#user_pass', '#pwd', '#Passwd',
    'input[name="pwd"]', 'input[name="passwd"]', 'input[name="j_password"]',
]

_SUBMIT_SELECTORS: List[str] = [
    DEFAULT_SUBMIT_SELECTOR,
    '#login_button', '#loginButton', '#btn-login', '#wp-submit',
    'button:has-text("Sign in")',
    'button:has-text("Log in")',
    'button:has-text("Login")',
    'button:has-text("Continue")',
    'input[value="Sign in"]',
    'input[value="Log in"]',
]

_NEXT_STEP_SELECTORS: List[str] = [
    '#idSIButton9',
    'button:has-text("Next")',
    'input[value="Next"]',
    'button:has-text("Continue")',
]

_ERROR_SELECTORS: List[str] = [
    '#login_error', '.login-error', '.login_error',
    '#error-message', '.error-message', '.message.error',
    '.alert-danger', '.alert-error',
    '#usernameError', '#passwordError',
    '[data-testid="error-message"]',
    '[role="alert"]',
]


class FormLogin:
    """Fills and submits a login form, then verifies the result.

    Usage::

        login = FormLogin(config, credentials)
        page = await context.new_page()
        ok = await login.login(page)
    """

    def __init__(
        self,
        config: FormAuthConfig,
        credentials: Credentials,
        *,
        detector: Optional[LoginSuccessDetector] = None,
        fallback_url: str = "",
    ):
        self.config = config
        self.credentials = credentials
        self.login_url = config.login_url or fallback_url
        self.detector = detector or default_success_detector(
            config.success_url, config.success_selector
        )

    async def login(self, page: Page) -> bool:
        """Execute the full login flow.  Returns True when verified."""
        logger.info(f"[AUTH] Navigating to login page: {self.login_url[:80]}")

        # ── Step 1: Navigate ─────────────────────────────────────────
        try:
            resp = await page.goto(
                self.login_url, timeout=self.config.login_timeout_ms, wait_until="load"
            )
        except PlaywrightTimeout:
            logger.error("[AUTH] Timeout navigating to login page")
            return False

        if resp and resp.status >= 400:
            logger.error(f"[AUTH] Login page returned HTTP {resp.status}")
            return False

        await self._settle(page)

        # ── Step 2: Username ─────────────────────────────────────────
        username_sel = await self._find_field(
            page, self.config.username_selector, _USERNAME_SELECTORS, "username"
        )
        if not username_sel:
            logger.error("[AUTH] Could not find username field")
            return False
        await self._safe_fill(page, username_sel, self.credentials.username)
        logger.info("[AUTH] Username filled")

        # ── Step 3: Password (possibly on a second step) ─────────────
        password_sel = await self._find_field(
            page, self.config.password_selector, _PASSWORD_SELECTORS, "password"
        )
        if not password_sel and await self._click_next_step(page):
            await asyncio.sleep(1.5)
            password_sel = await self._find_field(
                page, self.config.password_selector, _PASSWORD_SELECTORS, "password",
                timeout_ms=8000,
            )
        if not password_sel:
            logger.error("[AUTH] Could not find password field")
            return False
        await self._safe_fill(page, password_sel, self.credentials.password)
        logger.info("[AUTH] Password filled")

        # ── Step 4: Submit ───────────────────────────────────────────
        submit_sel = await self._find_field(
            page, self.config.submit_selector, _SUBMIT_SELECTORS, "submit button"
        )
        try:
            if submit_sel:
                await page.click(submit_sel, timeout=10_000, no_wait_after=True)
                logger.info("[AUTH] Submit clicked")
            else:
                logger.info("[AUTH] No submit button found — pressing Enter")
                await page.press(password_sel, "Enter", no_wait_after=True)
        except PlaywrightTimeout:
            pass

        # ── Step 5: Verify ───────────────────────────────────────────
        success = await self._verify(page)
        if success:
            logger.info("[AUTH] ✅ Login successful")
        else:
            logger.error("[AUTH] ❌ Login verification failed")
        return success

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _settle(self, page: Page, timeout_ms: int = 10_000) -> None:
        try:
            await page.wait_for_load_state("networkidle", timeout=timeout_ms)
        except PlaywrightTimeout:
            pass

    async def _find_field(
        self,
        page: Page,
        explicit_selector: str,
        fallback_selectors: List[str],
        field_name: str,
        timeout_ms: int = 5000,
    ) -> Optional[str]:
        """Return the configured selector if it appears, else the first visible match."""
        if explicit_selector:
            try:
                if await page.wait_for_selector(explicit_selector, timeout=timeout_ms, state="visible"):
                    return explicit_selector
            except PlaywrightTimeout:
                logger.warning(
                    f"[AUTH] Configured {field_name} selector not found: {explicit_selector}"
                )
            return None

        for sel in fallback_selectors:
            try:
                el = await page.query_selector(sel)
                if el and await el.is_visible():
                    logger.debug(f"[AUTH] Auto-detected {field_name}: {sel}")
                    return sel
            except Exception:
                continue

        # Last resort: the JS-rendered form may still be on its way
        try:
            await page.wait_for_selector(fallback_selectors[0], timeout=timeout_ms, state="visible")
            return fallback_selectors[0]
        except PlaywrightTimeout:
            return None

    async def _safe_fill(self, page: Page, selector: str, value: str) -> None:
        """Focus, clear and fill; the first matching element of a selector group is used."""
        locator = page.locator(selector).first
        try:
            await locator.click(timeout=3000)
        except Exception:
            pass
        await locator.fill(value)

    async def _click_next_step(self, page: Page) -> bool:
        for sel in _NEXT_STEP_SELECTORS:
            try:
                btn = await page.query_selector(sel)
                if btn and await btn.is_visible():
                    try:
                        await btn.click(timeout=5000, no_wait_after=True)
                    except PlaywrightTimeout:
                        pass
                    logger.info(f"[AUTH] Clicked 'Next' step: {sel}")
                    return True
            except Exception:
                continue
        return False

    async def _verify(self, page: Page) -> bool:
        await self._settle(page, timeout_ms=min(self.config.login_timeout_ms, 30_000))
        logger.info(f"[AUTH] Post-login URL: {page.url[:120]}")

        for sel in _ERROR_SELECTORS:
            try:
                err_el = await page.query_selector(sel)
                if err_el and await err_el.is_visible():
                    err_text = (await err_el.inner_text()).strip()[:200]
                    if err_text:
                        logger.error(f"[AUTH] Login error on page ({sel}): {err_text}")
                        return False
            except Exception:
                continue

        return await self.detector.check(page, self.login_url)
