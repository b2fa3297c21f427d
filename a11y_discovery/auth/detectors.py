"""
Login Detectors
===============
Swappable strategies for the fuzzy questions the auth engine has to ask
a live page:

- *Did this login succeed?*  → ``LoginSuccessDetector`` implementations
- *Did we get bounced to a login page?* → ``looks_like_login_url``

The form login and the auth manager only ever talk to the
``LoginSuccessDetector`` interface, so tests plug in deterministic fakes.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeout

logger = logging.getLogger(__name__)

# URL substrings that indicate a login redirect
LOGIN_URL_INDICATORS: List[str] = [
    '/login', '/signin', '/sign-in', '/logon', '/sso/', '/saml/', '/auth/',
    '/adfs/', '/oauth2/authorize', '/idp/', '/cas/login', 'wayf',
    'login.microsoftonline.com',
    'accounts.google.com/signin',
]

# Elements that only render for a signed-in user
DEFAULT_SUCCESS_INDICATORS: List[str] = [
    '[data-testid="user-menu"]',
    '.user-profile',
    '.logout-button',
    '.dashboard',
    '.authenticated-content',
    '[aria-label*="logged in"]',
    'a[href*="logout"]',
    'a[href*="signout"]',
]

# CSS selectors whose visibility means a login form is still on screen
LOGIN_FORM_SELECTORS: List[str] = [
    'input[type="password"]',
    'form[action*="login"]',
    'form[action*="signin"]',
    '#loginForm', '#login-form', '.login-form',
]


def looks_like_login_url(url: str, intended_url: str = "") -> bool:
    """True when *url* looks like a login page the caller did not ask for."""
    current = (url or "").lower()
    intended = (intended_url or "").lower()
    for indicator in LOGIN_URL_INDICATORS:
        if indicator in current and indicator not in intended:
            return True
    return False


def _same_page(a: str, b: str) -> bool:
    def norm(u: str) -> str:
        return u.split('#', 1)[0].split('?', 1)[0].rstrip('/').lower()
    return norm(a) == norm(b)


# ---------------------------------------------------------------------------
# Strategy interface
# ---------------------------------------------------------------------------

class LoginSuccessDetector:
    """Decide whether *page* shows an authenticated user.

    Implementations must not navigate and must not raise; a failed check
    is just ``False``.
    """

    name = "base"

    async def check(self, page: Page, login_url: str) -> bool:
        raise NotImplementedError


class SelectorIndicatorDetector(LoginSuccessDetector):
    """Success when any signed-in-only element is present."""

    name = "selector-indicator"

    def __init__(self, selectors: Optional[Sequence[str]] = None, *, timeout_ms: int = 2000):
        self.selectors = list(selectors or DEFAULT_SUCCESS_INDICATORS)
        self.timeout_ms = timeout_ms

    async def check(self, page: Page, login_url: str) -> bool:
        for selector in self.selectors:
            try:
                await page.wait_for_selector(selector, timeout=self.timeout_ms, state="attached")
                logger.info(f"[AUTH] Success indicator found: {selector}")
                return True
            except PlaywrightTimeout:
                continue
            except Exception as e:
                logger.debug(f"[AUTH] Indicator check error for {selector}: {e}")
        return False


class UrlChangedDetector(LoginSuccessDetector):
    """Success when the browser has left the login page for a non-login URL."""

    name = "url-changed"

    async def check(self, page: Page, login_url: str) -> bool:
        current = page.url
        if _same_page(current, login_url):
            return False
        if looks_like_login_url(current):
            return False
        # Some portals keep the URL and swap the form for an error panel
        if await login_form_visible(page):
            return False
        logger.info(f"[AUTH] URL moved off the login page: {current[:100]}")
        return True


class SuccessUrlDetector(LoginSuccessDetector):
    """Success when the URL contains a configured fragment."""

    name = "success-url"

    def __init__(self, success_url: str):
        self.success_url = success_url

    async def check(self, page: Page, login_url: str) -> bool:
        if not self.success_url:
            return False
        return self.success_url.lower() in page.url.lower() or _same_page(page.url, self.success_url)


class SuccessSelectorDetector(SelectorIndicatorDetector):
    name = "success-selector"

    def __init__(self, selector: str, *, timeout_ms: int = 10_000):
        super().__init__([selector], timeout_ms=timeout_ms)


class AnyOfDetector(LoginSuccessDetector):
    """Success when any wrapped detector reports success (checked in order)."""

    name = "any-of"

    def __init__(self, detectors: Sequence[LoginSuccessDetector]):
        self.detectors = list(detectors)

    async def check(self, page: Page, login_url: str) -> bool:
        for detector in self.detectors:
            if await detector.check(page, login_url):
                logger.debug(f"[AUTH] Login verified by '{detector.name}'")
                return True
        return False


def default_success_detector(success_url: str = "", success_selector: str = "") -> LoginSuccessDetector:
    """Configured checks first, then the generic indicator and URL heuristics."""
    detectors: List[LoginSuccessDetector] = []
    if success_url:
        detectors.append(SuccessUrlDetector(success_url))
    if success_selector:
        detectors.append(SuccessSelectorDetector(success_selector))
    detectors.append(SelectorIndicatorDetector())
    detectors.append(UrlChangedDetector())
    return AnyOfDetector(detectors)


async def login_form_visible(page: Page) -> bool:
    for selector in LOGIN_FORM_SELECTORS:
        try:
            el = await page.query_selector(selector)
            if el and await el.is_visible():
                return True
        except Exception:
            continue
    return False
