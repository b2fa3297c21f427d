"""
Authentication Session Manager
==============================
Single coordination point between the crawl orchestrator and the auth
subsystem.  It decides whether a URL needs a session, obtains one, and
fetches through it.

State machine::

    UNAUTHENTICATED → DETECTING → NONE
                                → LIVE_SESSION_LOADED ─┐
                                → FORM_AUTHENTICATED ──┤
                                → HEADERS_APPLIED ─────┼→ ACTIVE → EXPIRED → ANONYMOUS_FALLBACK
                                → SSO_BEST_EFFORT      │                    ↘ (form) re-authenticate
                                                       ┘

Setup order:
    1. Newest persisted live session for the domain (if it still works)
    2. Otherwise by ``auth_type``:
         basic   → automated form login, verified by a success detector,
                   saved as a live session for the next crawl
         api_key → context with extra HTTP headers
         sso/... → headed human capture when allowed, else best effort
         none    → no authentication

Usage::

    manager = AuthenticationSessionManager(config, browser=session)
    await manager.setup_authentication("https://site.example/")
    if manager.requires_authentication(url):
        result = await manager.fetch_authenticated(url)
    await manager.cleanup()
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from playwright.async_api import BrowserContext

from .config import (
    ApiKeyAuthConfig,
    AuthConfig,
    Credentials,
    FormAuthConfig,
    NoAuthConfig,
    SSO_TYPES,
    SsoAuthConfig,
    resolve_credentials,
)
from .detectors import LoginSuccessDetector, looks_like_login_url
from .form_login import FormLogin
from .live_session import capture_live_session
from .store import AuthStateStore
from ..browser import BrowserSession
from ..errors import (
    AuthenticationExpiredError,
    AuthenticationSetupError,
    FetchError,
    MissingCredentialsError,
)
from ..fetcher import BrowserFetcher, FetchResult, HttpFetcher
from ..models import AuthCompleteness
from ..utils import extract_domain

logger = logging.getLogger(__name__)

LiveCapture = Callable[[str, Path], Awaitable[bool]]


class AuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    DETECTING = "detecting"
    NONE = "none"
    LIVE_SESSION_LOADED = "live_session_loaded"
    FORM_AUTHENTICATED = "form_authenticated"
    HEADERS_APPLIED = "headers_applied"
    SSO_BEST_EFFORT = "sso_best_effort"
    ACTIVE = "active"
    EXPIRED = "expired"
    ANONYMOUS_FALLBACK = "anonymous_fallback"


class AuthenticationSessionManager:

    def __init__(
        self,
        config: Optional[AuthConfig] = None,
        *,
        browser: Optional[BrowserSession] = None,
        store: Optional[AuthStateStore] = None,
        anonymous_fetcher: Optional[Any] = None,
        detector: Optional[LoginSuccessDetector] = None,
        live_capture: Optional[LiveCapture] = None,
        allow_live_capture: bool = False,
        timeout_ms: int = 10_000,
        headless: bool = True,
        user_agent: str = "",
        fetcher_factory: Callable[[BrowserContext], Any] = None,
        form_login_factory: Callable[..., Any] = FormLogin,
    ):
        """
        Args:
            config:             Parsed auth config (None → look in the store).
            browser:            Shared browser scope.  When omitted the manager
                                owns a private one and closes it in ``cleanup``.
            store:              Persisted auth artifacts.
            anonymous_fetcher:  Used for smart-config fallback fetches.
            detector:           Login-success strategy for form login.
            live_capture:       Coroutine running a headed human login.
            allow_live_capture: Whether SSO setup may block on a human.
        """
        self.config = config
        self._owns_browser = browser is None
        self.browser = browser or BrowserSession(headless=headless, user_agent=user_agent)
        self.store = store or AuthStateStore()
        self.anonymous_fetcher = anonymous_fetcher or HttpFetcher(
            user_agent=user_agent or "AccessibilityTestingBot/1.0",
            timeout=timeout_ms / 1000,
        )
        self.detector = detector
        self.live_capture = live_capture or capture_live_session
        self.allow_live_capture = allow_live_capture
        self.timeout_ms = timeout_ms
        self._fetcher_factory = fetcher_factory or (
            lambda ctx: BrowserFetcher(ctx, timeout_ms=self.timeout_ms)
        )
        self._form_login_factory = form_login_factory

        self.state = AuthState.UNAUTHENTICATED
        self.context: Optional[BrowserContext] = None
        self._fetcher = None
        self._root_url = ""
        self._credentials: Optional[Credentials] = None
        self._reauth_attempted = False
        self.expiry_count = 0
        self.fallback_count = 0

    # ── Properties ───────────────────────────────────────────────

    @property
    def auth_type(self) -> str:
        return self.config.auth_type if self.config else "none"

    @property
    def is_sso(self) -> bool:
        return self.auth_type in SSO_TYPES

    @property
    def is_active(self) -> bool:
        return self.context is not None and self.state not in (
            AuthState.NONE, AuthState.UNAUTHENTICATED, AuthState.DETECTING,
        )

    @property
    def completeness(self) -> AuthCompleteness:
        if not self.is_active:
            return AuthCompleteness.NONE
        if self.state in (AuthState.SSO_BEST_EFFORT, AuthState.ANONYMOUS_FALLBACK,
                          AuthState.EXPIRED):
            return AuthCompleteness.PARTIAL
        if self.expiry_count or self.fallback_count:
            return AuthCompleteness.PARTIAL
        return AuthCompleteness.FULL

    # ── Setup ────────────────────────────────────────────────────

    async def setup_authentication(self, root_url: str) -> bool:
        """Obtain a session for *root_url*'s domain.

        Returns:
            True when an authenticated (or SSO best-effort) context is ready,
            False when the site needs no authentication.

        Raises:
            MissingCredentialsError:   form auth without any credentials.
            AuthenticationSetupError:  form login could not be verified.
        """
        self._root_url = root_url
        self.state = AuthState.DETECTING
        domain = extract_domain(root_url)

        if self.config is None:
            self.config = self.store.latest_auth_config(domain)
            if self.config is not None:
                logger.info(f"[AUTH] Loaded stored {self.config.auth_type} config for {domain}")

        if isinstance(self.config, ApiKeyAuthConfig) and self.config.headers:
            # Public-path and fallback fetches carry the key too
            self.anonymous_fetcher.add_headers(dict(self.config.headers))

        # ── 1. Persisted live session ────────────────────────────
        if self.auth_type != "none" or self.config is None:
            if await self._try_live_session(domain):
                return True

        if self.config is None or self.auth_type == "none":
            self.state = AuthState.NONE
            logger.info(f"[AUTH] No authentication configured for {domain}")
            return False

        # ── 2. Per-type setup ────────────────────────────────────
        if isinstance(self.config, FormAuthConfig):
            await self._setup_form(domain)
        elif isinstance(self.config, ApiKeyAuthConfig):
            await self._setup_api_key()
        elif isinstance(self.config, SsoAuthConfig):
            await self._setup_sso(domain)
        else:
            self.state = AuthState.NONE
            return False

        self.state = AuthState.ACTIVE if self.state != AuthState.SSO_BEST_EFFORT else self.state
        return True

    async def _try_live_session(self, domain: str) -> bool:
        path = self.store.latest_live_session(domain)
        if path is None:
            logger.info(f"[SESSION] No saved live session for {domain}")
            return False
        if not self.store.is_usable_session(path):
            return False

        headers = self.config.headers if isinstance(self.config, ApiKeyAuthConfig) else None
        context = await self.browser.new_context(storage_state=str(path), extra_http_headers=headers)
        fetcher = self._fetcher_factory(context)
        try:
            probe = await fetcher.fetch(self._root_url)
        except FetchError as e:
            logger.warning(f"[SESSION] Saved session probe failed: {e}")
            await self._discard(context, fetcher)
            return False

        if looks_like_login_url(probe.final_url, self._root_url):
            logger.warning(f"[SESSION] Saved session {path.name} is expired (landed on login)")
            await self._discard(context, fetcher)
            return False

        if self.config is None:
            self.config = SsoAuthConfig(auth_type="custom", domain=domain)
        self.context, self._fetcher = context, fetcher
        self.state = AuthState.LIVE_SESSION_LOADED
        logger.info(f"[SESSION] Reusing live session {path.name}")
        self.state = AuthState.ACTIVE
        return True

    def _resolve_form_credentials(self) -> Credentials:
        if self._credentials is None:
            self._credentials = resolve_credentials(self.config.credentials())
        return self._credentials

    async def _setup_form(self, domain: str) -> None:
        if not self._resolve_form_credentials().is_complete:
            raise MissingCredentialsError(
                f"Form authentication for {domain} needs a username and password "
                f"(auth config, TEST_USERNAME/TEST_PASSWORD or CRAWLER_USERNAME/CRAWLER_PASSWORD)"
            )

        context = await self.browser.new_context()
        fetcher = self._fetcher_factory(context)
        if not await self._form_login(context):
            await self._discard(context, fetcher)
            raise AuthenticationSetupError(f"Form login for {domain} could not be verified")

        self.context, self._fetcher = context, fetcher
        self.state = AuthState.FORM_AUTHENTICATED
        await self._persist_session(domain)

    async def _form_login(self, context: BrowserContext) -> bool:
        page = await context.new_page()
        try:
            login = self._form_login_factory(
                self.config, self._credentials,
                detector=self.detector, fallback_url=self._root_url,
            )
            return await login.login(page)
        finally:
            try:
                await page.close()
            except Exception:
                pass

    async def _setup_api_key(self) -> None:
        context = await self.browser.new_context(extra_http_headers=dict(self.config.headers))
        self.context, self._fetcher = context, self._fetcher_factory(context)
        self.state = AuthState.HEADERS_APPLIED
        logger.info(f"[AUTH] API-key headers applied ({len(self.config.headers)} headers)")

    async def _setup_sso(self, domain: str) -> None:
        """SSO cannot be scripted: capture a human login when allowed, else go best-effort."""
        if self.allow_live_capture:
            path = self.store.new_live_session_path(domain)
            try:
                captured = await self.live_capture(self.config.login_url or self._root_url, path)
            except Exception as e:
                logger.warning(f"[AUTH] Live capture error: {e}")
                captured = False
            if captured and await self._try_live_session(domain):
                return

        context = await self.browser.new_context()
        fetcher = self._fetcher_factory(context)
        try:
            probe = await fetcher.fetch(self._root_url)
            if looks_like_login_url(probe.final_url, self._root_url):
                logger.warning(
                    f"[AUTH] {self.auth_type.upper()} redirect to identity provider "
                    f"({probe.final_url[:80]}) — only public pages will be reachable"
                )
        except FetchError as e:
            logger.warning(f"[AUTH] SSO probe failed: {e}")
        self.context, self._fetcher = context, fetcher
        self.state = AuthState.SSO_BEST_EFFORT
        logger.info(f"[AUTH] {self.auth_type.upper()} proceeding best-effort")

    async def _persist_session(self, domain: str) -> None:
        path = self.store.new_live_session_path(domain)
        try:
            await self.context.storage_state(path=str(path))
            logger.info(f"[SESSION] Session saved: {path}")
        except Exception as e:
            logger.warning(f"[SESSION] Could not save session: {e}")

    # ── Classification ───────────────────────────────────────────

    def requires_authentication(self, url: str, config: Optional[AuthConfig] = None) -> bool:
        """Whether *url* should be fetched through the authenticated context.

        Smart configs classify by path prefix and default to protected;
        every other auth type treats the whole domain as protected.
        """
        config = config or self.config
        if config is None:
            return self.is_active
        if isinstance(config, NoAuthConfig) and config.auth_type == "none":
            return False
        return config.requires_auth(url)

    # ── Fetching ─────────────────────────────────────────────────

    async def fetch_authenticated(self, url: str) -> FetchResult:
        """Fetch *url* through the session, handling expiry.

        Raises:
            AuthenticationExpiredError: the URL still lands on a login page
                after re-authentication / anonymous fallback.
            FetchError: ordinary per-page failure.
        """
        if self.state == AuthState.ANONYMOUS_FALLBACK:
            return await self._fetch_anonymous(url)
        if self._fetcher is None:
            raise AuthenticationSetupError("fetch_authenticated() called before setup")

        result = await self._fetcher.fetch(url)
        if not looks_like_login_url(result.final_url, url):
            return result

        logger.warning(f"[AUTH] Session expired — {url[:80]} redirected to {result.final_url[:80]}")
        self.state = AuthState.EXPIRED
        self.expiry_count += 1

        if isinstance(self.config, FormAuthConfig) and not self._reauth_attempted:
            self._reauth_attempted = True
            if await self._reauthenticate():
                result = await self._fetcher.fetch(url)
                if not looks_like_login_url(result.final_url, url):
                    self.state = AuthState.ACTIVE
                    return result

        if self.config is not None and self.config.is_smart:
            self.state = AuthState.ANONYMOUS_FALLBACK
            logger.info("[AUTH] Falling back to anonymous fetching for the rest of the crawl")
            return await self._fetch_anonymous(url)

        raise AuthenticationExpiredError(url, result.final_url)

    async def _fetch_anonymous(self, url: str) -> FetchResult:
        self.fallback_count += 1
        result = await self.anonymous_fetcher.fetch(url)
        if looks_like_login_url(result.final_url, url):
            raise AuthenticationExpiredError(url, result.final_url)
        return result

    async def _reauthenticate(self) -> bool:
        # Unresolved when setup reused a live session
        if not self._resolve_form_credentials().is_complete:
            logger.warning("[AUTH] No credentials available for re-authentication")
            return False
        logger.info("[AUTH] Re-authenticating after expiry")
        try:
            ok = await self._form_login(self.context)
        except Exception as e:
            logger.error(f"[AUTH] Re-authentication error: {e}")
            return False
        if ok:
            self.state = AuthState.FORM_AUTHENTICATED
            await self._persist_session(extract_domain(self._root_url))
        return ok

    # ── Cleanup ──────────────────────────────────────────────────

    async def _discard(self, context, fetcher) -> None:
        try:
            await fetcher.close()
        except Exception:
            pass
        await self.browser.close_context(context)

    async def cleanup(self) -> None:
        """Release the session context (and the browser if this manager owns it)."""
        if self._fetcher is not None:
            try:
                await self._fetcher.close()
            except Exception as e:
                logger.debug(f"[AUTH] Fetcher close error: {e}")
            self._fetcher = None
        if self.context is not None:
            await self.browser.close_context(self.context)
            self.context = None
        if self._owns_browser:
            await self.browser.close()
