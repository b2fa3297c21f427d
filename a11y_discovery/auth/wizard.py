"""
Authentication Setup Wizard
===========================
Human-in-the-loop configurator run from the terminal:

    python -m a11y_discovery wizard detect <url>
    python -m a11y_discovery wizard setup  <url> [--type basic|sso|oauth|api_key|custom|none]
    python -m a11y_discovery wizard list
    python -m a11y_discovery wizard clear  [domain]

``detect`` classifies how a site authenticates.  ``setup`` turns the
answer into a stored auth config (basic, api_key) or a captured live
session (sso, oauth, custom) that later crawls pick up automatically.
"""

from __future__ import annotations

import getpass
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional
from urllib.parse import urlparse

from .config import (
    ApiKeyAuthConfig,
    AuthConfig,
    FormAuthConfig,
    SSO_TYPES,
)
from .live_session import capture_live_session
from .store import AuthStateStore
from ..browser import BrowserSession
from ..utils import extract_domain

logger = logging.getLogger(__name__)


AUTH_TYPE_DESCRIPTIONS: Dict[str, str] = {
    "none": "No Authentication — public site",
    "basic": "Username/Password — simple login form",
    "sso": "Institutional SSO/SAML — university or enterprise federation",
    "oauth": "OAuth/Social Login — Google, Microsoft, GitHub, ...",
    "api_key": "API Key/Header — authentication via HTTP headers",
    "custom": "Custom/Complex Flow — multi-step or unusual process",
}

_REDIRECT_MARKERS = ('login', 'auth', 'signin', 'sso')
_SSO_URL_MARKERS = ('sso', 'saml', 'shib', 'wayf')
_SSO_TEXT_MARKERS = ('institutional', 'university', 'federation')
_OAUTH_URL_MARKERS = ('oauth', 'google', 'microsoft', 'github')
_LOGIN_TEXT_MARKERS = ('login', 'log in', 'sign in', 'username', 'password')


@dataclass
class AuthDetection:
    auth_type: str = "none"
    requires_auth: bool = False
    confidence: str = "high"
    reason: str = ""
    final_url: str = ""
    status_code: Optional[int] = None
    title: str = ""
    details: Dict[str, str] = field(default_factory=dict)


def classify_auth(
    requested_url: str,
    final_url: str,
    *,
    status_code: Optional[int] = None,
    page_text: str = "",
    title: str = "",
) -> AuthDetection:
    """Heuristic auth-style classification from one page load."""
    final_lower = (final_url or "").lower()
    text = (page_text or "").lower()
    result = AuthDetection(final_url=final_url, status_code=status_code, title=title)

    redirected = final_url.rstrip('/') != requested_url.rstrip('/')
    if redirected and any(m in final_lower for m in _REDIRECT_MARKERS):
        result.requires_auth = True
        if any(m in final_lower for m in _SSO_URL_MARKERS) or any(m in text for m in _SSO_TEXT_MARKERS):
            result.auth_type, result.reason = "sso", "Redirected to institutional SSO"
        elif any(m in final_lower for m in _OAUTH_URL_MARKERS):
            result.auth_type, result.reason = "oauth", "Redirected to OAuth provider"
        else:
            result.auth_type, result.reason = "basic", "Redirected to login page"
        return result

    if status_code in (401, 403):
        result.requires_auth = True
        result.auth_type, result.reason = "api_key", f"HTTP {status_code} without a login redirect"
        return result

    if any(m in text for m in _LOGIN_TEXT_MARKERS) or 'login' in title.lower():
        result.requires_auth = True
        result.confidence = "medium"
        result.auth_type, result.reason = "basic", "Login form or text detected on page"
        return result

    result.reason = "No authentication indicators"
    return result


class AuthSetupWizard:

    def __init__(
        self,
        store: Optional[AuthStateStore] = None,
        *,
        input_fn: Callable[[str], str] = input,
        secret_fn: Callable[[str], str] = getpass.getpass,
        browser_factory: Callable[[], BrowserSession] = None,
        live_capture=capture_live_session,
        out: Callable[[str], None] = print,
    ):
        self.store = store or AuthStateStore()
        self._input = input_fn
        self._secret = secret_fn
        self._browser_factory = browser_factory or (lambda: BrowserSession(headless=True))
        self._live_capture = live_capture
        self._out = out

    def _ask(self, prompt: str, default: str = "") -> str:
        suffix = f" [{default}]" if default else ""
        answer = self._input(f"{prompt}{suffix}: ").strip()
        return answer or default

    # ── detect ───────────────────────────────────────────────────

    async def detect(self, url: str, timeout_ms: int = 10_000) -> AuthDetection:
        """Load *url* headless and classify its authentication style."""
        logger.info(f"[WIZARD] Analyzing authentication requirements of {url}")
        try:
            async with self._browser_factory() as browser:
                context = await browser.new_context()
                page = await context.new_page()
                response = await page.goto(url, wait_until="networkidle", timeout=timeout_ms)
                title = await page.title()
                text = await page.evaluate("() => document.body ? document.body.innerText : ''")
                return classify_auth(
                    url, page.url,
                    status_code=response.status if response else None,
                    page_text=text, title=title,
                )
        except Exception as e:
            logger.warning(f"[WIZARD] Detection failed: {e}")
            return AuthDetection(
                auth_type="custom", requires_auth=True, confidence="low",
                reason="Detection failed", details={"error": str(e)},
            )

    # ── setup ────────────────────────────────────────────────────

    async def setup(self, url: str, auth_type: Optional[str] = None) -> Optional[AuthConfig]:
        """Interactive setup.  Returns the stored config (None for live sessions / none)."""
        if not urlparse(url).scheme:
            url = f"https://{url}"
        domain = extract_domain(url)

        if auth_type is None:
            detection = await self.detect(url)
            self._out(f"\n  Requires auth:  {detection.requires_auth}")
            self._out(f"  Suggested type: {AUTH_TYPE_DESCRIPTIONS[detection.auth_type]}")
            self._out(f"  Confidence:     {detection.confidence} ({detection.reason})\n")
            auth_type = self._choose_type(detection.auth_type)

        logger.info(f"[WIZARD] Setting up {auth_type} authentication for {domain}")
        if auth_type == "none":
            self._out("  No authentication needed — nothing stored.")
            return None
        if auth_type == "basic":
            return self._setup_basic(url, domain)
        if auth_type == "api_key":
            return self._setup_api_key(domain)
        if auth_type in SSO_TYPES:
            await self._setup_live_session(url, domain)
            return None
        raise ValueError(f"Unknown authentication type: {auth_type}")

    def _choose_type(self, suggested: str) -> str:
        keys = list(AUTH_TYPE_DESCRIPTIONS)
        for i, key in enumerate(keys, 1):
            marker = " (suggested)" if key == suggested else ""
            self._out(f"  {i}) {AUTH_TYPE_DESCRIPTIONS[key]}{marker}")
        choice = self._ask(f"Select authentication method (1-{len(keys)})")
        try:
            index = int(choice) - 1
            if 0 <= index < len(keys):
                return keys[index]
        except ValueError:
            pass
        return suggested

    def _setup_basic(self, url: str, domain: str) -> FormAuthConfig:
        config = FormAuthConfig(
            domain=domain,
            username=self._ask("Username"),
            password=self._secret("Password: "),
            login_url=self._ask("Login URL", url),
            username_selector=self._ask("Username field selector (blank = auto-detect)"),
            password_selector=self._ask("Password field selector (blank = auto-detect)"),
            submit_selector=self._ask("Submit button selector (blank = auto-detect)"),
            success_url=self._ask("URL fragment seen after login (blank = auto-detect)"),
        )
        path = self.store.save_auth_config(config)
        self._out(f"  💾 Authentication configuration saved to: {path}")
        self._out("  Credentials are stored locally for this domain.")
        return config

    def _setup_api_key(self, domain: str) -> ApiKeyAuthConfig:
        headers: Dict[str, str] = {}
        self._out("  Enter header name/value pairs (blank name to finish).")
        while True:
            name = self._ask("Header name", "" if headers else "Authorization")
            if not name:
                break
            headers[name] = self._secret(f"Value for {name}: ")
            if self._ask("Add another header? (y/N)").lower() != "y":
                break
        config = ApiKeyAuthConfig(domain=domain, headers=headers)
        path = self.store.save_auth_config(config)
        self._out(f"  💾 {len(headers)} header(s) saved to: {path}")
        return config

    async def _setup_live_session(self, url: str, domain: str) -> bool:
        path = self.store.new_live_session_path(domain)
        ok = await self._live_capture(url, path)
        if ok:
            self._out(f"  Live session stored for {domain}. Sessions expire; rerun setup when crawls hit the login page.")
        else:
            try:
                path.unlink()
            except OSError:
                pass
        return ok

    # ── list / clear ─────────────────────────────────────────────

    def list(self) -> List[str]:
        artifacts = self.store.list_artifacts()
        if not artifacts:
            self._out("  No saved authentication artifacts.")
            return []
        lines = [
            f"  {a.domain:<40} {a.label:<13} {a.timestamp}  {a.path.name}" for a in artifacts
        ]
        for line in lines:
            self._out(line)
        return lines

    def clear(self, domain: Optional[str] = None) -> int:
        removed = self.store.clear(domain)
        scope = domain or "all domains"
        self._out(f"  🗑  Removed {removed} artifact(s) for {scope}.")
        return removed

