"""
Authentication Configuration
============================
One dataclass per ``authType``, each carrying only the fields that type
needs:

    ========  ===================  ===========================================
    type      class                material
    ========  ===================  ===========================================
    none      ``NoAuthConfig``     —
    basic     ``FormAuthConfig``   login URL, username/password, selectors
    sso       ``SsoAuthConfig``    live session (human-captured) + login URL
    saml      ``SsoAuthConfig``    same as sso
    oauth     ``SsoAuthConfig``    same as sso
    custom    ``SsoAuthConfig``    same as sso
    api_key   ``ApiKeyAuthConfig`` header name → value map
    ========  ===================  ===========================================

Any variant may carry a ``PathPolicy`` (``protectedPaths`` /
``publicPaths``), which turns it into a *smart* config that lets the
crawler mix authenticated and anonymous fetches on one domain.

JSON uses the camelCase keys the auth wizard and backend write.
"""

from __future__ import annotations

import getpass
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union
from urllib.parse import urlparse

from ..errors import AuthConfigError

logger = logging.getLogger(__name__)

SSO_TYPES = ("sso", "saml", "oauth", "custom")
AUTH_TYPES = ("none", "basic", "api_key") + SSO_TYPES

# Generic selectors used when a form config does not name its own
DEFAULT_USERNAME_SELECTOR = (
    'input[type="email"], input[name="username"], input[name="email"], #username, #email'
)
DEFAULT_PASSWORD_SELECTOR = 'input[type="password"], input[name="password"], #password'
DEFAULT_SUBMIT_SELECTOR = (
    'button[type="submit"], input[type="submit"], .login-button, .submit-button'
)

_ENV_PREFIXES = ("TEST", "CRAWLER")


# ---------------------------------------------------------------------------
# Credentials container
# ---------------------------------------------------------------------------

@dataclass
class Credentials:
    """Plain credential container — resolved once, used by the form login."""
    username: str = ""
    password: str = ""

    @property
    def is_complete(self) -> bool:
        return bool(self.username and self.password)


def resolve_credentials(
    creds: Optional[Credentials] = None,
    *,
    env_prefixes: Iterable[str] = _ENV_PREFIXES,
    interactive: bool = False,
    label: str = "Site",
) -> Credentials:
    """Fill missing credentials from the environment, then (optionally) a prompt.

    Resolution order:
        1. Existing *creds* (if complete) → used as-is
        2. ``{PREFIX}_USERNAME`` / ``{PREFIX}_PASSWORD`` for each prefix
        3. Terminal prompt with ``getpass`` (only when *interactive*)
    """
    if creds is None:
        creds = Credentials()
    if creds.is_complete:
        return creds

    for prefix in env_prefixes:
        if not creds.username:
            creds.username = os.environ.get(f"{prefix}_USERNAME", "")
        if not creds.password:
            creds.password = os.environ.get(f"{prefix}_PASSWORD", "")

    if creds.is_complete:
        logger.info("[AUTH] Credentials resolved from environment")
        return creds

    if interactive:
        if not creds.username:
            creds.username = input(f"  {label} Username / Email: ").strip()
        if not creds.password:
            creds.password = getpass.getpass(f"  {label} Password: ")
    return creds


# ---------------------------------------------------------------------------
# Path policy (smart configs)
# ---------------------------------------------------------------------------

def _prefix_matches(path: str, prefix: str) -> bool:
    """Segment-aware prefix test: ``/docs`` covers ``/docs/x`` but not ``/docs-old``."""
    prefix = prefix.rstrip('/') or '/'
    if prefix == '/':
        return True
    return path == prefix or path.startswith(prefix + '/')


@dataclass(frozen=True)
class PathPolicy:
    """Explicit protected/public path prefixes for one domain.

    Classification picks the longest matching prefix from either list.
    A URL that matches neither list, or matches both equally well, is
    treated as protected.
    """
    protected_paths: Tuple[str, ...] = ()
    public_paths: Tuple[str, ...] = ()

    def requires_auth(self, url: str) -> bool:
        path = urlparse(url).path or '/'
        best_protected = max(
            (len(p.rstrip('/')) for p in self.protected_paths if _prefix_matches(path, p)),
            default=-1,
        )
        best_public = max(
            (len(p.rstrip('/')) for p in self.public_paths if _prefix_matches(path, p)),
            default=-1,
        )
        if best_public < 0:
            return True
        return best_protected >= best_public

    def to_dict(self) -> Dict[str, List[str]]:
        return {
            "protectedPaths": list(self.protected_paths),
            "publicPaths": list(self.public_paths),
        }


# ---------------------------------------------------------------------------
# Tagged variants
# ---------------------------------------------------------------------------

@dataclass
class NoAuthConfig:
    auth_type: str = "none"
    domain: str = ""
    path_policy: Optional[PathPolicy] = None

    @property
    def is_smart(self) -> bool:
        return self.path_policy is not None

    def requires_auth(self, url: str) -> bool:
        if self.auth_type == "none":
            return False
        if self.path_policy is None:
            return True
        return self.path_policy.requires_auth(url)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.auth_type, "domain": self.domain}
        if self.path_policy:
            data.update(self.path_policy.to_dict())
        data.update(self._material())
        return data

    def _material(self) -> Dict[str, Any]:
        return {}


@dataclass
class FormAuthConfig(NoAuthConfig):
    auth_type: str = "basic"
    login_url: str = ""
    username: str = ""
    password: str = ""
    username_selector: str = ""
    password_selector: str = ""
    submit_selector: str = ""
    success_url: str = ""
    success_selector: str = ""
    login_timeout_ms: int = 30_000

    def credentials(self) -> Credentials:
        return Credentials(username=self.username, password=self.password)

    def _material(self) -> Dict[str, Any]:
        return {
            "method": "form",
            "loginUrl": self.login_url,
            "username": self.username,
            "password": self.password,
            "selectors": {
                "username": self.username_selector or None,
                "password": self.password_selector or None,
                "submit": self.submit_selector or None,
            },
            "successUrl": self.success_url or None,
            "successSelector": self.success_selector or None,
        }


@dataclass
class SsoAuthConfig(NoAuthConfig):
    """SSO / SAML / OAuth / custom flows: replayed from a captured live session."""
    auth_type: str = "sso"
    login_url: str = ""
    idp_hint: str = ""

    def _material(self) -> Dict[str, Any]:
        return {"method": "live_session", "loginUrl": self.login_url or None,
                "idpHint": self.idp_hint or None}


@dataclass
class ApiKeyAuthConfig(NoAuthConfig):
    auth_type: str = "api_key"
    headers: Dict[str, str] = field(default_factory=dict)

    def _material(self) -> Dict[str, Any]:
        return {"method": "headers", "headers": dict(self.headers)}


AuthConfig = Union[NoAuthConfig, FormAuthConfig, SsoAuthConfig, ApiKeyAuthConfig]


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _path_policy_from(data: Dict[str, Any]) -> Optional[PathPolicy]:
    source = data.get("pathPolicy") or data
    protected = source.get("protectedPaths")
    public = source.get("publicPaths")
    if protected is None and public is None:
        return None
    return PathPolicy(tuple(protected or ()), tuple(public or ()))


def parse_auth_config(raw: Union[str, Dict[str, Any]], *, domain: str = "") -> AuthConfig:
    """Build the right variant from JSON text or an already-decoded dict.

    Raises:
        AuthConfigError: invalid JSON, non-object payload or unknown type.
    """
    if isinstance(raw, str):
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise AuthConfigError(f"Auth config is not valid JSON: {e}") from e
    else:
        data = raw
    if not isinstance(data, dict):
        raise AuthConfigError("Auth config must be a JSON object")

    auth_type = str(data.get("type") or data.get("authType") or "none").lower()
    if auth_type == "form":
        auth_type = "basic"
    if auth_type not in AUTH_TYPES:
        raise AuthConfigError(
            f"Unknown authType {auth_type!r} (expected one of {', '.join(AUTH_TYPES)})"
        )

    common = {
        "domain": data.get("domain") or domain,
        "path_policy": _path_policy_from(data),
    }

    if auth_type == "basic":
        selectors = data.get("selectors") or {}
        return FormAuthConfig(
            login_url=data.get("loginUrl") or "",
            username=data.get("username") or "",
            password=data.get("password") or "",
            username_selector=selectors.get("username") or data.get("usernameSelector") or "",
            password_selector=selectors.get("password") or data.get("passwordSelector") or "",
            submit_selector=selectors.get("submit") or data.get("submitSelector") or "",
            success_url=data.get("successUrl") or "",
            success_selector=data.get("successSelector") or "",
            **common,
        )
    if auth_type in SSO_TYPES:
        return SsoAuthConfig(
            auth_type=auth_type,
            login_url=data.get("loginUrl") or "",
            idp_hint=data.get("idpHint") or "",
            **common,
        )
    if auth_type == "api_key":
        headers = dict(data.get("headers") or {})
        if not headers and data.get("apiKey"):
            headers[data.get("headerName") or "X-API-Key"] = data["apiKey"]
        return ApiKeyAuthConfig(headers=headers, **common)
    return NoAuthConfig(**common)
