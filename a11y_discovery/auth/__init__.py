"""
Authentication Module
=====================
Detects, configures, persists and replays login sessions for the
discovery crawler.

Architecture:
    - ``AuthenticationSessionManager`` — the only interface the crawler uses
    - ``parse_auth_config``            — JSON → tagged config variant
    - ``AuthStateStore``               — domain-keyed session/config files
    - ``FormLogin``                    — automated username/password login
    - ``LoginSuccessDetector``         — swappable success heuristics
    - ``AuthSetupWizard``              — interactive terminal setup
    - ``AuthConfigClient``             — backend config lookup

Usage::

    from a11y_discovery.auth import AuthenticationSessionManager, parse_auth_config

    config = parse_auth_config('{"type": "basic", "loginUrl": "https://site/login"}')
    manager = AuthenticationSessionManager(config)
    await manager.setup_authentication("https://site/")
"""

from .config import (
    ApiKeyAuthConfig,
    AuthConfig,
    Credentials,
    FormAuthConfig,
    NoAuthConfig,
    PathPolicy,
    SsoAuthConfig,
    parse_auth_config,
    resolve_credentials,
)
from .store import AuthStateStore
from .detectors import (
    AnyOfDetector,
    LoginSuccessDetector,
    SelectorIndicatorDetector,
    UrlChangedDetector,
    looks_like_login_url,
)
from .form_login import FormLogin
from .backend import AuthConfigClient
from .live_session import capture_live_session
from .manager import AuthenticationSessionManager, AuthState
from .wizard import AuthDetection, AuthSetupWizard, classify_auth

__all__ = [
    "ApiKeyAuthConfig",
    "AuthConfig",
    "Credentials",
    "FormAuthConfig",
    "NoAuthConfig",
    "PathPolicy",
    "SsoAuthConfig",
    "parse_auth_config",
    "resolve_credentials",
    "AuthStateStore",
    "AnyOfDetector",
    "LoginSuccessDetector",
    "SelectorIndicatorDetector",
    "UrlChangedDetector",
    "looks_like_login_url",
    "FormLogin",
    "AuthConfigClient",
    "capture_live_session",
    "AuthenticationSessionManager",
    "AuthState",
    "AuthDetection",
    "AuthSetupWizard",
    "classify_auth",
]
