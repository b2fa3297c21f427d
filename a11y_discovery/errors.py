"""
Error Taxonomy
==============
Exceptions raised across the discovery crawler.

Only ``CrawlSetupError`` (and its subclasses) ever escapes
``CrawlOrchestrator.crawl()``.  Everything else is caught per page and
turned into an ``ErrorRecord`` or swallowed by the interactive phase.
"""

from __future__ import annotations

from typing import Optional


class DiscoveryError(Exception):
    """Base class for every crawler error."""


# ── Setup (fatal) ────────────────────────────────────────────────

class CrawlSetupError(DiscoveryError):
    """Unrecoverable problem detected before the first fetch."""


class InvalidRootUrlError(CrawlSetupError):
    def __init__(self, url: str):
        super().__init__(f"Invalid root URL: {url!r} (expected http:// or https://)")
        self.url = url


class MissingCredentialsError(CrawlSetupError):
    """``--use-auth`` was requested but no auth material could be resolved."""


# ── Authentication ───────────────────────────────────────────────

class AuthConfigError(DiscoveryError, ValueError):
    """Malformed auth configuration (bad JSON, unknown authType, ...)."""


class AuthenticationError(DiscoveryError):
    pass


class AuthenticationSetupError(AuthenticationError):
    """Login was attempted but could not be verified."""


class AuthenticationExpiredError(AuthenticationError):
    """A fetch landed back on a login page."""

    def __init__(self, url: str, landed_on: str = ""):
        msg = f"Authentication expired while fetching {url}"
        if landed_on:
            msg += f" (redirected to {landed_on})"
        super().__init__(msg)
        self.url = url
        self.landed_on = landed_on


# ── Per-page ─────────────────────────────────────────────────────

class FetchError(DiscoveryError):
    def __init__(self, url: str, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code
