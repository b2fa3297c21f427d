"""
Unified Run Configuration
=========================
Single source of truth for crawl defaults and runtime limits.

The CLI populates it from flags; tests build it directly with keyword
overrides.  The orchestrator, fetchers and interactive explorer all read
from this object, so no module carries its own magic numbers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Canonical defaults: every other module reads these numbers from here
# ---------------------------------------------------------------------------
_DEFAULTS = {
    "max_depth": 3,
    "max_pages": 500,
    "rate_delay": 2.0,               # seconds between fetches (CLI uses 1.0)
    "timeout_seconds": 10,           # per-fetch timeout
    "user_agent": "AccessibilityTestingBot/1.0",
    "headless": True,
    "interactive": True,
    # Interactive discovery bounds
    "interactive_sample_pages": 5,   # already-discovered pages explored in a browser
    "max_interactive_routes": 10,    # new routes fetched from the interactive phase
    "max_clicks_per_selector": 3,
    "settle_delay_s": 2.0,
    "click_timeout_ms": 1500,
    # Static discovery
    "guess_common_routes": True,
    # Storage
    "output_dir": "reports",
    "auth_state_dir": "auth-states",
}


@dataclass
class CrawlerRunConfig:
    """
    Configuration consumed by every crawl subsystem.

    Populate via:
      - ``CrawlerRunConfig()``                → all defaults
      - ``CrawlerRunConfig(max_pages=50)``    → override one value
      - ``CrawlerRunConfig.from_cli_args(ns)`` → from argparse Namespace
    """

    # ---- Crawl limits ----
    max_depth: int = _DEFAULTS["max_depth"]
    max_pages: int = _DEFAULTS["max_pages"]
    rate_delay: float = _DEFAULTS["rate_delay"]
    timeout_seconds: float = _DEFAULTS["timeout_seconds"]

    # ---- Browser ----
    headless: bool = _DEFAULTS["headless"]
    user_agent: str = _DEFAULTS["user_agent"]

    # ---- Interactive discovery ----
    interactive: bool = _DEFAULTS["interactive"]
    interactive_sample_pages: int = _DEFAULTS["interactive_sample_pages"]
    max_interactive_routes: int = _DEFAULTS["max_interactive_routes"]
    max_clicks_per_selector: int = _DEFAULTS["max_clicks_per_selector"]
    settle_delay_s: float = _DEFAULTS["settle_delay_s"]
    click_timeout_ms: int = _DEFAULTS["click_timeout_ms"]

    # ---- Static discovery ----
    guess_common_routes: bool = _DEFAULTS["guess_common_routes"]

    # ---- Authentication ----
    use_auth: bool = False
    auth_config: Optional[Any] = None      # parsed variant from auth.config
    auth_state_dir: str = _DEFAULTS["auth_state_dir"]
    backend_url: Optional[str] = None
    capture_live_session: bool = False     # headed SSO capture when no session exists

    # ---- Output ----
    output_dir: str = _DEFAULTS["output_dir"]
    write_report: bool = True

    # -----------------------------------------------------------------------
    # Factory helpers
    # -----------------------------------------------------------------------
    @classmethod
    def from_cli_args(cls, args) -> "CrawlerRunConfig":
        """Build config from an argparse Namespace (``__main__.py``)."""
        from .auth.config import parse_auth_config

        raw_auth = getattr(args, "auth_config", None)
        auth_config = parse_auth_config(raw_auth) if raw_auth else None

        return cls(
            max_depth=getattr(args, "max_depth", _DEFAULTS["max_depth"]),
            max_pages=getattr(args, "max_pages", _DEFAULTS["max_pages"]),
            rate_delay=getattr(args, "rate", 1.0),
            timeout_seconds=getattr(args, "timeout", _DEFAULTS["timeout_seconds"]),
            headless=getattr(args, "headless", _DEFAULTS["headless"]),
            interactive=not getattr(args, "no_interactive", False),
            use_auth=getattr(args, "use_auth", False),
            auth_config=auth_config,
            auth_state_dir=getattr(args, "auth_state_dir", _DEFAULTS["auth_state_dir"]),
            backend_url=getattr(args, "backend_url", None),
            capture_live_session=not getattr(args, "headless", True),
            output_dir=getattr(args, "output_dir", _DEFAULTS["output_dir"]),
        )

    @property
    def timeout_ms(self) -> int:
        return int(self.timeout_seconds * 1000)

    def to_options(self) -> Dict[str, Any]:
        """The ``options`` block written into the report."""
        return {
            "maxDepth": self.max_depth,
            "maxPages": self.max_pages,
            "rateLimitMs": int(self.rate_delay * 1000),
            "timeout": self.timeout_ms,
            "userAgent": self.user_agent,
            "headless": self.headless,
            "enableInteractiveDiscovery": self.interactive,
            "useAuth": self.use_auth,
            "authType": getattr(self.auth_config, "auth_type", None),
        }

    # -----------------------------------------------------------------------
    # Logging helper
    # -----------------------------------------------------------------------
    def log_summary(self, url: str) -> None:
        """Emit a structured summary to the logger."""
        logger.info("=" * 60)
        logger.info("SITE DISCOVERY RUN CONFIG")
        logger.info("=" * 60)
        logger.info(f"  URL:              {url}")
        logger.info(f"  Max Depth:        {self.max_depth}")
        logger.info(f"  Max Pages:        {self.max_pages}")
        logger.info(f"  Timeout:          {self.timeout_seconds}s per fetch")
        logger.info(f"  Rate Delay:       {self.rate_delay}s between fetches")
        logger.info(f"  Headless:         {self.headless}")
        logger.info(f"  Interactive:      {self.interactive}")
        if self.interactive:
            logger.info(
                f"  Interactive Caps: {self.interactive_sample_pages} pages, "
                f"{self.max_interactive_routes} routes"
            )
        if self.use_auth:
            auth_type = getattr(self.auth_config, "auth_type", "auto")
            logger.info(f"  Auth:             Enabled ({auth_type})")
            logger.info(f"  Auth State Dir:   {self.auth_state_dir}")
            if self.backend_url:
                logger.info(f"  Auth Backend:     {self.backend_url}")
        logger.info(f"  Output Dir:       {self.output_dir}")
        logger.info("=" * 60)
