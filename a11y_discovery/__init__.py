"""
Accessibility Site Discovery
A breadth-first crawler that inventories every reachable page of a site
(public and authenticated) for an accessibility audit.

CLI Usage:
    python -m a11y_discovery crawl <url> [options]

    Options:
        --test-name       Label used in the report file name
        --max-depth       Maximum link depth (default: 3)
        --max-pages       Maximum pages fetched by traversal (default: 500)
        --use-auth        Authenticate before crawling
        --auth-config     Inline JSON auth configuration
        --headless        true/false (default: true)
        --no-interactive  Skip browser-driven route discovery

    python -m a11y_discovery wizard detect|setup|list|clear
"""

from .errors import (
    AuthConfigError,
    AuthenticationError,
    AuthenticationExpiredError,
    CrawlSetupError,
    DiscoveryError,
    FetchError,
    InvalidRootUrlError,
    MissingCredentialsError,
)
from .events import CrawlEvent, CrawlPhase, EventChannel
from .link_discovery import LinkDiscoveryEngine, discover_links
from .models import (
    AuthCompleteness,
    CrawlReport,
    CrawlSession,
    ErrorRecord,
    FrontierEntry,
    PageRecord,
    PageSource,
)
from .orchestrator import CrawlOrchestrator
from .report import ReportWriter
from .run_config import CrawlerRunConfig
from .sitemap import SitemapProbe

__all__ = [
    'CrawlOrchestrator',
    'CrawlerRunConfig',
    'LinkDiscoveryEngine',
    'discover_links',
    'SitemapProbe',
    'ReportWriter',
    # Models
    'AuthCompleteness',
    'CrawlReport',
    'CrawlSession',
    'ErrorRecord',
    'FrontierEntry',
    'PageRecord',
    'PageSource',
    # Events
    'CrawlEvent',
    'CrawlPhase',
    'EventChannel',
    # Errors
    'DiscoveryError',
    'CrawlSetupError',
    'InvalidRootUrlError',
    'MissingCredentialsError',
    'AuthConfigError',
    'AuthenticationError',
    'AuthenticationExpiredError',
    'FetchError',
]

__version__ = '0.1.0'
