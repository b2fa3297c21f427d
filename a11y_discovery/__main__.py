#!/usr/bin/env python3
"""
Command-line entry point
========================
    python -m a11y_discovery crawl https://site.example --max-depth 2 --use-auth
    python -m a11y_discovery wizard setup https://site.example

All crawl settings flow through ``CrawlerRunConfig``.  Exit status is 0
when a crawl completes (even with per-page errors) and non-zero on setup
failures such as a malformed URL or missing auth material.

Run with: python -m a11y_discovery
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from dotenv import load_dotenv

from .auth.store import AuthStateStore
from .auth.wizard import AUTH_TYPE_DESCRIPTIONS, AuthSetupWizard
from .errors import AuthConfigError, CrawlSetupError
from .models import CrawlReport, PageSource
from .orchestrator import CrawlOrchestrator
from .run_config import CrawlerRunConfig, _DEFAULTS

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_SETUP_ERROR = 2
EXIT_INTERRUPTED = 130


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------

def _parse_bool(value: str) -> bool:
    lowered = str(value).strip().lower()
    if lowered in ('1', 'true', 'yes', 'y', 'on'):
        return True
    if lowered in ('0', 'false', 'no', 'n', 'off'):
        return False
    raise argparse.ArgumentTypeError(f"expected true/false, got {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='a11y-discovery',
        description='Accessibility site discovery - inventory every reachable page of a site',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m a11y_discovery crawl https://example.com
  python -m a11y_discovery crawl https://example.com --max-depth 2 --max-pages 50
  python -m a11y_discovery crawl https://lms.example.edu --use-auth --headless=false
  python -m a11y_discovery wizard setup https://lms.example.edu
        """
    )
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    sub = parser.add_subparsers(dest='command')

    # ── crawl ─────────────────────────────────────────────────────
    crawl = sub.add_parser('crawl', help='Discover all pages of a site')
    crawl.add_argument('url', help='Root URL (http:// or https://)')
    crawl.add_argument('--test-name', type=str, help='Report label (default: root domain)')
    crawl.add_argument('--max-depth', type=int, default=_DEFAULTS['max_depth'],
                       help=f"Maximum link depth (default: {_DEFAULTS['max_depth']})")
    crawl.add_argument('--max-pages', type=int, default=_DEFAULTS['max_pages'],
                       help=f"Maximum pages visited by traversal (default: {_DEFAULTS['max_pages']})")
    crawl.add_argument('--rate', type=float, default=1.0,
                       help='Delay between fetches in seconds (default: 1.0)')
    crawl.add_argument('--timeout', type=float, default=_DEFAULTS['timeout_seconds'],
                       help=f"Per-fetch timeout in seconds (default: {_DEFAULTS['timeout_seconds']})")
    crawl.add_argument('--headless', type=_parse_bool, nargs='?', const=True, default=True,
                       metavar='true|false', help='Run the browser headless (default: true)')
    crawl.add_argument('--no-interactive', action='store_true',
                       help='Skip browser-driven interactive route discovery')
    crawl.add_argument('--output-dir', type=str, default=_DEFAULTS['output_dir'],
                       help=f"Report directory (default: {_DEFAULTS['output_dir']})")
    crawl.add_argument('--verbose', '-v', action='store_true', default=argparse.SUPPRESS,
                       help='Debug logging')

    auth_group = crawl.add_argument_group('Authentication',
        'Credentials are resolved from the auth config, then TEST_USERNAME/TEST_PASSWORD, '
        'then CRAWLER_USERNAME/CRAWLER_PASSWORD.  Saved live sessions are reused automatically.')
    auth_group.add_argument('--use-auth', action='store_true',
                            help='Authenticate before crawling')
    auth_group.add_argument('--auth-config', type=str, metavar='JSON',
                            help='Inline JSON auth configuration')
    auth_group.add_argument('--auth-state-dir', type=str, default=_DEFAULTS['auth_state_dir'],
                            help=f"Saved sessions/configs (default: {_DEFAULTS['auth_state_dir']})")
    auth_group.add_argument('--backend-url', type=str, metavar='URL',
                            help='Backend serving GET /api/auth/configs?domain=')

    # ── wizard ────────────────────────────────────────────────────
    wizard = sub.add_parser('wizard', help='Interactive authentication setup')
    wizard.add_argument('--auth-state-dir', type=str, default=_DEFAULTS['auth_state_dir'])
    wsub = wizard.add_subparsers(dest='wizard_command')
    w_setup = wsub.add_parser('setup', help='Configure authentication for a site')
    w_setup.add_argument('url')
    w_setup.add_argument('--type', dest='auth_type', choices=list(AUTH_TYPE_DESCRIPTIONS),
                         help='Skip detection and use this auth type')
    w_detect = wsub.add_parser('detect', help='Classify how a site authenticates')
    w_detect.add_argument('url')
    wsub.add_parser('list', help='List saved sessions and configs')
    w_clear = wsub.add_parser('clear', help='Delete saved sessions and configs')
    w_clear.add_argument('domain', nargs='?', help='Only this domain (default: all)')

    return parser


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%H:%M:%S'
    )


# ---------------------------------------------------------------------------
# crawl
# ---------------------------------------------------------------------------

def print_summary(report: CrawlReport) -> None:
    """Print crawl summary."""
    print("\n" + "=" * 65)
    print("DISCOVERY COMPLETE")
    print("=" * 65)
    print(f"  Root URL:             {report.root_url}")
    print(f"  Pages discovered:     {len(report.pages)}")
    for source in PageSource:
        count = len(report.pages_by_source(source))
        if count:
            print(f"    {source.value + ':':<19} {count}")
    print(f"  Max depth reached:    {report.max_depth_reached}")
    print(f"  Total requests:       {report.total_requests}")
    print(f"  Successful requests:  {report.successful_requests}")
    print(f"  Errors:               {len(report.errors)}")
    print(f"  Success rate:         {report.success_rate:.1f}%")
    print(f"  Authentication:       {report.authentication_completeness.value}")
    print(f"  Stop reason:          {report.stop_reason or 'completed'}")
    if report.output_path:
        print(f"  Report:               {report.output_path}")
    print("=" * 65)


def run_crawl_command(args) -> int:
    try:
        cfg = CrawlerRunConfig.from_cli_args(args)
    except AuthConfigError as e:
        logger.error(f"Invalid --auth-config: {e}")
        return EXIT_SETUP_ERROR

    orchestrator = CrawlOrchestrator(cfg)

    def progress_cb(event):
        if event.url and event.counters:
            visited = event.counters.get('visited', 0)
            print(f"[Page {visited}/{cfg.max_pages}] {event.url[:70]}")

    orchestrator.set_progress_callback(progress_cb)

    async def _main():
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, orchestrator.stop)
        except (NotImplementedError, RuntimeError):
            pass  # Windows event loops have no signal handlers
        return await orchestrator.crawl(args.url, args.test_name)

    try:
        report = asyncio.run(_main())
    except CrawlSetupError as e:
        logger.error(f"Crawl setup failed: {e}")
        return EXIT_SETUP_ERROR
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return EXIT_INTERRUPTED

    print_summary(report)
    return EXIT_OK


# ---------------------------------------------------------------------------
# wizard
# ---------------------------------------------------------------------------

def run_wizard_command(args) -> int:
    wizard = AuthSetupWizard(AuthStateStore(args.auth_state_dir))
    command = getattr(args, 'wizard_command', None)

    if command == 'detect':
        detection = asyncio.run(wizard.detect(args.url))
        print("\n" + "=" * 60)
        print(f"  Auth type:      {AUTH_TYPE_DESCRIPTIONS[detection.auth_type]}")
        print(f"  Requires auth:  {detection.requires_auth}")
        print(f"  Confidence:     {detection.confidence}")
        print(f"  Reason:         {detection.reason}")
        print("=" * 60)
        return EXIT_OK
    if command == 'setup':
        try:
            asyncio.run(wizard.setup(args.url, args.auth_type))
        except (AuthConfigError, ValueError) as e:
            logger.error(f"Setup failed: {e}")
            return EXIT_SETUP_ERROR
        return EXIT_OK
    if command == 'list':
        wizard.list()
        return EXIT_OK
    if command == 'clear':
        wizard.clear(args.domain)
        return EXIT_OK

    print("Usage: python -m a11y_discovery wizard {setup,detect,list,clear}")
    return EXIT_SETUP_ERROR


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def _load_env() -> None:
    env_path = Path.cwd() / '.env'
    if env_path.exists():
        load_dotenv(env_path)
    else:
        load_dotenv()


def main(argv=None) -> int:
    _load_env()
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(getattr(args, 'verbose', False))

    if args.command == 'crawl':
        return run_crawl_command(args)
    if args.command == 'wizard':
        return run_wizard_command(args)
    parser.print_help()
    return EXIT_SETUP_ERROR


if __name__ == "__main__":
    sys.exit(main())
