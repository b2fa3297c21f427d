"""
Crawl Orchestrator
==================
Top-level breadth-first driver for site discovery.

Phases (in order):
    1. SITEMAP      — seed a separate sitemap page list
    2. AUTH         — optional; failures degrade to anonymous crawling
                      (SSO keeps going best-effort)
    3. TRAVERSAL    — FIFO BFS, one fetch in flight, rate-limited
    4. INTERACTIVE  — optional; browser exploration of a sample of pages,
                      a bounded number of new routes fetched
    5. MERGE        — traversal records win over sitemap records
    6. CLEANUP      — browser and auth context released on every exit path
    7. REPORT       — ``CrawlReport`` assembled and written to disk

Only ``CrawlSetupError`` escapes ``crawl()``.  Per-page problems become
``ErrorRecord``s; interactive problems are swallowed.

Every collaborator is constructor-injected so one orchestrator instance
holds all state for its crawl and tests can replace the network.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, List, Optional, Set

from .auth.backend import AuthConfigClient
from .auth.manager import AuthenticationSessionManager
from .auth.store import AuthStateStore
from .browser import BrowserSession
from .errors import (
    AuthenticationError,
    CrawlSetupError,
    FetchError,
    InvalidRootUrlError,
    MissingCredentialsError,
)
from .events import CrawlPhase, EventChannel, ProgressSink
from .fetcher import FetchResult, HttpFetcher
from .interactive import InteractiveExplorer
from .link_discovery import LinkDiscoveryEngine
from .models import (
    AuthCompleteness,
    CrawlReport,
    CrawlSession,
    CrawlState,
    ErrorRecord,
    FrontierEntry,
    PageRecord,
    PageSource,
)
from .report import ReportWriter
from .run_config import CrawlerRunConfig
from .sitemap import SitemapProbe
from .utils import extract_domain, is_same_domain, is_valid_url, strip_fragment, utc_now_iso

logger = logging.getLogger(__name__)


class CrawlOrchestrator:
    """Runs one crawl at a time; all per-crawl state lives on the instance."""

    def __init__(
        self,
        config: Optional[CrawlerRunConfig] = None,
        *,
        link_engine: Optional[LinkDiscoveryEngine] = None,
        sitemap_probe: Optional[SitemapProbe] = None,
        http_fetcher: Optional[Any] = None,
        browser_factory: Optional[Callable[[], BrowserSession]] = None,
        auth_manager_factory: Optional[Callable[[Any, BrowserSession], Any]] = None,
        explorer_factory: Optional[Callable[[Any], InteractiveExplorer]] = None,
        report_writer: Optional[ReportWriter] = None,
        sinks: Optional[List[ProgressSink]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config or CrawlerRunConfig()
        cfg = self.config

        self.link_engine = link_engine or LinkDiscoveryEngine(
            guess_common_routes=cfg.guess_common_routes
        )
        self.sitemap_probe = sitemap_probe or SitemapProbe(
            user_agent=cfg.user_agent, timeout=cfg.timeout_seconds
        )
        self._owns_http_fetcher = http_fetcher is None
        self.http_fetcher = http_fetcher or HttpFetcher(
            user_agent=cfg.user_agent, timeout=cfg.timeout_seconds
        )
        self._browser_factory = browser_factory or (
            lambda: BrowserSession(headless=cfg.headless, user_agent=cfg.user_agent)
        )
        self._auth_manager_factory = auth_manager_factory or self._default_auth_manager
        self._explorer_factory = explorer_factory or (
            lambda context: InteractiveExplorer(
                context,
                settle_delay_s=cfg.settle_delay_s,
                max_clicks_per_selector=cfg.max_clicks_per_selector,
                click_timeout_ms=cfg.click_timeout_ms,
                nav_timeout_ms=cfg.timeout_ms,
            )
        )
        self.report_writer = report_writer or ReportWriter(cfg.output_dir)
        self.events = EventChannel(sinks)
        self._sleep = sleep

        # Per-crawl state (reset at the start of every crawl)
        self.session: Optional[CrawlSession] = None
        self._visited_urls: Set[str] = set()
        self._queued_urls: Set[str] = set()
        self._pages: List[PageRecord] = []
        self._errors: List[ErrorRecord] = []
        self._sitemap_pages: List[PageRecord] = []
        self._auth: Optional[AuthenticationSessionManager] = None
        self._browser: Optional[BrowserSession] = None
        self._stop_requested = False

    # ── Public API ───────────────────────────────────────────────

    def set_progress_callback(self, callback: ProgressSink) -> None:
        self.events.subscribe(callback)

    def stop(self) -> None:
        """Cooperative cancellation: checked before each BFS iteration."""
        logger.info("[CRAWL] Stop requested")
        self._stop_requested = True

    @property
    def visited_count(self) -> int:
        return len(self._visited_urls)

    async def crawl(self, root_url: str, label: Optional[str] = None) -> CrawlReport:
        """Discover every reachable page under *root_url*.

        Raises:
            CrawlSetupError: malformed root URL or unresolvable auth requirements.
        """
        if not is_valid_url(root_url or ""):
            raise InvalidRootUrlError(root_url)
        root_url = strip_fragment(root_url)
        label = label or extract_domain(root_url)

        self._reset()
        session = self.session = CrawlSession(root_url=root_url, label=label)
        session.state = CrawlState.RUNNING
        self.config.log_summary(root_url)
        self.events.emit(CrawlPhase.START, f"Crawl started: {root_url}", url=root_url)

        self._browser = self._browser_factory()
        completeness = AuthCompleteness.NONE
        try:
            self._sitemap_pages = await self._phase_sitemap(root_url)

            if self.config.use_auth:
                self._auth = await self._phase_auth(root_url)

            await self._phase_traversal(root_url)

            if self.config.interactive and not self._stop_requested:
                await self._phase_interactive(root_url)

            pages = self._merge()
            if self._auth is not None:
                completeness = self._auth.completeness
        except CrawlSetupError:
            session.state = CrawlState.FAILED
            raise
        finally:
            await self._cleanup()

        session.state = CrawlState.STOPPED if self._stop_requested else CrawlState.COMPLETED
        report = CrawlReport(
            test_name=label,
            root_url=root_url,
            start_time=session.start_time,
            options=self.config.to_options(),
            pages=pages,
            errors=list(self._errors),
            total_requests=session.total_requests,
            successful_requests=session.successful_requests,
            authentication_completeness=completeness,
            stop_reason=session.stop_reason,
            end_time=utc_now_iso(),
        )
        if self.config.write_report:
            self.report_writer.write(report)
            self.events.emit(CrawlPhase.REPORT, f"Report written: {report.output_path}")

        self.events.emit(
            CrawlPhase.DONE,
            f"Crawl finished ({session.stop_reason}): {len(report.pages)} pages, "
            f"{len(report.errors)} errors",
            **report.summary(),
        )
        return report

    def run(self, root_url: str, label: Optional[str] = None) -> CrawlReport:
        """Synchronous wrapper around ``crawl()``."""
        return asyncio.run(self.crawl(root_url, label))

    # ── State ────────────────────────────────────────────────────

    def _reset(self) -> None:
        self._visited_urls.clear()
        self._queued_urls.clear()
        self._pages.clear()
        self._errors.clear()
        self._sitemap_pages = []
        self._auth = None
        self._browser = None
        self._stop_requested = False
        self.events.history.clear()

    def _counters(self) -> dict:
        return {
            "visited": len(self._visited_urls),
            "pages": len(self._pages),
            "errors": len(self._errors),
            "totalRequests": self.session.total_requests,
            "successfulRequests": self.session.successful_requests,
        }

    def _record_error(self, url: str, message: str) -> None:
        self._errors.append(ErrorRecord(url=url, error=message))
        logger.warning(f"[CRAWL] ✗ {url[:80]} — {message}")

    # ── Phase: sitemap ───────────────────────────────────────────

    async def _phase_sitemap(self, root_url: str) -> List[PageRecord]:
        self.events.emit(CrawlPhase.SITEMAP, "Probing sitemap locations", **self._counters())
        try:
            records = await self.sitemap_probe.probe(root_url)
        except Exception as e:
            logger.warning(f"[SITEMAP] Probe failed: {e}")
            records = []
        self.events.emit(CrawlPhase.SITEMAP, f"{len(records)} sitemap URLs", sitemap=len(records))
        return records

    # ── Phase: auth ──────────────────────────────────────────────

    def _default_auth_manager(self, auth_config, browser: BrowserSession):
        cfg = self.config
        return AuthenticationSessionManager(
            auth_config,
            browser=browser,
            store=AuthStateStore(cfg.auth_state_dir),
            anonymous_fetcher=self.http_fetcher,
            allow_live_capture=cfg.capture_live_session,
            timeout_ms=cfg.timeout_ms,
            user_agent=cfg.user_agent,
        )

    async def _phase_auth(self, root_url: str):
        self.events.emit(CrawlPhase.AUTH, "Setting up authentication", **self._counters())
        domain = extract_domain(root_url)

        auth_config = self.config.auth_config
        if auth_config is None and self.config.backend_url:
            auth_config = await AuthConfigClient(
                self.config.backend_url, timeout=self.config.timeout_seconds
            ).fetch(domain)

        manager = self._auth_manager_factory(auth_config, self._browser)
        # Held on self before setup so cleanup sees it even if setup raises
        self._auth = manager
        try:
            active = await manager.setup_authentication(root_url)
        except MissingCredentialsError:
            raise
        except Exception as e:
            if manager.is_sso and manager.context is not None:
                logger.warning(f"[AUTH] SSO setup incomplete ({e}) — continuing best-effort")
                self.events.emit(CrawlPhase.AUTH, "SSO authentication is best-effort")
                return manager
            logger.warning(f"[AUTH] Authentication failed ({e}) — continuing anonymously")
            self.events.emit(CrawlPhase.AUTH, "Authentication disabled; crawling anonymously")
            await manager.cleanup()
            return None

        if not active:
            await manager.cleanup()
            if manager.config is None:
                raise MissingCredentialsError(
                    f"--use-auth was set but no auth config or saved session exists for {domain}; "
                    f"pass --auth-config or run the auth wizard first"
                )
            self.events.emit(CrawlPhase.AUTH, "Site needs no authentication")
            return None

        self.events.emit(
            CrawlPhase.AUTH,
            f"Authentication ready ({manager.auth_type}, {manager.state.value})",
        )
        return manager

    # ── Fetch ────────────────────────────────────────────────────

    async def _fetch(self, url: str,
                     phase: CrawlPhase = CrawlPhase.TRAVERSAL) -> Optional[FetchResult]:
        """One fetch attempt.  Failures are recorded and return None."""
        self.session.total_requests += 1
        self.events.emit(phase, f"Fetching {url}", url=url, **self._counters())

        auth = self._auth
        try:
            if auth is not None and auth.is_active and auth.requires_authentication(url):
                result = await auth.fetch_authenticated(url)
            else:
                result = await self.http_fetcher.fetch(url)
        except (FetchError, AuthenticationError) as e:
            self._record_error(url, str(e))
            return None
        except Exception as e:
            self._record_error(url, f"Unexpected fetch failure: {e}")
            return None

        self.session.successful_requests += 1
        return result

    def _to_record(self, url: str, result: FetchResult, entry: FrontierEntry,
                   source: PageSource) -> PageRecord:
        return PageRecord(
            url=url,
            title=result.title,
            depth=entry.depth,
            parent_url=entry.parent_url,
            status_code=result.status_code,
            content_type=result.content_type,
            word_count=result.word_count,
            last_modified=result.last_modified,
            source=source,
        )

    # ── Phase: traversal ─────────────────────────────────────────

    async def _phase_traversal(self, root_url: str) -> None:
        cfg = self.config
        self.events.emit(CrawlPhase.TRAVERSAL, "Breadth-first traversal started", **self._counters())

        frontier: Deque[FrontierEntry] = deque([FrontierEntry(root_url, 0, None)])
        self._queued_urls.add(root_url)
        self.session.stop_reason = "completed"

        while frontier and not self._stop_requested and len(self._visited_urls) < cfg.max_pages:
            entry = frontier.popleft()
            url = strip_fragment(entry.url)
            if url in self._visited_urls or entry.depth > cfg.max_depth:
                continue

            if self.session.total_requests > 0:
                await self._sleep(cfg.rate_delay)

            self._visited_urls.add(url)
            logger.info(
                f"[{len(self._visited_urls)}/{cfg.max_pages}] Depth:{entry.depth} | "
                f"Queue:{len(frontier)} | {url[:80]}"
            )
            result = await self._fetch(url)
            if result is None:
                continue

            self._pages.append(self._to_record(url, result, entry, PageSource.TRAVERSAL))

            if entry.depth >= cfg.max_depth:
                continue
            try:
                links = self.link_engine.discover(result.html, result.final_url or url)
            except Exception as e:
                logger.warning(f"[LINKS] Extraction failed on {url[:80]}: {e}")
                links = set()

            enqueued = 0
            for link in sorted(links):
                link = strip_fragment(link)
                if not is_same_domain(link, root_url):
                    continue
                if link in self._visited_urls or link in self._queued_urls:
                    continue
                frontier.append(FrontierEntry(link, entry.depth + 1, url))
                self._queued_urls.add(link)
                enqueued += 1
            logger.debug(
                f"[FRONTIER] {url[:60]} → discovered={len(links)} "
                f"enqueued={enqueued} queue_size={len(frontier)}"
            )

        if self._stop_requested:
            self.session.stop_reason = "stopped"
        elif frontier and len(self._visited_urls) >= cfg.max_pages:
            self.session.stop_reason = f"max_pages limit reached ({cfg.max_pages})"
        self.events.emit(
            CrawlPhase.TRAVERSAL,
            f"Traversal finished: {len(self._pages)} pages ({self.session.stop_reason})",
            **self._counters(),
        )

    # ── Phase: interactive ───────────────────────────────────────

    async def _phase_interactive(self, root_url: str) -> None:
        cfg = self.config
        # Routes land one level below the sampled page
        sample = [
            p for p in self._pages
            if p.source == PageSource.TRAVERSAL and p.depth < cfg.max_depth
        ]
        sample = sample[:cfg.interactive_sample_pages]
        if not sample:
            return
        self.events.emit(
            CrawlPhase.INTERACTIVE, f"Exploring {len(sample)} pages interactively",
            **self._counters(),
        )

        try:
            if self._auth is not None and self._auth.context is not None:
                context = self._auth.context
            else:
                context = await self._browser.new_context()
            explorer = self._explorer_factory(context)
        except Exception as e:
            logger.warning(f"[INTERACTIVE] Browser unavailable, skipping: {e}")
            return

        candidates: List[FrontierEntry] = []
        seen: Set[str] = set()
        for page in sample:
            if self._stop_requested:
                break
            try:
                routes = await explorer.explore(page.url)
            except Exception as e:
                logger.debug(f"[INTERACTIVE] {page.url[:80]} failed: {e}")
                continue
            for route in sorted(routes):
                if route in seen or route in self._visited_urls:
                    continue
                if not is_same_domain(route, root_url):
                    continue
                seen.add(route)
                candidates.append(FrontierEntry(route, page.depth + 1, page.url))

        fetched = 0
        for entry in candidates:
            if fetched >= cfg.max_interactive_routes or self._stop_requested:
                break
            if self.session.total_requests > 0:
                await self._sleep(cfg.rate_delay)
            self._visited_urls.add(entry.url)
            fetched += 1
            result = await self._fetch(entry.url, CrawlPhase.INTERACTIVE)
            if result is not None:
                self._pages.append(
                    self._to_record(entry.url, result, entry, PageSource.INTERACTIVE)
                )

        self.events.emit(
            CrawlPhase.INTERACTIVE,
            f"Interactive discovery: {len(candidates)} candidates, {fetched} fetched",
            **self._counters(),
        )

    # ── Phase: merge ─────────────────────────────────────────────

    def _merge(self) -> List[PageRecord]:
        merged = list(self._pages)
        known = {p.url for p in merged}
        added = 0
        for record in self._sitemap_pages:
            if record.url in known or record.url in self._visited_urls:
                continue
            if strip_fragment(record.url) in self._visited_urls:
                continue
            merged.append(record)
            known.add(record.url)
            added += 1
        self.events.emit(
            CrawlPhase.MERGE,
            f"Merged {len(self._pages)} fetched + {added} sitemap-only pages",
            pages=len(merged),
        )
        return merged

    # ── Cleanup ──────────────────────────────────────────────────

    async def _cleanup(self) -> None:
        self.events.emit(CrawlPhase.CLEANUP, "Releasing browser resources")
        if self._auth is not None:
            try:
                await self._auth.cleanup()
            except Exception as e:
                logger.warning(f"[CRAWL] Auth cleanup error: {e}")
        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as e:
                logger.warning(f"[CRAWL] Browser close error: {e}")
        if self._owns_http_fetcher:
            try:
                await self.http_fetcher.close()
            except Exception as e:
                logger.debug(f"[CRAWL] HTTP session close error: {e}")
