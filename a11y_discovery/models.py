"""
Data Model
==========
Plain dataclasses describing one crawl: the frontier entries, the pages
and errors it produced, the mutable session counters and the final
report artifact.

Report JSON uses camelCase keys because downstream audit tooling reads
the same files the dashboard produced.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .utils import utc_now_iso


class PageSource(str, Enum):
    TRAVERSAL = "traversal"
    SITEMAP = "sitemap"
    INTERACTIVE = "interactive"


class AuthCompleteness(str, Enum):
    """How much of the site the crawl could see as an authenticated user."""
    FULL = "full"
    PARTIAL = "partial"
    NONE = "none"


class CrawlState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    STOPPED = "stopped"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class FrontierEntry:
    url: str
    depth: int
    parent_url: Optional[str] = None


@dataclass
class PageRecord:
    """One discovered page.  At most one record per URL in a report."""
    url: str
    title: str = ""
    depth: int = 0
    parent_url: Optional[str] = None
    status_code: Any = None          # int, or "unknown" for unfetched sources
    content_type: str = ""
    word_count: int = 0
    last_modified: Optional[str] = None
    discovered_at: str = field(default_factory=utc_now_iso)
    source: PageSource = PageSource.TRAVERSAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "depth": self.depth,
            "parentUrl": self.parent_url,
            "statusCode": self.status_code,
            "contentType": self.content_type,
            "wordCount": self.word_count,
            "lastModified": self.last_modified,
            "discoveredAt": self.discovered_at,
            "source": self.source.value,
        }


@dataclass
class ErrorRecord:
    url: str
    error: str
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "error": self.error, "timestamp": self.timestamp}


@dataclass
class CrawlSession:
    """Per-crawl mutable state, owned by exactly one orchestrator run."""
    root_url: str
    label: str
    start_time: str = field(default_factory=utc_now_iso)
    total_requests: int = 0
    successful_requests: int = 0
    state: CrawlState = CrawlState.PENDING
    stop_reason: str = ""


@dataclass
class CrawlReport:
    """The JSON artifact handed to the accessibility audit stage."""
    test_name: str
    root_url: str
    start_time: str
    options: Dict[str, Any]
    pages: List[PageRecord] = field(default_factory=list)
    errors: List[ErrorRecord] = field(default_factory=list)
    total_requests: int = 0
    successful_requests: int = 0
    authentication_completeness: AuthCompleteness = AuthCompleteness.NONE
    stop_reason: str = ""
    end_time: str = field(default_factory=utc_now_iso)
    output_path: Optional[str] = None

    @property
    def max_depth_reached(self) -> int:
        return max((p.depth for p in self.pages), default=0)

    @property
    def success_rate(self) -> float:
        """Successful / total requests as a percentage (0 when nothing fetched)."""
        if not self.total_requests:
            return 0.0
        return round(100.0 * self.successful_requests / self.total_requests, 1)

    def pages_by_source(self, source: PageSource) -> List[PageRecord]:
        return [p for p in self.pages if p.source == source]

    def summary(self) -> Dict[str, int]:
        return {
            "totalRequests": self.total_requests,
            "successfulRequests": self.successful_requests,
            "discoveredPages": len(self.pages),
            "errors": len(self.errors),
            "maxDepthReached": self.max_depth_reached,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "testName": self.test_name,
            "rootUrl": self.root_url,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "options": self.options,
            "authenticationCompleteness": self.authentication_completeness.value,
            "stopReason": self.stop_reason,
            "summary": self.summary(),
            "pages": [p.to_dict() for p in self.pages],
            "errors": [e.to_dict() for e in self.errors],
        }
