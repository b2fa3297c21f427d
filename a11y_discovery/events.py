"""
Progress Events
===============
Observer channel for crawl progress.

Every phase transition and every fetch attempt produces one
``CrawlEvent``.  Events are delivered synchronously, in emission order,
to each subscribed sink; a sink that raises is logged and skipped so a
broken UI callback cannot stall the crawl.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List

from .utils import utc_now_iso

logger = logging.getLogger(__name__)


class CrawlPhase(str, Enum):
    START = "start"
    SITEMAP = "sitemap"
    AUTH = "auth"
    TRAVERSAL = "traversal"
    INTERACTIVE = "interactive"
    MERGE = "merge"
    CLEANUP = "cleanup"
    REPORT = "report"
    DONE = "done"


@dataclass(frozen=True)
class CrawlEvent:
    phase: CrawlPhase
    message: str
    counters: Dict[str, int] = field(default_factory=dict)
    url: str = ""
    timestamp: str = field(default_factory=utc_now_iso)


ProgressSink = Callable[[CrawlEvent], None]


class EventChannel:
    """Fan-out of ``CrawlEvent`` to zero or more sinks."""

    def __init__(self, sinks: List[ProgressSink] = None):
        self._sinks: List[ProgressSink] = list(sinks or [])
        self.history: List[CrawlEvent] = []

    def subscribe(self, sink: ProgressSink) -> None:
        self._sinks.append(sink)

    def emit(self, phase: CrawlPhase, message: str, *, url: str = "",
             **counters: int) -> CrawlEvent:
        event = CrawlEvent(phase=phase, message=message, counters=counters, url=url)
        self.history.append(event)
        logger.info(f"[{phase.value.upper()}] {message}")
        for sink in self._sinks:
            try:
                sink(event)
            except Exception as e:
                logger.warning(f"[EVENTS] Progress sink failed: {e}")
        return event
