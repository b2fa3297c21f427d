"""
Report writer: persists a ``CrawlReport`` as
``<output_dir>/site-crawl-<label>-<timestamp>.json``.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from .models import CrawlReport
from .utils import file_timestamp, sanitize_label

logger = logging.getLogger(__name__)


def report_filename(label: str, timestamp: Optional[str] = None) -> str:
    return f"site-crawl-{sanitize_label(label)}-{file_timestamp(timestamp)}.json"


class ReportWriter:

    def __init__(self, output_dir: str = "reports"):
        self.output_dir = Path(output_dir)

    def write(self, report: CrawlReport) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / report_filename(report.test_name, report.end_time)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(report.to_dict(), f, indent=2, ensure_ascii=False)
        report.output_path = str(path)
        logger.info(f"[REPORT] Saved {len(report.pages)} pages to {path}")
        return path
