"""Event handler that records every crawl event to a JSONL file.

One line per event, appended and flushed immediately so that a crawl killed
mid-run still leaves a usable log.
"""

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional

from ..events import (
    CrawlEvent,
    NonHtmlContentEvent,
    PageLoadEvent,
    PageLoadTimeoutEvent,
    RequestErrorEvent,
    RequestRedirectEvent,
)

logger = logging.getLogger(__name__)


class EventLogHandler:
    """Writes crawl events to a single JSONL file."""

    def __init__(self, log_path: str):
        """Initialize event log.

        Args:
            log_path: Path to the events.jsonl file
        """
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

        self._file_handle = None
        self.records_written = 0

    def _open_for_append(self):
        if self._file_handle is None:
            self._file_handle = open(self.log_path, 'a', buffering=1, encoding='utf-8')  # Line buffered
            logger.info(f"Event log opened: {self.log_path}")

    def build_record(self, kind: str, event: Optional[CrawlEvent] = None, **extra: Any) -> Dict[str, Any]:
        """Build an event record.

        Args:
            kind: Event kind (page_load, non_html_content, ...)
            event: The event, if the kind carries a candidate
            extra: Kind-specific fields

        Returns:
            Record dict
        """
        record: Dict[str, Any] = {
            'event': kind,
            'timestamp': int(time.time()),
        }
        if event is not None:
            candidate = event.crawl_candidate
            record.update({
                'url': candidate.request_url,
                'depth': candidate.crawl_depth,
                'priority': candidate.priority,
                'referer': candidate.referer_url,
            })
        record.update(extra)
        return record

    def write(self, record: Dict[str, Any]) -> None:
        self._open_for_append()
        self._file_handle.write(json.dumps(record, default=str) + '\n')
        self._file_handle.flush()
        self.records_written += 1

    def close(self) -> None:
        if self._file_handle:
            self._file_handle.close()
            self._file_handle = None
            logger.info(f"Event log closed - total records: {self.records_written}")

    # =========================================================================
    # CrawlEventHandler
    # =========================================================================

    async def on_start(self) -> None:
        self.write(self.build_record('start'))

    async def on_page_load(self, event: PageLoadEvent) -> None:
        self.write(self.build_record('page_load', event, loaded_url=event.renderer.current_url))

    async def on_non_html_content(self, event: NonHtmlContentEvent) -> None:
        self.write(self.build_record('non_html_content', event, content_type=event.content_type))

    async def on_request_redirect(self, event: RequestRedirectEvent) -> None:
        self.write(self.build_record('request_redirect', event, redirected_url=event.redirected_request.url))

    async def on_request_error(self, event: RequestErrorEvent) -> None:
        self.write(self.build_record('request_error', event, error=repr(event.cause)))

    async def on_page_load_timeout(self, event: PageLoadTimeoutEvent) -> None:
        self.write(self.build_record('page_load_timeout', event, error=repr(event.cause)))

    async def on_stop(self) -> None:
        self.write(self.build_record('stop'))
        self.close()
