import json
import tempfile
import unittest
from pathlib import Path

from crawl_fakes import FakeRenderer

from pagecrawl.events import NonHtmlContentEvent, PageLoadEvent, RequestErrorEvent, RequestRedirectEvent
from pagecrawl.errors import ProbeFailedError
from pagecrawl.io.event_log import EventLogHandler
from pagecrawl.request import CrawlCandidate, CrawlRequest


class EventLogHandlerTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = Path(self.tmpdir.name) / "logs" / "events.jsonl"
        self.handler = EventLogHandler(str(self.path))

    def tearDown(self) -> None:
        self.handler.close()
        self.tmpdir.cleanup()

    def read_records(self) -> list:
        with open(self.path, encoding="utf-8") as f:
            return [json.loads(line) for line in f]

    async def test_records_one_line_per_event(self) -> None:
        renderer = FakeRenderer()
        await renderer.navigate("https://example.com/final")
        candidate = CrawlCandidate(CrawlRequest("https://example.com/page", priority=3),
                                   crawl_depth=1, referer_url="https://example.com/")

        await self.handler.on_start()
        await self.handler.on_page_load(PageLoadEvent(candidate, renderer))
        await self.handler.on_non_html_content(NonHtmlContentEvent(candidate, "image/png"))
        await self.handler.on_request_redirect(
            RequestRedirectEvent(candidate, CrawlRequest("https://example.com/moved")))
        await self.handler.on_request_error(RequestErrorEvent(candidate, ProbeFailedError("refused")))
        await self.handler.on_stop()

        records = self.read_records()
        self.assertEqual(
            ["start", "page_load", "non_html_content", "request_redirect", "request_error", "stop"],
            [r["event"] for r in records],
        )
        page_load = records[1]
        self.assertEqual("https://example.com/page", page_load["url"])
        self.assertEqual(1, page_load["depth"])
        self.assertEqual(3, page_load["priority"])
        self.assertEqual("https://example.com/", page_load["referer"])
        self.assertEqual("https://example.com/final", page_load["loaded_url"])
        self.assertEqual("image/png", records[2]["content_type"])
        self.assertEqual("https://example.com/moved", records[3]["redirected_url"])
        self.assertIn("refused", records[4]["error"])
        self.assertEqual(6, self.handler.records_written)

    async def test_file_is_created_lazily_and_appended(self) -> None:
        self.assertFalse(self.path.exists())

        await self.handler.on_start()
        await self.handler.on_stop()
        await self.handler.on_start()

        self.assertEqual(["start", "stop", "start"], [r["event"] for r in self.read_records()])


if __name__ == "__main__":
    unittest.main()
