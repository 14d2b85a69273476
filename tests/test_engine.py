import asyncio
import unittest

import httpx

from crawl_fakes import (
    FakeProbe,
    FakeRenderer,
    RecordingHandler,
    ScriptingFakeRenderer,
    content,
    redirect,
)

from pagecrawl.config import CrawlerConfig, DelayConfig, FrontierConfig
from pagecrawl.delay import LOAD_TIME_SCRIPT
from pagecrawl.engine import CrawlEngine, EngineState
from pagecrawl.errors import (
    AlreadyRunningError,
    NavigationTimeoutError,
    NotRunningError,
    NotStartedError,
    ProbeFailedError,
    RenderError,
    SnapshotDecodeError,
    StopAlreadyRequestedError,
    UnsupportedCapabilityError,
)
from pagecrawl.net.probe import HttpProbe
from pagecrawl.net.renderer import BrowserCookie
from pagecrawl.request import CrawlRequest


def make_config(delay_ms: int = 0, **frontier) -> CrawlerConfig:
    return CrawlerConfig(
        delay=DelayConfig(strategy="fixed", fixed_delay_ms=delay_ms),
        frontier=FrontierConfig(**frontier),
    )


class EngineTestCase(unittest.IsolatedAsyncioTestCase):
    def make_engine(self, responses=None, pages=None, handler=None, config=None, renderer=None):
        self.log = []
        self.probe = FakeProbe(responses, log=self.log)
        self.renderer = renderer or FakeRenderer(pages, log=self.log)
        self.handler = handler or RecordingHandler(log=self.log)
        return CrawlEngine(config or make_config(), self.handler, renderer=self.renderer, probe=self.probe)


class CandidateLifecycleTests(EngineTestCase):
    async def test_html_page_is_probed_rendered_and_dispatched(self) -> None:
        engine = self.make_engine()
        engine.add_seed(CrawlRequest("http://x.com/a"))

        await engine.start()

        self.assertEqual(["start", "page_load", "stop"], self.handler.kinds())
        event = self.handler.events[1][1]
        self.assertEqual("http://x.com/a", event.crawl_candidate.request_url)
        self.assertIs(self.renderer, event.renderer)
        self.assertEqual([("head", "http://x.com/a"), ("navigate", "http://x.com/a")], self.log[1:3])

    async def test_non_html_content_is_not_rendered(self) -> None:
        engine = self.make_engine(responses={"http://x.com/doc.pdf": content("http://x.com/doc.pdf", "application/pdf")})
        engine.add_seed(CrawlRequest("http://x.com/doc.pdf"))

        await engine.start()

        self.assertEqual(["start", "non_html_content", "stop"], self.handler.kinds())
        self.assertEqual("application/pdf", self.handler.events[1][1].content_type)
        self.assertEqual([], self.renderer.navigations)

    async def test_missing_content_type_counts_as_non_html(self) -> None:
        engine = self.make_engine(responses={"http://x.com/a": content("http://x.com/a", "")})
        engine.add_seed(CrawlRequest("http://x.com/a"))

        await engine.start()

        self.assertEqual("", self.handler.events[1][1].content_type)

    async def test_probe_failure_emits_request_error_and_continues(self) -> None:
        failure = ProbeFailedError("connection refused")
        engine = self.make_engine(responses={"http://x.com/a": failure})
        engine.add_seed(CrawlRequest("http://x.com/a", priority=2))
        engine.add_seed(CrawlRequest("http://x.com/b", priority=1))

        await engine.start()

        self.assertEqual(["start", "request_error", "page_load", "stop"], self.handler.kinds())
        self.assertIs(failure, self.handler.events[1][1].cause)
        self.assertEqual(["http://x.com/b"], self.renderer.navigations)
        self.assertEqual(1, engine.stats["request_errors"])

    async def test_unencodable_seed_host_does_not_end_the_crawl(self) -> None:
        def site(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers={"content-type": "text/html"})

        probe = HttpProbe(transport=httpx.MockTransport(site))
        handler = RecordingHandler()
        renderer = FakeRenderer()
        engine = CrawlEngine(make_config(), handler, renderer=renderer, probe=probe)
        engine.add_seeds([
            CrawlRequest("http://xn--/", priority=5),
            CrawlRequest("http://example.com/b", priority=1),
        ])

        await engine.start()

        self.assertEqual(["start", "request_error", "page_load", "stop"], handler.kinds())
        self.assertIsInstance(handler.events[1][1].cause, ProbeFailedError)
        self.assertEqual(["http://example.com/b"], renderer.navigations)

    async def test_http_redirect_feeds_target_without_rendering_source(self) -> None:
        engine = self.make_engine(responses={"http://x.com/a": redirect("http://x.com/b")})
        engine.add_seed(CrawlRequest("http://x.com/a", priority=4, metadata={"k": "v"}))

        await engine.start()

        self.assertEqual(
            [
                ("start", None),
                ("head", "http://x.com/a"),
                ("request_redirect", "http://x.com/a"),
                ("head", "http://x.com/b"),
                ("navigate", "http://x.com/b"),
                ("page_load", "http://x.com/b"),
                ("stop", None),
            ],
            self.log,
        )
        redirect_event = self.handler.events[1][1]
        self.assertEqual(CrawlRequest("http://x.com/b", priority=4, metadata={"k": "v"}),
                         redirect_event.redirected_request)
        loaded = self.handler.events[2][1].crawl_candidate
        self.assertEqual(1, loaded.crawl_depth)
        self.assertEqual("http://x.com/a", loaded.referer_url)

    async def test_script_redirect_is_detected_after_rendering(self) -> None:
        engine = self.make_engine(pages={"http://x.com/a": "http://x.com/c"})
        engine.add_seed(CrawlRequest("http://x.com/a"))

        await engine.start()

        self.assertEqual(["start", "request_redirect", "page_load", "stop"], self.handler.kinds())
        self.assertEqual(["http://x.com/a", "http://x.com/c"], self.renderer.navigations)
        self.assertEqual("http://x.com/c", self.handler.events[1][1].redirected_request.url)

    async def test_trailing_slash_difference_is_not_a_redirect(self) -> None:
        engine = self.make_engine(pages={"http://x.com": "http://x.com/"})
        engine.add_seed(CrawlRequest("http://x.com"))

        await engine.start()

        self.assertEqual(["start", "page_load", "stop"], self.handler.kinds())

    async def test_page_load_timeout_continues_with_current_url(self) -> None:
        timeout = NavigationTimeoutError("too slow")
        engine = self.make_engine(pages={
            "http://x.com/a": ("http://x.com/a", timeout),
            "http://x.com/b": ("http://x.com/b2", NavigationTimeoutError("slow redirect")),
        })
        engine.add_seed(CrawlRequest("http://x.com/a", priority=1))
        engine.add_seed(CrawlRequest("http://x.com/b"))

        await engine.start()

        self.assertEqual(
            ["start", "page_load_timeout", "page_load",
             "page_load_timeout", "request_redirect", "page_load", "stop"],
            self.handler.kinds(),
        )
        self.assertIs(timeout, self.handler.events[1][1].cause)

    async def test_render_failure_is_reported_as_request_error(self) -> None:
        engine = self.make_engine(pages={"http://x.com/a": ("about:blank", RenderError("net::ERR_FAILED"))})
        engine.add_seed(CrawlRequest("http://x.com/a"))

        await engine.start()

        self.assertEqual(["start", "request_error", "stop"], self.handler.kinds())

    async def test_redirects_respect_max_depth(self) -> None:
        engine = self.make_engine(
            responses={
                "http://x.com/a": redirect("http://x.com/b"),
                "http://x.com/b": redirect("http://x.com/c"),
            },
            config=make_config(max_crawl_depth=1),
        )
        engine.add_seed(CrawlRequest("http://x.com/a"))

        await engine.start()

        self.assertEqual(["http://x.com/a", "http://x.com/b"], self.probe.heads)
        self.assertEqual(["start", "request_redirect", "request_redirect", "stop"], self.handler.kinds())

    async def test_redirect_loop_terminates_through_deduplication(self) -> None:
        engine = self.make_engine(responses={
            "http://x.com/a": redirect("http://x.com/b"),
            "http://x.com/b": redirect("http://x.com/a"),
        })
        engine.add_seed(CrawlRequest("http://x.com/a"))

        await engine.start()

        self.assertEqual(["http://x.com/a", "http://x.com/b"], self.probe.heads)

    async def test_handler_can_feed_follow_up_requests(self) -> None:
        engine = None

        class LinkFollower(RecordingHandler):
            async def on_page_load(self, event):
                await super().on_page_load(event)
                if event.crawl_candidate.crawl_depth == 0:
                    engine.feed(CrawlRequest("http://x.com/child"))

        handler = LinkFollower()
        engine = self.make_engine(handler=handler)
        engine.add_seed(CrawlRequest("http://x.com/"))

        await engine.start()

        child = handler.events[2][1].crawl_candidate
        self.assertEqual("http://x.com/child", child.request_url)
        self.assertEqual(1, child.crawl_depth)
        self.assertEqual("http://x.com/", child.referer_url)


class CookieSyncTests(EngineTestCase):
    async def test_renderer_cookies_reach_probe_before_each_probe(self) -> None:
        renderer = FakeRenderer(cookies=[BrowserCookie(name="sid", value="one", domain="x.com")])
        rotated = BrowserCookie(name="sid", value="two", domain="x.com")

        class RotateCookie(RecordingHandler):
            async def on_page_load(self, event):
                await super().on_page_load(event)
                renderer.cookies = [rotated]

        engine = self.make_engine(handler=RotateCookie(), renderer=renderer)
        engine.add_seed(CrawlRequest("http://x.com/a", priority=1))
        engine.add_seed(CrawlRequest("http://x.com/b"))

        await engine.start()

        self.assertEqual(
            [{("sid", "x.com", "/"): "one"}, {("sid", "x.com", "/"): "two"}],
            self.probe.cookies_at_head,
        )


class EngineStateTests(EngineTestCase):
    async def test_stop_and_feed_require_running_engine(self) -> None:
        engine = self.make_engine()

        self.assertEqual(EngineState.STOPPED, engine.state)
        with self.assertRaises(NotRunningError):
            engine.stop()
        with self.assertRaises(NotRunningError):
            engine.feed(CrawlRequest("http://x.com/a"))
        with self.assertRaises(NotStartedError):
            engine.save_state()

    async def test_misuse_while_running(self) -> None:
        errors = {}
        engine = None

        class Probing(RecordingHandler):
            async def on_start(self):
                errors["state"] = engine.state
                for name, call in [
                    ("start", engine.start),
                    ("resume", lambda: engine.resume(b"")),
                ]:
                    try:
                        await call()
                    except AlreadyRunningError as e:
                        errors[name] = e
                try:
                    engine.add_seed(CrawlRequest("http://x.com/z"))
                except AlreadyRunningError as e:
                    errors["add_seed"] = e

                engine.stop()
                try:
                    engine.stop()
                except StopAlreadyRequestedError as e:
                    errors["second_stop"] = e

        engine = self.make_engine(handler=Probing())
        engine.add_seed(CrawlRequest("http://x.com/a"))
        await engine.start()

        self.assertEqual(EngineState.RUNNING, errors["state"])
        self.assertEqual({"state", "start", "resume", "add_seed", "second_stop"}, set(errors))
        # Stop was requested before the first candidate
        self.assertEqual([], self.probe.heads)
        self.assertEqual(EngineState.STOPPED, engine.state)

    async def test_teardown_runs_when_handler_raises(self) -> None:
        class Broken(RecordingHandler):
            async def on_page_load(self, event):
                raise RuntimeError("handler bug")

        engine = self.make_engine(handler=Broken())
        engine.add_seed(CrawlRequest("http://x.com/a"))

        with self.assertRaises(RuntimeError):
            await engine.start()

        self.assertTrue(self.renderer.closed)
        self.assertTrue(self.probe.closed)
        self.assertEqual(EngineState.STOPPED, engine.state)

    async def test_adaptive_delay_on_incapable_renderer_aborts_start(self) -> None:
        config = CrawlerConfig(delay=DelayConfig(strategy="adaptive"))
        engine = self.make_engine(config=config)
        engine.add_seed(CrawlRequest("http://x.com/a"))

        with self.assertRaises(UnsupportedCapabilityError):
            await engine.start()

        self.assertEqual([], self.probe.heads)
        self.assertEqual([], self.handler.kinds())
        self.assertTrue(self.renderer.closed)
        self.assertEqual(EngineState.STOPPED, engine.state)

    async def test_adaptive_delay_with_scripting_renderer(self) -> None:
        config = CrawlerConfig(delay=DelayConfig(strategy="adaptive", min_delay_ms=0, max_delay_ms=5))
        renderer = ScriptingFakeRenderer(load_time_ms=3)
        engine = self.make_engine(config=config, renderer=renderer)
        engine.add_seeds([CrawlRequest("http://x.com/a"), CrawlRequest("http://x.com/b")])

        await engine.start()

        # Sampled between the two candidates only
        self.assertEqual(1, renderer.scripts.count(LOAD_TIME_SCRIPT))
        self.assertEqual(2, engine.stats["page_loads"])

    async def test_engine_can_be_restarted_after_stop(self) -> None:
        engine = None

        class StopAfterFirst(RecordingHandler):
            async def on_page_load(self, event):
                await super().on_page_load(event)
                engine.stop()

        engine = self.make_engine(handler=StopAfterFirst())
        engine.add_seeds([CrawlRequest("http://x.com/a", priority=1), CrawlRequest("http://x.com/b")])

        await engine.start()
        self.assertEqual(["http://x.com/a"], self.probe.heads)

        await engine.start()
        self.assertEqual(["http://x.com/a", "http://x.com/b"], self.probe.heads)


class CooperativeStopTests(EngineTestCase):
    async def test_stop_during_delay_ends_crawl_without_next_candidate(self) -> None:
        page_loaded = asyncio.Event()

        class Signalling(RecordingHandler):
            async def on_page_load(self, event):
                await super().on_page_load(event)
                page_loaded.set()

        engine = self.make_engine(handler=Signalling(), config=make_config(delay_ms=60000))
        engine.add_seeds([CrawlRequest("http://x.com/a", priority=1), CrawlRequest("http://x.com/b")])

        task = asyncio.create_task(engine.start())
        await asyncio.wait_for(page_loaded.wait(), timeout=5)
        await asyncio.sleep(0.05)  # the engine is now sleeping
        engine.stop()
        await asyncio.wait_for(task, timeout=5)

        self.assertEqual(["http://x.com/a"], self.probe.heads)
        self.assertEqual(["start", "page_load", "stop"], self.handler.kinds())
        self.assertEqual(1, engine.frontier.size())

    async def test_stop_from_another_thread(self) -> None:
        engine = None

        class ThreadedStop(RecordingHandler):
            async def on_page_load(self, event):
                await super().on_page_load(event)
                await asyncio.to_thread(engine.stop)

        engine = self.make_engine(handler=ThreadedStop(), config=make_config(delay_ms=60000))
        engine.add_seeds([CrawlRequest("http://x.com/a", priority=1), CrawlRequest("http://x.com/b")])

        await asyncio.wait_for(engine.start(), timeout=5)

        self.assertEqual(["http://x.com/a"], self.probe.heads)

    async def test_cancellation_tears_down(self) -> None:
        page_loaded = asyncio.Event()

        class Signalling(RecordingHandler):
            async def on_page_load(self, event):
                await super().on_page_load(event)
                page_loaded.set()

        engine = self.make_engine(handler=Signalling(), config=make_config(delay_ms=60000))
        engine.add_seeds([CrawlRequest("http://x.com/a", priority=1), CrawlRequest("http://x.com/b")])

        task = asyncio.create_task(engine.start())
        await asyncio.wait_for(page_loaded.wait(), timeout=5)
        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task

        self.assertTrue(self.renderer.closed)
        self.assertEqual(EngineState.STOPPED, engine.state)


class SnapshotResumeTests(EngineTestCase):
    async def test_save_and_resume_continue_the_crawl(self) -> None:
        engine = None

        class StopAfterFirst(RecordingHandler):
            async def on_page_load(self, event):
                await super().on_page_load(event)
                engine.stop()

        engine = self.make_engine(handler=StopAfterFirst())
        engine.add_seeds([
            CrawlRequest("http://x.com/a", priority=3),
            CrawlRequest("http://x.com/b", priority=2),
            CrawlRequest("http://x.com/c", priority=1),
        ])
        await engine.start()
        snapshot = engine.save_state()

        resumed = self.make_engine()
        resumed.add_seed(CrawlRequest("http://x.com/ignored"))
        await resumed.resume(snapshot)

        self.assertEqual(["http://x.com/b", "http://x.com/c"], self.probe.heads)

    async def test_corrupt_snapshot_does_not_start_engine(self) -> None:
        engine = self.make_engine()
        engine.add_seed(CrawlRequest("http://x.com/a"))

        with self.assertRaises(SnapshotDecodeError):
            await engine.resume(b"definitely not a snapshot")

        self.assertFalse(self.renderer.opened)
        self.assertEqual(EngineState.STOPPED, engine.state)
        self.assertEqual(1, engine.frontier.size())


if __name__ == "__main__":
    unittest.main()
