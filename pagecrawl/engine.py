import asyncio
import logging
import threading
from enum import Enum
from typing import Any, Dict, Iterable, Optional

from .config import CrawlerConfig
from .delay import DelayStrategy, create_delay_strategy
from .errors import (
    AlreadyRunningError,
    NavigationTimeoutError,
    NotRunningError,
    NotStartedError,
    ProbeFailedError,
    RenderError,
    StopAlreadyRequestedError,
)
from .events import (
    CrawlEventHandler,
    NonHtmlContentEvent,
    NoOpEventHandler,
    PageLoadEvent,
    PageLoadTimeoutEvent,
    RequestErrorEvent,
    RequestRedirectEvent,
)
from .frontier.crawl_frontier import CrawlFrontier, UrlFilter
from .net.probe import HttpProbe, ProbeTransport
from .net.renderer import PlaywrightRenderer, Renderer
from .request import CrawlCandidate, CrawlRequest
from .url_tools import canonicalize, is_valid_url

logger = logging.getLogger(__name__)


class EngineState(Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOP_REQUESTED = "stop_requested"


class CrawlEngine:
    """Sequential crawl loop: probe, classify, render, dispatch, delay.

    One candidate is fully processed before the next one is dequeued. The
    renderer and probe transport are owned by the engine for the duration of a
    run and are closed when the run ends, whatever the reason. When they are
    not supplied, a Playwright renderer and an httpx probe are created for
    each run from the configuration.
    """

    def __init__(
        self,
        config: Optional[CrawlerConfig] = None,
        handler: Optional[CrawlEventHandler] = None,
        renderer: Optional[Renderer] = None,
        probe: Optional[ProbeTransport] = None,
        url_filter: Optional[UrlFilter] = None,
    ):
        self.config = config or CrawlerConfig()
        self.handler = handler or NoOpEventHandler()
        self.url_filter = url_filter

        self._supplied_renderer = renderer
        self._supplied_probe = probe
        self.renderer: Optional[Renderer] = None
        self.probe: Optional[ProbeTransport] = None
        self.delay_strategy: Optional[DelayStrategy] = None

        self._state = EngineState.STOPPED
        self._lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stop_event: Optional[asyncio.Event] = None

        self._frontier: Optional[CrawlFrontier] = None
        if self.config.seeds:
            self.add_seeds(self.config.seeds)

        self.stats: Dict[str, int] = {
            "candidates_processed": 0,
            "page_loads": 0,
            "non_html_content": 0,
            "redirects": 0,
            "request_errors": 0,
            "page_load_timeouts": 0,
        }

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> EngineState:
        with self._lock:
            return self._state

    @property
    def frontier(self) -> Optional[CrawlFrontier]:
        return self._frontier

    def _ensure_frontier(self) -> CrawlFrontier:
        if self._frontier is None:
            self._frontier = CrawlFrontier(self.config.frontier, self.url_filter)
        return self._frontier

    def _set_state(self, state: EngineState) -> None:
        with self._lock:
            self._state = state

    def _is_stop_requested(self) -> bool:
        with self._lock:
            return self._state == EngineState.STOP_REQUESTED

    # =========================================================================
    # Seeding and feeding
    # =========================================================================

    def add_seed(self, request: CrawlRequest) -> None:
        """Add a seed request. Only allowed while the engine is stopped."""
        with self._lock:
            if self._state != EngineState.STOPPED:
                raise AlreadyRunningError(
                    "Seeds can only be added while the crawler is stopped; use feed() instead"
                )
        self._ensure_frontier().feed_request(request, is_seed=True)

    def add_seeds(self, requests: Iterable[CrawlRequest]) -> None:
        for request in requests:
            self.add_seed(request)

    def feed(self, request: CrawlRequest) -> None:
        """Feed a request derived from the candidate being processed."""
        with self._lock:
            if self._state not in (EngineState.RUNNING, EngineState.STOP_REQUESTED):
                raise NotRunningError(
                    "The crawler is not running. Maybe you meant to add this request as a crawl seed?"
                )
        self._frontier.feed_request(request, is_seed=False)

    def feed_many(self, requests: Iterable[CrawlRequest]) -> None:
        for request in requests:
            self.feed(request)

    # =========================================================================
    # Snapshots
    # =========================================================================

    def save_state(self) -> bytes:
        """Export the frontier state for a later :meth:`resume`."""
        if self._frontier is None:
            raise NotStartedError("Cannot save state: the crawler has no frontier yet")
        return self._frontier.export_state()

    async def resume(self, data: bytes) -> None:
        """Restore a saved frontier and run the crawl from it.

        Raises:
            AlreadyRunningError: if the engine is not stopped
            SnapshotDecodeError, SnapshotVersionError: if ``data`` is unusable;
                the engine is left untouched
        """
        with self._lock:
            if self._state != EngineState.STOPPED:
                raise AlreadyRunningError("The crawler is already started")
        self._frontier = CrawlFrontier.from_state(data, self.config.frontier, self.url_filter)
        await self.start()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Run the crawl until the frontier is exhausted or a stop is requested."""
        with self._lock:
            if self._state != EngineState.STOPPED:
                raise AlreadyRunningError("The crawler is already started")
            self._state = EngineState.STARTING
            self._loop = asyncio.get_running_loop()
            self._stop_event = asyncio.Event()

        logger.info("Starting crawler...")
        self._ensure_frontier()
        self.renderer = None
        self.probe = None

        try:
            self.renderer = self._supplied_renderer or PlaywrightRenderer(self.config.renderer)
            self.probe = self._supplied_probe or HttpProbe(self.config.probe)
            await self.renderer.open()
            self.delay_strategy = await create_delay_strategy(self.config.delay, self.renderer)

            with self._lock:
                # stop() is rejected while STARTING, so this cannot clobber a stop request
                self._state = EngineState.RUNNING

            await self.handler.on_start()
            await self._run()
            await self.handler.on_stop()
        except asyncio.CancelledError:
            logger.info("Crawler cancelled")
            raise
        finally:
            await self._teardown()

    async def _teardown(self) -> None:
        logger.info("Cleaning up components...")
        try:
            if self.renderer is not None:
                await self.renderer.close()
        finally:
            try:
                if self.probe is not None:
                    await self.probe.close()
            finally:
                self.delay_strategy = None
                self._set_state(EngineState.STOPPED)

                logger.info("=== Crawler Statistics ===")
                for key, value in self.stats.items():
                    logger.info(f"  {key}: {value}")
                logger.info("Crawler stopped")

    def stop(self) -> None:
        """Request a cooperative stop. Safe to call from any thread.

        The candidate in flight completes its event dispatch; the inter-candidate
        delay is cut short and no further candidate is dequeued.
        """
        with self._lock:
            if self._state == EngineState.STOP_REQUESTED:
                raise StopAlreadyRequestedError("The stop method has already been called")
            if self._state != EngineState.RUNNING:
                raise NotRunningError("The crawler is not started")
            self._state = EngineState.STOP_REQUESTED
            loop, stop_event = self._loop, self._stop_event

        logger.info("Stop requested")
        try:
            running_loop = asyncio.get_running_loop()
        except RuntimeError:
            running_loop = None

        if running_loop is loop:
            stop_event.set()
        else:
            loop.call_soon_threadsafe(stop_event.set)

    # =========================================================================
    # Crawl loop
    # =========================================================================

    async def _run(self) -> None:
        logger.info(f"Crawl loop started - frontier size: {self._frontier.size()}")

        while not self._is_stop_requested() and self._frontier.has_next_candidate():
            candidate = self._frontier.get_next_candidate()
            self.stats["candidates_processed"] += 1
            await self._process_candidate(candidate)
            await self._perform_delay()

        if self._is_stop_requested():
            logger.info(f"Crawl loop stopped on request - remaining candidates: {self._frontier.size()}")
        else:
            logger.info("Frontier empty - crawl complete")

    async def _process_candidate(self, candidate: CrawlCandidate) -> None:
        url = candidate.request_url
        logger.info(f"Processing: {url} (depth={candidate.crawl_depth}, priority={candidate.priority})")

        try:
            await self._sync_cookies()
            response = await self.probe.head(url)
        except (ProbeFailedError, RenderError) as e:
            await self._dispatch_request_error(candidate, e)
            return

        if self._is_redirect(url, response.url):
            await self._handle_redirect(candidate, response.url)
            return

        if not response.is_html:
            logger.info(f"  Non-HTML content ({response.content_type or 'unknown'}): {url}")
            self.stats["non_html_content"] += 1
            await self.handler.on_non_html_content(NonHtmlContentEvent(candidate, response.content_type))
            return

        try:
            await self.renderer.navigate(url)
        except NavigationTimeoutError as e:
            logger.warning(f"  Page load timed out: {url}")
            self.stats["page_load_timeouts"] += 1
            await self.handler.on_page_load_timeout(PageLoadTimeoutEvent(candidate, e))
        except RenderError as e:
            await self._dispatch_request_error(candidate, e)
            return

        loaded_url = self.renderer.current_url
        if not is_valid_url(loaded_url):
            logger.warning(f"  Renderer left on non-web URL {loaded_url!r} after loading {url}")
            return

        if self._is_redirect(url, loaded_url):
            await self._handle_redirect(candidate, loaded_url)
        else:
            logger.info(f"  Page loaded: {url}")
            self.stats["page_loads"] += 1
            await self.handler.on_page_load(PageLoadEvent(candidate, self.renderer))

    async def _sync_cookies(self) -> None:
        """Copy the browser's cookies into the probe client, replacing equivalent ones."""
        cookies = await self.renderer.get_cookies()
        if cookies:
            copied = self.probe.set_cookies(cookies)
            logger.debug(f"Synchronized {copied} cookies from renderer")

    @staticmethod
    def _is_redirect(requested_url: str, resolved_url: str) -> bool:
        return is_valid_url(resolved_url) and canonicalize(resolved_url) != canonicalize(requested_url)

    async def _handle_redirect(self, candidate: CrawlCandidate, redirected_url: str) -> None:
        redirected_request = candidate.crawl_request.derive(redirected_url)
        self._frontier.feed_request(redirected_request, is_seed=False)

        logger.info(f"  Redirected: {candidate.request_url} -> {redirected_url}")
        self.stats["redirects"] += 1
        await self.handler.on_request_redirect(RequestRedirectEvent(candidate, redirected_request))

    async def _dispatch_request_error(self, candidate: CrawlCandidate, cause: Exception) -> None:
        logger.warning(f"  Request error for {candidate.request_url}: {cause}")
        self.stats["request_errors"] += 1
        await self.handler.on_request_error(RequestErrorEvent(candidate, cause))

    async def _perform_delay(self) -> None:
        if self._is_stop_requested() or not self._frontier.has_next_candidate():
            return

        delay_ms = await self.delay_strategy.get_delay()
        if delay_ms <= 0:
            return

        logger.debug(f"Sleeping for {delay_ms} ms before next request")
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay_ms / 1000)
        except asyncio.TimeoutError:
            pass
        except asyncio.CancelledError:
            with self._lock:
                if self._state == EngineState.RUNNING:
                    self._state = EngineState.STOP_REQUESTED
            raise

    def status(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "frontier_size": self._frontier.size() if self._frontier else 0,
            "seen_urls": self._frontier.seen_count() if self._frontier else 0,
            **self.stats,
        }
