"""Crawl events and the handler interface they are delivered to.

Handlers are injected into the engine rather than inherited from it. Every
handler method is a coroutine; the engine awaits it before moving on, so a
handler never overlaps with the processing of another candidate.
"""

from dataclasses import dataclass
from typing import Any, Protocol

from .request import CrawlCandidate, CrawlRequest


@dataclass(frozen=True)
class CrawlEvent:
    crawl_candidate: CrawlCandidate


@dataclass(frozen=True)
class PageLoadEvent(CrawlEvent):
    # The renderer, positioned on the loaded page
    renderer: Any


@dataclass(frozen=True)
class NonHtmlContentEvent(CrawlEvent):
    content_type: str


@dataclass(frozen=True)
class RequestRedirectEvent(CrawlEvent):
    redirected_request: CrawlRequest


@dataclass(frozen=True)
class RequestErrorEvent(CrawlEvent):
    cause: BaseException


@dataclass(frozen=True)
class PageLoadTimeoutEvent(CrawlEvent):
    cause: BaseException


class CrawlEventHandler(Protocol):
    async def on_start(self) -> None: ...

    async def on_page_load(self, event: PageLoadEvent) -> None: ...

    async def on_non_html_content(self, event: NonHtmlContentEvent) -> None: ...

    async def on_request_redirect(self, event: RequestRedirectEvent) -> None: ...

    async def on_request_error(self, event: RequestErrorEvent) -> None: ...

    async def on_page_load_timeout(self, event: PageLoadTimeoutEvent) -> None: ...

    async def on_stop(self) -> None: ...


class NoOpEventHandler:
    """Handler that ignores every event. Subclass it to handle only some events."""

    async def on_start(self) -> None:
        pass

    async def on_page_load(self, event: PageLoadEvent) -> None:
        pass

    async def on_non_html_content(self, event: NonHtmlContentEvent) -> None:
        pass

    async def on_request_redirect(self, event: RequestRedirectEvent) -> None:
        pass

    async def on_request_error(self, event: RequestErrorEvent) -> None:
        pass

    async def on_page_load_timeout(self, event: PageLoadTimeoutEvent) -> None:
        pass

    async def on_stop(self) -> None:
        pass
