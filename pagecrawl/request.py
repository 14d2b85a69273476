"""Value objects flowing through the crawler: requests and candidates."""

from dataclasses import dataclass
from typing import Any, Optional

from .url_tools import is_valid_url


@dataclass(frozen=True)
class CrawlRequest:
    """A request to visit a URL.

    Attributes:
        url: Absolute http(s) URL to visit
        priority: Higher priority requests are served first
        metadata: Optional caller data carried along with the request; must be
            JSON-compatible for the frontier to be snapshotted
    """
    url: str
    priority: int = 0
    metadata: Optional[Any] = None

    def __post_init__(self):
        if not isinstance(self.url, str) or not is_valid_url(self.url):
            raise ValueError(f"Crawl request URL must be an absolute http(s) URL: {self.url!r}")
        if isinstance(self.priority, bool) or not isinstance(self.priority, int):
            raise ValueError(f"Crawl request priority must be an integer: {self.priority!r}")

    def derive(self, url: str) -> "CrawlRequest":
        """Build a request for another URL carrying over priority and metadata."""
        return CrawlRequest(url=url, priority=self.priority, metadata=self.metadata)


@dataclass(frozen=True)
class CrawlCandidate:
    """A request accepted by the frontier, with its bookkeeping."""
    crawl_request: CrawlRequest
    crawl_depth: int = 0
    referer_url: Optional[str] = None

    @property
    def request_url(self) -> str:
        return self.crawl_request.url

    @property
    def priority(self) -> int:
        return self.crawl_request.priority

    @property
    def metadata(self) -> Optional[Any]:
        return self.crawl_request.metadata
