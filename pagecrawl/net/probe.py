import logging
import time
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

import httpx

from ..config import ProbeConfig
from ..errors import ProbeFailedError
from .cookies import cookie_header, copy_cookies, create_cookie_jar
from .renderer import BrowserCookie

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbeResponse:
    # Final URL after redirects; the requested URL when there were none
    url: str
    status_code: int
    content_type: str = ""
    redirected: bool = False
    latency_ms: float = 0.0

    @property
    def is_html(self) -> bool:
        return "text/html" in self.content_type.lower()


class ProbeTransport(Protocol):
    async def head(self, url: str) -> ProbeResponse:
        """Issue a headers-only request for ``url``, following redirects.

        Raises:
            ProbeFailedError: if the request could not complete
        """
        ...

    def set_cookies(self, cookies: Iterable[BrowserCookie]) -> int: ...

    async def close(self) -> None: ...


class HttpProbe:
    """HEAD-request probe backed by an ``httpx.AsyncClient``."""

    def __init__(self, config: Optional[ProbeConfig] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config or ProbeConfig()
        self._cookie_jar = create_cookie_jar()
        self.client = self._create_http_client(transport)

        self.total_probes = 0
        self.failed_probes = 0

    def _create_http_client(self, transport: Optional[httpx.AsyncBaseTransport]) -> httpx.AsyncClient:
        timeout = httpx.Timeout(
            connect=self.config.connect_timeout_ms / 1000,
            read=self.config.read_timeout_ms / 1000,
            write=self.config.read_timeout_ms / 1000,
            pool=None
        )

        return httpx.AsyncClient(
            http2=transport is None,
            transport=transport,
            timeout=timeout,
            headers={"User-Agent": self.config.user_agent},
            follow_redirects=True,
            max_redirects=self.config.max_redirects,
            cookies=self._cookie_jar,
            event_hooks={"request": [self._apply_cookies]},
        )

    async def _apply_cookies(self, request: httpx.Request) -> None:
        # httpx matches cookies on a copy of the jar with the default policy;
        # rebuild the header with the jar's own policy for every hop.
        header = cookie_header(self._cookie_jar, str(request.url))
        if header:
            request.headers["Cookie"] = header
        elif "Cookie" in request.headers:
            del request.headers["Cookie"]

    @property
    def cookies(self) -> httpx.Cookies:
        return self.client.cookies

    def set_cookies(self, cookies: Iterable[BrowserCookie]) -> int:
        return copy_cookies(cookies, self.client.cookies)

    async def head(self, url: str) -> ProbeResponse:
        self.total_probes += 1
        start_time = time.time()

        try:
            response = await self.client.head(url)
        except httpx.HTTPError as e:
            self.failed_probes += 1
            logger.warning(f"Probe failed for {url}: {e!r}")
            raise ProbeFailedError(f"HEAD {url} failed: {e}") from e
        except (httpx.InvalidURL, ValueError) as e:
            # Unencodable host (IDNA) or bad redirect target
            self.failed_probes += 1
            logger.warning(f"Probe rejected URL {url}: {e!r}")
            raise ProbeFailedError(f"HEAD {url} failed: invalid URL: {e}") from e

        latency_ms = (time.time() - start_time) * 1000
        redirected = bool(response.history)

        return ProbeResponse(
            url=str(response.url) if redirected else url,
            status_code=response.status_code,
            content_type=response.headers.get("content-type", ""),
            redirected=redirected,
            latency_ms=latency_ms,
        )

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()
        logger.info(f"Probe client closed - probes: {self.total_probes}, failures: {self.failed_probes}")
