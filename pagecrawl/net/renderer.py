"""Renderer boundary and the Playwright-backed renderer.

A renderer loads a URL the way a browser would. The engine only needs to
navigate, read the resulting URL and copy the browser's cookies; renderers
that can also run scripts satisfy :class:`ScriptingRenderer`, which the
adaptive delay strategy relies on.
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Protocol

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from ..config import RendererConfig
from ..errors import NavigationTimeoutError, RenderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BrowserCookie:
    name: str
    value: str
    domain: str
    path: str = "/"
    # Unix timestamp; None for session cookies
    expires: Optional[float] = None
    secure: bool = False
    http_only: bool = False


class Renderer(Protocol):
    """What the engine needs from a page renderer."""

    async def open(self) -> None: ...

    async def navigate(self, url: str) -> None:
        """Load ``url``.

        Raises:
            NavigationTimeoutError: if the page did not finish loading in time
            RenderError: for any other navigation failure
        """
        ...

    @property
    def current_url(self) -> str: ...

    async def get_cookies(self) -> List[BrowserCookie]: ...

    async def close(self) -> None: ...


class ScriptingRenderer(Renderer, Protocol):
    """A renderer that can evaluate JavaScript in the loaded page."""

    async def execute_script(self, script: str) -> Any: ...


class PlaywrightRenderer:
    """Renderer driving a single Playwright page in one browser context."""

    def __init__(self, config: Optional[RendererConfig] = None):
        self.config = config or RendererConfig()
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None

    async def open(self) -> None:
        if self._page is not None:
            return

        self._playwright = await async_playwright().start()
        browser_type = getattr(self._playwright, self.config.browser)
        self._browser = await browser_type.launch(headless=self.config.headless)
        self._context = await self._browser.new_context(user_agent=self.config.user_agent)
        self._page = await self._context.new_page()
        self._page.set_default_navigation_timeout(self.config.page_load_timeout_ms)

        logger.info(f"Renderer started: {self.config.browser} (headless={self.config.headless})")

    def _require_page(self):
        if self._page is None:
            raise RenderError("Renderer is not open")
        return self._page

    async def navigate(self, url: str) -> None:
        page = self._require_page()
        try:
            await page.goto(url)
        except PlaywrightTimeoutError as e:
            raise NavigationTimeoutError(f"Page load timed out: {url}") from e
        except PlaywrightError as e:
            raise RenderError(f"Navigation failed for {url}: {e}") from e

    @property
    def current_url(self) -> str:
        return self._require_page().url

    async def get_cookies(self) -> List[BrowserCookie]:
        if self._context is None:
            return []

        try:
            raw_cookies = await self._context.cookies()
        except PlaywrightError as e:
            raise RenderError(f"Failed to read browser cookies: {e}") from e

        cookies = []
        for c in raw_cookies:
            expires = c.get("expires", -1)
            cookies.append(BrowserCookie(
                name=c["name"],
                value=c["value"],
                domain=c.get("domain", ""),
                path=c.get("path", "/"),
                expires=expires if expires is not None and expires >= 0 else None,
                secure=bool(c.get("secure", False)),
                http_only=bool(c.get("httpOnly", False)),
            ))
        return cookies

    async def execute_script(self, script: str) -> Any:
        try:
            return await self._require_page().evaluate(script)
        except PlaywrightError as e:
            raise RenderError(f"Script execution failed: {e}") from e

    async def close(self) -> None:
        try:
            if self._browser is not None:
                await self._browser.close()
        finally:
            if self._playwright is not None:
                await self._playwright.stop()
            self._playwright = None
            self._browser = None
            self._context = None
            self._page = None
            logger.info("Renderer closed")
