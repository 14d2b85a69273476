"""One-way cookie synchronization from the renderer to the probe client."""

import urllib.request
from http.cookiejar import Cookie, CookieJar, DefaultCookiePolicy, eff_request_host
from typing import Iterable, Optional

import httpx

from .renderer import BrowserCookie


class BrowserCookiePolicy(DefaultCookiePolicy):
    """Cookie policy matching domains the way the browser did.

    Host-only cookies (no leading dot, no Domain attribute) are only returned
    to the exact host that owns them. Domain cookies keep the usual suffix
    matching.
    """

    def return_ok_domain(self, cookie: Cookie, request) -> bool:
        if cookie.domain_specified or cookie.domain.startswith("."):
            return super().return_ok_domain(cookie, request)
        req_host, erhn = eff_request_host(request)
        return cookie.domain.lower() in (req_host, erhn)


def create_cookie_jar() -> CookieJar:
    return CookieJar(policy=BrowserCookiePolicy())


def cookie_header(jar: CookieJar, url: str) -> Optional[str]:
    """Build the Cookie header ``jar`` sends to ``url``, or None when empty."""
    compat_request = urllib.request.Request(url)
    jar.add_cookie_header(compat_request)
    return compat_request.get_header("Cookie")


def to_jar_cookie(browser_cookie: BrowserCookie) -> Cookie:
    """Convert a browser cookie to a cookie jar entry."""
    domain = browser_cookie.domain
    expires = int(browser_cookie.expires) if browser_cookie.expires is not None else None

    return Cookie(
        version=0,
        name=browser_cookie.name,
        value=browser_cookie.value,
        port=None,
        port_specified=False,
        domain=domain,
        domain_specified=domain.startswith("."),
        domain_initial_dot=domain.startswith("."),
        path=browser_cookie.path or "/",
        path_specified=True,
        secure=browser_cookie.secure,
        expires=expires,
        discard=expires is None,
        comment=None,
        comment_url=None,
        rest={"HttpOnly": ""} if browser_cookie.http_only else {},
    )


def copy_cookies(cookies: Iterable[BrowserCookie], target: httpx.Cookies) -> int:
    """Copy browser cookies into an httpx cookie store.

    Entries with the same (name, domain, path) are replaced.

    Returns:
        Number of cookies copied
    """
    count = 0
    for browser_cookie in cookies:
        target.jar.set_cookie(to_jar_cookie(browser_cookie))
        count += 1
    return count
