# src/fetch/client.py
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from http.cookiejar import CookieJar as _StdCookieJar
from http.cookiejar import DefaultCookiePolicy
from typing import Any
from urllib.parse import urljoin

import httpx

from src import config
from src.exceptions import FetchTimeoutError, NetworkError

from .cookies import CookieJar

log = logging.getLogger(__name__)

# --------------------------------------------------------------------------------------------------
# Module configuration
# --------------------------------------------------------------------------------------------------

FETCH_TIMEOUT_S = config.app_config.fetch.timeout_s
MAX_REDIRECTS = config.app_config.fetch.max_redirects
REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})

# --------------------------------------------------------------------------------------------------
# Results
# --------------------------------------------------------------------------------------------------


@dataclass
class FetchContext:
    current_url: str
    response: httpx.Response
    cookie_jar: CookieJar

    @property
    def status(self) -> int:
        return int(self.response.status_code)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def content_type(self) -> str:
        return self.response.headers.get("content-type", "")

    @property
    def text(self) -> str:
        return self.response.text


# --------------------------------------------------------------------------------------------------
# Helpers
# --------------------------------------------------------------------------------------------------


def _no_cookie_persistence() -> _StdCookieJar:
    # Every domain is blocked, so httpx never stores or replays cookies on its own;
    # the explicit CookieJar is the only source of the Cookie header.
    return _StdCookieJar(policy=DefaultCookiePolicy(allowed_domains=[]))


def new_http_client(**kwargs: Any) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        follow_redirects=False,
        cookies=_no_cookie_persistence(),
        timeout=httpx.Timeout(FETCH_TIMEOUT_S),
        **kwargs,
    )


# --------------------------------------------------------------------------------------------------
# Client
# --------------------------------------------------------------------------------------------------


class RedirectingFetcher:
    """
    httpx wrapper that follows redirects by hand so cookies survive every hop.

    Flow for fetch_following_redirects():
      1) GET url with redirect following disabled
      2) merge Set-Cookie into the jar
      3) on 301/302/303/307/308 + Location: resolve Location against the current
         URL, resend with Referer=current URL and Cookie=jar; at most
         max_redirects hops
      4) return FetchContext(current_url, response, cookie_jar)

    A non-2xx final status is returned, not raised; challenge pages arrive with
    all sorts of statuses and the caller decides.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        timeout_s: float | None = None,
        max_redirects: int | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or new_http_client()
        self.timeout_s = FETCH_TIMEOUT_S if timeout_s is None else timeout_s
        self.max_redirects = MAX_REDIRECTS if max_redirects is None else max_redirects

    # ---- single request --------------------------------------------------------------

    async def request(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        *,
        data: Mapping[str, str] | str | None = None,
        timeout_s: float | None = None,
    ) -> httpx.Response:
        timeout = self.timeout_s if timeout_s is None else timeout_s
        kwargs: dict[str, Any] = {"headers": dict(headers), "timeout": timeout}
        if isinstance(data, str):
            kwargs["content"] = data
        elif data is not None:
            kwargs["data"] = dict(data)
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise FetchTimeoutError(f"{method} {url} timed out after {timeout}s") from exc
        except httpx.RequestError as exc:
            raise NetworkError(f"{method} {url} failed: {type(exc).__name__}: {exc}") from exc
        log.debug("%s %s -> %s", method, url, resp.status_code)
        return resp

    # ---- redirect loop ---------------------------------------------------------------

    async def fetch_following_redirects(
        self,
        url: str,
        headers: Mapping[str, str],
        timeout_s: float | None = None,
        cookie_jar: CookieJar | None = None,
    ) -> FetchContext:
        jar = cookie_jar.copy() if cookie_jar is not None else CookieJar()
        current_url = url

        resp = await self.request("GET", current_url, jar.apply(headers), timeout_s=timeout_s)
        jar.merge_response(resp.headers)

        redirects = 0
        while redirects < self.max_redirects and resp.status_code in REDIRECT_STATUSES:
            location = resp.headers.get("location")
            if not location:
                break
            next_url = urljoin(current_url, location)
            hop_headers = dict(headers)
            hop_headers["Referer"] = current_url
            log.debug("redirect %d: %s -> %s", redirects + 1, current_url, next_url)
            resp = await self.request("GET", next_url, jar.apply(hop_headers), timeout_s=timeout_s)
            jar.merge_response(resp.headers)
            current_url = next_url
            redirects += 1

        return FetchContext(current_url=current_url, response=resp, cookie_jar=jar)

    # ----------------------------------------------------------------------------------
    # Context manager
    # ----------------------------------------------------------------------------------

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> RedirectingFetcher:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


__all__ = [
    "FetchContext",
    "RedirectingFetcher",
    "REDIRECT_STATUSES",
    "new_http_client",
]
