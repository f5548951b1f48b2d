# src/fetch/subject.py
from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from src import config
from src.exceptions import UpstreamHttpError

from . import cache as cache_store
from . import throttle
from .challenge import parse_challenge
from .client import RedirectingFetcher
from .headers import build_request_headers
from .resolver import ChallengeResolver, normalize_subject_url

log = logging.getLogger(__name__)

CACHE_PREFIX = config.app_config.cache.prefix
CACHE_TTL_S = config.app_config.cache.subject_ttl_s
CACHE_ENABLED = config.app_config.cache.enabled


@dataclass
class _Flight:
    task: asyncio.Task
    waiters: int = 0


class SubjectPageScraper:
    """
    Cached, de-duplicated access to subject detail pages.

    get_html(id):
      1) cache hit on "<prefix>:subject:<id>" -> return it
      2) a fetch for the same key already running -> await that one
      3) otherwise run pacer -> fetch -> challenge resolution in a task, register
         it, and write the resolved HTML to the cache with the TTL

    The in-flight entry is dropped when its task settles, success or failure, so
    a failure never poisons later calls. All concurrent waiters see the same
    result or the same exception.
    """

    def __init__(
        self,
        store: cache_store.CacheStore | None = None,
        *,
        fetcher: RedirectingFetcher | None = None,
        pacer: throttle.RequestPacer | None = None,
        resolver: ChallengeResolver | None = None,
        headers: Mapping[str, str] | None = None,
        cache_prefix: str | None = None,
        ttl_s: float | None = None,
        timeout_s: float | None = None,
    ) -> None:
        self.store = store if store is not None else cache_store.default()
        self.fetcher = fetcher or RedirectingFetcher()
        self.pacer = pacer or throttle.default_pacer()
        self.resolver = resolver or ChallengeResolver(self.fetcher)
        self.headers = dict(headers or {})
        self.cache_prefix = CACHE_PREFIX if cache_prefix is None else cache_prefix
        self.ttl_s = CACHE_TTL_S if ttl_s is None else ttl_s
        self.timeout_s = timeout_s
        self._inflight: dict[str, _Flight] = {}

    # ---- keys / introspection --------------------------------------------------------

    def cache_key(self, subject_id: str) -> str:
        return f"{self.cache_prefix}:subject:{subject_id.strip()}"

    def inflight_count(self) -> int:
        return len(self._inflight)

    # ---- cache access (errors here are never fatal) ---------------------------------

    async def _cache_get(self, key: str) -> Any | None:
        if not CACHE_ENABLED:
            return None
        try:
            return await asyncio.to_thread(self.store.get, key)
        except Exception as exc:
            log.warning("cache read failed for %s: %s", key, exc)
            return None

    async def _cache_set(self, key: str, value: str) -> None:
        if not CACHE_ENABLED or self.ttl_s <= 0:
            return
        try:
            await asyncio.to_thread(self.store.set, key, value, self.ttl_s)
        except Exception as exc:
            log.warning("cache write failed for %s: %s", key, exc)

    # ---- public API ------------------------------------------------------------------

    async def get_html(self, subject_id: str) -> str:
        key = self.cache_key(subject_id)

        cached = await self._cache_get(key)
        if isinstance(cached, str) and cached:
            log.debug("cache hit %s", key)
            return cached

        # No await between lookup and insert: check-then-insert is atomic on the loop.
        flight = self._inflight.get(key)
        if flight is None or flight.task.done():
            task = asyncio.ensure_future(self._fetch_and_cache(subject_id, key))
            flight = _Flight(task=task)
            self._inflight[key] = flight
            task.add_done_callback(lambda _t, k=key, f=flight: self._settle(k, f))
        else:
            log.debug("joining in-flight fetch for %s", key)

        flight.waiters += 1
        try:
            return await asyncio.shield(flight.task)
        except asyncio.CancelledError:
            # Last interested caller gone: abort the shared fetch and its HTTP call.
            if flight.waiters == 1 and not flight.task.done():
                flight.task.cancel()
            raise
        finally:
            flight.waiters -= 1

    def _settle(self, key: str, flight: _Flight) -> None:
        if self._inflight.get(key) is flight:
            del self._inflight[key]

    async def _fetch_and_cache(self, subject_id: str, key: str) -> str:
        try:
            html = await self.fetch_html(subject_id)
            await self._cache_set(key, html)
        finally:
            # Leave the registry before waiters wake so nobody joins a settled task.
            flight = self._inflight.get(key)
            if flight is not None and flight.task is asyncio.current_task():
                del self._inflight[key]
        log.info("cached %s (%d chars, ttl=%ss)", key, len(html), self.ttl_s)
        return html

    async def fetch_html(self, subject_id: str) -> str:
        """Uncached pipeline: pacing, fetch with redirects, challenge resolution."""
        await self.pacer.before_request()

        target = normalize_subject_url(subject_id)
        headers = build_request_headers(target, self.headers)
        ctx = await self.fetcher.fetch_following_redirects(
            target, headers, timeout_s=self.timeout_s
        )

        html = ctx.text
        challenge = parse_challenge(html)
        if not ctx.ok and challenge is None:
            raise UpstreamHttpError(f"subject request failed: {ctx.status}", ctx.status)
        if challenge is None:
            return html

        log.info("challenge detected for %s", target)
        resolved = await self.resolver.resolve(html, ctx.current_url, headers, ctx.cookie_jar)
        return resolved.html


__all__ = ["SubjectPageScraper"]
