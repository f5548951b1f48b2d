# src/subjects/service.py
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar

from src import config
from src.exceptions import ErrorKind, ParseError, SubjectFetchError
from src.fetch import cache as cache_store
from src.fetch.subject import SubjectPageScraper

from .page import SubjectPage, parse_subject_page

log = logging.getLogger(__name__)

T = TypeVar("T")

# ---- Keys / constants ----
RETRY_SCHEDULE_S: tuple[float, ...] = tuple(config.app_config.retry.schedule_s)
FAILURE_TTL_S = config.app_config.cache.failure_ttl_s
FAILURE_KEY = "{prefix}-details-fail-id={id}"

RETRYABLE_KINDS = frozenset({ErrorKind.TIMEOUT, ErrorKind.RATE_LIMITED, ErrorKind.SERVER_ERROR})


# ---- Classification ----
def classify(exc: BaseException) -> ErrorKind:
    """
    Map a pipeline failure onto the retry taxonomy.

    UPSTREAM_HTTP is split by status: 429 -> RATE_LIMITED, >=500 -> SERVER_ERROR,
    404 -> NOT_FOUND, anything else -> NETWORK. Challenge kinds pass through
    untouched; any non-SubjectFetchError is NETWORK.
    """
    if not isinstance(exc, SubjectFetchError):
        return ErrorKind.NETWORK
    kind = exc.kind
    if kind is ErrorKind.UPSTREAM_HTTP:
        status = int(exc.status or 0)
        if status == 429:
            return ErrorKind.RATE_LIMITED
        if status >= 500:
            return ErrorKind.SERVER_ERROR
        if status == 404:
            return ErrorKind.NOT_FOUND
        return ErrorKind.NETWORK
    return kind


def is_retryable(kind: ErrorKind) -> bool:
    return kind in RETRYABLE_KINDS


_STATUS_BY_KIND: dict[ErrorKind, int | None] = {
    ErrorKind.TIMEOUT: 504,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.SERVER_ERROR: 502,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.NETWORK: None,
    ErrorKind.UPSTREAM_HTTP: None,
    ErrorKind.CHALLENGE_SOLVE: 403,
    ErrorKind.CHALLENGE_SUBMIT: 403,
    ErrorKind.CHALLENGE_FOLLOW_UP: 403,
    ErrorKind.UNRESOLVED: 403,
    ErrorKind.PARSE: 500,
}


def http_status_for(exc: BaseException) -> int:
    """
    HTTP status for a failure: 504/429/502 by class, 403 for any challenge
    failure, else its own status, else 500.

    Challenge errors keep the upstream status on the exception for logging only.
    """
    kind = classify(exc)
    fixed = _STATUS_BY_KIND[kind]
    if fixed is not None:
        return fixed
    status = getattr(exc, "status", None)
    return int(status) if status else 500


# ---- Retry envelope ----
async def call_with_retry(
    op: Callable[[], Awaitable[T]],
    *,
    schedule: Sequence[float] | None = None,
    sleep: Callable[[float], Awaitable[Any]] | None = None,
) -> T:
    """
    Run op(); on a retryable failure wait schedule[i] seconds and try again.

    At most 1 + len(schedule) attempts. Non-retryable failures (not found,
    challenge failures, parse errors, plain network errors) surface immediately.
    """
    delays = RETRY_SCHEDULE_S if schedule is None else tuple(schedule)
    do_sleep = sleep or asyncio.sleep
    attempt = 0
    while True:
        try:
            return await op()
        except SubjectFetchError as exc:
            kind = classify(exc)
            if not is_retryable(kind) or attempt >= len(delays):
                raise
            delay = delays[attempt]
            attempt += 1
            log.warning(
                "retrying after %s (attempt %d/%d, sleeping %.1fs): %s",
                kind.value,
                attempt,
                len(delays),
                delay,
                exc.message,
            )
            await do_sleep(delay)


# ---- Details service ----
@dataclass
class DetailsOutcome:
    status: int
    body: dict[str, Any]
    source: str  # "scraper-cached" | "error-cache" | "error"
    error: SubjectFetchError | None = field(default=None, repr=False)

    @property
    def ok(self) -> bool:
        return self.status == 200


class SubjectDetailsService:
    """
    Route-facing wrapper: negative-result cache + retry envelope around the scraper.

    Flow for get_details(id):
      1) cached failure under "<prefix>-details-fail-id=<id>" -> replay it
      2) call_with_retry(scraper.get_html + parse_subject_page)
      3) success: drop the failure key, return 200 + page identity
         failure: cache {status, body} for failure_ttl_s and return it
    """

    def __init__(
        self,
        scraper: SubjectPageScraper,
        store: cache_store.CacheStore | None = None,
        *,
        failure_ttl_s: float | None = None,
        schedule: Sequence[float] | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
        parser: Callable[[str, str], SubjectPage] = parse_subject_page,
    ) -> None:
        self.scraper = scraper
        self.store = store if store is not None else scraper.store
        self.failure_ttl_s = FAILURE_TTL_S if failure_ttl_s is None else failure_ttl_s
        self.schedule = RETRY_SCHEDULE_S if schedule is None else tuple(schedule)
        self.sleep = sleep
        self.parser = parser

    def failure_key(self, subject_id: str) -> str:
        return FAILURE_KEY.format(prefix=self.scraper.cache_prefix, id=subject_id.strip())

    # ---- failure cache ----

    async def _cached_failure(self, key: str) -> dict[str, Any] | None:
        try:
            cached = await asyncio.to_thread(self.store.get, key)
        except Exception as exc:
            log.warning("failure-cache read failed for %s: %s", key, exc)
            return None
        if isinstance(cached, dict) and cached.get("status") and cached.get("body"):
            return cached
        return None

    async def _save_failure(self, key: str, status: int, body: dict[str, Any]) -> None:
        try:
            await asyncio.to_thread(
                self.store.set, key, {"status": status, "body": body}, self.failure_ttl_s
            )
        except Exception as exc:
            log.warning("failure-cache write failed for %s: %s", key, exc)

    async def _clear_failure(self, key: str) -> None:
        try:
            await asyncio.to_thread(self.store.delete, key)
        except Exception as exc:
            log.warning("failure-cache cleanup failed for %s: %s", key, exc)

    # ---- main ----

    async def _load(self, subject_id: str) -> SubjectPage:
        html = await self.scraper.get_html(subject_id)
        try:
            return self.parser(html, subject_id)
        except ParseError:
            raise
        except Exception as exc:
            raise ParseError(f"subject {subject_id}: {exc}") from exc

    async def get_details(self, subject_id: str) -> DetailsOutcome:
        key = self.failure_key(subject_id)

        cached = await self._cached_failure(key)
        if cached is not None:
            return DetailsOutcome(
                status=int(cached["status"]), body=cached["body"], source="error-cache"
            )

        try:
            page = await call_with_retry(
                lambda: self._load(subject_id), schedule=self.schedule, sleep=self.sleep
            )
        except SubjectFetchError as exc:
            status = http_status_for(exc)
            kind = classify(exc)
            body = {
                "code": status,
                "message": exc.message,
                "error": kind.value,
                "details": f"failed to fetch subject details (id: {subject_id})",
            }
            log.warning("subject %s failed: %s (%s)", subject_id, kind.value, exc.message)
            await self._save_failure(key, status, body)
            return DetailsOutcome(status=status, body=body, source="error", error=exc)

        await self._clear_failure(key)
        return DetailsOutcome(
            status=200,
            body={"code": 200, "message": "ok", "list": [page.to_dict()]},
            source="scraper-cached",
        )


__all__ = [
    "classify",
    "is_retryable",
    "http_status_for",
    "call_with_retry",
    "DetailsOutcome",
    "SubjectDetailsService",
    "RETRY_SCHEDULE_S",
]
