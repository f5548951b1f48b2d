# src/fetch/resolver.py
from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from urllib.parse import urlencode, urljoin, urlsplit

from src import config
from src.exceptions import (
    ChallengeFollowUpError,
    ChallengeSubmitError,
    ChallengeUnresolvedError,
)

from . import pow as pow_solver
from . import throttle
from .challenge import SOLUTION_FIELD, Challenge, parse_challenge
from .client import FetchContext, RedirectingFetcher
from .cookies import CookieJar
from .headers import build_request_headers, normalize_headers, origin_of

log = logging.getLogger(__name__)

# --------------------------------------------------------------------------------------------------
# Module configuration
# --------------------------------------------------------------------------------------------------

MAX_ATTEMPTS = config.app_config.challenge.max_attempts
SUBMIT_PATH = config.app_config.challenge.submit_path
SUBMIT_FALLBACKS = tuple(config.app_config.challenge.submit_fallbacks)
CHALLENGE_TIMEOUT_S = config.app_config.challenge.timeout_s
SUBJECT_BASE_URL = config.app_config.fetch.base_url

_ABSOLUTE_URL = re.compile(r"^https?://", re.IGNORECASE)


@dataclass
class ResolvedPage:
    html: str
    url: str
    cookie_jar: CookieJar
    attempts: int = 0  # challenges solved on the way


# --------------------------------------------------------------------------------------------------
# URL helpers
# --------------------------------------------------------------------------------------------------


def normalize_subject_url(value: str) -> str:
    """A full URL is returned as-is; a bare subject id becomes its detail-page URL."""
    trimmed = value.strip()
    if _ABSOLUTE_URL.match(trimmed):
        return trimmed
    subject_id = trimmed.rstrip("/")
    base = SUBJECT_BASE_URL if SUBJECT_BASE_URL.endswith("/") else SUBJECT_BASE_URL + "/"
    return f"{base}{subject_id}/"


def is_douban_url(value: str) -> bool:
    try:
        host = (urlsplit(value).hostname or "").lower()
    except ValueError:
        return False
    return host.endswith("douban.com") or host.endswith("doubanio.com")


def _accepted(status: int) -> bool:
    return 200 <= status < 400


# --------------------------------------------------------------------------------------------------
# Resolver
# --------------------------------------------------------------------------------------------------


class ChallengeResolver:
    """
    Drives a page through the challenge protocol until the real content shows up.

    Per attempt:
      detect -> solve (worker thread) -> POST {tok, cha, sol, red} to the first
      candidate endpoint that does not answer 404 -> merge cookies -> GET the
      Location (or the challenge's own redirect target) -> detect again.

    The loop is bounded by max_attempts; a challenge that is still present after
    the last attempt raises ChallengeUnresolvedError. Nothing here retries a
    failed solve/submit/follow-up; that is the retry envelope's call.
    """

    def __init__(
        self,
        fetcher: RedirectingFetcher,
        *,
        max_attempts: int | None = None,
        difficulty: int | None = None,
        max_nonce: int | None = None,
        submit_path: str | None = None,
        submit_fallbacks: Iterable[str] | None = None,
        timeout_s: float | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.max_attempts = MAX_ATTEMPTS if max_attempts is None else max_attempts
        self.difficulty = pow_solver.DEFAULT_DIFFICULTY if difficulty is None else difficulty
        self.max_nonce = pow_solver.DEFAULT_MAX_NONCE if max_nonce is None else max_nonce
        self.submit_path = submit_path or SUBMIT_PATH
        self.submit_fallbacks = tuple(
            SUBMIT_FALLBACKS if submit_fallbacks is None else submit_fallbacks
        )
        self.timeout_s = CHALLENGE_TIMEOUT_S if timeout_s is None else timeout_s

    # ---- candidates ------------------------------------------------------------------

    def submit_candidates(self, challenge: Challenge, current_url: str) -> list[str]:
        """
        Submit endpoints in priority order, de-duplicated:
          1) the form action resolved against the current page
          2) the same path under the current page's origin
          3) the configured fallbacks
        """
        action = challenge.submit_action or self.submit_path
        try:
            action_url = urljoin(current_url, action)
        except ValueError:
            action_url = urljoin(current_url, self.submit_path)
        action_path = urlsplit(action_url).path or self.submit_path
        same_origin = urljoin(origin_of(current_url), action_path)

        out: list[str] = []
        for candidate in (action_url, same_origin, *self.submit_fallbacks):
            if candidate and candidate not in out:
                out.append(candidate)
        return out

    # ---- steps -----------------------------------------------------------------------

    async def _solve(self, challenge: Challenge) -> int:
        # CPU-bound; keep the event loop responsive while hashing.
        return await asyncio.to_thread(
            pow_solver.solve, challenge.puzzle, self.difficulty, self.max_nonce
        )

    async def _submit(
        self,
        challenge: Challenge,
        nonce: int,
        current_url: str,
        base_headers: Mapping[str, str],
        jar: CookieJar,
    ) -> tuple[str, int, str | None]:
        """POST the solution; returns (endpoint used, status, Location header)."""
        body = urlencode(
            {
                "tok": challenge.token,
                "cha": challenge.puzzle,
                SOLUTION_FIELD: str(nonce),
                "red": challenge.redirect_target,
            }
        )
        headers = dict(base_headers)
        headers["Origin"] = origin_of(current_url)
        headers["Referer"] = current_url
        headers["Content-Type"] = "application/x-www-form-urlencoded"
        headers = jar.apply(headers)

        candidates = self.submit_candidates(challenge, current_url)
        used = candidates[0]
        status = 0
        location: str | None = None
        resp = None
        for candidate in candidates:
            used = candidate
            resp = await self.fetcher.request(
                "POST", candidate, headers, data=body, timeout_s=self.timeout_s
            )
            status = int(resp.status_code)
            location = resp.headers.get("location")
            if status != 404:
                break
            log.debug("challenge submit endpoint %s answered 404; trying next", candidate)

        if not _accepted(status):
            raise ChallengeSubmitError(f"challenge submit failed: {status}", status or None)
        # Only the accepted endpoint may set cookies for the follow-up.
        jar.merge_response(resp.headers)
        return used, status, location

    # ---- state machine ---------------------------------------------------------------

    async def resolve(
        self,
        html: str,
        current_url: str,
        headers: Mapping[str, str] | None = None,
        cookie_jar: CookieJar | None = None,
    ) -> ResolvedPage:
        base_headers = normalize_headers(headers)
        jar = cookie_jar.copy() if cookie_jar is not None else CookieJar()

        for attempt in range(self.max_attempts):
            challenge = parse_challenge(html)
            if challenge is None:
                return ResolvedPage(html=html, url=current_url, cookie_jar=jar, attempts=attempt)

            nonce = await self._solve(challenge)
            log.debug("challenge attempt %d solved: nonce=%d", attempt + 1, nonce)

            post_url, _status, location = await self._submit(
                challenge, nonce, current_url, base_headers, jar
            )

            redirect_url = urljoin(post_url, location or challenge.redirect_target)
            follow_headers = dict(base_headers)
            follow_headers["Origin"] = origin_of(current_url)
            follow_headers["Referer"] = current_url
            ctx = await self.fetcher.fetch_following_redirects(
                redirect_url, follow_headers, timeout_s=self.timeout_s, cookie_jar=jar
            )
            follow_html = ctx.text
            if not _accepted(ctx.status) and parse_challenge(follow_html) is None:
                raise ChallengeFollowUpError(
                    f"challenge follow-up failed: {ctx.status}", ctx.status
                )

            jar = ctx.cookie_jar
            html = follow_html
            current_url = ctx.current_url

        if parse_challenge(html) is None:
            return ResolvedPage(
                html=html, url=current_url, cookie_jar=jar, attempts=self.max_attempts
            )
        raise ChallengeUnresolvedError(
            f"challenge not resolved after {self.max_attempts} attempts"
        )


# --------------------------------------------------------------------------------------------------
# Generic fetch with challenge handling
# --------------------------------------------------------------------------------------------------


def _should_inspect(ctx: FetchContext) -> bool:
    ct = ctx.content_type.lower()
    return "text/html" in ct or "application/xhtml+xml" in ct or ctx.status in (403, 429)


async def fetch_with_anti_scraping(
    url: str,
    *,
    fetcher: RedirectingFetcher,
    headers: Mapping[str, str] | None = None,
    pacer: throttle.RequestPacer | None = None,
    resolver: ChallengeResolver | None = None,
    timeout_s: float | None = None,
) -> FetchContext:
    """
    Fetch any page on the protected site, transparently clearing a challenge.

    Non-HTML or challenge-free responses come back untouched. When a challenge is
    found it is resolved and the original target is requested once more with the
    resolved cookie jar; that final response is returned.
    """
    await (pacer or throttle.default_pacer()).before_request()

    target = normalize_subject_url(url)
    request_headers = build_request_headers(target, headers)
    ctx = await fetcher.fetch_following_redirects(target, request_headers, timeout_s=timeout_s)

    if not _should_inspect(ctx) or parse_challenge(ctx.text) is None:
        return ctx

    resolver = resolver or ChallengeResolver(fetcher)
    resolved = await resolver.resolve(ctx.text, ctx.current_url, request_headers, ctx.cookie_jar)
    log.info("challenge cleared for %s after %d attempt(s)", target, resolved.attempts)
    return await fetcher.fetch_following_redirects(
        target, request_headers, timeout_s=timeout_s, cookie_jar=resolved.cookie_jar
    )


__all__ = [
    "ChallengeResolver",
    "ResolvedPage",
    "fetch_with_anti_scraping",
    "normalize_subject_url",
    "is_douban_url",
]
