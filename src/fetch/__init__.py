# src/fetch/__init__.py
"""
Subject page fetcher: request pacing, manual redirects with a cookie jar,
proof-of-work challenge resolution, and a single-flight cache gate.

Caller-facing API:
  - SubjectPageScraper(store).get_html(subject_id) -> str

Other public entry points (advanced/internal use):
  - RedirectingFetcher, FetchContext, CookieJar
  - parse_challenge, Challenge, solve
  - ChallengeResolver, ResolvedPage, fetch_with_anti_scraping
  - RequestPacer, default_pacer
  - cache stores: MemoryCacheStore, SqliteCacheStore, RedisCacheStore, default_store()
"""

from .cache import (
    CacheStore,
    MemoryCacheStore,
    RedisCacheStore,
    SqliteCacheStore,
)
from .cache import (
    default as default_store,
)
from .challenge import Challenge, has_challenge, parse_challenge
from .client import FetchContext, RedirectingFetcher
from .cookies import CookieJar
from .headers import build_request_headers
from .pow import solve
from .resolver import (
    ChallengeResolver,
    ResolvedPage,
    fetch_with_anti_scraping,
    is_douban_url,
    normalize_subject_url,
)
from .subject import SubjectPageScraper
from .throttle import RequestPacer, default_pacer
from .throttle import clear as clear_pacer

__all__ = [
    # caller-facing facade
    "SubjectPageScraper",
    # client
    "RedirectingFetcher",
    "FetchContext",
    "CookieJar",
    "build_request_headers",
    # challenge
    "Challenge",
    "parse_challenge",
    "has_challenge",
    "solve",
    "ChallengeResolver",
    "ResolvedPage",
    "fetch_with_anti_scraping",
    "normalize_subject_url",
    "is_douban_url",
    # pacing
    "RequestPacer",
    "default_pacer",
    "clear_pacer",
    # cache
    "CacheStore",
    "MemoryCacheStore",
    "SqliteCacheStore",
    "RedisCacheStore",
    "default_store",
]

__version__ = "0.1.0"
