from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv


def _getenv_int(name: str, default: int) -> int:
    v = os.getenv(name, str(default)).strip()
    try:
        return int(v)
    except ValueError as err:
        raise ValueError(f"Environment variable {name} must be an integer; got {v!r}") from err


def _getenv_float(name: str, default: float) -> float:
    v = os.getenv(name, str(default)).strip()
    try:
        return float(v)
    except ValueError as err:
        raise ValueError(f"Environment variable {name} must be a number; got {v!r}") from err


def _getenv_str(name: str, default: str) -> str:
    return os.getenv(name, default).strip()


def _getenv_list_float(name: str, default_csv: str) -> list[float]:
    raw = os.getenv(name, default_csv).strip()
    out: list[float] = []
    for tok in (t.strip() for t in raw.split(",")):
        if not tok:
            continue
        try:
            out.append(float(tok))
        except ValueError as err:
            raise ValueError(
                f"Environment variable {name} must be a CSV of numbers; got {raw!r}"
            ) from err
    return out


def _getenv_list_str(name: str, default_csv: str) -> list[str]:
    raw = os.getenv(name, default_csv).strip()
    out: list[str] = []
    for tok in (t.strip() for t in raw.split(",")):
        if tok:
            out.append(tok)
    return out


def _getenv_bool(name: str, default: bool) -> bool:
    """
    Read a loosely-typed boolean from the environment.

    Treats "1", "true", "yes", "on" (case-insensitive) as True;
    "0", "false", "no", "off", "" as False. If unset, returns default.
    """
    raw = os.getenv(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off", ""}:
        return False
    return True


# Load .env from project root if present
ROOT = Path(__file__).resolve().parents[1]
load_dotenv(ROOT / ".env", override=False)


@dataclass(frozen=True)
class PacerConfig:
    min_interval_s: float
    jitter_s: tuple[float, float]


@dataclass(frozen=True)
class FetchConfig:
    base_url: str
    timeout_s: float
    max_redirects: int
    accept_language: str


@dataclass(frozen=True)
class ChallengeConfig:
    timeout_s: float
    max_attempts: int
    difficulty: int
    max_nonce: int
    submit_path: str
    # Hosts observed to serve the submit endpoint; tried after the page's own origin.
    submit_fallbacks: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class CacheConfig:
    backend: str
    redis_url: str
    db_path: str
    enabled: bool
    prefix: str
    subject_ttl_s: int
    details_ttl_s: int
    failure_ttl_s: int


@dataclass(frozen=True)
class RetryConfig:
    schedule_s: list[float]


@dataclass(frozen=True)
class AppConfig:
    pacer: PacerConfig
    fetch: FetchConfig
    challenge: ChallengeConfig
    cache: CacheConfig
    retry: RetryConfig


def load_settings() -> AppConfig:
    """Read every setting from the environment (and .env) into one AppConfig."""
    pacer = PacerConfig(
        min_interval_s=_getenv_float("PACER_MIN_INTERVAL_SEC", 1.0),
        jitter_s=(
            _getenv_float("PACER_JITTER_MIN_SEC", 0.3),
            _getenv_float("PACER_JITTER_MAX_SEC", 1.0),
        ),
    )
    fetch = FetchConfig(
        base_url=_getenv_str("SUBJECT_BASE_URL", "https://movie.douban.com/subject/"),
        timeout_s=_getenv_float("FETCH_TIMEOUT_SEC", 20.0),
        max_redirects=_getenv_int("MAX_REDIRECTS", 3),
        accept_language=_getenv_str("FETCH_ACCEPT_LANGUAGE", "zh-CN,zh;q=0.9,en;q=0.8"),
    )
    challenge = ChallengeConfig(
        timeout_s=_getenv_float("CHALLENGE_TIMEOUT_SEC", 15.0),
        max_attempts=_getenv_int("CHALLENGE_MAX_ATTEMPTS", 3),
        difficulty=_getenv_int("CHALLENGE_DIFFICULTY", 4),
        max_nonce=_getenv_int("CHALLENGE_MAX_NONCE", 2_000_000),
        submit_path=_getenv_str("CHALLENGE_SUBMIT_PATH", "/c"),
        submit_fallbacks=_getenv_list_str(
            "CHALLENGE_SUBMIT_FALLBACKS",
            "https://www.douban.com/c,https://movie.douban.com/c",
        ),
    )
    cache = CacheConfig(
        backend=_getenv_str("CACHE_BACKEND", "memory").lower(),
        redis_url=_getenv_str("CACHE_REDIS_URL", "redis://127.0.0.1:6379/0"),
        db_path=_getenv_str("CACHE_DB", ":memory:"),
        enabled=_getenv_bool("CACHE_ENABLED", True),
        prefix=_getenv_str("SUBJECT_CACHE_PREFIX", "douban"),
        subject_ttl_s=_getenv_int("SUBJECT_CACHE_TTL_SEC", 7 * 24 * 60 * 60),  # 7 days
        details_ttl_s=_getenv_int("DETAILS_CACHE_TTL_SEC", 24 * 60 * 60),
        failure_ttl_s=_getenv_int("DETAILS_FAILURE_TTL_SEC", 30 * 60),
    )
    retry = RetryConfig(schedule_s=_getenv_list_float("RETRY_SCHEDULE_SEC", "2,4,8"))
    return AppConfig(
        pacer=pacer,
        fetch=fetch,
        challenge=challenge,
        cache=cache,
        retry=retry,
    )


# Process-wide settings; every component takes its defaults from here.
app_config: AppConfig = load_settings()

__all__ = [
    "PacerConfig",
    "FetchConfig",
    "ChallengeConfig",
    "CacheConfig",
    "RetryConfig",
    "AppConfig",
    "load_settings",
    "app_config",
]
