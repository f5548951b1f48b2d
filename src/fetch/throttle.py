# src/fetch/throttle.py
from __future__ import annotations

import asyncio
import logging
import random
import time

from src import config

log = logging.getLogger(__name__)

# --------------------------------------------------------------------------------------
# Configuration (env-overridable via src.config)
# --------------------------------------------------------------------------------------

DEFAULT_MIN_INTERVAL_S = config.app_config.pacer.min_interval_s
DEFAULT_JITTER_S = config.app_config.pacer.jitter_s


def _now() -> float:
    # Use monotonic so tests can monkeypatch the clock
    return time.monotonic()


async def _sleep(dt: float) -> None:
    # Calls real asyncio.sleep, but tests can monkeypatch it.
    await asyncio.sleep(dt)


def _jitter(lo: float, hi: float) -> float:
    lo = max(0.0, float(lo))
    hi = max(lo, float(hi))
    if hi <= 0:
        return 0.0
    return random.uniform(lo, hi)


# --------------------------------------------------------------------------------------
# Pacer
# --------------------------------------------------------------------------------------


class RequestPacer:
    """
    Process-wide spacing of outbound requests.

    Each before_request():
      1) waits until at least min_interval_s has passed since the previous request
      2) waits an extra uniform(jitter_s[0], jitter_s[1]) seconds
      3) records the current time as the last request time

    The whole read-wait-write sequence runs under one asyncio.Lock, so concurrent
    callers queue up behind each other instead of racing on last_request_at.
    """

    def __init__(
        self,
        min_interval_s: float | None = None,
        jitter_s: tuple[float, float] | None = None,
    ) -> None:
        self.min_interval_s = DEFAULT_MIN_INTERVAL_S if min_interval_s is None else min_interval_s
        self.jitter_s = DEFAULT_JITTER_S if jitter_s is None else jitter_s
        self.last_request_at: float | None = None
        self._lock: asyncio.Lock | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    def _get_lock(self) -> asyncio.Lock:
        # Locks are bound to the loop they first wait on; rebuild when the loop changes.
        loop = asyncio.get_running_loop()
        if self._lock is None or self._loop is not loop:
            self._lock = asyncio.Lock()
            self._loop = loop
        return self._lock

    async def before_request(self) -> float:
        """Suspend until this caller may issue a request. Returns seconds waited."""
        async with self._get_lock():
            waited = 0.0
            if self.min_interval_s > 0 and self.last_request_at is not None:
                delta = _now() - self.last_request_at
                if delta < self.min_interval_s:
                    dt = self.min_interval_s - delta
                    await _sleep(dt)
                    waited += dt

            extra = _jitter(*self.jitter_s)
            if extra > 0:
                await _sleep(extra)
                waited += extra

            self.last_request_at = _now()
            if waited:
                log.debug("pacer waited %.3fs", waited)
            return waited

    def clear(self) -> None:
        self.last_request_at = None


_DEFAULT: RequestPacer | None = None


def default_pacer() -> RequestPacer:
    global _DEFAULT
    if _DEFAULT is None:
        _DEFAULT = RequestPacer()
    return _DEFAULT


def clear() -> None:
    """Reset the shared pacer state."""
    if _DEFAULT is not None:
        _DEFAULT.clear()


async def before_request() -> float:
    return await default_pacer().before_request()


__all__ = [
    "RequestPacer",
    "default_pacer",
    "before_request",
    "clear",
]
