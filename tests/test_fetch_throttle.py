# tests/test_fetch_throttle.py
from __future__ import annotations

import asyncio
import contextlib
import types
from collections.abc import Iterator

import pytest

throttle = pytest.importorskip("src.fetch.throttle")


# -------------------------------- test utilities --------------------------------------


@contextlib.contextmanager
def fake_clock(monkeypatch) -> Iterator[types.SimpleNamespace]:
    """
    Freeze the pacer's clock and capture sleeps.

    - Overrides throttle._now() so the pacer sees our clock (the event loop keeps
      the real time.monotonic).
    - Overrides throttle._sleep(dt) to *advance* the frozen clock by dt, record
      the sleep, and still yield to the loop so other callers can queue up.

    Exposes:
      now() -> float            current monotonic time
      advance(dt)               manually advance without calling sleep()
      sleeps() -> list[float]   every sleep duration, in order
      slept() -> float          total seconds 'slept'
    """
    t = {"now": 1_000_000.0}
    sleeps: list[float] = []

    def now():
        return t["now"]

    async def sleep(dt):
        dt = float(dt)
        if dt <= 0:
            return
        sleeps.append(dt)
        t["now"] += dt
        await asyncio.sleep(0)

    monkeypatch.setattr(throttle, "_now", now)
    monkeypatch.setattr(throttle, "_sleep", sleep)

    yield types.SimpleNamespace(
        now=now,
        advance=lambda dt: t.__setitem__("now", t["now"] + float(dt)),
        sleeps=lambda: list(sleeps),
        slept=lambda: sum(sleeps),
    )


def no_jitter(monkeypatch):
    monkeypatch.setattr(throttle, "_jitter", lambda lo, hi: 0.0)


# ------------------------------ minimum interval --------------------------------------


def test_first_request_does_not_wait(monkeypatch):
    no_jitter(monkeypatch)
    pacer = throttle.RequestPacer(min_interval_s=1.0, jitter_s=(0.3, 1.0))

    with fake_clock(monkeypatch) as clk:
        waited = asyncio.run(pacer.before_request())
        assert waited == 0.0
        assert clk.sleeps() == []
        assert pacer.last_request_at == clk.now()


def test_back_to_back_requests_wait_out_the_interval(monkeypatch):
    no_jitter(monkeypatch)
    pacer = throttle.RequestPacer(min_interval_s=1.0, jitter_s=(0.0, 0.0))

    with fake_clock(monkeypatch) as clk:
        asyncio.run(pacer.before_request())
        clk.advance(0.25)
        waited = asyncio.run(pacer.before_request())

        assert waited == pytest.approx(0.75)
        assert clk.sleeps() == [pytest.approx(0.75)]


def test_no_wait_once_interval_has_passed(monkeypatch):
    no_jitter(monkeypatch)
    pacer = throttle.RequestPacer(min_interval_s=1.0, jitter_s=(0.0, 0.0))

    with fake_clock(monkeypatch) as clk:
        asyncio.run(pacer.before_request())
        clk.advance(5.0)
        assert asyncio.run(pacer.before_request()) == 0.0
        assert clk.sleeps() == []


# ------------------------------ jitter ------------------------------------------------


def test_jitter_is_added_after_the_interval(monkeypatch):
    monkeypatch.setattr(throttle, "_jitter", lambda lo, hi: 0.5)
    pacer = throttle.RequestPacer(min_interval_s=1.0, jitter_s=(0.3, 1.0))

    with fake_clock(monkeypatch) as clk:
        asyncio.run(pacer.before_request())
        t0 = pacer.last_request_at
        asyncio.run(pacer.before_request())

        # first call: jitter only; second: full interval then jitter
        assert clk.sleeps() == [pytest.approx(0.5), pytest.approx(1.0), pytest.approx(0.5)]
        assert pacer.last_request_at - t0 == pytest.approx(1.5)


def test_jitter_stays_within_bounds():
    for _ in range(500):
        d = throttle._jitter(0.3, 1.0)
        assert 0.3 <= d <= 1.0


def test_zero_jitter_range_is_zero():
    assert throttle._jitter(0.0, 0.0) == 0.0


# ------------------------------ concurrency -------------------------------------------


def test_concurrent_callers_are_serialised(monkeypatch):
    no_jitter(monkeypatch)
    pacer = throttle.RequestPacer(min_interval_s=1.0, jitter_s=(0.0, 0.0))
    stamps: list[float] = []

    async def one():
        await pacer.before_request()
        stamps.append(pacer.last_request_at)

    async def main():
        await asyncio.gather(*(one() for _ in range(4)))

    with fake_clock(monkeypatch) as clk:
        asyncio.run(main())
        assert clk.slept() == pytest.approx(3.0)

    stamps.sort()
    gaps = [b - a for a, b in zip(stamps, stamps[1:])]
    assert all(g >= 1.0 - 1e-9 for g in gaps)


# ------------------------------ shared pacer ------------------------------------------


def test_default_pacer_is_shared_and_clearable(monkeypatch):
    no_jitter(monkeypatch)
    assert throttle.default_pacer() is throttle.default_pacer()

    with fake_clock(monkeypatch):
        asyncio.run(throttle.before_request())
        assert throttle.default_pacer().last_request_at is not None
        throttle.clear()
        assert throttle.default_pacer().last_request_at is None
