# ruff: noqa: E402
# tests/conftest.py
from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure project root importable
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from src.fetch import cache as cache_mod
from src.fetch import throttle as throttle_mod


@pytest.fixture(autouse=True)
def _reset_shared_state():
    """
    Autouse: every test starts with a fresh shared pacer and no default cache
    store, so module-level singletons never leak between tests.
    """
    throttle_mod.clear()
    cache_mod.set_default(None)
    yield
    throttle_mod.clear()
    cache_mod.set_default(None)


@pytest.fixture
def no_wait_pacer() -> throttle_mod.RequestPacer:
    """A pacer that never sleeps (interval and jitter both zero)."""
    return throttle_mod.RequestPacer(min_interval_s=0.0, jitter_s=(0.0, 0.0))
