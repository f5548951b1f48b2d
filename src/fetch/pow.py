# src/fetch/pow.py
"""Proof-of-work solver for the challenge puzzle (SHA-512 leading-zero nonce)."""

from __future__ import annotations

import hashlib

from src import config
from src.exceptions import ChallengeSolveError

DEFAULT_DIFFICULTY = config.app_config.challenge.difficulty
DEFAULT_MAX_NONCE = config.app_config.challenge.max_nonce


def sha512_hex(value: str) -> str:
    return hashlib.sha512(value.encode("utf-8")).hexdigest()


def verify(puzzle: str, nonce: int, difficulty: int = DEFAULT_DIFFICULTY) -> bool:
    return sha512_hex(f"{puzzle}{nonce}").startswith("0" * difficulty)


def solve(
    puzzle: str,
    difficulty: int = DEFAULT_DIFFICULTY,
    max_nonce: int = DEFAULT_MAX_NONCE,
) -> int:
    """
    Return the smallest nonce >= 1 whose SHA-512(puzzle + nonce) hex digest starts
    with `difficulty` zeros.

    Raises ChallengeSolveError (403) when no nonce up to max_nonce qualifies.
    """
    prefix = "0" * difficulty
    for nonce in range(1, max_nonce + 1):
        if sha512_hex(f"{puzzle}{nonce}").startswith(prefix):
            return nonce
    raise ChallengeSolveError(
        f"challenge solve failed: no nonce <= {max_nonce} at difficulty {difficulty}"
    )


__all__ = ["solve", "verify", "sha512_hex"]
