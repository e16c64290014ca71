"""Seeded xorshift64* generator shared by proposer and verifier."""

from __future__ import annotations

import math
from typing import Optional, Sequence, TypeVar

T = TypeVar("T")

MASK64 = 0xFFFFFFFFFFFFFFFF
MULTIPLIER = 2685821657736338717
TWO_POW_64 = 1 << 64


class SeededRandom:
    """Deterministic random stream driven by a seed string.

    The construction must match other implementations bit for bit, so every
    step wraps to 64 bits exactly as unsigned machine arithmetic would.
    """

    def __init__(self, seed: str) -> None:
        state = 0
        for char in seed:
            state = (state * 31 + ord(char)) & MASK64
        # zero is a fixed point of xorshift
        self.state = state or 1

    def next(self) -> float:
        """Advance the generator and return a float in ``[0, 1)``."""
        state = self.state
        state ^= state >> 12
        state ^= (state << 25) & MASK64
        state ^= state >> 27
        state = (state * MULTIPLIER) & MASK64
        self.state = state
        return state / TWO_POW_64

    def choice(self, items: Sequence[T]) -> Optional[T]:
        """Pick one element of ``items``; ``None`` for an empty sequence."""
        if not items:
            return None
        index = math.floor(self.next() * len(items))
        # a state within 2**10 of 2**64 rounds to 1.0 in double precision
        return items[min(index, len(items) - 1)]


__all__ = ["SeededRandom"]
