"""Deterministic random stream used to shuffle tickets for a draw.

The seed itself is generated from a cryptographically strong source at draw
time and published with the round. Everything downstream of the seed is pure
integer arithmetic, so anyone holding the seed and the ticket list can replay
the shuffle and obtain the same winners on any platform.
"""

from __future__ import annotations

import secrets
from typing import Sequence, TypeVar

T = TypeVar("T")

MODULUS = 2147483647
"""Mersenne prime 2**31 - 1."""

MULTIPLIER = 16807
"""Park-Miller minimal standard multiplier."""


def _initial_state(seed: str) -> int:
    """Fold ``seed`` into a generator state by summing its UTF-16 code units.

    Characters outside the Basic Multilingual Plane count as their two
    surrogate halves, the same units a browser-side verifier sees.
    """

    if seed is None:
        raise ValueError("seed must not be None")
    if not isinstance(seed, str):
        raise TypeError("seed must be a string")
    if not seed:
        raise ValueError("seed must not be empty")
    data = seed.encode("utf-16-le", "surrogatepass")
    state = 0
    for i in range(0, len(data), 2):
        state = (state + int.from_bytes(data[i : i + 2], "little")) % MODULUS
    # A zero state would make every draw return the same value.
    return state or 1


class SeededRNG:
    """Multiplicative linear-congruential generator keyed by a seed string.

    Parameters
    ----------
    seed : str
        Published draw seed. Must be a non-empty string.

    Examples
    --------
    >>> rng = SeededRNG("abc")
    >>> rng.next_float() == SeededRNG("abc").next_float()
    True
    """

    def __init__(self, seed: str) -> None:
        self.seed = seed
        self._state = _initial_state(seed)

    @property
    def state(self) -> int:
        return self._state

    def next_int(self) -> int:
        """Advance the generator and return the raw state in ``[1, MODULUS - 1]``."""
        self._state = (self._state * MULTIPLIER) % MODULUS
        return self._state

    def next_float(self) -> float:
        """Return the next value in ``[0, 1)``."""
        return (self.next_int() - 1) / (MODULUS - 1)

    def randbelow(self, n: int) -> int:
        """Return an index in ``[0, n)`` as ``floor(next_float() * n)``."""
        if n <= 0:
            raise ValueError("n must be positive")
        return int(self.next_float() * n)


def seeded_shuffle(items: Sequence[T], seed: str) -> list[T]:
    """Return a Fisher-Yates shuffled copy of ``items`` driven by ``seed``.

    The input is not modified. Swaps run from the last element down to the
    second one, drawing ``j = floor(rng * (i + 1))`` for each position ``i``.
    """

    rng = SeededRNG(seed)
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randbelow(i + 1)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def generate_seed(nbytes: int = 32) -> str:
    """Return a fresh hex seed from the operating system's secure source."""

    return secrets.token_hex(nbytes)


__all__ = ["SeededRNG", "seeded_shuffle", "generate_seed", "MODULUS", "MULTIPLIER"]
