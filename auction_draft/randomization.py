"""
Seeded pseudo-random utilities.

Every random decision the engine broadcasts (member order, reveal card
layout, random assignment of unsold members) is derived from a seed plus a
step counter. Clients holding the seed can recompute any intermediate state
without replaying the whole sequence.

The generator is mulberry32 (32-bit state), bit-for-bit
reproducible in a browser.
"""

import random
from typing import Dict, List, Sequence, TypeVar

from . import config

T = TypeVar('T')

_MASK32 = 0xFFFFFFFF


def _imul(a: int, b: int) -> int:
    """32-bit integer multiply (low 32 bits)."""
    return (a * b) & _MASK32


class SeededRandom:
    """Deterministic float generator in [0, 1) driven by a 32-bit seed."""

    def __init__(self, seed: int):
        self.seed = seed
        self._state = seed & _MASK32

    def random(self) -> float:
        """Return the next float in [0, 1)."""
        self._state = (self._state + 0x6D2B79F5) & _MASK32
        t = self._state
        t = _imul(t ^ (t >> 15), t | 1)
        t = ((t + _imul(t ^ (t >> 7), t | 61)) & _MASK32) ^ t
        return ((t ^ (t >> 14)) & _MASK32) / 4294967296

    def randrange(self, n: int) -> int:
        """Return an integer in [0, n)."""
        if n <= 0:
            raise ValueError(f"randrange() needs a positive bound, got {n}")
        return int(self.random() * n)


def generate_seed() -> int:
    """Pick a fresh seed for a shuffle or assignment run."""
    return random.randint(1, config.SEED_MAX)


def seeded_shuffle(items: Sequence[T], seed: int) -> List[T]:
    """
    Fisher-Yates shuffle driven by the seeded generator.

    Args:
        items: Sequence to shuffle (not modified)
        seed: Seed fixing the permutation

    Returns:
        New list with the shuffled order
    """
    rng = SeededRandom(seed)
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randrange(i + 1)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def draw(seed: int, step: int) -> float:
    """
    Stateless draw parameterized by (seed, step).

    The same pair always yields the same float, independent of any
    draws made before it.
    """
    return SeededRandom(seed + step).random()


def draw_index(seed: int, step: int, n: int) -> int:
    """Pick an index in [0, n) for the given (seed, step)."""
    if n <= 0:
        raise ValueError(f"Cannot draw from an empty pool (n={n})")
    return int(draw(seed, step) * n)


def card_positions(
    seed: int,
    revealed_count: int,
    order: Sequence[str]
) -> Dict[str, Dict[str, float]]:
    """
    Derive the scattered card layout for the still-hidden members.

    Args:
        seed: Shuffle seed
        revealed_count: Number of members already revealed
        order: Full shuffled order of member ids

    Returns:
        Dict mapping member_id -> {x, y, rotate, z_index}
    """
    hidden = list(order[revealed_count:])
    rng = SeededRandom(seed + revealed_count)

    positions = {}
    for member_id in hidden:
        positions[member_id] = {
            'x': rng.random() * 200 - 100,
            'y': rng.random() * 80 - 40,
            'rotate': rng.random() * 30 - 15,
            'z_index': int(rng.random() * len(hidden)),
        }
    return positions
