"""
Deterministic interval fuzzing.

Review intervals are spread over a small band so that cards learned together
do not stay due together. The position inside the band comes from a fuzz
factor derived from a seed; the same card at the same rep count always lands
on the same day.
"""

from __future__ import annotations

import math
import random
import struct

FUZZ_RANGES: list[tuple[float, float, float]] = [
    (2.5, 7.0, 0.15),
    (7.0, 20.0, 0.1),
    (20.0, float("inf"), 0.05),
]

_FNV_OFFSET = 0xCBF29CE484222325
_FNV_PRIME = 0x100000001B3
_U64_MASK = 0xFFFFFFFFFFFFFFFF


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def fnv_hash(value: int, salt: int = 0) -> int:
    """64-bit FNV-1a over the little-endian bytes of ``value`` then ``salt``."""
    h = _FNV_OFFSET
    for part in (value, salt):
        for byte in struct.pack("<q", _to_i64(part)):
            h ^= byte
            h = (h * _FNV_PRIME) & _U64_MASK
    return h


def _to_i64(value: int) -> int:
    value &= _U64_MASK
    return value - (1 << 64) if value >= 1 << 63 else value


def fuzz_seed(card_id: int, reps: int) -> int:
    """Per-card seed: hash of the id, salted with the rep count."""
    return fnv_hash(card_id, reps)


def fuzz_factor(seed: int) -> float:
    """Maps a seed to a reproducible factor in [0.0, 1.0)."""
    return random.Random(seed).random()


def fuzz_delta(interval: float) -> float:
    if interval < 2.5:
        return 0.0
    delta = 1.0
    for start, end, factor in FUZZ_RANGES:
        span = max(0.0, min(interval, end) - start)
        delta += factor * span
    return delta


def fuzz_bounds(interval: float) -> tuple[int, int]:
    delta = fuzz_delta(interval)
    return (
        round_half_up(interval - delta),
        round_half_up(interval + delta),
    )


def constrained_fuzz_bounds(
    interval: float, minimum: int, maximum: int
) -> tuple[int, int]:
    minimum = min(minimum, maximum)
    interval = max(float(minimum), min(float(maximum), interval))
    lower, upper = fuzz_bounds(interval)
    lower = max(minimum, min(maximum, lower))
    upper = max(minimum, min(maximum, upper))
    if upper == lower and upper > 2 and upper < maximum:
        upper = lower + 1
    return lower, upper


def with_review_fuzz(
    interval: float,
    factor: float,
    minimum: int,
    maximum: int,
) -> int:
    """
    Fuzz ``interval`` (days) into its band, constrained to [minimum, maximum].

    Intervals under 2.5 days are only clamped.
    """
    minimum = min(minimum, maximum)
    if interval < 2.5:
        return max(minimum, min(maximum, round_half_up(interval)))
    lower, upper = constrained_fuzz_bounds(interval, minimum, maximum)
    return min(upper, int(math.floor(lower + factor * (1 + upper - lower))))
