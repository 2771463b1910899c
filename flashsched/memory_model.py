"""
FSRS-style memory model.

Maps a card's current memory state, a target retention and the days elapsed
since the last review to four candidate (interval, memory state) outcomes, one
per rating. Everything in this module is pure: no I/O, no clock, no mutation
of inputs.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from .constants import (
    DEFAULT_FSRS_PARAMS,
    FSRS_PARAM_COUNT,
    INITIAL_DIFFICULTY,
    MAX_DIFFICULTY,
    MIN_DIFFICULTY,
    MIN_STABILITY,
)
from .fuzz import round_half_up
from .models import MemoryState, Rating

logger = logging.getLogger(__name__)

# Fallbacks for parameter slots that are missing or unusable.
_SLOT_FALLBACKS = {0: 0.4, 1: 1.0, 2: 3.0, 3: 15.0, 6: 0.5}
_SUCCESS_FACTOR_FALLBACK = 1.0

_DIFFICULTY_DELTA = {
    Rating.Again: 0.7,
    Rating.Hard: 0.3,
    Rating.Good: -0.1,
    Rating.Easy: -0.3,
}

# Difficulty offsets applied to the initial difficulty of a new card.
_INITIAL_DIFFICULTY_OFFSET = {
    Rating.Again: 2.0,
    Rating.Hard: 1.0,
    Rating.Good: 0.0,
    Rating.Easy: -1.0,
}


@dataclass(frozen=True)
class ItemState:
    """One candidate outcome: the interval in days and the memory state."""

    interval: int
    memory: MemoryState


@dataclass(frozen=True)
class NextStates:
    again: ItemState
    hard: ItemState
    good: ItemState
    easy: ItemState

    def for_rating(self, rating: Rating) -> ItemState:
        return {
            Rating.Again: self.again,
            Rating.Hard: self.hard,
            Rating.Good: self.good,
            Rating.Easy: self.easy,
        }[Rating(rating)]


def _usable(value) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and value > 0
    )


def validate_fsrs_params(params: Sequence[float]) -> bool:
    """True when ``params`` holds exactly 19 finite, positive values."""
    if len(params) != FSRS_PARAM_COUNT:
        return False
    return all(_usable(p) for p in params)


def validate_desired_retention(retention: float) -> bool:
    return 0 < retention < 1


class FSRSMemoryModel:
    """
    Memory model parameterised by a 19-slot weight vector.

    The vector is injected per instance. Slots that are missing or not a
    finite positive number fall back to their per-slot default, so a partial
    or damaged vector still yields a working model.
    """

    def __init__(self, params: Optional[Sequence[float]] = None):
        if params is None:
            params = DEFAULT_FSRS_PARAMS
        self.params: Tuple[float, ...] = tuple(params)
        if not validate_fsrs_params(self.params):
            logger.debug(
                f"FSRS parameter vector of length {len(self.params)} is "
                "incomplete; per-slot fallbacks apply"
            )

    def _weight(self, index: int, fallback: float) -> float:
        if index < len(self.params) and _usable(self.params[index]):
            return float(self.params[index])
        return fallback

    @staticmethod
    def next_interval(stability: Optional[float], desired_retention: float) -> int:
        """
        Interval in days at which recall probability falls to
        ``desired_retention``. Never less than one day.
        """
        if stability is None or stability <= 0:
            return 1
        interval = stability / 9 * (1 / desired_retention - 1)
        return max(1, round_half_up(interval))

    @staticmethod
    def retrievability(stability: float, days_elapsed: float) -> float:
        """Probability of recall after ``days_elapsed`` days."""
        if stability <= 0 or days_elapsed < 0:
            return 1.0
        return (1 + days_elapsed / (9 * stability)) ** -1

    @staticmethod
    def next_difficulty(difficulty: float, rating: Rating) -> float:
        new_difficulty = difficulty + _DIFFICULTY_DELTA.get(rating, 0.0)
        return max(MIN_DIFFICULTY, min(MAX_DIFFICULTY, new_difficulty))

    def next_stability(
        self,
        stability: float,
        difficulty: float,
        retrievability: float,
        rating: Rating,
    ) -> float:
        if rating == Rating.Again:
            new_stability = stability * self._weight(6, _SLOT_FALLBACKS[6])
        else:
            success = self._weight(8 + (rating - 2), _SUCCESS_FACTOR_FALLBACK)
            difficulty_factor = math.exp((10 - difficulty) * 0.1)
            new_stability = stability * (
                1 + success * difficulty_factor * (1 - retrievability)
            )
        return max(MIN_STABILITY, new_stability)

    def initial_states(self, desired_retention: float) -> NextStates:
        """Seed states for a card with no memory state yet."""
        items = {}
        for rating in Rating:
            slot = rating - 1
            stability = self._weight(slot, _SLOT_FALLBACKS[slot])
            memory = MemoryState(
                stability=stability,
                difficulty=INITIAL_DIFFICULTY + _INITIAL_DIFFICULTY_OFFSET[rating],
            )
            items[rating] = ItemState(
                interval=self.next_interval(stability, desired_retention),
                memory=memory,
            )
        return NextStates(
            again=items[Rating.Again],
            hard=items[Rating.Hard],
            good=items[Rating.Good],
            easy=items[Rating.Easy],
        )

    def next_states(
        self,
        memory_state: Optional[MemoryState],
        desired_retention: float,
        days_elapsed: float,
    ) -> NextStates:
        """
        Candidate outcomes for each of the four ratings.

        Args:
            memory_state: Current memory state, or None for a new card.
            desired_retention: Target recall probability, 0 < r < 1.
            days_elapsed: Days since the last review.

        Returns:
            A NextStates with one ItemState per rating.
        """
        if memory_state is None:
            return self.initial_states(desired_retention)

        stability = memory_state.stability
        difficulty = memory_state.difficulty
        r = self.retrievability(stability, days_elapsed)

        items = {}
        for rating in Rating:
            memory = MemoryState(
                stability=self.next_stability(stability, difficulty, r, rating),
                difficulty=self.next_difficulty(difficulty, rating),
            )
            items[rating] = ItemState(
                interval=self.next_interval(memory.stability, desired_retention),
                memory=memory,
            )
        return NextStates(
            again=items[Rating.Again],
            hard=items[Rating.Hard],
            good=items[Rating.Good],
            easy=items[Rating.Easy],
        )

    @staticmethod
    def memory_state_from_sm2(
        ease_factor: float, interval: float, historical_retention: float = 0.9
    ) -> MemoryState:
        """Estimate a memory state for a card scheduled with SM-2 so far."""
        difficulty = max(MIN_DIFFICULTY, min(MAX_DIFFICULTY, 11 - ease_factor * 3))
        stability = (
            interval * 9 * historical_retention / (1 - historical_retention)
        )
        return MemoryState(
            stability=max(MIN_STABILITY, stability), difficulty=difficulty
        )
