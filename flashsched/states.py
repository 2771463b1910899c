"""
Lifecycle states of a card.

``CardState`` is a closed union of four frozen dataclasses. A relearning card
carries the review state it lapsed from, so ease and lapse count survive the
relearning steps.
"""

from dataclasses import dataclass
from typing import Optional, Union

from .models import MemoryState, Rating


@dataclass(frozen=True)
class NewState:
    position: int


@dataclass(frozen=True)
class LearningState:
    remaining_steps: int
    scheduled_secs: int
    memory_state: Optional[MemoryState] = None


@dataclass(frozen=True)
class ReviewState:
    scheduled_days: int
    ease_factor: float
    lapses: int
    leeched: bool = False
    memory_state: Optional[MemoryState] = None


@dataclass(frozen=True)
class RelearningState:
    learning: LearningState
    review: ReviewState


CardState = Union[NewState, LearningState, ReviewState, RelearningState]


@dataclass(frozen=True)
class SchedulingStates:
    """The current state of a card and the state each rating would lead to."""

    current: CardState
    again: CardState
    hard: CardState
    good: CardState
    easy: CardState

    def for_rating(self, rating: Rating) -> CardState:
        return {
            Rating.Again: self.again,
            Rating.Hard: self.hard,
            Rating.Good: self.good,
            Rating.Easy: self.easy,
        }[Rating(rating)]
