# flashsched/scheduler.py

"""
Defines the CardStateMachine, which moves a card through its lifecycle
(New -> Learning -> Review <-> Relearning) in response to a rating.

Intervals come from the FSRS memory model when the deck config carries a full
parameter vector, and from SM-2 style multipliers otherwise. Review intervals
are fuzzed deterministically per card.
"""

import datetime
import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .card_utils import format_interval
from .config import DeckConfig
from .constants import (
    EASE_FACTOR_AGAIN_DELTA,
    EASE_FACTOR_EASY_DELTA,
    EASE_FACTOR_HARD_DELTA,
    MINIMUM_EASE_FACTOR,
    SECONDS_PER_DAY,
    DEFAULT_DAY_ROLLOVER_HOUR,
)
from .fuzz import fuzz_factor, fuzz_seed, round_half_up, with_review_fuzz
from .memory_model import FSRSMemoryModel, NextStates
from .models import Card, CardQueue, CardType, Rating, ReviewKind
from .states import (
    CardState,
    LearningState,
    NewState,
    RelearningState,
    ReviewState,
    SchedulingStates,
)
from .timing import day_number, resolve_now, to_timestamp

logger = logging.getLogger(__name__)

# Used when a step index falls outside the configured step list.
_DEFAULT_LEARN_STEP_MINUTES = 1.0
_DEFAULT_RELEARN_STEP_MINUTES = 10.0


@dataclass(frozen=True)
class _Context:
    config: DeckConfig
    fsrs: Optional[NextStates]
    fuzz_factor: float


def validate_rating(rating: int) -> Rating:
    """Returns ``rating`` as a Rating, or raises ValueError if it is not 1-4."""
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 4:
        raise ValueError(
            f"Invalid rating: {rating}. Must be 1-4 (1=Again, 2=Hard, 3=Good, 4=Easy)."
        )
    return Rating(rating)


def is_leech(lapses: int, threshold: int) -> bool:
    """
    A card is flagged on reaching the threshold, then again every half
    threshold. A threshold of 0 disables leech detection.
    """
    if threshold <= 0:
        return False
    half_threshold = max(1, math.ceil(threshold / 2))
    return lapses >= threshold and (lapses - threshold) % half_threshold == 0


def review_kind_for(card: Card) -> ReviewKind:
    """Kind of review an answer to ``card`` in its current type counts as."""
    if card.ctype == CardType.Review:
        return ReviewKind.Review
    if card.ctype == CardType.Relearn:
        return ReviewKind.Relearn
    return ReviewKind.Learning


def _step_secs(steps: List[float], index: int, fallback_minutes: float) -> int:
    minutes = steps[index] if 0 <= index < len(steps) else fallback_minutes
    return max(1, round_half_up(minutes * 60))


def _current_step_index(steps: List[float], remaining_steps: int) -> int:
    index = len(steps) - remaining_steps - 1
    return max(0, min(len(steps) - 1, index))


def _ease(ease_factor: float, delta: float) -> float:
    return max(MINIMUM_EASE_FACTOR, ease_factor + delta)


class CardStateMachine:
    """
    Applies ratings to cards.

    The machine is stateless apart from a cache of memory models keyed by
    parameter vector; every answer returns a new Card and leaves the input
    untouched.
    """

    def __init__(self, day_rollover_hour: int = DEFAULT_DAY_ROLLOVER_HOUR):
        self.day_rollover_hour = day_rollover_hour
        self._models: Dict[Tuple[float, ...], FSRSMemoryModel] = {}

    def memory_model(self, config: DeckConfig) -> Optional[FSRSMemoryModel]:
        """The memory model for ``config``, or None when FSRS is disabled."""
        if not config.fsrs_enabled:
            return None
        params = tuple(config.fsrs_params)
        model = self._models.get(params)
        if model is None:
            model = FSRSMemoryModel(params)
            self._models[params] = model
        return model

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def current_state(self, card: Card) -> CardState:
        """Maps a card to its lifecycle state."""
        if card.ctype == CardType.New:
            return NewState(position=card.due)

        learning = LearningState(
            remaining_steps=card.remaining_steps,
            scheduled_secs=card.due,
            memory_state=card.memory_state,
        )
        review = ReviewState(
            scheduled_days=card.interval,
            ease_factor=card.ease_factor,
            lapses=card.lapses,
            leeched=False,
            memory_state=card.memory_state,
        )
        if card.ctype == CardType.Learn:
            return learning
        if card.ctype == CardType.Review:
            return review
        return RelearningState(learning=learning, review=review)

    def next_states(
        self,
        card: Card,
        config: DeckConfig,
        now: Optional[datetime.datetime] = None,
    ) -> SchedulingStates:
        """The state each of the four ratings would move ``card`` to."""
        now = resolve_now(now)
        current = self.current_state(card)
        ctx = self._context(card, config, now)

        if isinstance(current, NewState):
            return self._next_states_new(current, ctx)
        if isinstance(current, LearningState):
            return self._next_states_learning(current, ctx)
        if isinstance(current, ReviewState):
            return self._next_states_review(current, ctx)
        return self._next_states_relearning(current, ctx)

    def answer_card(
        self,
        card: Card,
        rating: int,
        config: DeckConfig,
        time_taken: int = 0,
        now: Optional[datetime.datetime] = None,
    ) -> Card:
        """
        Apply ``rating`` to ``card`` and return the updated card.

        Args:
            card: The card being answered. Not modified.
            rating: 1=Again, 2=Hard, 3=Good, 4=Easy.
            config: The owning deck's configuration.
            time_taken: Answer time in milliseconds; recorded by the caller.
            now: Review instant, defaults to the current UTC time.

        Raises:
            ValueError: If the rating is not 1-4.
        """
        new_card, _ = self.answer_card_with_state(card, rating, config, now)
        return new_card

    def answer_card_with_state(
        self,
        card: Card,
        rating: int,
        config: DeckConfig,
        now: Optional[datetime.datetime] = None,
    ) -> Tuple[Card, CardState]:
        """Like ``answer_card`` but also returns the state that was applied."""
        rating = validate_rating(rating)
        now = resolve_now(now)
        state = self.next_states(card, config, now).for_rating(rating)
        new_card = self.apply_state(card, state, now)
        new_card.desired_retention = config.desired_retention
        review = state.review if isinstance(state, RelearningState) else state
        if isinstance(review, ReviewState) and review.leeched and review.lapses > card.lapses:
            logger.debug(f"Card {card.id} reached leech threshold at {review.lapses} lapses")
        return new_card, state

    def apply_state(
        self,
        card: Card,
        state: CardState,
        now: Optional[datetime.datetime] = None,
    ) -> Card:
        """Write ``state`` back onto a copy of ``card``."""
        now = resolve_now(now)
        now_secs = to_timestamp(now)
        today = day_number(now, self.day_rollover_hour)

        new_card = card.model_copy(deep=True)
        new_card.reps = card.reps + 1
        new_card.mtime = now_secs
        new_card.last_review = now_secs

        if isinstance(state, NewState):
            new_card.ctype = CardType.New
            new_card.queue = CardQueue.New
            new_card.due = state.position
            new_card.interval = 0
        elif isinstance(state, LearningState):
            new_card.ctype = CardType.Learn
            self._apply_learning(new_card, state, now_secs, today)
        elif isinstance(state, ReviewState):
            new_card.ctype = CardType.Review
            new_card.queue = CardQueue.Review
            new_card.interval = state.scheduled_days
            new_card.due = today + state.scheduled_days
            new_card.ease_factor = state.ease_factor
            new_card.lapses = state.lapses
            new_card.remaining_steps = 0
            new_card.memory_state = state.memory_state
        elif isinstance(state, RelearningState):
            new_card.ctype = CardType.Relearn
            self._apply_learning(new_card, state.learning, now_secs, today)
            new_card.interval = state.review.scheduled_days
            new_card.ease_factor = state.review.ease_factor
            new_card.lapses = state.review.lapses
        else:
            raise TypeError(f"Unknown card state: {state!r}")
        return new_card

    def button_intervals(
        self,
        card: Card,
        config: DeckConfig,
        now: Optional[datetime.datetime] = None,
    ) -> Dict[Rating, str]:
        """Display strings for the four answer buttons, e.g. "10m" or "3d"."""
        states = self.next_states(card, config, now)
        labels = {}
        for rating in Rating:
            labels[rating] = format_interval(_state_interval_days(states.for_rating(rating)))
        return labels

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    def _context(
        self, card: Card, config: DeckConfig, now: datetime.datetime
    ) -> _Context:
        model = self.memory_model(config)
        fsrs = None
        if model is not None:
            retention = card.desired_retention or config.desired_retention
            fsrs = model.next_states(
                card.memory_state, retention, self._days_elapsed(card, now)
            )
        return _Context(
            config=config,
            fsrs=fsrs,
            fuzz_factor=fuzz_factor(fuzz_seed(card.id, card.reps)),
        )

    @staticmethod
    def _days_elapsed(card: Card, now: datetime.datetime) -> int:
        if card.ctype == CardType.New:
            return 0
        last = card.last_review if card.last_review is not None else card.mtime
        if not last:
            return 0
        return max(0, (to_timestamp(now) - last) // SECONDS_PER_DAY)

    def _apply_learning(
        self, card: Card, state: LearningState, now_secs: int, today: int
    ) -> None:
        card.remaining_steps = max(0, state.remaining_steps)
        card.memory_state = state.memory_state
        if state.scheduled_secs >= SECONDS_PER_DAY:
            card.queue = CardQueue.DayLearn
            card.due = today + max(1, state.scheduled_secs // SECONDS_PER_DAY)
        else:
            card.queue = CardQueue.Learn
            card.due = now_secs + state.scheduled_secs

    @staticmethod
    def _fuzz(interval: float, minimum: int, maximum: int, ctx: _Context) -> int:
        return with_review_fuzz(interval, ctx.fuzz_factor, minimum, maximum)

    @staticmethod
    def _memory(ctx: _Context, rating: Rating):
        return ctx.fsrs.for_rating(rating).memory if ctx.fsrs else None

    # ------------------------------------------------------------------
    # New
    # ------------------------------------------------------------------

    def _next_states_new(self, state: NewState, ctx: _Context) -> SchedulingStates:
        return SchedulingStates(
            current=state,
            again=self._new_to_learning(ctx, Rating.Again),
            hard=self._new_to_learning(ctx, Rating.Hard),
            good=self._new_to_learning(ctx, Rating.Good),
            easy=self._graduate(ctx, Rating.Easy),
        )

    def _new_to_learning(self, ctx: _Context, rating: Rating) -> CardState:
        steps = ctx.config.learn_steps
        if not steps:
            return self._graduate(ctx, rating)
        return LearningState(
            remaining_steps=len(steps) - 1,
            scheduled_secs=_step_secs(steps, 0, _DEFAULT_LEARN_STEP_MINUTES),
            memory_state=self._memory(ctx, rating),
        )

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    def _next_states_learning(
        self, state: LearningState, ctx: _Context
    ) -> SchedulingStates:
        return SchedulingStates(
            current=state,
            again=self._learning_step(state, ctx, Rating.Again),
            hard=self._learning_step(state, ctx, Rating.Hard),
            good=self._learning_step(state, ctx, Rating.Good),
            easy=self._graduate(ctx, Rating.Easy),
        )

    def _learning_step(
        self, state: LearningState, ctx: _Context, rating: Rating
    ) -> CardState:
        steps = ctx.config.learn_steps
        if not steps:
            return self._graduate(ctx, rating)
        next_index = _next_step_index(steps, state.remaining_steps, rating)
        if next_index >= len(steps):
            return self._graduate(ctx, rating)
        return LearningState(
            remaining_steps=len(steps) - next_index - 1,
            scheduled_secs=_step_secs(steps, next_index, _DEFAULT_LEARN_STEP_MINUTES),
            memory_state=self._memory(ctx, rating),
        )

    def _graduate(self, ctx: _Context, rating: Rating) -> ReviewState:
        """Learning (or new) card leaving the learning steps for review."""
        config = ctx.config
        if ctx.fsrs is not None:
            interval = ctx.fsrs.for_rating(rating).interval
        elif rating == Rating.Easy:
            interval = config.graduating_interval_easy
        else:
            interval = config.graduating_interval_good
        return ReviewState(
            scheduled_days=self._fuzz(
                round_half_up(interval), 1, config.maximum_review_interval, ctx
            ),
            ease_factor=config.initial_ease,
            lapses=0,
            leeched=False,
            memory_state=self._memory(ctx, rating),
        )

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    def _next_states_review(
        self, state: ReviewState, ctx: _Context
    ) -> SchedulingStates:
        return SchedulingStates(
            current=state,
            again=self._review_again(state, ctx),
            hard=self._review_success(state, ctx, Rating.Hard),
            good=self._review_success(state, ctx, Rating.Good),
            easy=self._review_success(state, ctx, Rating.Easy),
        )

    def _review_again(self, state: ReviewState, ctx: _Context) -> CardState:
        config = ctx.config
        lapses = state.lapses + 1
        leeched = is_leech(lapses, config.leech_threshold)
        ease = _ease(state.ease_factor, EASE_FACTOR_AGAIN_DELTA)
        memory = self._memory(ctx, Rating.Again)

        steps = config.relearn_steps
        if steps:
            return RelearningState(
                learning=LearningState(
                    remaining_steps=len(steps) - 1,
                    scheduled_secs=_step_secs(steps, 0, _DEFAULT_RELEARN_STEP_MINUTES),
                    memory_state=memory,
                ),
                review=ReviewState(
                    scheduled_days=state.scheduled_days,
                    ease_factor=ease,
                    lapses=lapses,
                    leeched=leeched,
                    memory_state=state.memory_state,
                ),
            )

        if ctx.fsrs is not None:
            interval = ctx.fsrs.again.interval
        else:
            interval = state.scheduled_days * config.lapse_multiplier
        minimum = max(1, config.minimum_lapse_interval)
        # A lapse never lengthens the interval.
        maximum = min(
            config.maximum_review_interval,
            max(minimum, state.scheduled_days - 1),
        )
        return ReviewState(
            scheduled_days=self._fuzz(round_half_up(interval), minimum, maximum, ctx),
            ease_factor=ease,
            lapses=lapses,
            leeched=leeched,
            memory_state=memory,
        )

    def _review_success(
        self, state: ReviewState, ctx: _Context, rating: Rating
    ) -> ReviewState:
        config = ctx.config
        days = state.scheduled_days
        if ctx.fsrs is not None:
            base = ctx.fsrs.for_rating(rating).interval
        elif rating == Rating.Hard:
            base = days * config.hard_multiplier * config.interval_multiplier
        elif rating == Rating.Good:
            base = days * state.ease_factor * config.interval_multiplier
        else:
            base = (
                days
                * state.ease_factor
                * config.easy_multiplier
                * config.interval_multiplier
            )

        if rating == Rating.Hard:
            ease = _ease(state.ease_factor, EASE_FACTOR_HARD_DELTA)
        elif rating == Rating.Easy:
            ease = _ease(state.ease_factor, EASE_FACTOR_EASY_DELTA)
        else:
            ease = state.ease_factor

        minimum = days + 1
        interval = round_half_up(max(minimum, base))
        return ReviewState(
            scheduled_days=self._fuzz(
                interval, minimum, config.maximum_review_interval, ctx
            ),
            ease_factor=ease,
            lapses=state.lapses,
            leeched=state.leeched,
            memory_state=self._memory(ctx, rating),
        )

    # ------------------------------------------------------------------
    # Relearning
    # ------------------------------------------------------------------

    def _next_states_relearning(
        self, state: RelearningState, ctx: _Context
    ) -> SchedulingStates:
        return SchedulingStates(
            current=state,
            again=self._relearning_step(state, ctx, Rating.Again),
            hard=self._relearning_step(state, ctx, Rating.Hard),
            good=self._relearning_step(state, ctx, Rating.Good),
            easy=self._relearn_graduate(state, ctx, Rating.Easy),
        )

    def _relearning_step(
        self, state: RelearningState, ctx: _Context, rating: Rating
    ) -> CardState:
        steps = ctx.config.relearn_steps
        if not steps:
            return self._relearn_graduate(state, ctx, rating)
        next_index = _next_step_index(steps, state.learning.remaining_steps, rating)
        if next_index >= len(steps):
            return self._relearn_graduate(state, ctx, rating)
        return RelearningState(
            learning=LearningState(
                remaining_steps=len(steps) - next_index - 1,
                scheduled_secs=_step_secs(
                    steps, next_index, _DEFAULT_RELEARN_STEP_MINUTES
                ),
                memory_state=self._memory(ctx, rating),
            ),
            review=state.review,
        )

    def _relearn_graduate(
        self, state: RelearningState, ctx: _Context, rating: Rating
    ) -> ReviewState:
        """Relearning card returning to review with its pre-lapse ease."""
        config = ctx.config
        review = state.review
        days = review.scheduled_days
        if ctx.fsrs is not None:
            interval = ctx.fsrs.for_rating(rating).interval
        elif rating == Rating.Easy:
            interval = days + 1
        elif rating == Rating.Good:
            interval = days
        else:
            interval = days * config.lapse_multiplier

        if rating == Rating.Easy:
            minimum = days + 1
        else:
            minimum = max(1, config.minimum_lapse_interval)
        return ReviewState(
            scheduled_days=self._fuzz(
                round_half_up(interval), minimum, config.maximum_review_interval, ctx
            ),
            ease_factor=review.ease_factor,
            lapses=review.lapses,
            leeched=review.leeched,
            memory_state=self._memory(ctx, rating),
        )


def _next_step_index(steps: List[float], remaining_steps: int, rating: Rating) -> int:
    """Again restarts, Hard repeats the current step, Good advances one."""
    if rating == Rating.Again:
        return 0
    current = _current_step_index(steps, remaining_steps)
    if rating == Rating.Hard:
        return current
    return current + 1


def _state_interval_days(state: CardState) -> float:
    if isinstance(state, ReviewState):
        return float(state.scheduled_days)
    if isinstance(state, LearningState):
        return state.scheduled_secs / SECONDS_PER_DAY
    if isinstance(state, RelearningState):
        return state.learning.scheduled_secs / SECONDS_PER_DAY
    return 0.0
