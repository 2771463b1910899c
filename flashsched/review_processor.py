"""
Shared review processing logic for flashsched.

The ReviewProcessor is the single place where a rating is applied to a card
and the matching ReviewLog is produced. Both the study session manager and the
CLI go through it, so every answer is validated, scheduled and logged the same
way.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple
from uuid import UUID

from .config import DeckConfig
from .models import Card, ReviewLog
from .scheduler import CardStateMachine, review_kind_for, validate_rating
from .states import CardState, RelearningState, ReviewState
from .timing import resolve_now

# Initialize logger
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnswerResult:
    """
    The updated card, its review log entry and the state it moved to.

    ``buried`` holds sibling copies moved to the scheduler-buried queue by the
    answer; the caller persists them along with ``card``.
    """

    card: Card
    log: ReviewLog
    state: CardState
    buried: Tuple[Card, ...] = ()

    @property
    def leeched(self) -> bool:
        review = self.state.review if isinstance(self.state, RelearningState) else self.state
        return isinstance(review, ReviewState) and review.leeched


class ReviewProcessor:
    """
    Processes review submissions with consistent logic across all review
    workflows.
    """

    def __init__(self, state_machine: Optional[CardStateMachine] = None):
        """
        Initialize the ReviewProcessor.

        Args:
            state_machine: State machine used to compute next card states.
                A default CardStateMachine is created when omitted.
        """
        self.state_machine = state_machine or CardStateMachine()

    def process_review(
        self,
        card: Card,
        rating: int,
        config: DeckConfig,
        time_taken: int = 0,
        reviewed_at: Optional[datetime] = None,
        session_uuid: Optional[UUID] = None,
    ) -> AnswerResult:
        """
        Process a review submission.

        This method encapsulates the core review processing steps:
        1. Validate the rating and resolve the timestamp
        2. Apply the rating through the state machine
        3. Build the ReviewLog entry for the answer

        Args:
            card: The card being reviewed. Not modified.
            rating: User's rating (1-4: Again, Hard, Good, Easy)
            config: Scheduling configuration of the card's deck
            time_taken: Caller-measured answer time in milliseconds
            reviewed_at: Review timestamp (defaults to current time)
            session_uuid: Optional session UUID the log is linked to

        Returns:
            AnswerResult holding the updated card, the log and the new state

        Raises:
            ValueError: If rating is invalid
        """
        ts = resolve_now(reviewed_at)

        logger.debug(f"Processing review for card {card.id} with rating {rating}")

        try:
            rating = validate_rating(rating)
            updated_card, state = self.state_machine.answer_card_with_state(
                card, rating, config, now=ts
            )

            log = ReviewLog(
                card_id=card.id,
                session_uuid=session_uuid,
                reviewed_at=ts,
                rating=rating,
                time_taken_ms=max(0, int(time_taken)),
                card_type=card.ctype,
                review_kind=review_kind_for(card),
                last_interval=card.interval,
                new_interval=updated_card.interval,
                ease_factor=updated_card.ease_factor,
                memory_state=updated_card.memory_state,
            )

            logger.debug(
                f"Review processed successfully for card {card.id}. "
                f"Queue: {updated_card.queue.name}, due: {updated_card.due}, "
                f"interval: {updated_card.interval}"
            )
            return AnswerResult(card=updated_card, log=log, state=state)

        except Exception:
            logger.exception(f"Failed to process review for card {card.id}")
            raise
