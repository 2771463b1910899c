"""
Study session management for flashsched.

The StudySessionManager owns one study session over a deck: it builds the
live queue, hands out cards in priority order, applies answers through the
shared ReviewProcessor, puts cards that are still learning back into the
queue, and enforces the deck's daily limits.

Nothing is persisted here. Updated cards and review logs are returned to the
caller, who owns storage.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from .burying import bury_siblings
from .config import DeckConfig, EngineSettings
from .exceptions import InvalidStateError
from .models import Card, CardCounts, CardQueue, Deck, StudySession
from .queue_builder import (
    CardQueueBuilder,
    CardQueues,
    OverduenessKey,
    QueueEntry,
    QueueEntryKind,
)
from .review_processor import AnswerResult, ReviewProcessor
from .scheduler import CardStateMachine
from .timing import resolve_now

# Initialize logger
logger = logging.getLogger(__name__)


class StudySessionManager:
    """
    Manages a study session for one deck.

    A manager is Inactive until ``start_session`` finds due cards, and
    returns to Inactive on ``end_session`` or when the queue runs out.
    Calls must be serialized by the caller.
    """

    def __init__(
        self,
        review_processor: Optional[ReviewProcessor] = None,
        settings: Optional[EngineSettings] = None,
        overdueness_key: Optional[OverduenessKey] = None,
    ):
        """
        Create a StudySessionManager.

        Args:
            review_processor: Processor used to apply ratings. A default one
                is created when omitted.
            settings: Engine settings (learn-ahead window, day rollover).
            overdueness_key: Optional sort key for the relative-overdueness
                review order.
        """
        self.settings = settings or EngineSettings()
        self.review_processor = review_processor or ReviewProcessor(
            CardStateMachine(day_rollover_hour=self.settings.day_rollover_hour)
        )
        self.overdueness_key = overdueness_key

        self.deck: Optional[Deck] = None
        self.session: Optional[StudySession] = None
        self.queues: Optional[CardQueues] = None
        self.current_card: Optional[Card] = None
        self._last_summary: Optional[Dict[str, Any]] = None

    @property
    def is_active(self) -> bool:
        return self.session is not None

    @property
    def config(self) -> DeckConfig:
        if self.deck is None:
            raise InvalidStateError("No active session. Start a session first.")
        return self.deck.config

    def start_session(
        self, deck: Deck, now: Optional[datetime] = None
    ) -> Optional[StudySession]:
        """
        Build the queue for ``deck`` and start a session over it.

        Returns:
            The new StudySession, or None when nothing is due. In that case
            the manager stays inactive.

        Raises:
            InvalidStateError: If a session is already active.
        """
        if self.is_active:
            raise InvalidStateError(
                "A session is already active. End the current session first."
            )
        now = resolve_now(now)

        queues = CardQueueBuilder(
            deck,
            learn_ahead_secs=self.settings.learn_ahead_secs,
            overdueness_key=self.overdueness_key,
            day_rollover_hour=self.settings.day_rollover_hour,
        ).build(now)

        self.deck = deck
        self.queues = queues
        self.session = StudySession(deck_id=deck.id, start_ts=now)
        self.current_card = None

        if self._select() is None:
            logger.info(f"Nothing due in deck {deck.id}; no session started")
            self.deck = None
            self.queues = None
            self.session = None
            return None

        counts = self.remaining_counts()
        logger.info(
            f"Started session {self.session.session_uuid} for deck {deck.id} "
            f"(new={counts.new}, learning={counts.learning}, review={counts.review})"
        )
        return self.session

    def get_next_card(self, now: Optional[datetime] = None) -> Optional[Card]:
        """
        Select the next card to show.

        Priority: learning cards due now, then the main queue, then learning
        cards inside the learn-ahead window.

        Returns:
            The next Card, or None when the session is exhausted (which ends
            it) or no session is active.
        """
        if not self.is_active:
            return None
        now = resolve_now(now)
        self.queues.update_learning_cutoff(now)

        card = self._select()
        if card is None:
            logger.info("Study queue is empty. Ending session.")
            self.end_session(now)
            return None
        self.current_card = card
        return card

    def answer_card(
        self,
        card: Card,
        rating: int,
        time_taken: int = 0,
        now: Optional[datetime] = None,
    ) -> AnswerResult:
        """
        Apply ``rating`` to a card from the live queue.

        Args:
            card: The card being answered; must be in the live queue.
            rating: 1=Again, 2=Hard, 3=Good, 4=Easy.
            time_taken: Answer time in milliseconds, stored on the log.
            now: Review instant, defaults to the current UTC time.

        Returns:
            AnswerResult with the updated card, its ReviewLog and any
            siblings the answer buried.

        Raises:
            InvalidStateError: If no session is active or the card is not in
                the live queue.
            ValueError: If the rating is invalid.
        """
        if not self.is_active:
            raise InvalidStateError("No active session. Start a session first.")

        intraday_entry = self.queues.find_intraday(card.id)
        main_entry = None if intraday_entry else self.queues.find_main(card.id)
        if intraday_entry is None and main_entry is None:
            raise InvalidStateError(
                f"Card {card.id} is not in the current study queue."
            )
        queued = intraday_entry.card if intraday_entry else main_entry.card

        result = self.review_processor.process_review(
            card=queued,
            rating=rating,
            config=self.config,
            time_taken=time_taken,
            reviewed_at=now,
            session_uuid=self.session.session_uuid,
        )

        if intraday_entry is not None:
            self.queues.remove_intraday_learning_card(card.id)
            self.session.learning_studied += 1
        else:
            self.queues.remove_main_card(card.id)
            self._count_main_answer(main_entry)
        self.session.reviewed += 1
        self.current_card = None

        if result.card.queue == CardQueue.Learn:
            self.queues.requeue_learning_card(result.card)
        buried = self._bury_queued_siblings(queued)
        if buried:
            result = replace(result, buried=tuple(buried))

        logger.debug(
            f"Answered card {card.id} with rating {result.log.rating.name} "
            f"in session {self.session.session_uuid}"
        )
        return result

    def remaining_counts(self) -> CardCounts:
        """
        Cards left in the session, including the one on display. New and
        review counts are capped by what the daily limits still allow.
        """
        if not self.is_active:
            return CardCounts()
        new = review = learning = 0
        for entry in self.queues.main_queue:
            if entry.kind == QueueEntryKind.New:
                new += 1
            elif entry.kind == QueueEntryKind.Review:
                review += 1
            else:
                learning += 1
        learning += len(self.queues.intraday_now()) + len(self.queues.intraday_ahead())
        return CardCounts(
            new=min(new, self._new_allowance()),
            learning=learning,
            review=min(review, self._review_allowance()),
        )

    def end_session(self, now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
        """
        End the active session.

        Returns:
            dict with "session_uuid", "deck_id", "reviewed" and
            "duration_ms". If no session is active, the summary of the last
            session is returned again, or None if there never was one.
        """
        if not self.is_active:
            return self._last_summary

        self.session.end_session(resolve_now(now))
        self._last_summary = {
            "session_uuid": self.session.session_uuid,
            "deck_id": self.session.deck_id,
            "reviewed": self.session.reviewed,
            "duration_ms": self.session.total_duration_ms,
        }
        logger.info(
            f"Ended session {self.session.session_uuid}: "
            f"{self.session.reviewed} cards in {self.session.total_duration_ms} ms"
        )
        self.session = None
        self.queues = None
        self.deck = None
        self.current_card = None
        return self._last_summary

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _new_allowance(self) -> int:
        return max(0, self.config.new_per_day - self.session.new_studied)

    def _review_allowance(self) -> int:
        return max(0, self.config.reviews_per_day - self.session.reviews_studied)

    def _allowed(self, entry: QueueEntry) -> bool:
        if entry.kind == QueueEntryKind.New:
            return self._new_allowance() > 0
        if entry.kind == QueueEntryKind.Review:
            return self._review_allowance() > 0
        return True

    def _select(self) -> Optional[Card]:
        due_now = self.queues.intraday_now()
        if due_now:
            return due_now[0].card
        for entry in self.queues.main_queue:
            if self._allowed(entry):
                return entry.card
        ahead = self.queues.intraday_ahead()
        if ahead:
            return ahead[0].card
        return None

    def _count_main_answer(self, entry: QueueEntry) -> None:
        if entry.kind == QueueEntryKind.New:
            self.session.new_studied += 1
        elif entry.kind == QueueEntryKind.Review:
            self.session.reviews_studied += 1
        else:
            self.session.learning_studied += 1

    def _bury_queued_siblings(self, answered: Card) -> List[Card]:
        buried = bury_siblings(
            (entry.card for entry in self.queues.main_queue), answered, self.config
        )
        for card in buried:
            self.queues.remove_main_card(card.id)
            logger.debug(f"Buried sibling card {card.id} for today")
        return buried
