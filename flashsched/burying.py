"""
Sibling burying.

Cards generated from the same note are siblings. When a deck enables burying,
showing one sibling pushes the others out of today's queue. A note id of 0
means the card has no note and therefore no siblings.
"""

import logging
from typing import Iterable, List, Set

from .config import DeckConfig
from .models import Card, CardQueue, CardType

logger = logging.getLogger(__name__)

# Learning due values below this are day numbers, above it timestamps.
_TIMESTAMP_THRESHOLD = 1_000_000_000

# Order in which the queue builder gathers each queue.
_GATHER_ORDER = {
    CardQueue.Learn: 0,
    CardQueue.PreviewRepeat: 0,
    CardQueue.DayLearn: 1,
    CardQueue.Review: 2,
    CardQueue.New: 3,
}
_NOT_GATHERED = 999


def gather_order(queue: CardQueue) -> int:
    return _GATHER_ORDER.get(queue, _NOT_GATHERED)


class SiblingTracker:
    """Remembers which notes already have a card in the queue being built."""

    def __init__(self, config: DeckConfig):
        self.bury_new = config.bury_new
        self.bury_reviews = config.bury_reviews
        self.bury_interday_learning = config.bury_interday_learning
        self._seen_notes: Set[int] = set()

    @classmethod
    def after_answer(cls, config: DeckConfig, answered: Card) -> "SiblingTracker":
        """
        Tracker for burying the siblings of a card that was just answered.

        ``answered`` is the card as it was before the answer. Queues gathered
        before its queue are left alone, so answering a new card never buries
        a review or day-learning sibling.
        """
        tracker = cls(config)
        order = gather_order(answered.queue)
        tracker.bury_reviews = tracker.bury_reviews and order <= gather_order(CardQueue.Review)
        tracker.bury_interday_learning = (
            tracker.bury_interday_learning and order <= gather_order(CardQueue.DayLearn)
        )
        tracker.record(answered)
        return tracker

    def _buries(self, card: Card) -> bool:
        if card.queue == CardQueue.New:
            return self.bury_new
        if card.queue == CardQueue.Review:
            return self.bury_reviews
        if card.queue == CardQueue.DayLearn:
            return self.bury_interday_learning
        return False

    def should_bury(self, card: Card) -> bool:
        return bool(card.note_id) and card.note_id in self._seen_notes and self._buries(card)

    def record(self, card: Card) -> None:
        if card.note_id:
            self._seen_notes.add(card.note_id)

    def admit(self, card: Card) -> bool:
        """Record ``card`` and return True, or return False if it is buried."""
        if self.should_bury(card):
            logger.debug(f"Burying card {card.id}, sibling of note {card.note_id}")
            return False
        self.record(card)
        return True


def bury_siblings(cards: Iterable[Card], answered: Card, config: DeckConfig) -> List[Card]:
    """
    Returns copies of ``answered``'s siblings moved to the scheduler-buried
    queue, according to the deck's burying options.

    ``answered`` must be the card as it was before the answer, since its
    queue decides which sibling queues may still be buried.
    """
    tracker = SiblingTracker.after_answer(config, answered)
    buried = []
    for card in cards:
        if card.id == answered.id:
            continue
        if tracker.should_bury(card):
            buried.append(card.model_copy(update={"queue": CardQueue.SchedBuried}))
    return buried


def _restored_queue(card: Card) -> CardQueue:
    if card.ctype == CardType.New:
        return CardQueue.New
    if card.ctype == CardType.Review:
        return CardQueue.Review
    if card.due > _TIMESTAMP_THRESHOLD:
        return CardQueue.Learn
    return CardQueue.DayLearn


def unbury_cards(cards: Iterable[Card], include_user_buried: bool = True) -> List[Card]:
    """Returns copies of the buried cards in ``cards``, restored to their queue."""
    queues = {CardQueue.SchedBuried}
    if include_user_buried:
        queues.add(CardQueue.UserBuried)
    return [
        card.model_copy(update={"queue": _restored_queue(card)})
        for card in cards
        if card.queue in queues
    ]
