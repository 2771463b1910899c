"""
Builds the study queue for a deck.

A build partitions a deck's cards into an ordered main queue (new, review and
interday-learning cards) and a time-ordered list of intraday learning cards.
Builds are pure views over the deck: cards are never modified, and building
twice at the same instant yields the same order.
"""

import bisect
import datetime
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Generic, Iterator, List, Optional, Sequence, TypeVar

from .burying import SiblingTracker
from .config import (
    DeckConfig,
    NewCardGatherPriority,
    NewCardInsertOrder,
    NewCardSortOrder,
    ReviewCardOrder,
    ReviewMix,
)
from .constants import (
    DEFAULT_DAY_ROLLOVER_HOUR,
    DEFAULT_LEARN_AHEAD_SECS,
    INITIAL_DIFFICULTY,
    SECONDS_PER_DAY,
)
from .fuzz import fnv_hash
from .models import EXCLUDED_QUEUES, Card, CardQueue, Deck
from .timing import day_number, resolve_now, to_timestamp

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (card, today, fsrs_enabled) -> sort key; lower values are shown first.
OverduenessKey = Callable[[Card, int, bool], float]


class QueueEntryKind(str, Enum):
    New = "new"
    DayLearning = "day-learning"
    Review = "review"


@dataclass(frozen=True)
class QueueEntry:
    kind: QueueEntryKind
    card: Card


@dataclass(frozen=True)
class LearningQueueEntry:
    card: Card
    due: int  # seconds


def relative_overdueness(card: Card, today: int, fsrs_enabled: bool) -> float:
    """
    Default key for the relative-overdueness order.

    With FSRS and a memory state this is the approximate retrievability
    0.9^(t/S); otherwise the SM-2 measure -(1 + elapsed / interval).
    """
    days_overdue = today - card.due
    if fsrs_enabled and card.memory_state is not None:
        elapsed = days_overdue + card.interval
        return 0.9 ** (elapsed / card.memory_state.stability)
    return -(1 + (days_overdue + 0.001) / max(1, card.interval))


class Intersperser(Generic[T]):
    """
    Spreads the items of ``two`` evenly through ``one``, keeping the order
    within each list.
    """

    def __init__(self, one: Sequence[T], two: Sequence[T]):
        self.one = one
        self.two = two
        self.ratio = (len(one) + 1) / (len(two) + 1)

    def __iter__(self) -> Iterator[T]:
        one_idx = two_idx = 0
        while one_idx < len(self.one) or two_idx < len(self.two):
            if two_idx >= len(self.two):
                take_two = False
            elif one_idx >= len(self.one):
                take_two = True
            else:
                take_two = (two_idx + 1) * self.ratio < one_idx + 1
            if take_two:
                yield self.two[two_idx]
                two_idx += 1
            else:
                yield self.one[one_idx]
                one_idx += 1


def mix(reviews: List[T], other: List[T], how: ReviewMix) -> List[T]:
    """Combine ``other`` into ``reviews`` according to a ReviewMix option."""
    if how == ReviewMix.ReviewsFirst:
        return reviews + other
    if how == ReviewMix.NewFirst:
        return other + reviews
    if how == ReviewMix.ReviewsOnly:
        return list(reviews)
    return list(Intersperser(reviews, other))


def sort_new_cards(cards: List[Card], config: DeckConfig, today: int) -> List[Card]:
    def position(card: Card) -> int:
        if config.new_card_insert_order == NewCardInsertOrder.Random:
            return fnv_hash(card.note_id)
        return card.due

    priority = config.new_card_gather_priority
    if priority == NewCardGatherPriority.PositionLowestFirst:
        gathered = sorted(cards, key=lambda c: (position(c), c.id))
    elif priority == NewCardGatherPriority.PositionHighestFirst:
        gathered = sorted(cards, key=lambda c: (-position(c), c.id))
    else:
        gathered = sorted(cards, key=lambda c: (c.deck_id, position(c), c.id))

    order = config.new_card_sort_order
    if order == NewCardSortOrder.Random:
        return sorted(gathered, key=lambda c: fnv_hash(c.id, today))
    if order == NewCardSortOrder.Reverse:
        return gathered[::-1]
    # sorted() is stable, so gather order holds within each template.
    return sorted(gathered, key=lambda c: c.template_idx)


def sort_review_cards(
    cards: List[Card],
    order: ReviewCardOrder,
    today: int,
    fsrs_enabled: bool = True,
    overdueness_key: Optional[OverduenessKey] = None,
) -> List[Card]:
    """Sort due review cards; ties fall back to a per-day hash of the card id."""

    def tiebreak(card: Card) -> int:
        return fnv_hash(card.id, today)

    def difficulty(card: Card) -> float:
        if card.memory_state is None:
            return INITIAL_DIFFICULTY
        return card.memory_state.difficulty

    overdue = overdueness_key or relative_overdueness

    def key(c: Card) -> tuple:
        if order == ReviewCardOrder.DueDate:
            return (c.due, c.deck_id, tiebreak(c))
        if order == ReviewCardOrder.DueDateThenRandom:
            return (c.due, tiebreak(c))
        if order == ReviewCardOrder.DeckThenDueDate:
            return (c.deck_id, c.due, tiebreak(c))
        if order == ReviewCardOrder.Random:
            return (tiebreak(c),)
        if order == ReviewCardOrder.IntervalsAscending:
            return (c.interval, tiebreak(c))
        if order == ReviewCardOrder.IntervalsDescending:
            return (-c.interval, tiebreak(c))
        # With FSRS, ease is read as inverse difficulty.
        if order == ReviewCardOrder.EaseAscending:
            if fsrs_enabled:
                return (-difficulty(c), tiebreak(c))
            return (c.ease_factor, tiebreak(c))
        if order == ReviewCardOrder.EaseDescending:
            if fsrs_enabled:
                return (difficulty(c), tiebreak(c))
            return (-c.ease_factor, tiebreak(c))
        return (overdue(c, today, fsrs_enabled), tiebreak(c))

    return sorted(cards, key=key)


@dataclass
class CardQueues:
    """
    The live queue of a study session.

    ``intraday`` stays sorted by due time. The learning cutoff splits it into
    cards due now and cards that may be shown ahead of time.
    """

    main_queue: List[QueueEntry]
    intraday: List[LearningQueueEntry]
    today: int
    learning_cutoff: int
    learn_ahead_secs: int = DEFAULT_LEARN_AHEAD_SECS
    _dues: List[int] = field(default_factory=list, repr=False)

    def __post_init__(self):
        self.intraday.sort(key=lambda e: e.due)
        self._dues = [e.due for e in self.intraday]

    def update_learning_cutoff(self, now: Optional[datetime.datetime] = None) -> int:
        self.learning_cutoff = to_timestamp(resolve_now(now))
        return self.learning_cutoff

    @property
    def learn_ahead_cutoff(self) -> int:
        return self.learning_cutoff + self.learn_ahead_secs

    def intraday_now(self) -> List[LearningQueueEntry]:
        return [e for e in self.intraday if e.due <= self.learning_cutoff]

    def intraday_ahead(self) -> List[LearningQueueEntry]:
        return [
            e
            for e in self.intraday
            if self.learning_cutoff < e.due <= self.learn_ahead_cutoff
        ]

    def find_intraday(self, card_id: int) -> Optional[LearningQueueEntry]:
        return next((e for e in self.intraday if e.card.id == card_id), None)

    def find_main(self, card_id: int) -> Optional[QueueEntry]:
        return next((e for e in self.main_queue if e.card.id == card_id), None)

    def remove_intraday_learning_card(self, card_id: int) -> Optional[LearningQueueEntry]:
        for idx, entry in enumerate(self.intraday):
            if entry.card.id == card_id:
                del self.intraday[idx]
                del self._dues[idx]
                return entry
        return None

    def remove_main_card(self, card_id: int) -> Optional[QueueEntry]:
        for idx, entry in enumerate(self.main_queue):
            if entry.card.id == card_id:
                return self.main_queue.pop(idx)
        return None

    def requeue_learning_card(self, card: Card) -> LearningQueueEntry:
        """
        Insert an answered learning card back in due order.

        A card that would come straight back while another learning card is
        waiting is moved to just after that card, if that is still inside the
        learn-ahead window.
        """
        self.remove_intraday_learning_card(card.id)
        due = card.due
        cutoff = self.learn_ahead_cutoff
        if due <= cutoff and self.intraday:
            pending = self.intraday[0]
            if pending.due >= due and pending.due + 1 < cutoff:
                due = pending.due + 1

        entry = LearningQueueEntry(card=card, due=due)
        idx = bisect.bisect_right(self._dues, due)
        self.intraday.insert(idx, entry)
        self._dues.insert(idx, due)
        logger.debug(f"Requeued learning card {card.id} due at {due}")
        return entry

    def is_empty(self) -> bool:
        return not self.main_queue and not self.intraday_now() and not self.intraday_ahead()


class CardQueueBuilder:
    """Gathers, sorts and mixes a deck's due cards into CardQueues."""

    def __init__(
        self,
        deck: Deck,
        learn_ahead_secs: int = DEFAULT_LEARN_AHEAD_SECS,
        overdueness_key: Optional[OverduenessKey] = None,
        day_rollover_hour: int = DEFAULT_DAY_ROLLOVER_HOUR,
    ):
        self.deck = deck
        self.learn_ahead_secs = learn_ahead_secs
        self.overdueness_key = overdueness_key
        self.day_rollover_hour = day_rollover_hour

    def build(self, now: Optional[datetime.datetime] = None) -> CardQueues:
        now = resolve_now(now)
        now_secs = to_timestamp(now)
        today = day_number(now, self.day_rollover_hour)
        config = self.deck.config

        new_cards: List[Card] = []
        review_cards: List[Card] = []
        day_learning: List[Card] = []
        intraday: List[LearningQueueEntry] = []

        for card in self.deck.cards:
            if card.queue in EXCLUDED_QUEUES:
                continue
            if card.queue == CardQueue.New:
                new_cards.append(card)
            elif card.queue in (CardQueue.Learn, CardQueue.PreviewRepeat):
                if card.due < now_secs + SECONDS_PER_DAY:
                    intraday.append(LearningQueueEntry(card=card, due=card.due))
            elif card.queue == CardQueue.DayLearn:
                if card.due <= today:
                    day_learning.append(card)
            elif card.queue == CardQueue.Review:
                if card.due <= today:
                    review_cards.append(card)

        intraday.sort(key=lambda e: (e.due, e.card.id))
        day_learning.sort(key=lambda c: (c.due, fnv_hash(c.id, today)))
        review_cards = sort_review_cards(
            review_cards,
            config.review_order,
            today,
            config.fsrs_enabled,
            self.overdueness_key,
        )
        new_cards = sort_new_cards(new_cards, config, today)

        # Learning cards claim their notes first, then reviews, then new.
        tracker = SiblingTracker(config)
        for entry in intraday:
            tracker.record(entry.card)
        day_learning = [c for c in day_learning if tracker.admit(c)]
        review_cards = [c for c in review_cards if tracker.admit(c)]
        new_cards = [c for c in new_cards if tracker.admit(c)]

        reviews = [QueueEntry(QueueEntryKind.Review, c) for c in review_cards]
        interday = [QueueEntry(QueueEntryKind.DayLearning, c) for c in day_learning]
        new = [QueueEntry(QueueEntryKind.New, c) for c in new_cards]
        main_queue = mix(mix(reviews, interday, config.interday_learning_mix), new, config.new_mix)

        logger.debug(
            f"Built queue for deck {self.deck.id}: {len(main_queue)} main, "
            f"{len(intraday)} intraday learning"
        )
        return CardQueues(
            main_queue=main_queue,
            intraday=intraday,
            today=today,
            learning_cutoff=now_secs,
            learn_ahead_secs=self.learn_ahead_secs,
        )
