"""
Small helpers around Card records: creation, due checks and display.
"""

import datetime
import itertools
import time
from typing import Optional

from .constants import DEFAULT_DAY_ROLLOVER_HOUR, INITIAL_EASE_FACTOR
from .models import EXCLUDED_QUEUES, Card, CardQueue, CardType, MemoryState
from .timing import day_number, resolve_now, to_timestamp

_card_counter = itertools.count(1)
_note_counter = itertools.count(1)


def generate_card_id() -> int:
    """Millisecond timestamp scaled up with a per-process counter."""
    return int(time.time() * 1000) * 1000 + next(_card_counter)


def generate_note_id() -> int:
    return int(time.time() * 1000) * 1000 + next(_note_counter)


def create_new_card(
    front: str,
    back: str,
    deck_id: int = 1,
    card_id: Optional[int] = None,
    note_id: Optional[int] = None,
    position: int = 0,
    now: Optional[datetime.datetime] = None,
) -> Card:
    """Returns a card in the New state, ready to be queued."""
    return Card(
        id=card_id if card_id is not None else generate_card_id(),
        note_id=note_id if note_id is not None else generate_note_id(),
        deck_id=deck_id,
        front=front,
        back=back,
        ctype=CardType.New,
        queue=CardQueue.New,
        due=position,
        ease_factor=INITIAL_EASE_FACTOR,
        mtime=to_timestamp(resolve_now(now)),
    )


def is_card_due(
    card: Card,
    now: Optional[datetime.datetime] = None,
    rollover_hour: int = DEFAULT_DAY_ROLLOVER_HOUR,
) -> bool:
    """New cards are always due; buried and suspended cards never are."""
    if card.queue in EXCLUDED_QUEUES:
        return False
    if card.queue == CardQueue.New:
        return True
    now = resolve_now(now)
    if card.queue in (CardQueue.Learn, CardQueue.PreviewRepeat):
        return card.due <= to_timestamp(now)
    return card.due <= day_number(now, rollover_hour)


def days_until_due(
    card: Card,
    now: Optional[datetime.datetime] = None,
    rollover_hour: int = DEFAULT_DAY_ROLLOVER_HOUR,
) -> int:
    """Days until a review or interday-learning card is due, else 0."""
    if card.queue not in (CardQueue.Review, CardQueue.DayLearn):
        return 0
    return card.due - day_number(resolve_now(now), rollover_hour)


def format_interval(days: float) -> str:
    """Format an interval in days for display: 10m, 3d, 4mo, 1.2y."""
    if days <= 0:
        return "New"
    if days < 1:
        return f"{max(1, round(days * 1440))}m"
    if days < 30:
        return f"{round(days)}d"
    if days < 365:
        return f"{round(days / 30)}mo"
    return f"{days / 365:.1f}y"


def normalized_difficulty(memory_state: MemoryState) -> float:
    """Difficulty mapped onto 0.0-1.0."""
    return (memory_state.difficulty - 1.0) / 9.0


def ease_factor_from_storage(stored: int) -> float:
    """2500 -> 2.5"""
    return stored / 1000


def ease_factor_to_storage(ease_factor: float) -> int:
    """2.5 -> 2500"""
    return int(round(ease_factor * 1000))
