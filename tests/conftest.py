import datetime
from typing import Callable

import pytest

from flashsched.config import DeckConfig
from flashsched.models import Card, CardQueue, CardType, Deck, MemoryState
from flashsched.scheduler import CardStateMachine
from flashsched.timing import day_number, to_timestamp

UTC = datetime.timezone.utc

# Fixed review instant shared by the suite.
NOW = datetime.datetime(2024, 3, 15, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def now() -> datetime.datetime:
    return NOW


@pytest.fixture
def now_secs() -> int:
    return to_timestamp(NOW)


@pytest.fixture
def today() -> int:
    return day_number(NOW)


@pytest.fixture
def config() -> DeckConfig:
    """Default deck config, FSRS enabled."""
    return DeckConfig()


@pytest.fixture
def sm2_config() -> DeckConfig:
    """Deck config with FSRS disabled, so SM-2 fallbacks apply."""
    return DeckConfig(fsrs_params=())


@pytest.fixture
def state_machine() -> CardStateMachine:
    return CardStateMachine()


@pytest.fixture
def new_card() -> Card:
    return Card(id=1001, note_id=1, deck_id=1, front="Q", back="A")


@pytest.fixture
def make_review_card(now_secs: int, today: int) -> Callable[..., Card]:
    """
    Factory for a review card due today that was last reviewed
    ``interval`` days ago.
    """

    def _make(
        card_id: int = 2001,
        interval: int = 10,
        ease_factor: float = 2.5,
        lapses: int = 0,
        due: int = None,
        memory_state: MemoryState = None,
        note_id: int = 0,
    ) -> Card:
        return Card(
            id=card_id,
            note_id=note_id,
            deck_id=1,
            ctype=CardType.Review,
            queue=CardQueue.Review,
            due=today if due is None else due,
            interval=interval,
            ease_factor=ease_factor,
            reps=5,
            lapses=lapses,
            memory_state=memory_state,
            last_review=now_secs - interval * 86400,
            mtime=now_secs - interval * 86400,
        )

    return _make


@pytest.fixture
def make_deck() -> Callable[..., Deck]:
    def _make(cards, config: DeckConfig = None, deck_id: int = 1) -> Deck:
        return Deck(
            id=deck_id,
            name="Test Deck",
            config=config or DeckConfig(),
            cards=list(cards),
        )

    return _make
