"""
Tests for the StudySessionManager.

The manager drives one study session over a deck: it hands out cards in
priority order, applies answers, requeues learning cards and enforces the
deck's daily limits.
"""

import datetime
from unittest.mock import MagicMock

import pytest

from flashsched.config import DeckConfig, EngineSettings, ReviewCardOrder, ReviewMix
from flashsched.exceptions import InvalidStateError
from flashsched.models import Card, CardQueue, CardType, Rating, ReviewKind, StudySession
from flashsched.review_processor import ReviewProcessor
from flashsched.session_manager import StudySessionManager


def _learning(card_id, due, remaining_steps=0, note_id=0):
    return Card(
        id=card_id,
        note_id=note_id,
        ctype=CardType.Learn,
        queue=CardQueue.Learn,
        due=due,
        remaining_steps=remaining_steps,
        reps=1,
    )


def _minutes(now, minutes):
    return now + datetime.timedelta(minutes=minutes)


@pytest.fixture
def manager() -> StudySessionManager:
    return StudySessionManager(settings=EngineSettings(learn_ahead_secs=1200))


class TestSessionLifecycle:
    def test_start_session(self, manager, make_deck, new_card, now):
        session = manager.start_session(make_deck([new_card]), now)

        assert isinstance(session, StudySession)
        assert session.deck_id == 1
        assert session.start_ts == now
        assert manager.is_active

    def test_nothing_due_starts_no_session(self, manager, make_deck, make_review_card, today, now):
        deck = make_deck([make_review_card(due=today + 3)])

        assert manager.start_session(deck, now) is None
        assert not manager.is_active
        assert manager.get_next_card(now) is None

    def test_start_twice_raises(self, manager, make_deck, new_card, now):
        manager.start_session(make_deck([new_card]), now)
        with pytest.raises(InvalidStateError):
            manager.start_session(make_deck([new_card]), now)

    def test_end_session_before_start_returns_none(self, manager):
        assert manager.end_session() is None

    def test_end_session_is_idempotent(self, manager, make_deck, new_card, now):
        session = manager.start_session(make_deck([new_card]), now)
        summary = manager.end_session(_minutes(now, 5))

        assert summary["session_uuid"] == session.session_uuid
        assert summary["deck_id"] == 1
        assert summary["reviewed"] == 0
        assert summary["duration_ms"] == 5 * 60 * 1000
        assert not manager.is_active
        assert manager.end_session() is summary

    def test_answer_without_session_raises(self, manager, new_card):
        with pytest.raises(InvalidStateError, match="No active session"):
            manager.answer_card(new_card, Rating.Good)


class TestStudyFlow:
    def test_new_card_through_learning_steps(self, manager, make_deck, new_card, now, today):
        manager.start_session(make_deck([new_card]), now)

        card = manager.get_next_card(now)
        assert card.id == new_card.id
        first = manager.answer_card(card, Rating.Good, now=now)
        assert first.card.queue == CardQueue.Learn

        # The learning card is shown again inside the learn-ahead window.
        card = manager.get_next_card(_minutes(now, 1))
        assert card.id == new_card.id
        second = manager.answer_card(card, Rating.Good, now=_minutes(now, 1))
        assert second.card.remaining_steps == 0

        card = manager.get_next_card(_minutes(now, 11))
        third = manager.answer_card(card, Rating.Good, now=_minutes(now, 11))
        assert third.card.ctype == CardType.Review
        assert third.card.due >= today + 1

        session = manager.session
        assert session.reviewed == 3
        assert session.new_studied == 1
        assert session.learning_studied == 2

        assert manager.get_next_card(_minutes(now, 12)) is None
        assert not manager.is_active
        assert manager.end_session()["reviewed"] == 3

    def test_priority_order(self, manager, make_deck, make_review_card, now, now_secs, today):
        deck = make_deck(
            [
                _learning(11, now_secs + 600),
                make_review_card(card_id=1, due=today),
                _learning(10, now_secs - 10),
            ]
        )
        manager.start_session(deck, now)

        shown = []
        while (card := manager.get_next_card(now)) is not None:
            shown.append(card.id)
            manager.answer_card(card, Rating.Easy, now=now)
        assert shown == [10, 1, 11]

    def test_remaining_counts(self, manager, make_deck, make_review_card, new_card, now, now_secs, today):
        deck = make_deck(
            [
                make_review_card(card_id=1, due=today),
                make_review_card(card_id=2, due=today - 1),
                new_card,
                _learning(10, now_secs - 10),
            ]
        )
        manager.start_session(deck, now)
        counts = manager.remaining_counts()

        assert (counts.new, counts.learning, counts.review) == (1, 1, 2)
        assert counts.total == 4

    def test_again_requeues_card(self, manager, make_deck, make_review_card, now, today):
        manager.start_session(make_deck([make_review_card(card_id=1, due=today)]), now)

        card = manager.get_next_card(now)
        result = manager.answer_card(card, Rating.Again, now=now)
        assert result.card.ctype == CardType.Relearn

        assert manager.get_next_card(_minutes(now, 10)).id == 1
        assert manager.session.reviews_studied == 1

    def test_answer_unknown_card_raises(self, manager, make_deck, new_card, now):
        manager.start_session(make_deck([new_card]), now)
        with pytest.raises(InvalidStateError, match="not in the current study queue"):
            manager.answer_card(Card(id=999), Rating.Good, now=now)

    def test_invalid_rating_keeps_card_queued(self, manager, make_deck, new_card, now):
        manager.start_session(make_deck([new_card]), now)
        card = manager.get_next_card(now)

        with pytest.raises(ValueError):
            manager.answer_card(card, 5, now=now)

        assert manager.session.reviewed == 0
        assert manager.get_next_card(now).id == card.id

    def test_review_log_fields(self, manager, make_deck, make_review_card, now, today):
        session = manager.start_session(
            make_deck([make_review_card(card_id=1, due=today, interval=10)]), now
        )
        card = manager.get_next_card(now)
        result = manager.answer_card(card, Rating.Good, time_taken=4200, now=now)

        log = result.log
        assert log.card_id == 1
        assert log.session_uuid == session.session_uuid
        assert log.rating == Rating.Good
        assert log.time_taken_ms == 4200
        assert log.card_type == CardType.Review
        assert log.review_kind == ReviewKind.Review
        assert log.last_interval == 10
        assert log.new_interval == result.card.interval
        assert log.reviewed_at == now

    def test_leech_is_reported(self, manager, make_deck, make_review_card, now, today):
        manager.start_session(make_deck([make_review_card(card_id=1, due=today, lapses=7)]), now)
        card = manager.get_next_card(now)
        result = manager.answer_card(card, Rating.Again, now=now)

        assert result.leeched
        assert result.card.lapses == 8


class TestSiblingBurying:
    def test_answering_new_card_keeps_review_sibling(self, manager, make_deck, make_review_card, now, today):
        config = DeckConfig(bury_new=False, bury_reviews=True, new_mix=ReviewMix.NewFirst)
        deck = make_deck(
            [
                make_review_card(card_id=1, due=today, note_id=7),
                Card(id=2, note_id=7),
            ],
            config=config,
        )
        manager.start_session(deck, now)

        card = manager.get_next_card(now)
        assert card.id == 2
        result = manager.answer_card(card, Rating.Good, now=now)

        assert result.buried == ()
        assert [entry.card.id for entry in manager.queues.main_queue] == [1]

    def test_answer_returns_buried_siblings(self, manager, make_deck, make_review_card, now, now_secs, today):
        config = DeckConfig(bury_reviews=True)
        deck = make_deck(
            [
                _learning(10, now_secs - 10, note_id=7),
                make_review_card(card_id=1, due=today, note_id=7),
            ],
            config=config,
        )
        manager.start_session(deck, now)

        card = manager.get_next_card(now)
        assert card.id == 10
        result = manager.answer_card(card, Rating.Easy, now=now)

        assert [c.id for c in result.buried] == [1]
        assert result.buried[0].queue == CardQueue.SchedBuried
        assert manager.queues.main_queue == []
        assert manager.get_next_card(now) is None

    def test_no_burying_by_default(self, manager, make_deck, make_review_card, now, now_secs, today):
        deck = make_deck(
            [
                _learning(10, now_secs - 10, note_id=7),
                make_review_card(card_id=1, due=today, note_id=7),
            ]
        )
        manager.start_session(deck, now)

        result = manager.answer_card(manager.get_next_card(now), Rating.Easy, now=now)
        assert result.buried == ()
        assert manager.get_next_card(now).id == 1


class TestDailyLimits:
    def test_new_limit(self, manager, make_deck, now):
        config = DeckConfig(new_per_day=1, learn_steps=[])
        deck = make_deck([Card(id=30 + i, due=i) for i in range(3)], config=config)
        manager.start_session(deck, now)

        assert manager.remaining_counts().new == 1
        card = manager.get_next_card(now)
        assert card.id == 30
        manager.answer_card(card, Rating.Good, now=now)

        assert manager.get_next_card(now) is None
        assert not manager.is_active

    def test_review_limit_skips_to_new(self, manager, make_deck, make_review_card, new_card, now, today):
        config = DeckConfig(reviews_per_day=0)
        deck = make_deck([make_review_card(card_id=1, due=today), new_card], config=config)
        manager.start_session(deck, now)

        assert manager.get_next_card(now).id == new_card.id

    def test_only_limited_cards_starts_nothing(self, manager, make_deck, make_review_card, now, today):
        config = DeckConfig(reviews_per_day=0)
        deck = make_deck([make_review_card(card_id=1, due=today)], config=config)
        assert manager.start_session(deck, now) is None

    def test_learning_cards_are_exempt(self, manager, make_deck, now, now_secs):
        config = DeckConfig(new_per_day=0, reviews_per_day=0)
        deck = make_deck([_learning(10, now_secs - 10)], config=config)

        assert manager.start_session(deck, now) is not None
        assert manager.get_next_card(now).id == 10


class TestCollaborators:
    def test_uses_given_review_processor(self, make_deck, new_card, now):
        processor = ReviewProcessor()
        processor.process_review = MagicMock(wraps=processor.process_review)
        manager = StudySessionManager(review_processor=processor)

        manager.start_session(make_deck([new_card]), now)
        card = manager.get_next_card(now)
        manager.answer_card(card, Rating.Good, now=now)

        processor.process_review.assert_called_once()
        kwargs = processor.process_review.call_args.kwargs
        assert kwargs["rating"] == Rating.Good
        assert kwargs["session_uuid"] == manager.session.session_uuid

    def test_custom_overdueness_key(self, make_deck, make_review_card, now, today):
        config = DeckConfig(review_order=ReviewCardOrder.RelativeOverdueness)
        deck = make_deck(
            [make_review_card(card_id=1, due=today), make_review_card(card_id=2, due=today)],
            config=config,
        )
        manager = StudySessionManager(overdueness_key=lambda card, day, fsrs: -card.id)
        manager.start_session(deck, now)

        assert manager.get_next_card(now).id == 2
