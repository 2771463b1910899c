"""
Tests for queue gathering, ordering and mixing.
"""

import datetime

import pytest

from flashsched.config import (
    DeckConfig,
    NewCardGatherPriority,
    NewCardSortOrder,
    ReviewCardOrder,
    ReviewMix,
)
from flashsched.models import Card, CardQueue, CardType, MemoryState
from flashsched.queue_builder import (
    CardQueueBuilder,
    CardQueues,
    Intersperser,
    LearningQueueEntry,
    QueueEntryKind,
    mix,
    relative_overdueness,
    sort_new_cards,
    sort_review_cards,
)


def _new(card_id, position=0, note_id=0, template_idx=0):
    return Card(id=card_id, note_id=note_id, due=position, template_idx=template_idx)


def _learning(card_id, due, note_id=0):
    return Card(
        id=card_id,
        note_id=note_id,
        ctype=CardType.Learn,
        queue=CardQueue.Learn,
        due=due,
        reps=1,
    )


def _ids(entries):
    return [e.card.id for e in entries]


class TestGathering:
    @pytest.fixture
    def deck(self, make_deck, make_review_card, now_secs, today):
        return make_deck(
            [
                make_review_card(card_id=1, due=today - 1),
                make_review_card(card_id=2, due=today),
                make_review_card(card_id=3, due=today + 1),
                _learning(10, now_secs - 10),
                _learning(11, now_secs + 600),
                _learning(12, now_secs + 3600),
                _learning(13, now_secs + 2 * 86400),
                Card(id=20, ctype=CardType.Learn, queue=CardQueue.DayLearn, due=today),
                Card(id=21, ctype=CardType.Learn, queue=CardQueue.DayLearn, due=today + 2),
                _new(30),
                Card(id=40, queue=CardQueue.Suspended),
                Card(id=41, ctype=CardType.Review, queue=CardQueue.SchedBuried, due=today),
                Card(id=42, ctype=CardType.Review, queue=CardQueue.UserBuried, due=today),
            ]
        )

    def test_partitions_due_cards(self, deck, now):
        queues = CardQueueBuilder(deck).build(now)

        kinds = {e.card.id: e.kind for e in queues.main_queue}
        assert kinds == {
            1: QueueEntryKind.Review,
            2: QueueEntryKind.Review,
            20: QueueEntryKind.DayLearning,
            30: QueueEntryKind.New,
        }
        assert _ids(queues.intraday) == [10, 11, 12]

    def test_learning_windows(self, deck, now):
        queues = CardQueueBuilder(deck, learn_ahead_secs=1200).build(now)

        assert _ids(queues.intraday_now()) == [10]
        assert _ids(queues.intraday_ahead()) == [11]

    def test_build_is_deterministic(self, deck, now):
        first = CardQueueBuilder(deck).build(now)
        second = CardQueueBuilder(deck).build(now)
        assert first.main_queue == second.main_queue
        assert first.intraday == second.intraday

    def test_build_does_not_modify_deck(self, deck, now):
        before = deck.model_dump()
        CardQueueBuilder(deck).build(now)
        assert deck.model_dump() == before

    def test_empty_deck(self, make_deck, now):
        queues = CardQueueBuilder(make_deck([])).build(now)
        assert queues.is_empty()


class TestMixing:
    def test_intersperser_spreads_evenly(self):
        assert list(Intersperser([1, 2, 3, 4], ["a", "b"])) == [1, "a", 2, 3, "b", 4]

    def test_intersperser_with_empty_side(self):
        assert list(Intersperser([], ["a", "b"])) == ["a", "b"]
        assert list(Intersperser([1, 2], [])) == [1, 2]

    @pytest.mark.parametrize(
        "how, expected",
        [
            (ReviewMix.ReviewsFirst, [1, 2, "a"]),
            (ReviewMix.NewFirst, ["a", 1, 2]),
            (ReviewMix.ReviewsOnly, [1, 2]),
            (ReviewMix.MixWithReviews, [1, "a", 2]),
        ],
    )
    def test_mix(self, how, expected):
        assert mix([1, 2], ["a"], how) == expected

    def test_new_mix_is_applied(self, make_deck, make_review_card, now, today):
        config = DeckConfig(new_mix=ReviewMix.NewFirst)
        deck = make_deck(
            [make_review_card(card_id=1, due=today), _new(30), _new(31, position=1)],
            config=config,
        )
        queues = CardQueueBuilder(deck).build(now)
        assert _ids(queues.main_queue) == [30, 31, 1]

    def test_reviews_only_drops_new_cards(self, make_deck, make_review_card, now, today):
        config = DeckConfig(new_mix=ReviewMix.ReviewsOnly)
        deck = make_deck([make_review_card(card_id=1, due=today), _new(30)], config=config)
        queues = CardQueueBuilder(deck).build(now)
        assert _ids(queues.main_queue) == [1]

    def test_interday_learning_first(self, make_deck, make_review_card, now, today):
        config = DeckConfig(
            interday_learning_mix=ReviewMix.NewFirst, new_mix=ReviewMix.ReviewsFirst
        )
        deck = make_deck(
            [
                make_review_card(card_id=1, due=today),
                Card(id=20, ctype=CardType.Learn, queue=CardQueue.DayLearn, due=today),
            ],
            config=config,
        )
        queues = CardQueueBuilder(deck).build(now)
        assert _ids(queues.main_queue) == [20, 1]


class TestNewCardOrder:
    @pytest.fixture
    def cards(self):
        return [_new(1, position=3), _new(2, position=1), _new(3, position=2)]

    def test_default_order_by_position(self, cards, today):
        ordered = sort_new_cards(cards, DeckConfig(), today)
        assert [c.id for c in ordered] == [2, 3, 1]

    def test_highest_position_first(self, cards, today):
        config = DeckConfig(
            new_card_gather_priority=NewCardGatherPriority.PositionHighestFirst
        )
        assert [c.id for c in sort_new_cards(cards, config, today)] == [1, 3, 2]

    def test_reverse(self, cards, today):
        config = DeckConfig(new_card_sort_order=NewCardSortOrder.Reverse)
        assert [c.id for c in sort_new_cards(cards, config, today)] == [1, 3, 2]

    def test_template_order_groups_templates(self, today):
        cards = [
            _new(1, position=1, template_idx=1),
            _new(2, position=1, template_idx=0),
            _new(3, position=2, template_idx=0),
        ]
        ordered = sort_new_cards(cards, DeckConfig(), today)
        assert [c.id for c in ordered] == [2, 3, 1]

    def test_random_order_is_stable_within_a_day(self, cards, today):
        config = DeckConfig(new_card_sort_order=NewCardSortOrder.Random)
        first = sort_new_cards(cards, config, today)
        assert sort_new_cards(list(reversed(cards)), config, today) == first


class TestReviewOrder:
    @pytest.fixture
    def cards(self, make_review_card, today):
        return [
            make_review_card(card_id=1, due=today - 2, interval=5, ease_factor=2.0),
            make_review_card(card_id=2, due=today - 5, interval=50, ease_factor=2.8),
            make_review_card(card_id=3, due=today, interval=1, ease_factor=1.5),
        ]

    def test_due_date(self, cards, today):
        ordered = sort_review_cards(cards, ReviewCardOrder.DueDate, today)
        assert [c.id for c in ordered] == [2, 1, 3]

    def test_intervals(self, cards, today):
        ascending = sort_review_cards(cards, ReviewCardOrder.IntervalsAscending, today)
        descending = sort_review_cards(cards, ReviewCardOrder.IntervalsDescending, today)
        assert [c.id for c in ascending] == [3, 1, 2]
        assert [c.id for c in descending] == [2, 1, 3]

    def test_ease_without_fsrs(self, cards, today):
        ordered = sort_review_cards(
            cards, ReviewCardOrder.EaseAscending, today, fsrs_enabled=False
        )
        assert [c.id for c in ordered] == [3, 1, 2]

    def test_ease_with_fsrs_uses_difficulty(self, make_review_card, today):
        cards = [
            make_review_card(card_id=1, memory_state=MemoryState(stability=5, difficulty=3)),
            make_review_card(card_id=2, memory_state=MemoryState(stability=5, difficulty=8)),
        ]
        ordered = sort_review_cards(cards, ReviewCardOrder.EaseAscending, today)
        assert [c.id for c in ordered] == [2, 1]

    def test_relative_overdueness(self, make_review_card, today):
        short = make_review_card(card_id=1, due=today - 1, interval=1)
        long = make_review_card(card_id=2, due=today - 10, interval=100)
        assert relative_overdueness(short, today, False) < relative_overdueness(long, today, False)

        ordered = sort_review_cards(
            [long, short], ReviewCardOrder.RelativeOverdueness, today, fsrs_enabled=False
        )
        assert [c.id for c in ordered] == [1, 2]

    def test_custom_overdueness_key(self, cards, today):
        ordered = sort_review_cards(
            cards,
            ReviewCardOrder.RelativeOverdueness,
            today,
            overdueness_key=lambda card, day, fsrs: -card.id,
        )
        assert [c.id for c in ordered] == [3, 2, 1]

    def test_random_is_deterministic(self, cards, today):
        first = sort_review_cards(cards, ReviewCardOrder.Random, today)
        assert sort_review_cards(cards[::-1], ReviewCardOrder.Random, today) == first


class TestSiblingBurying:
    def test_siblings_are_left_out(self, make_deck, make_review_card, now, now_secs, today):
        config = DeckConfig(bury_new=True, bury_reviews=True)
        deck = make_deck(
            [
                _learning(10, now_secs - 10, note_id=7),
                make_review_card(card_id=1, due=today, note_id=7),
                _new(30, note_id=7),
                make_review_card(card_id=2, due=today, note_id=8),
                _new(31, note_id=8),
                _new(32, note_id=0),
                _new(33, note_id=0),
            ],
            config=config,
        )
        queues = CardQueueBuilder(deck).build(now)
        assert sorted(_ids(queues.main_queue)) == [2, 32, 33]

    def test_no_burying_by_default(self, make_deck, make_review_card, now, today):
        deck = make_deck(
            [make_review_card(card_id=1, due=today, note_id=7), _new(30, note_id=7)]
        )
        queues = CardQueueBuilder(deck).build(now)
        assert sorted(_ids(queues.main_queue)) == [1, 30]


class TestCardQueues:
    @pytest.fixture
    def queues(self, now_secs, today):
        return CardQueues(
            main_queue=[],
            intraday=[LearningQueueEntry(_learning(1, now_secs + 100), now_secs + 100)],
            today=today,
            learning_cutoff=now_secs,
            learn_ahead_secs=1200,
        )

    def test_requeue_moves_behind_waiting_card(self, queues, now_secs):
        entry = queues.requeue_learning_card(_learning(2, now_secs + 60))
        assert entry.due == now_secs + 101
        assert _ids(queues.intraday) == [1, 2]

    def test_requeue_beyond_window_keeps_due(self, queues, now_secs):
        entry = queues.requeue_learning_card(_learning(2, now_secs + 5000))
        assert entry.due == now_secs + 5000
        assert _ids(queues.intraday) == [1, 2]

    def test_requeue_into_empty_queue(self, now_secs, today):
        queues = CardQueues(
            main_queue=[], intraday=[], today=today, learning_cutoff=now_secs
        )
        entry = queues.requeue_learning_card(_learning(2, now_secs + 60))
        assert entry.due == now_secs + 60

    def test_requeue_inside_window_lands_ahead(self, now_secs, today):
        queues = CardQueues(
            main_queue=[],
            intraday=[],
            today=today,
            learning_cutoff=now_secs,
            learn_ahead_secs=1200,
        )
        queues.requeue_learning_card(_learning(5, now_secs + 60))

        assert queues.intraday_now() == []
        assert _ids(queues.intraday_ahead()) == [5]

    def test_requeue_replaces_existing_entry(self, queues, now_secs):
        queues.requeue_learning_card(_learning(1, now_secs + 900))
        assert _ids(queues.intraday) == [1]
        assert queues.intraday[0].due == now_secs + 900

    def test_remove_intraday(self, queues):
        assert queues.remove_intraday_learning_card(1).card.id == 1
        assert queues.remove_intraday_learning_card(1) is None
        assert queues.is_empty()

    def test_cutoff_advances(self, queues, now):
        assert queues.intraday_now() == []
        queues.update_learning_cutoff(now + datetime.timedelta(minutes=2))
        assert _ids(queues.intraday_now()) == [1]
