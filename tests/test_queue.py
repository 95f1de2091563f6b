# tests/test_queue.py
import random
from datetime import timedelta

import pytest

from adaptive_srs.models import (
    CardState, DifficultyPreference, LearningProfile, ScheduleState,
)
from adaptive_srs.priority import is_mastered
from adaptive_srs.queue import (
    balance_workload, build_queue, calculate_daily_workload, select_session,
)


def due_review(card_id, now, days_overdue=1.0, **overrides):
    fields = dict(
        card_id=card_id, current_state=CardState.REVIEW, interval_days=5, ease_factor=2.5,
        review_count=3, good_count=3,
        last_reviewed_at=now - timedelta(days=5 + days_overdue),
        next_review_at=now - timedelta(days=days_overdue),
    )
    fields.update(overrides)
    return ScheduleState(**fields)


def mastered_card(card_id, now, **overrides):
    fields = dict(
        card_id=card_id, current_state=CardState.REVIEW, interval_days=20, ease_factor=2.5,
        review_count=5, good_count=5,
        last_reviewed_at=now - timedelta(days=15),
        next_review_at=now + timedelta(days=5),
    )
    fields.update(overrides)
    return ScheduleState(**fields)


@pytest.fixture
def profile():
    return LearningProfile(user_id="learner")


def test_workload_keeps_daily_goal_and_defers_only_mildly_overdue(profile, config, now):
    states = [
        due_review(i, now, days_overdue=i / 10, interval_days=5 + i % 10, lapse_count=i % 4)
        for i in range(50)
    ]
    queue = build_queue(states, profile, config=config, now=now)
    split = balance_workload(queue, daily_goal=20)

    assert len(split.review_now) == 20
    assert split.defer_to_tomorrow
    for card in split.defer_to_tomorrow:
        assert card.days_overdue < 3
        assert card.urgency_score < 0.8
    lowest_kept = min(c.priority_score for c in split.review_now)
    assert all(c.priority_score <= lowest_kept for c in split.defer_to_tomorrow)
    kept_ids = {c.card_id for c in split.review_now}
    critical = [c for c in queue if c.card_id not in kept_ids and c.days_overdue >= 3]
    deferred_ids = {c.card_id for c in split.defer_to_tomorrow}
    assert all(c.card_id not in deferred_ids for c in critical)


def test_workload_under_goal_defers_nothing(profile, config, now):
    queue = build_queue([due_review(i, now) for i in range(5)], profile, config=config, now=now)
    split = balance_workload(queue, daily_goal=20)
    assert len(split.review_now) == 5
    assert split.defer_to_tomorrow == []


def test_queue_sorted_by_priority(profile, config, now):
    states = [due_review(i, now, days_overdue=i, lapse_count=i % 3) for i in range(8)]
    queue = build_queue(states, profile, config=config, now=now)
    scores = [c.priority_score for c in queue]
    assert scores == sorted(scores, reverse=True)


def test_queue_truncates_to_max_cards(profile, config, now):
    queue = build_queue([due_review(i, now) for i in range(8)], profile, max_cards=3,
                        config=config, now=now)
    assert len(queue) == 3


def test_challenge_mode_favours_hard_cards(config, now):
    profile = LearningProfile(user_id="learner", difficulty_preference=DifficultyPreference.CHALLENGE)
    states = [
        due_review(1, now, perceived_difficulty=2),
        due_review(2, now, perceived_difficulty=8),
    ]
    queue = build_queue(states, profile, config=config, now=now)
    assert [c.card_id for c in queue] == [2, 1]
    assert queue[0].priority_score > queue[1].priority_score


def test_confidence_mode_mixes_in_mastered_cards(config, now):
    profile = LearningProfile(user_id="learner", difficulty_preference=DifficultyPreference.CONFIDENCE)
    due = [due_review(i, now) for i in range(1, 4)]
    pool = [mastered_card(i, now) for i in range(100, 110)]
    queue = build_queue(due, profile, max_cards=10, config=config, now=now, mastered_pool=pool)
    mastered = [c for c in queue if is_mastered(c.state)]
    assert len(mastered) == 3
    assert {c.card_id for c in due} <= {c.card_id for c in queue}


def test_confidence_mode_does_not_duplicate_cards(config, now):
    profile = LearningProfile(user_id="learner", difficulty_preference=DifficultyPreference.CONFIDENCE)
    due_mastered = mastered_card(7, now, next_review_at=now - timedelta(hours=1))
    queue = build_queue(
        [due_mastered, due_review(1, now)], profile, max_cards=10,
        config=config, now=now, mastered_pool=[mastered_card(7, now)],
    )
    ids = [c.card_id for c in queue]
    assert ids.count(7) == 1


def test_confidence_mode_keeps_every_due_mastered_card(config, now):
    profile = LearningProfile(user_id="learner", difficulty_preference=DifficultyPreference.CONFIDENCE)
    due = [mastered_card(i, now, next_review_at=now - timedelta(days=2)) for i in range(10)]
    queue = build_queue(due, profile, config=config, now=now)
    assert len(queue) == 10
    assert sorted(c.card_id for c in queue) == list(range(10))


def test_confidence_session_skips_just_reviewed_mastered_card(config, now):
    profile = LearningProfile(user_id="learner", difficulty_preference=DifficultyPreference.CONFIDENCE)
    states = [
        ScheduleState(card_id=1),
        mastered_card(9, now, last_reviewed_at=now - timedelta(minutes=1),
                      next_review_at=now + timedelta(days=30)),
        mastered_card(10, now),
    ]
    selected = select_session(states, profile, 10, config=config, now=now, ordering="priority")
    ids = {c.card_id for c in selected}
    assert 9 not in ids
    assert ids == {1, 10}


def test_select_session_excludes_not_due_and_cooling_down(profile, config, now):
    states = [
        due_review(1, now),
        mastered_card(2, now),
        due_review(3, now, last_reviewed_at=now - timedelta(minutes=5),
                   next_review_at=now - timedelta(minutes=1)),
        ScheduleState(card_id=4),
    ]
    for ordering in ("priority", "shuffled"):
        selected = select_session(states, profile, 10, config=config, now=now,
                                  ordering=ordering, rng=random.Random(1))
        assert sorted(c.card_id for c in selected) == [1, 4]


def test_shuffled_session_is_reproducible_with_seed(profile, config, now):
    states = [due_review(i, now) for i in range(30)]
    first = select_session(states, profile, 10, config=config, now=now, rng=random.Random(42))
    second = select_session(states, profile, 10, config=config, now=now, rng=random.Random(42))
    assert len(first) == 10
    assert [c.card_id for c in first] == [c.card_id for c in second]


def test_priority_session_serves_reviews_before_new_cards(profile, config, now):
    states = [due_review(i, now) for i in range(5)] + [ScheduleState(card_id=100 + i) for i in range(20)]
    selected = select_session(states, profile, 10, config=config, now=now, ordering="priority")
    assert len(selected) == 10
    assert [c.card_id for c in selected[:5]] == [c.card_id for c in selected[:5] if c.card_id < 100]
    assert {c.card_id for c in selected if c.card_id < 100} == set(range(5))


def test_priority_session_caps_new_cards_when_reviews_fill_it(profile, config, now):
    states = [due_review(i, now) for i in range(12)] + [ScheduleState(card_id=100 + i) for i in range(10)]
    selected = select_session(states, profile, 10, config=config, now=now, ordering="priority")
    assert len(selected) == 10
    assert all(c.card_id < 100 for c in selected)


def test_priority_session_all_new_cards(profile, config, now):
    states = [ScheduleState(card_id=i) for i in range(15)]
    selected = select_session(states, profile, 10, config=config, now=now, ordering="priority")
    assert len(selected) == 10


def test_priority_session_respects_daily_goal(config, now):
    profile = LearningProfile(user_id="learner", daily_review_goal=5)
    states = [due_review(i, now) for i in range(12)]
    selected = select_session(states, profile, 10, config=config, now=now, ordering="priority")
    assert len(selected) == 5


def test_unknown_ordering_rejected(profile, config, now):
    with pytest.raises(ValueError):
        select_session([], profile, 10, config=config, now=now, ordering="alphabetical")


def test_daily_workload_counts_cards_due_by_end_of_day(config, now):
    states = [
        ScheduleState(card_id=1),
        ScheduleState(card_id=2),
        due_review(3, now, next_review_at=now.replace(hour=23)),
        ScheduleState(card_id=4, current_state=CardState.LEARNING, review_count=1,
                      next_review_at=now + timedelta(days=1)),
        due_review(5, now, next_review_at=now + timedelta(days=5)),
    ]
    workload = calculate_daily_workload(states, now.date(), config)
    assert workload.due_cards == 3
    assert workload.new_cards == 2
    assert workload.review_cards == 1
    assert workload.estimated_minutes == 1
