# tests/test_store.py
from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from adaptive_srs.db import init_db
from adaptive_srs.engine import submit_review
from adaptive_srs.errors import CardNotFoundError, ConcurrentUpdateError
from adaptive_srs.models import CardState, LearningSpeed, Rating, StudySession
from adaptive_srs.store import (
    add_card, add_deck, add_session, ensure_progress, get_card, get_deck_by_name,
    get_deck_cards, get_deck_importance, get_deck_states, get_due_states, get_profile, get_progress,
    get_recent_sessions, get_user_states, list_decks, save_profile, save_progress,
)


@pytest.fixture
def deck(tmp_db):
    init_db(tmp_db)
    deck_id = add_deck(tmp_db, "Spanish", importance=1.5)
    add_card(tmp_db, deck_id, "hola", "hello")
    add_card(tmp_db, deck_id, "gato", "cat", estimated_difficulty=7)
    return deck_id


def test_add_and_list_decks(tmp_db, deck):
    add_deck(tmp_db, "Art History")
    decks = list_decks(tmp_db)
    assert [d["name"] for d in decks] == ["Art History", "Spanish"]
    assert decks[1]["card_count"] == 2
    assert get_deck_by_name(tmp_db, "Spanish")["importance"] == 1.5
    assert get_deck_by_name(tmp_db, "Latin") is None


def test_get_deck_importance(tmp_db, deck):
    assert get_deck_importance(tmp_db, deck) == 1.5
    assert get_deck_importance(tmp_db, add_deck(tmp_db, "French")) == 1.0
    assert get_deck_importance(tmp_db, 999) == 1.0


def test_get_card_missing_raises(tmp_db, deck):
    with pytest.raises(CardNotFoundError):
        get_card(tmp_db, 999)


def test_get_deck_cards_in_creation_order(tmp_db, deck):
    assert [c["front"] for c in get_deck_cards(tmp_db, deck)] == ["hola", "gato"]


def test_get_progress_creates_new_state(tmp_db, deck):
    state = get_progress(tmp_db, "learner", 1)
    assert state.card_id == 1
    assert state.user_id == "learner"
    assert state.deck_id == deck
    assert state.current_state == CardState.NEW
    assert state.ease_factor == 2.5
    assert state.version == 0


def test_progress_seeds_difficulty_from_card(tmp_db, deck):
    assert get_progress(tmp_db, "learner", 2).perceived_difficulty == 7


def test_ensure_progress_is_idempotent(tmp_db, deck):
    ensure_progress(tmp_db, "learner", deck)
    ensure_progress(tmp_db, "learner", deck)
    assert len(get_deck_states(tmp_db, "learner", deck)) == 2
    assert get_deck_states(tmp_db, "other", deck) == []


def test_save_progress_round_trips(tmp_db, deck, now):
    state = get_progress(tmp_db, "learner", 1)
    updated = submit_review(state, Rating.EASY, now=now, response_time_ms=3000)
    saved = save_progress(tmp_db, updated)
    assert saved.version == 1
    reloaded = get_progress(tmp_db, "learner", 1)
    assert reloaded == saved
    assert reloaded.next_review_at == now + timedelta(days=4)


def test_stale_write_raises_conflict(tmp_db, deck, now):
    first = get_progress(tmp_db, "learner", 1)
    second = get_progress(tmp_db, "learner", 1)
    save_progress(tmp_db, submit_review(first, Rating.GOOD, now=now))
    with pytest.raises(ConcurrentUpdateError) as exc:
        save_progress(tmp_db, submit_review(second, Rating.AGAIN, now=now))
    assert exc.value.retryable
    assert get_progress(tmp_db, "learner", 1).good_count == 1


def test_get_due_states(tmp_db, deck, now):
    ensure_progress(tmp_db, "learner", deck)
    state = get_progress(tmp_db, "learner", 1)
    save_progress(tmp_db, submit_review(state, Rating.EASY, now=now))
    due_now = get_due_states(tmp_db, "learner", deck, now)
    assert [s.card_id for s in due_now] == [2]
    later = get_due_states(tmp_db, "learner", deck, now + timedelta(days=5))
    assert [s.card_id for s in later] == [1, 2]


def test_get_user_states_spans_decks(tmp_db, deck):
    other = add_deck(tmp_db, "French")
    card = add_card(tmp_db, other, "chat", "cat")
    get_progress(tmp_db, "learner", 1)
    get_progress(tmp_db, "learner", card)
    assert {s.card_id for s in get_user_states(tmp_db, "learner")} == {1, card}


def test_profile_created_with_defaults(tmp_db):
    init_db(tmp_db)
    profile = get_profile(tmp_db, "learner")
    assert profile.learning_speed == LearningSpeed.MEDIUM
    assert profile.personal_multipliers.good == 2.5
    assert profile.daily_review_goal == 20
    assert profile.version == 0
    assert get_profile(tmp_db, "learner").version == 0


def test_save_profile_round_trips(tmp_db, now):
    init_db(tmp_db)
    profile = get_profile(tmp_db, "learner")
    changed = replace(
        profile, learning_speed=LearningSpeed.FAST, preferred_study_times=[7, 21],
        is_calibrated=True, last_calibration_date=now, last_study_date=now.date(),
        current_streak=3,
    )
    save_profile(tmp_db, changed)
    reloaded = get_profile(tmp_db, "learner")
    assert reloaded == changed
    assert reloaded.version == 1


def test_save_profile_conflict(tmp_db):
    init_db(tmp_db)
    first = get_profile(tmp_db, "learner")
    second = get_profile(tmp_db, "learner")
    save_profile(tmp_db, replace(first, daily_review_goal=30))
    with pytest.raises(ConcurrentUpdateError):
        save_profile(tmp_db, replace(second, daily_review_goal=40))
    assert get_profile(tmp_db, "learner").daily_review_goal == 30


def test_sessions_newest_first(tmp_db, deck):
    for day in (1, 3, 2):
        start = datetime(2026, 3, day, 9, 0)
        add_session(tmp_db, StudySession(
            user_id="learner", deck_id=deck, session_start=start,
            session_end=start + timedelta(minutes=10), cards_reviewed=day,
            average_accuracy=80, time_of_day=9, was_completed=day != 2,
        ))
    sessions = get_recent_sessions(tmp_db, "learner")
    assert [s.session_start.day for s in sessions] == [3, 2, 1]
    assert sessions[1].was_completed is False
    assert len(get_recent_sessions(tmp_db, "learner", limit=2)) == 2
    assert get_recent_sessions(tmp_db, "someone-else") == []
