import pytest
from collections import Counter
from unittest.mock import patch

from adaptive_srs.app import (
    SessionExitRequested, cmd_settings, cmd_study, rating_prompt, run_review_session,
    session_prompt,
)
from adaptive_srs.db import init_db
from adaptive_srs.models import DifficultyPreference, Rating
from adaptive_srs.store import (
    add_card, add_deck, get_deck_cards, get_profile, get_progress, get_recent_sessions,
)


@pytest.fixture
def deck(tmp_db):
    init_db(tmp_db)
    deck_id = add_deck(tmp_db, "Spanish")
    for front, back in [("hola", "hello"), ("gato", "cat"), ("perro", "dog")]:
        add_card(tmp_db, deck_id, front, back)
    return {"id": deck_id, "name": "Spanish"}


def test_session_prompt_raises_on_q():
    with patch("adaptive_srs.app.Prompt.ask", return_value="q"):
        with pytest.raises(SessionExitRequested):
            session_prompt("test prompt")


def test_session_prompt_raises_on_menu():
    with patch("adaptive_srs.app.Prompt.ask", return_value="menu"):
        with pytest.raises(SessionExitRequested):
            session_prompt("test prompt")


def test_session_prompt_returns_normal_input():
    with patch("adaptive_srs.app.Prompt.ask", return_value="hello"):
        assert session_prompt("test prompt") == "hello"


def test_rating_prompt_maps_keys():
    with patch("adaptive_srs.app.Prompt.ask", return_value="1"):
        assert rating_prompt() == Rating.AGAIN
    with patch("adaptive_srs.app.Prompt.ask", return_value="4"):
        assert rating_prompt() == Rating.EASY


def test_rating_prompt_raises_on_q():
    with patch("adaptive_srs.app.Prompt.ask", return_value="q"):
        with pytest.raises(SessionExitRequested):
            rating_prompt()


def test_run_review_session_records_ratings(tmp_db, deck, config):
    cards = get_deck_cards(tmp_db, deck["id"])[:2]
    with patch("adaptive_srs.app.Prompt.ask", side_effect=["", "3", "", "1"]):
        counts = run_review_session(tmp_db, "learner", deck, cards, config)
    assert counts[Rating.GOOD] == 1
    assert counts[Rating.AGAIN] == 1
    assert get_progress(tmp_db, "learner", cards[0]["id"]).good_count == 1
    assert get_progress(tmp_db, "learner", cards[1]["id"]).again_count == 1


def test_run_review_session_exits_on_q(tmp_db, deck, config):
    """User types 'q' on the second card's reveal prompt; first card saved, exit raised."""
    cards = get_deck_cards(tmp_db, deck["id"])
    counts = Counter()
    with patch("adaptive_srs.app.Prompt.ask", side_effect=["", "4", "q"]):
        with pytest.raises(SessionExitRequested):
            run_review_session(tmp_db, "learner", deck, cards, config, counts)
    assert counts[Rating.EASY] == 1
    assert get_progress(tmp_db, "learner", cards[0]["id"]).review_count == 1
    assert get_progress(tmp_db, "learner", cards[1]["id"]).review_count == 0


def test_run_review_session_with_no_cards(tmp_db, deck, config):
    assert run_review_session(tmp_db, "learner", deck, [], config) == Counter()


def test_cmd_study_saves_partial_session(tmp_db, deck, config):
    with patch("adaptive_srs.app.Prompt.ask", side_effect=["1", "10", "", "3", "q"]):
        cmd_study(tmp_db, "learner", config)
    sessions = get_recent_sessions(tmp_db, "learner")
    assert len(sessions) == 1
    assert sessions[0].cards_reviewed == 1
    assert sessions[0].cards_good == 1
    assert sessions[0].was_completed is False
    assert get_profile(tmp_db, "learner").current_streak == 1


def test_cmd_study_completed_session(tmp_db, deck, config):
    answers = ["1", "10"] + ["", "3"] * 3
    with patch("adaptive_srs.app.Prompt.ask", side_effect=answers):
        cmd_study(tmp_db, "learner", config)
    sessions = get_recent_sessions(tmp_db, "learner")
    assert sessions[0].cards_reviewed == 3
    assert sessions[0].was_completed is True
    assert sessions[0].average_accuracy == 100


def test_cmd_settings_updates_profile(tmp_db, deck):
    with patch("adaptive_srs.app.Prompt.ask", side_effect=["confidence", "40", "25"]):
        cmd_settings(tmp_db, "learner")
    profile = get_profile(tmp_db, "learner")
    assert profile.difficulty_preference == DifficultyPreference.CONFIDENCE
    assert profile.daily_review_goal == 40
    assert profile.optimal_session_length == 25


def test_cmd_settings_rejects_out_of_range(tmp_db, deck):
    with patch("adaptive_srs.app.Prompt.ask", side_effect=["balanced", "0", "20"]):
        cmd_settings(tmp_db, "learner")
    assert get_profile(tmp_db, "learner").daily_review_goal == 20
