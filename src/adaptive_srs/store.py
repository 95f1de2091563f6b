"""Persistence for decks, cards, schedule states, learner profiles and sessions.

Schedule states and profiles carry a version column. Writes only succeed
against the version that was read; a lost race raises ConcurrentUpdateError
so the caller can re-read and recompute.
"""
import json
import logging
from datetime import date, datetime
from typing import Optional

from adaptive_srs.config import SrsConfig
from adaptive_srs.db import get_connection
from adaptive_srs.errors import CardNotFoundError, ConcurrentUpdateError
from adaptive_srs.models import (
    DifficultyPreference, LearningProfile, LearningSpeed, PersonalMultipliers,
    ScheduleState, StudySession, normalize_state,
)

logger = logging.getLogger(__name__)

_PROGRESS_SELECT = """SELECT p.*, f.estimated_difficulty
    FROM card_progress p JOIN flashcards f ON p.card_id = f.id"""

_PROGRESS_COLUMNS = (
    "ease_factor", "interval_days", "current_state", "learning_step_index",
    "review_count", "again_count", "hard_count", "good_count", "easy_count",
    "lapse_count", "last_reviewed_at", "next_review_at", "average_response_time",
    "perceived_difficulty", "pre_lapse_interval_days", "retention_rate",
)


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat(timespec="microseconds") if value else None


# --- Decks and cards ---


def add_deck(db_path: str, name: str, importance: float = 1.0) -> int:
    conn = get_connection(db_path)
    cursor = conn.execute(
        "INSERT INTO decks (name, importance, created_at) VALUES (?, ?, ?)",
        (name, importance, datetime.now().isoformat()),
    )
    conn.commit()
    deck_id = cursor.lastrowid
    conn.close()
    return deck_id


def get_deck_by_name(db_path: str, name: str) -> dict | None:
    conn = get_connection(db_path)
    row = conn.execute("SELECT * FROM decks WHERE name = ?", (name,)).fetchone()
    conn.close()
    return dict(row) if row else None


def get_deck_importance(db_path: str, deck_id: int) -> float:
    """Priority weight of a deck; 1.0 when unset or the deck is unknown."""
    conn = get_connection(db_path)
    row = conn.execute("SELECT importance FROM decks WHERE id = ?", (deck_id,)).fetchone()
    conn.close()
    if row is None or row["importance"] is None:
        return 1.0
    return row["importance"]


def list_decks(db_path: str) -> list[dict]:
    conn = get_connection(db_path)
    rows = conn.execute(
        """SELECT d.*, COUNT(f.id) as card_count
        FROM decks d LEFT JOIN flashcards f ON f.deck_id = d.id
        GROUP BY d.id ORDER BY d.name"""
    ).fetchall()
    conn.close()
    return [dict(r) for r in rows]


def add_card(db_path: str, deck_id: int, front: str, back: str,
             estimated_difficulty: Optional[float] = None) -> int:
    conn = get_connection(db_path)
    cursor = conn.execute(
        """INSERT INTO flashcards (deck_id, front, back, estimated_difficulty, created_at)
        VALUES (?, ?, ?, ?, ?)""",
        (deck_id, front, back, estimated_difficulty, datetime.now().isoformat()),
    )
    conn.commit()
    card_id = cursor.lastrowid
    conn.close()
    return card_id


def get_card(db_path: str, card_id: int) -> dict:
    conn = get_connection(db_path)
    row = conn.execute("SELECT * FROM flashcards WHERE id = ?", (card_id,)).fetchone()
    conn.close()
    if row is None:
        raise CardNotFoundError(card_id)
    return dict(row)


def get_deck_cards(db_path: str, deck_id: int) -> list[dict]:
    conn = get_connection(db_path)
    rows = conn.execute(
        "SELECT * FROM flashcards WHERE deck_id = ? ORDER BY created_at, id", (deck_id,)
    ).fetchall()
    conn.close()
    return [dict(r) for r in rows]


# --- Schedule states ---


def ensure_progress(db_path: str, user_id: str, deck_id: int) -> None:
    """Create an empty progress row for every card of the deck the user lacks."""
    conn = get_connection(db_path)
    conn.execute(
        """INSERT OR IGNORE INTO card_progress (user_id, card_id, deck_id)
        SELECT ?, f.id, f.deck_id FROM flashcards f WHERE f.deck_id = ?""",
        (user_id, deck_id),
    )
    conn.commit()
    conn.close()


def get_progress(db_path: str, user_id: str, card_id: int,
                 config: Optional[SrsConfig] = None) -> ScheduleState:
    """Schedule state of one card, created on first access."""
    card = get_card(db_path, card_id)
    conn = get_connection(db_path)
    conn.execute(
        "INSERT OR IGNORE INTO card_progress (user_id, card_id, deck_id) VALUES (?, ?, ?)",
        (user_id, card_id, card["deck_id"]),
    )
    conn.commit()
    row = conn.execute(
        f"{_PROGRESS_SELECT} WHERE p.user_id = ? AND p.card_id = ?", (user_id, card_id)
    ).fetchone()
    conn.close()
    return normalize_state(row, config)


def get_deck_states(db_path: str, user_id: str, deck_id: int,
                    config: Optional[SrsConfig] = None) -> list[ScheduleState]:
    conn = get_connection(db_path)
    rows = conn.execute(
        f"{_PROGRESS_SELECT} WHERE p.user_id = ? AND p.deck_id = ? ORDER BY f.created_at, f.id",
        (user_id, deck_id),
    ).fetchall()
    conn.close()
    return [normalize_state(r, config) for r in rows]


def get_due_states(db_path: str, user_id: str, deck_id: int, now: datetime,
                   config: Optional[SrsConfig] = None) -> list[ScheduleState]:
    """Schedule states that are new or due at `now`."""
    conn = get_connection(db_path)
    rows = conn.execute(
        f"""{_PROGRESS_SELECT}
        WHERE p.user_id = ? AND p.deck_id = ?
          AND (p.next_review_at IS NULL OR p.next_review_at <= ?)
        ORDER BY f.created_at, f.id""",
        (user_id, deck_id, _ts(now)),
    ).fetchall()
    conn.close()
    return [normalize_state(r, config) for r in rows]


def get_user_states(db_path: str, user_id: str,
                    config: Optional[SrsConfig] = None) -> list[ScheduleState]:
    conn = get_connection(db_path)
    rows = conn.execute(f"{_PROGRESS_SELECT} WHERE p.user_id = ?", (user_id,)).fetchall()
    conn.close()
    return [normalize_state(r, config) for r in rows]


def save_progress(db_path: str, state: ScheduleState) -> ScheduleState:
    """Persist a schedule state read at state.version; returns it with the new version."""
    row = state.to_row()
    assignments = ", ".join(f"{col} = ?" for col in _PROGRESS_COLUMNS)
    values = [row[col] for col in _PROGRESS_COLUMNS]
    conn = get_connection(db_path)
    cursor = conn.execute(
        f"""UPDATE card_progress SET {assignments}, version = version + 1
        WHERE user_id = ? AND card_id = ? AND version = ?""",
        (*values, state.user_id, state.card_id, state.version),
    )
    conn.commit()
    updated = cursor.rowcount
    conn.close()
    if updated == 0:
        logger.warning("Lost update on card %s for user %s", state.card_id, state.user_id)
        raise ConcurrentUpdateError("card_progress", (state.user_id, state.card_id))
    state.version += 1
    return state


# --- Learning profiles ---


def _profile_from_row(row) -> LearningProfile:
    return LearningProfile(
        user_id=row["user_id"],
        learning_speed=LearningSpeed(row["learning_speed"]),
        personal_multipliers=PersonalMultipliers(
            again=row["multiplier_again"],
            hard=row["multiplier_hard"],
            good=row["multiplier_good"],
            easy=row["multiplier_easy"],
        ),
        optimal_session_length=row["optimal_session_length"],
        daily_review_goal=row["daily_review_goal"],
        difficulty_preference=DifficultyPreference(row["difficulty_preference"]),
        preferred_study_times=json.loads(row["preferred_study_times"] or "[]"),
        is_calibrated=bool(row["is_calibrated"]),
        calibration_reviews=row["calibration_reviews"],
        last_calibration_date=(
            datetime.fromisoformat(row["last_calibration_date"])
            if row["last_calibration_date"] else None
        ),
        total_study_minutes=row["total_study_minutes"],
        current_streak=row["current_streak"],
        longest_streak=row["longest_streak"],
        last_study_date=(
            date.fromisoformat(row["last_study_date"]) if row["last_study_date"] else None
        ),
        average_retention=row["average_retention"],
        version=row["version"],
    )


def get_profile(db_path: str, user_id: str) -> LearningProfile:
    """Learner profile, created with the documented defaults on first access."""
    conn = get_connection(db_path)
    conn.execute("INSERT OR IGNORE INTO learning_profiles (user_id) VALUES (?)", (user_id,))
    conn.commit()
    row = conn.execute("SELECT * FROM learning_profiles WHERE user_id = ?", (user_id,)).fetchone()
    conn.close()
    return _profile_from_row(row)


def save_profile(db_path: str, profile: LearningProfile) -> LearningProfile:
    m = profile.personal_multipliers
    conn = get_connection(db_path)
    cursor = conn.execute(
        """UPDATE learning_profiles SET
            learning_speed = ?, multiplier_again = ?, multiplier_hard = ?,
            multiplier_good = ?, multiplier_easy = ?, optimal_session_length = ?,
            daily_review_goal = ?, difficulty_preference = ?, preferred_study_times = ?,
            is_calibrated = ?, calibration_reviews = ?, last_calibration_date = ?,
            total_study_minutes = ?, current_streak = ?, longest_streak = ?,
            last_study_date = ?, average_retention = ?, version = version + 1
        WHERE user_id = ? AND version = ?""",
        (
            LearningSpeed(profile.learning_speed).value, m.again, m.hard, m.good, m.easy,
            profile.optimal_session_length, profile.daily_review_goal,
            DifficultyPreference(profile.difficulty_preference).value,
            json.dumps(profile.preferred_study_times), int(profile.is_calibrated),
            profile.calibration_reviews, _ts(profile.last_calibration_date),
            profile.total_study_minutes, profile.current_streak, profile.longest_streak,
            profile.last_study_date.isoformat() if profile.last_study_date else None,
            profile.average_retention, profile.user_id, profile.version,
        ),
    )
    conn.commit()
    updated = cursor.rowcount
    conn.close()
    if updated == 0:
        logger.warning("Lost update on profile of user %s", profile.user_id)
        raise ConcurrentUpdateError("learning_profile", profile.user_id)
    profile.version += 1
    return profile


# --- Study sessions ---


def add_session(db_path: str, session: StudySession) -> int:
    conn = get_connection(db_path)
    cursor = conn.execute(
        """INSERT INTO study_sessions (
            user_id, deck_id, session_start, session_end, cards_reviewed,
            cards_again, cards_hard, cards_good, cards_easy, average_accuracy,
            average_response_time, time_of_day, session_quality, was_completed)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            session.user_id, session.deck_id, _ts(session.session_start),
            _ts(session.session_end), session.cards_reviewed, session.cards_again,
            session.cards_hard, session.cards_good, session.cards_easy,
            session.average_accuracy, session.average_response_time,
            session.time_of_day, session.session_quality, int(session.was_completed),
        ),
    )
    conn.commit()
    session_id = cursor.lastrowid
    conn.close()
    return session_id


def get_recent_sessions(db_path: str, user_id: str, limit: int = 50) -> list[StudySession]:
    """Most recent sessions first."""
    conn = get_connection(db_path)
    rows = conn.execute(
        "SELECT * FROM study_sessions WHERE user_id = ? ORDER BY session_start DESC, id DESC LIMIT ?",
        (user_id, limit),
    ).fetchall()
    conn.close()
    return [
        StudySession(
            id=r["id"],
            user_id=r["user_id"],
            deck_id=r["deck_id"],
            session_start=datetime.fromisoformat(r["session_start"]),
            session_end=datetime.fromisoformat(r["session_end"]),
            cards_reviewed=r["cards_reviewed"],
            cards_again=r["cards_again"],
            cards_hard=r["cards_hard"],
            cards_good=r["cards_good"],
            cards_easy=r["cards_easy"],
            average_accuracy=r["average_accuracy"],
            average_response_time=r["average_response_time"],
            time_of_day=r["time_of_day"],
            session_quality=r["session_quality"],
            was_completed=bool(r["was_completed"]),
        )
        for r in rows
    ]
