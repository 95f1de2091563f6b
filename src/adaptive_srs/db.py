"""Database initialization and connection management."""
import sqlite3
from pathlib import Path

from adaptive_srs.config import DEFAULT_DB_PATH

SCHEMA = """
CREATE TABLE IF NOT EXISTS decks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    importance REAL DEFAULT 1.0,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS flashcards (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    deck_id INTEGER NOT NULL REFERENCES decks(id) ON DELETE CASCADE,
    front TEXT NOT NULL,
    back TEXT NOT NULL,
    estimated_difficulty REAL,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS card_progress (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    card_id INTEGER NOT NULL REFERENCES flashcards(id) ON DELETE CASCADE,
    deck_id INTEGER NOT NULL REFERENCES decks(id) ON DELETE CASCADE,
    ease_factor REAL,
    interval_days REAL,
    current_state TEXT,
    learning_step_index INTEGER,
    review_count INTEGER,
    again_count INTEGER,
    hard_count INTEGER,
    good_count INTEGER,
    easy_count INTEGER,
    lapse_count INTEGER,
    last_reviewed_at TEXT,
    next_review_at TEXT,
    average_response_time REAL,
    perceived_difficulty REAL,
    pre_lapse_interval_days REAL,
    retention_rate REAL,
    version INTEGER NOT NULL DEFAULT 0,
    UNIQUE(user_id, card_id)
);

CREATE INDEX IF NOT EXISTS idx_card_progress_due
    ON card_progress (user_id, deck_id, next_review_at);

CREATE TABLE IF NOT EXISTS learning_profiles (
    user_id TEXT PRIMARY KEY,
    learning_speed TEXT NOT NULL DEFAULT 'medium',
    multiplier_again REAL NOT NULL DEFAULT 1.0,
    multiplier_hard REAL NOT NULL DEFAULT 1.2,
    multiplier_good REAL NOT NULL DEFAULT 2.5,
    multiplier_easy REAL NOT NULL DEFAULT 3.5,
    optimal_session_length INTEGER NOT NULL DEFAULT 20,
    daily_review_goal INTEGER NOT NULL DEFAULT 20,
    difficulty_preference TEXT NOT NULL DEFAULT 'balanced',
    preferred_study_times TEXT NOT NULL DEFAULT '[]',
    is_calibrated INTEGER NOT NULL DEFAULT 0,
    calibration_reviews INTEGER NOT NULL DEFAULT 0,
    last_calibration_date TEXT,
    total_study_minutes REAL NOT NULL DEFAULT 0,
    current_streak INTEGER NOT NULL DEFAULT 0,
    longest_streak INTEGER NOT NULL DEFAULT 0,
    last_study_date TEXT,
    average_retention REAL NOT NULL DEFAULT 0,
    version INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS study_sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    deck_id INTEGER REFERENCES decks(id) ON DELETE SET NULL,
    session_start TEXT NOT NULL,
    session_end TEXT NOT NULL,
    cards_reviewed INTEGER NOT NULL DEFAULT 0,
    cards_again INTEGER NOT NULL DEFAULT 0,
    cards_hard INTEGER NOT NULL DEFAULT 0,
    cards_good INTEGER NOT NULL DEFAULT 0,
    cards_easy INTEGER NOT NULL DEFAULT 0,
    average_accuracy REAL NOT NULL DEFAULT 0,
    average_response_time REAL NOT NULL DEFAULT 0,
    time_of_day INTEGER NOT NULL,
    session_quality REAL NOT NULL DEFAULT 0,
    was_completed INTEGER NOT NULL DEFAULT 1
);

CREATE INDEX IF NOT EXISTS idx_study_sessions_user
    ON study_sessions (user_id, session_start);
"""


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Return a SQLite connection with row factory and foreign keys enabled."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db(db_path: str = DEFAULT_DB_PATH) -> None:
    """Initialize the database, creating all tables if they don't exist."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(db_path)
    conn.executescript(SCHEMA)
    conn.commit()
    conn.close()
