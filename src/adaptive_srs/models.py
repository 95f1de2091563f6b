"""Data classes for the scheduler domain model."""
from dataclasses import dataclass, field, fields
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping, Optional

from adaptive_srs.config import SrsConfig


class Rating(str, Enum):
    AGAIN = "again"
    HARD = "hard"
    GOOD = "good"
    EASY = "easy"


class CardState(str, Enum):
    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    RELEARNING = "relearning"


class LearningSpeed(str, Enum):
    SLOW = "slow"
    MEDIUM = "medium"
    FAST = "fast"


class DifficultyPreference(str, Enum):
    CHALLENGE = "challenge"
    BALANCED = "balanced"
    CONFIDENCE = "confidence"


MIN_DIFFICULTY = 1.0
MAX_DIFFICULTY = 10.0
DEFAULT_DIFFICULTY = 5.0


@dataclass
class ScheduleState:
    card_id: Optional[int] = None
    user_id: Optional[str] = None
    deck_id: Optional[int] = None
    ease_factor: float = 2.5
    interval_days: float = 0
    current_state: CardState = CardState.NEW
    learning_step_index: int = 0
    review_count: int = 0
    again_count: int = 0
    hard_count: int = 0
    good_count: int = 0
    easy_count: int = 0
    lapse_count: int = 0
    last_reviewed_at: Optional[datetime] = None
    next_review_at: Optional[datetime] = None
    average_response_time: float = 0
    perceived_difficulty: float = DEFAULT_DIFFICULTY
    pre_lapse_interval_days: float = 0
    retention_rate: float = 0
    version: int = 0

    @property
    def is_new(self) -> bool:
        return self.current_state == CardState.NEW and self.review_count == 0

    @property
    def successful_reviews(self) -> int:
        return self.good_count + self.easy_count

    def to_row(self) -> dict:
        row = {f.name: getattr(self, f.name) for f in fields(self)}
        row["current_state"] = self.current_state.value
        for key in ("last_reviewed_at", "next_review_at"):
            if row[key] is not None:
                row[key] = row[key].isoformat(timespec="microseconds")
        return row


_COUNTERS = (
    "review_count", "again_count", "hard_count", "good_count",
    "easy_count", "lapse_count",
)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return datetime.fromisoformat(str(value))


def _as_dict(raw: Any) -> dict:
    if raw is None:
        return {}
    if isinstance(raw, ScheduleState):
        return {f.name: getattr(raw, f.name) for f in fields(raw)}
    if isinstance(raw, Mapping):
        return dict(raw)
    # sqlite3.Row
    return {key: raw[key] for key in raw.keys()}


def normalize_state(raw: Any, config: Optional[SrsConfig] = None) -> ScheduleState:
    """Build a well-formed ScheduleState from a partial record.

    Missing or null fields take "new card" defaults; out-of-range values are
    clamped. This is the only place legacy or partial records are repaired.
    """
    config = config or SrsConfig()
    data = _as_dict(raw)

    def pick(key, default):
        value = data.get(key)
        return default if value is None else value

    try:
        state = CardState(pick("current_state", CardState.NEW))
    except ValueError:
        state = CardState.NEW

    difficulty = data.get("perceived_difficulty")
    if difficulty is None:
        difficulty = data.get("estimated_difficulty")
    if not isinstance(difficulty, (int, float)) or not MIN_DIFFICULTY <= difficulty <= MAX_DIFFICULTY:
        difficulty = DEFAULT_DIFFICULTY

    ease = pick("ease_factor", config.starting_ease)
    if not ease:
        ease = config.starting_ease

    counters = {key: max(0, int(pick(key, 0))) for key in _COUNTERS}

    steps = config.steps_for(state == CardState.RELEARNING)
    step_index = int(pick("learning_step_index", 0))
    step_index = min(max(step_index, 0), max(len(steps) - 1, 0))

    return ScheduleState(
        card_id=data.get("card_id"),
        user_id=data.get("user_id"),
        deck_id=data.get("deck_id"),
        ease_factor=config.clamp_ease(float(ease)),
        interval_days=max(0.0, float(pick("interval_days", 0))),
        current_state=state,
        learning_step_index=step_index,
        last_reviewed_at=_parse_datetime(data.get("last_reviewed_at")),
        next_review_at=_parse_datetime(data.get("next_review_at")),
        average_response_time=max(0.0, float(pick("average_response_time", 0))),
        perceived_difficulty=float(difficulty),
        pre_lapse_interval_days=max(0.0, float(pick("pre_lapse_interval_days", 0))),
        retention_rate=float(pick("retention_rate", 0)),
        version=int(pick("version", 0)),
        **counters,
    )


@dataclass
class PersonalMultipliers:
    again: float = 1.0
    hard: float = 1.2
    good: float = 2.5
    easy: float = 3.5

    def for_rating(self, rating: Rating) -> float:
        return getattr(self, rating.value)


@dataclass
class LearningProfile:
    user_id: str
    learning_speed: LearningSpeed = LearningSpeed.MEDIUM
    personal_multipliers: PersonalMultipliers = field(default_factory=PersonalMultipliers)
    optimal_session_length: int = 20
    daily_review_goal: int = 20
    difficulty_preference: DifficultyPreference = DifficultyPreference.BALANCED
    preferred_study_times: list[int] = field(default_factory=list)
    is_calibrated: bool = False
    calibration_reviews: int = 0
    last_calibration_date: Optional[datetime] = None
    total_study_minutes: float = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_study_date: Optional[date] = None
    average_retention: float = 0
    version: int = 0


@dataclass
class StudySession:
    """One completed or abandoned study session. Never mutated after saving."""
    user_id: str
    deck_id: Optional[int]
    session_start: datetime
    session_end: datetime
    cards_reviewed: int = 0
    cards_again: int = 0
    cards_hard: int = 0
    cards_good: int = 0
    cards_easy: int = 0
    average_accuracy: float = 0
    average_response_time: float = 0
    time_of_day: int = 0
    session_quality: float = 0
    was_completed: bool = True
    id: Optional[int] = None

    @classmethod
    def from_counts(
        cls,
        user_id: str,
        deck_id: Optional[int],
        session_start: datetime,
        session_end: datetime,
        counts: Mapping[Rating, int],
        total_response_time_ms: float = 0,
        was_completed: bool = True,
    ) -> "StudySession":
        """Build a session record, deriving accuracy, quality and hour of day."""
        reviewed = sum(counts.values())
        avg_response = total_response_time_ms / reviewed if reviewed else 0
        return cls(
            user_id=user_id,
            deck_id=deck_id,
            session_start=session_start,
            session_end=session_end,
            cards_reviewed=reviewed,
            cards_again=counts.get(Rating.AGAIN, 0),
            cards_hard=counts.get(Rating.HARD, 0),
            cards_good=counts.get(Rating.GOOD, 0),
            cards_easy=counts.get(Rating.EASY, 0),
            average_accuracy=accuracy_of(counts),
            average_response_time=avg_response,
            time_of_day=session_end.hour,
            session_quality=session_quality_of(counts, avg_response),
            was_completed=was_completed,
        )


def accuracy_of(counts: Mapping[Rating, int]) -> float:
    """Share of good/easy ratings, 0-100."""
    reviewed = sum(counts.values())
    if not reviewed:
        return 0.0
    return (counts.get(Rating.GOOD, 0) + counts.get(Rating.EASY, 0)) / reviewed * 100


def session_quality_of(counts: Mapping[Rating, int], average_response_ms: float) -> float:
    """Composite 0-100 score: 70% success rate, 30% speed against a 5 s benchmark."""
    if not sum(counts.values()):
        return 0.0
    time_efficiency = max(0.0, min(100.0, 100 - (average_response_ms - 5000) / 100))
    quality = accuracy_of(counts) * 0.7 + time_efficiency * 0.3
    return round(max(0.0, min(100.0, quality)))
