"""Learning profile calibration from review and session history."""
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Iterable, Optional, Sequence

from adaptive_srs.config import SrsConfig
from adaptive_srs.models import (
    LearningProfile, LearningSpeed, PersonalMultipliers, StudySession, normalize_state,
)

logger = logging.getLogger(__name__)

DEFAULT_SESSION_LENGTH = 20
MIN_BUCKET_SESSIONS = 3

MULTIPLIERS_BY_SPEED = {
    LearningSpeed.FAST: PersonalMultipliers(again=1.0, hard=1.3, good=2.8, easy=4.0),
    LearningSpeed.MEDIUM: PersonalMultipliers(again=1.0, hard=1.2, good=2.5, easy=3.5),
    LearningSpeed.SLOW: PersonalMultipliers(again=1.0, hard=1.1, good=2.2, easy=3.0),
}

# (upper bound on cards reviewed, representative session length)
SESSION_BUCKETS = [
    ("short", 10, 10),
    ("medium", 25, 20),
    ("long", 40, 30),
    ("veryLong", None, 40),
]


@dataclass
class CalibrationResult:
    learning_speed: LearningSpeed = LearningSpeed.MEDIUM
    confidence_level: float = 0.0
    recommended_multipliers: PersonalMultipliers = field(
        default_factory=lambda: replace(MULTIPLIERS_BY_SPEED[LearningSpeed.MEDIUM])
    )
    optimal_session_length: int = DEFAULT_SESSION_LENGTH
    needs_more_data: bool = False
    accuracy: float = 0.0
    average_response_time_ms: float = 0.0
    reviewed_cards: int = 0


def classify_speed(accuracy: float, average_response_ms: float) -> tuple[LearningSpeed, float]:
    """Learning speed and a descriptive confidence weight (for display only)."""
    if accuracy >= 85 and average_response_ms < 7000:
        return LearningSpeed.FAST, 0.9
    if accuracy >= 75 and average_response_ms < 10000:
        return LearningSpeed.MEDIUM, 0.85
    if accuracy >= 70:
        return LearningSpeed.MEDIUM, 0.7
    return LearningSpeed.SLOW, 0.8


def _bucket(cards_reviewed: int) -> str:
    for name, upper, _ in SESSION_BUCKETS:
        if upper is None or cards_reviewed <= upper:
            return name
    return SESSION_BUCKETS[-1][0]


def optimal_session_length(sessions: Sequence[StudySession]) -> int:
    """Representative length of the best-scoring session-size bucket."""
    totals: dict[str, list[float]] = {}
    for s in sessions:
        totals.setdefault(_bucket(s.cards_reviewed), []).append(s.average_accuracy)

    best_length = DEFAULT_SESSION_LENGTH
    best_accuracy = 0.0
    for name, _, length in SESSION_BUCKETS:
        accuracies = totals.get(name, [])
        if len(accuracies) < MIN_BUCKET_SESSIONS:
            continue
        mean = sum(accuracies) / len(accuracies)
        if mean > best_accuracy:
            best_accuracy = mean
            best_length = length
    return best_length


def calibrate(
    states: Iterable,
    sessions: Sequence[StudySession] = (),
    config: Optional[SrsConfig] = None,
) -> CalibrationResult:
    """Classify a learner from all of their card states and recent sessions.

    sessions should be newest first; only the first
    config.calibration_session_window are used.
    """
    config = config or SrsConfig()
    reviewed = [s for s in (normalize_state(raw, config) for raw in states) if s.review_count > 0]
    if len(reviewed) < config.calibration_min_cards:
        return CalibrationResult(needs_more_data=True, reviewed_cards=len(reviewed))

    total_reviews = sum(s.review_count for s in reviewed)
    successful = sum(s.successful_reviews for s in reviewed)
    accuracy = successful / total_reviews * 100
    avg_response = sum(s.average_response_time for s in reviewed) / len(reviewed)

    speed, confidence = classify_speed(accuracy, avg_response)
    window = list(sessions)[:config.calibration_session_window]
    result = CalibrationResult(
        learning_speed=speed,
        confidence_level=confidence,
        recommended_multipliers=replace(MULTIPLIERS_BY_SPEED[speed]),
        optimal_session_length=optimal_session_length(window),
        needs_more_data=False,
        accuracy=accuracy,
        average_response_time_ms=avg_response,
        reviewed_cards=len(reviewed),
    )
    logger.info(
        "Calibrated: %s (accuracy %.1f%%, %.0f ms, %d cards)",
        speed.value, accuracy, avg_response, len(reviewed),
    )
    return result


def apply_calibration(profile: LearningProfile, result: CalibrationResult,
                      now: Optional[datetime] = None) -> LearningProfile:
    """Return the profile updated with a calibration result."""
    return replace(
        profile,
        learning_speed=result.learning_speed,
        personal_multipliers=replace(result.recommended_multipliers),
        optimal_session_length=result.optimal_session_length,
        is_calibrated=True,
        last_calibration_date=now or datetime.now(),
        calibration_reviews=0,
    )


def needs_recalibration(profile: Optional[LearningProfile], now: Optional[datetime] = None,
                        config: Optional[SrsConfig] = None) -> bool:
    config = config or SrsConfig()
    now = now or datetime.now()
    if profile is None or not profile.is_calibrated:
        return True
    if profile.calibration_reviews > config.recalibration_review_limit:
        return True
    if profile.last_calibration_date is not None:
        age_days = (now - profile.last_calibration_date).total_seconds() / 86400
        if age_days > config.recalibration_max_age_days:
            return True
    return False
