"""Review session logic: due-card fetch, rating submission, calibration triggers."""
import logging
import random
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Optional, Union

from adaptive_srs.calibration import (
    CalibrationResult, apply_calibration, calibrate, needs_recalibration,
)
from adaptive_srs.config import SrsConfig
from adaptive_srs.engine import context_modifier, parse_rating, submit_review
from adaptive_srs.errors import ConcurrentUpdateError, InvalidSettingError
from adaptive_srs.models import (
    DifficultyPreference, LearningProfile, Rating, ScheduleState, StudySession,
)
from adaptive_srs.queue import select_session
from adaptive_srs.store import (
    add_session, ensure_progress, get_deck_cards, get_deck_importance, get_deck_states,
    get_profile, get_progress, get_recent_sessions, get_user_states, save_profile, save_progress,
)

logger = logging.getLogger(__name__)

PROFILE_WRITE_ATTEMPTS = 3
RECENT_SESSIONS_FOR_CONTEXT = 3
DEFAULT_AVERAGE_RETENTION = 75.0


def staleness_status(state: ScheduleState, now: datetime, config: SrsConfig) -> str:
    if state.last_reviewed_at is None:
        return "notYet"
    if now - state.last_reviewed_at >= timedelta(days=config.forgotten_after_days):
        return "forgotten"
    return "recent"


def get_due_cards(
    db_path: str,
    user_id: str,
    deck_id: int,
    limit: Optional[int] = None,
    *,
    config: Optional[SrsConfig] = None,
    now: Optional[datetime] = None,
    ordering: Optional[str] = None,
    rng: Optional[random.Random] = None,
) -> list[dict]:
    """Cards to study now, each merged with its schedule state and scores."""
    config = config or SrsConfig()
    now = now or datetime.now()
    profile = get_profile(db_path, user_id)
    ensure_progress(db_path, user_id, deck_id)
    states = get_deck_states(db_path, user_id, deck_id, config)
    selected = select_session(
        states, profile, limit or profile.optimal_session_length,
        config=config, now=now, ordering=ordering, rng=rng,
        deck_importance=get_deck_importance(db_path, deck_id),
    )

    cards = {c["id"]: c for c in get_deck_cards(db_path, deck_id)}
    result = []
    for scored in selected:
        card = cards.get(scored.card_id)
        if card is None:
            continue
        state = scored.state
        result.append({
            **card,
            "card_id": card["id"],
            "state": state,
            "current_state": state.current_state.value,
            "next_review_at": state.next_review_at,
            "priority_score": scored.priority_score,
            "urgency_score": scored.score.urgency_score,
            "importance_score": scored.score.importance_score,
            "forget_probability": scored.forget_probability,
            "staleness_status": staleness_status(state, now, config),
        })
    logger.info("Serving %d of %d cards from deck %s to %s", len(result), len(states), deck_id, user_id)
    return result


def _update_profile(db_path: str, user_id: str,
                    change: Callable[[LearningProfile], LearningProfile]) -> LearningProfile:
    """Read-modify-write of a profile, retried when another writer wins the race."""
    for attempt in range(1, PROFILE_WRITE_ATTEMPTS + 1):
        profile = change(get_profile(db_path, user_id))
        try:
            return save_profile(db_path, profile)
        except ConcurrentUpdateError:
            if attempt == PROFILE_WRITE_ATTEMPTS:
                raise
            logger.info("Retrying profile update for %s (attempt %d)", user_id, attempt + 1)


def _recent_context(db_path: str, user_id: str, profile: LearningProfile) -> float:
    recent = get_recent_sessions(db_path, user_id, limit=RECENT_SESSIONS_FOR_CONTEXT)
    if not recent:
        return 1.0
    recent_accuracy = sum(s.average_accuracy for s in recent) / len(recent)
    return context_modifier(recent_accuracy, profile.average_retention or DEFAULT_AVERAGE_RETENTION)


def calibrate_user(
    db_path: str,
    user_id: str,
    *,
    config: Optional[SrsConfig] = None,
    now: Optional[datetime] = None,
    apply: bool = True,
) -> CalibrationResult:
    """Calibrate a learner from stored history; applies the result unless asked not to."""
    config = config or SrsConfig()
    result = calibrate(
        get_user_states(db_path, user_id, config),
        get_recent_sessions(db_path, user_id, limit=config.calibration_session_window),
        config,
    )
    if result.needs_more_data:
        logger.info("Not enough reviews to calibrate %s (%d cards)", user_id, result.reviewed_cards)
    elif apply:
        _update_profile(db_path, user_id, lambda p: apply_calibration(p, result, now))
    return result


def record_review(
    db_path: str,
    user_id: str,
    card_id: int,
    rating: Union[str, Rating],
    response_time_ms: Optional[float] = None,
    *,
    config: Optional[SrsConfig] = None,
    now: Optional[datetime] = None,
) -> ScheduleState:
    """Apply one rating to a card and persist the result.

    Raises:
        InvalidRatingError: rating is not again/hard/good/easy.
        CardNotFoundError: no such card.
        ConcurrentUpdateError: the card was reviewed concurrently; retry.
    """
    config = config or SrsConfig()
    now = now or datetime.now()
    rating = parse_rating(rating)
    progress = get_progress(db_path, user_id, card_id, config)
    profile = get_profile(db_path, user_id)

    updated = submit_review(
        progress, rating, profile,
        config=config, now=now, response_time_ms=response_time_ms,
        context=_recent_context(db_path, user_id, profile),
    )
    saved = save_progress(db_path, updated)

    def bump(p: LearningProfile) -> LearningProfile:
        return replace(p, calibration_reviews=p.calibration_reviews + 1)

    profile = _update_profile(db_path, user_id, bump)
    if (profile.calibration_reviews >= config.calibration_trigger_reviews
            and needs_recalibration(profile, now, config)):
        calibrate_user(db_path, user_id, config=config, now=now)
    return saved


def record_session(db_path: str, session: StudySession, *,
                   config: Optional[SrsConfig] = None) -> int:
    """Append a finished session and roll it into the learner's streaks and totals."""
    config = config or SrsConfig()
    session_id = add_session(db_path, session)
    minutes = (session.session_end - session.session_start).total_seconds() / 60
    study_day = session.session_end.date()
    recent = get_recent_sessions(db_path, session.user_id, limit=config.calibration_session_window)
    retention = sum(s.average_accuracy for s in recent) / len(recent)

    def roll_in(p: LearningProfile) -> LearningProfile:
        streak, longest = p.current_streak, p.longest_streak
        if p.last_study_date != study_day:
            if p.last_study_date == study_day - timedelta(days=1):
                streak += 1
            else:
                streak = 1
            longest = max(longest, streak)
        return replace(
            p,
            total_study_minutes=p.total_study_minutes + max(0.0, minutes),
            current_streak=streak,
            longest_streak=longest,
            last_study_date=max(study_day, p.last_study_date or study_day),
            average_retention=retention,
        )

    _update_profile(db_path, session.user_id, roll_in)
    return session_id


_SETTING_RANGES = {
    "daily_review_goal": (1, 200),
    "optimal_session_length": (5, 100),
}


def update_profile_settings(db_path: str, user_id: str, **changes) -> LearningProfile:
    """Apply direct user edits to the learner profile."""
    for name, value in changes.items():
        if name in _SETTING_RANGES:
            low, high = _SETTING_RANGES[name]
            if not isinstance(value, int) or not low <= value <= high:
                raise InvalidSettingError(name, value)
        elif name == "difficulty_preference":
            try:
                changes[name] = DifficultyPreference(value)
            except ValueError:
                raise InvalidSettingError(name, value) from None
        elif name == "preferred_study_times":
            if not all(isinstance(h, int) and 0 <= h <= 23 for h in value):
                raise InvalidSettingError(name, value)
            changes[name] = sorted(set(value))
        else:
            raise InvalidSettingError(name, value)
    return _update_profile(db_path, user_id, lambda p: replace(p, **changes))
