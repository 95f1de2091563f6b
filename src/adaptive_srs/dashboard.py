"""Deck statistics: mastery distribution, due forecast, retention."""
from datetime import date, datetime, timedelta
from typing import Optional

from adaptive_srs.config import SrsConfig
from adaptive_srs.forgetting import estimate_forget_probability
from adaptive_srs.models import CardState, ScheduleState
from adaptive_srs.priority import is_mastered
from adaptive_srs.queue import calculate_daily_workload
from adaptive_srs.store import (
    ensure_progress, get_deck_states, get_due_states, get_recent_sessions,
)

MASTERY_BUCKETS = ("new", "learning", "young", "mature", "mastered")


def get_retention_label(score: float) -> str:
    if score >= 85:
        return "STRONG"
    elif score >= 70:
        return "STEADY"
    elif score >= 50:
        return "SHAKY"
    return "WEAK"


def get_retention_color(score: float) -> str:
    if score >= 85:
        return "green"
    elif score >= 70:
        return "yellow"
    elif score >= 50:
        return "dark_orange"
    return "red"


def mastery_bucket(state: ScheduleState) -> str:
    if state.current_state == CardState.NEW:
        return "new"
    if state.current_state in (CardState.LEARNING, CardState.RELEARNING):
        return "learning"
    if is_mastered(state):
        return "mastered"
    if state.interval_days >= 7:
        return "mature"
    return "young"


def mastery_distribution(states: list[ScheduleState]) -> dict[str, int]:
    counts = dict.fromkeys(MASTERY_BUCKETS, 0)
    for state in states:
        counts[mastery_bucket(state)] += 1
    return counts


def due_forecast(states: list[ScheduleState], start: date, days: int = 7) -> list[dict]:
    """Cumulative due counts for each of the next `days` days."""
    forecast = []
    for offset in range(days):
        day = start + timedelta(days=offset)
        workload = calculate_daily_workload(states, day)
        forecast.append({
            "date": day,
            "due_cards": workload.due_cards,
            "new_cards": workload.new_cards,
            "review_cards": workload.review_cards,
            "estimated_minutes": workload.estimated_minutes,
        })
    return forecast


def card_retention(states: list[ScheduleState]) -> float:
    """Share of good/easy ratings across all reviews, 0-100."""
    total = sum(s.review_count for s in states)
    if not total:
        return 0.0
    return sum(s.successful_reviews for s in states) / total * 100


def get_deck_stats(db_path: str, user_id: str, deck_id: int,
                   config: Optional[SrsConfig] = None,
                   now: Optional[datetime] = None) -> dict:
    config = config or SrsConfig()
    now = now or datetime.now()
    ensure_progress(db_path, user_id, deck_id)
    states = get_deck_states(db_path, user_id, deck_id, config)
    due_now = get_due_states(db_path, user_id, deck_id, now, config)
    reviewed = [s for s in states if s.review_count > 0]
    at_risk = [s for s in reviewed if estimate_forget_probability(s, now, config) >= 0.5]
    retention = round(card_retention(states), 1)
    sessions = get_recent_sessions(db_path, user_id, limit=config.calibration_session_window)
    return {
        "total_cards": len(states),
        "reviewed_cards": len(reviewed),
        "due_now": len(due_now),
        "reviews": sum(s.review_count for s in states),
        "lapses": sum(s.lapse_count for s in states),
        "retention": retention,
        "label": get_retention_label(retention),
        "at_risk": len(at_risk),
        "mastery": mastery_distribution(states),
        "forecast": due_forecast(states, now.date()),
        "sessions": len(sessions),
    }
