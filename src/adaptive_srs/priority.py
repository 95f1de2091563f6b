"""Review priority scoring: urgency (due date, forgetting) x importance (mastery, lapses)."""
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from adaptive_srs.models import CardState, ScheduleState

OVERDUE_BOOST = 1.2
PROXIMITY_HORIZON_DAYS = 14


@dataclass
class PriorityScore:
    priority_score: float
    urgency_score: float
    importance_score: float
    is_overdue: bool
    days_overdue: float


def is_mastered(state: ScheduleState) -> bool:
    return (
        state.interval_days >= 14
        and state.review_count >= 4
        and state.ease_factor >= 2.2
        and state.lapse_count <= 3
    )


def mastery_level(state: ScheduleState) -> float:
    if state.current_state == CardState.NEW:
        return 0.0
    if state.current_state in (CardState.LEARNING, CardState.RELEARNING):
        return 0.3
    if state.interval_days < 7:
        return 0.5
    if state.interval_days < 14:
        return 0.7
    if is_mastered(state):
        return 1.0
    return 0.8


def _urgency(next_review_at: Optional[datetime], forget_probability: float,
             now: datetime) -> tuple[float, bool, float]:
    if next_review_at is None:
        return 1.0, True, 0.0
    days_overdue = (now - next_review_at).total_seconds() / 86400
    if days_overdue > 0:
        # 1 day overdue ~0.64, 7 days ~0.92, saturates around two weeks
        urgency = min(1.0, 0.5 + math.log(days_overdue + 1) / 5)
        return urgency, True, days_overdue
    days_until_due = -days_overdue
    proximity = max(0.0, 1 - days_until_due / PROXIMITY_HORIZON_DAYS)
    return proximity * 0.5 + forget_probability * 0.5, False, 0.0


def _importance(state: ScheduleState, deck_importance: float) -> float:
    mastery_importance = 1 - mastery_level(state)
    lapse_importance = min(1.0, state.lapse_count * 0.2)
    return (mastery_importance * 0.6 + lapse_importance * 0.4) * deck_importance


def score_card(
    state: ScheduleState,
    forget_probability: float,
    deck_importance: float = 1.0,
    now: Optional[datetime] = None,
) -> PriorityScore:
    now = now or datetime.now()
    urgency, is_overdue, days_overdue = _urgency(state.next_review_at, forget_probability, now)
    importance = _importance(state, deck_importance)
    priority = urgency * importance
    if is_overdue:
        priority *= OVERDUE_BOOST
    return PriorityScore(
        priority_score=min(1.0, max(0.0, priority)),
        urgency_score=urgency,
        importance_score=importance,
        is_overdue=is_overdue,
        days_overdue=days_overdue,
    )
