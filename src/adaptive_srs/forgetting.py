"""Forgetting-curve estimates.

P(recall) = e^(-t/S), where t is days since the last review and S a stability
derived from interval, ease and review count.
"""
import math
from datetime import datetime
from typing import Optional

from adaptive_srs.config import SrsConfig
from adaptive_srs.models import ScheduleState

MIN_STABILITY = 0.1


def estimate_forget_probability(
    state: ScheduleState,
    now: datetime,
    config: Optional[SrsConfig] = None,
) -> float:
    """Probability in [0, 1] that the card has been forgotten at `now`."""
    if state.review_count == 0 or state.last_reviewed_at is None:
        return 1.0

    base_ease = config.starting_ease if config else 2.5
    elapsed_days = (now - state.last_reviewed_at).total_seconds() / 86400
    ease = state.ease_factor or base_ease
    stability = state.interval_days * (ease / base_ease) * math.log(state.review_count + 1)
    if stability == 0 or not math.isfinite(stability):
        return 1.0

    try:
        recall = math.exp(-elapsed_days / max(stability, MIN_STABILITY))
    except OverflowError:
        # Review timestamp far in the future.
        return 0.0
    result = min(1.0, max(0.0, 1 - recall))
    if not math.isfinite(result):
        return 0.0
    return result

