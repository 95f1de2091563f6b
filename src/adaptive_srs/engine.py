"""Ease/interval engine: applies one rating to a card's schedule state.

Transitions are keyed by (state, rating) in TRANSITIONS. Every transition
works on a copy of the normalised state; the caller's record is never mutated.
Without a learner profile the global constants from SrsConfig apply; with a
profile, ease steps follow the learner's speed and interval multipliers come
from the profile's personal multipliers.
"""
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable, Optional, Union

from adaptive_srs.config import SrsConfig
from adaptive_srs.errors import InvalidRatingError
from adaptive_srs.models import (
    MAX_DIFFICULTY, MIN_DIFFICULTY, DEFAULT_DIFFICULTY,
    CardState, LearningProfile, LearningSpeed, PersonalMultipliers, Rating,
    ScheduleState, normalize_state,
)

logger = logging.getLogger(__name__)

# Ease adjustments per learning speed: (again, hard, good, easy).
SPEED_EASE_STEPS = {
    LearningSpeed.FAST: {Rating.AGAIN: -0.20, Rating.HARD: -0.10, Rating.GOOD: 0.05, Rating.EASY: 0.20},
    LearningSpeed.MEDIUM: {Rating.AGAIN: -0.17, Rating.HARD: -0.09, Rating.GOOD: 0.04, Rating.EASY: 0.17},
    LearningSpeed.SLOW: {Rating.AGAIN: -0.15, Rating.HARD: -0.08, Rating.GOOD: 0.03, Rating.EASY: 0.15},
}

# Offset from config.starting_ease for a learner's brand-new cards.
SPEED_EASE_OFFSET = {
    LearningSpeed.FAST: 0.2,
    LearningSpeed.MEDIUM: 0.0,
    LearningSpeed.SLOW: -0.2,
}

DIFFICULTY_DRIFT = {
    Rating.AGAIN: 0.5,
    Rating.HARD: 0.2,
    Rating.GOOD: 0.0,
    Rating.EASY: -0.3,
}


def parse_rating(value: Union[str, Rating]) -> Rating:
    """Validate a rating from outside the scheduler."""
    if isinstance(value, Rating):
        return value
    try:
        return Rating(str(value).strip().lower())
    except ValueError:
        raise InvalidRatingError(value) from None


def context_modifier(recent_accuracy: float, average_accuracy: float) -> float:
    """Interval modifier from recent session accuracy against the learner's norm."""
    if average_accuracy == 0:
        return 1.0
    ratio = recent_accuracy / average_accuracy
    if ratio < 0.7:
        return 0.8
    if ratio > 1.2:
        return 1.15
    return 1.0


def difficulty_modifier(perceived_difficulty: float) -> float:
    """1.22 for the easiest cards down to 0.725 for the hardest; 1.0 at 5."""
    return 1.0 - (perceived_difficulty - DEFAULT_DIFFICULTY) * 0.055


@dataclass
class _Review:
    rating: Rating
    config: SrsConfig
    profile: Optional[LearningProfile]
    now: datetime
    context: float

    def ease_step(self, in_review: bool) -> float:
        if self.profile is not None:
            step = SPEED_EASE_STEPS[self.profile.learning_speed][self.rating]
            if self.rating == Rating.GOOD and not in_review:
                return 0.0
            return step
        down = self.config.ease_step_down_hard
        return {
            Rating.AGAIN: -down,
            Rating.HARD: -down / 2,
            Rating.GOOD: 0.0,
            Rating.EASY: self.config.ease_step_up_easy,
        }[self.rating]

    @property
    def multipliers(self) -> PersonalMultipliers:
        if self.profile is not None:
            return self.profile.personal_multipliers
        return PersonalMultipliers(
            hard=self.config.hard_multiplier,
            good=self.config.good_multiplier,
            easy=self.config.easy_multiplier,
        )


def _adjust_ease(state: ScheduleState, review: _Review, in_review: bool) -> None:
    state.ease_factor = review.config.clamp_ease(state.ease_factor + review.ease_step(in_review))


def _schedule_minutes(state: ScheduleState, review: _Review, minutes: float) -> None:
    minutes = max(minutes, review.config.min_next_review_minutes)
    state.next_review_at = review.now + timedelta(minutes=minutes)


def _schedule_days(state: ScheduleState, review: _Review, days: float) -> None:
    _schedule_minutes(state, review, days * 24 * 60)


def _steps(state: ScheduleState, review: _Review) -> list[float]:
    return review.config.steps_for(state.current_state == CardState.RELEARNING)


def _step_minutes(steps: list[float], index: int, review: _Review) -> float:
    if not steps:
        return review.config.min_next_review_minutes
    return steps[min(index, len(steps) - 1)]


def _enter_steps(state: ScheduleState) -> None:
    if state.current_state == CardState.NEW:
        state.current_state = CardState.LEARNING


def _graduate(state: ScheduleState, review: _Review) -> None:
    config = review.config
    if state.current_state == CardState.RELEARNING:
        interval = max(
            config.lapse_interval_days,
            state.pre_lapse_interval_days * config.relearning_interval_factor,
        )
        if review.rating == Rating.EASY:
            interval = max(interval, config.easy_graduating_interval_days)
    elif review.rating == Rating.EASY:
        interval = config.easy_graduating_interval_days
    else:
        interval = config.initial_review_interval_days
    state.current_state = CardState.REVIEW
    state.learning_step_index = 0
    state.interval_days = max(config.min_interval_days, interval)
    _schedule_days(state, review, state.interval_days)


def _restart_steps(state: ScheduleState, review: _Review) -> None:
    _enter_steps(state)
    state.learning_step_index = 0
    _adjust_ease(state, review, in_review=False)
    _schedule_minutes(state, review, _step_minutes(_steps(state, review), 0, review))


def _repeat_step(state: ScheduleState, review: _Review) -> None:
    _enter_steps(state)
    _adjust_ease(state, review, in_review=False)
    steps = _steps(state, review)
    _schedule_minutes(state, review, _step_minutes(steps, state.learning_step_index, review))


def _advance_step(state: ScheduleState, review: _Review) -> None:
    _enter_steps(state)
    steps = _steps(state, review)
    next_index = state.learning_step_index + 1
    if next_index >= len(steps):
        _graduate(state, review)
        return
    state.learning_step_index = next_index
    _schedule_minutes(state, review, steps[next_index])


def _graduate_early(state: ScheduleState, review: _Review) -> None:
    _adjust_ease(state, review, in_review=False)
    _graduate(state, review)


def _lapse(state: ScheduleState, review: _Review) -> None:
    state.lapse_count += 1
    _adjust_ease(state, review, in_review=True)
    state.pre_lapse_interval_days = state.interval_days
    state.interval_days = review.config.lapse_interval_days
    state.current_state = CardState.RELEARNING
    state.learning_step_index = 0
    _schedule_minutes(state, review, _step_minutes(_steps(state, review), 0, review))


def _grow_interval(state: ScheduleState, review: _Review) -> None:
    config = review.config
    _adjust_ease(state, review, in_review=True)
    multiplier = review.multipliers.for_rating(review.rating)
    if review.rating in (Rating.GOOD, Rating.EASY):
        multiplier *= state.ease_factor / config.starting_ease
    multiplier *= difficulty_modifier(state.perceived_difficulty) * review.context
    multiplier = min(config.max_interval_multiplier, max(config.min_interval_multiplier, multiplier))
    state.interval_days = max(config.min_interval_days, state.interval_days * multiplier)
    _schedule_days(state, review, state.interval_days)


Transition = Callable[[ScheduleState, _Review], None]

_STEP_TRANSITIONS: dict[Rating, Transition] = {
    Rating.AGAIN: _restart_steps,
    Rating.HARD: _repeat_step,
    Rating.GOOD: _advance_step,
    Rating.EASY: _graduate_early,
}

TRANSITIONS: dict[tuple[CardState, Rating], Transition] = {
    **{(CardState.NEW, r): fn for r, fn in _STEP_TRANSITIONS.items()},
    **{(CardState.LEARNING, r): fn for r, fn in _STEP_TRANSITIONS.items()},
    **{(CardState.RELEARNING, r): fn for r, fn in _STEP_TRANSITIONS.items()},
    (CardState.REVIEW, Rating.AGAIN): _lapse,
    (CardState.REVIEW, Rating.HARD): _grow_interval,
    (CardState.REVIEW, Rating.GOOD): _grow_interval,
    (CardState.REVIEW, Rating.EASY): _grow_interval,
}


def _record_rating(state: ScheduleState, rating: Rating, now: datetime,
                   response_time_ms: Optional[float]) -> None:
    previous = state.review_count
    state.review_count += 1
    counter = f"{rating.value}_count"
    setattr(state, counter, getattr(state, counter) + 1)
    state.last_reviewed_at = now
    state.retention_rate = state.successful_reviews / state.review_count * 100
    if response_time_ms is not None:
        if previous == 0:
            state.average_response_time = float(response_time_ms)
        else:
            state.average_response_time = (
                state.average_response_time * previous + response_time_ms
            ) / (previous + 1)


def submit_review(
    state,
    rating: Union[str, Rating],
    profile: Optional[LearningProfile] = None,
    *,
    config: Optional[SrsConfig] = None,
    now: Optional[datetime] = None,
    response_time_ms: Optional[float] = None,
    context: float = 1.0,
) -> ScheduleState:
    """Apply a rating and return the card's next schedule state.

    Args:
        state: ScheduleState or any partial record; normalised first.
        rating: one of again/hard/good/easy.
        profile: learner profile; None uses the global constants only.
        config: scheduling constants (defaults to SrsConfig()).
        now: review time.
        response_time_ms: optional latency sample for the running mean.
        context: interval modifier from recent performance (see context_modifier).

    Returns:
        A new ScheduleState. An unrecognised rating returns the normalised
        state unchanged.
    """
    config = config or SrsConfig()
    now = now or datetime.now()
    current = normalize_state(state, config)
    try:
        rating = Rating(rating)
    except ValueError:
        logger.warning("Ignoring review with unknown rating %r for card %s", rating, current.card_id)
        return current

    updated = replace(current)
    if profile is not None and updated.is_new:
        updated.ease_factor = config.clamp_ease(
            config.starting_ease + SPEED_EASE_OFFSET[profile.learning_speed]
        )
    updated.perceived_difficulty = min(
        MAX_DIFFICULTY,
        max(MIN_DIFFICULTY, updated.perceived_difficulty + DIFFICULTY_DRIFT[rating]),
    )

    transition = TRANSITIONS[(updated.current_state, rating)]
    review = _Review(rating=rating, config=config, profile=profile, now=now, context=context)
    transition(updated, review)
    _record_rating(updated, rating, now, response_time_ms)
    logger.debug(
        "Card %s: %s -> %s (interval %.2fd, ease %.2f)",
        updated.card_id, current.current_state.value, updated.current_state.value,
        updated.interval_days, updated.ease_factor,
    )
    return updated
