"""Review queue building: which due cards to present, and in what order."""
import logging
import math
import random
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional

from adaptive_srs.config import SrsConfig
from adaptive_srs.forgetting import estimate_forget_probability
from adaptive_srs.models import (
    CardState, DifficultyPreference, LearningProfile, ScheduleState, normalize_state,
)
from adaptive_srs.priority import PriorityScore, is_mastered, score_card

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_BASE = 20
CONFIDENCE_SHARE = 0.3
DEFER_MAX_DAYS_OVERDUE = 3
DEFER_MAX_URGENCY = 0.8
SECONDS_PER_CARD = 6


@dataclass
class ScoredCard:
    state: ScheduleState
    score: PriorityScore
    forget_probability: float
    priority_score: float

    @property
    def card_id(self):
        return self.state.card_id

    @property
    def urgency_score(self) -> float:
        return self.score.urgency_score

    @property
    def days_overdue(self) -> float:
        return self.score.days_overdue


@dataclass
class WorkloadSplit:
    review_now: list[ScoredCard]
    defer_to_tomorrow: list[ScoredCard]


@dataclass
class DailyWorkload:
    due_cards: int
    new_cards: int
    review_cards: int
    estimated_minutes: int


def _score_all(states: Iterable, deck_importance: float, config: SrsConfig,
               now: datetime) -> list[ScoredCard]:
    scored = []
    for raw in states:
        state = normalize_state(raw, config)
        forget = estimate_forget_probability(state, now, config)
        score = score_card(state, forget, deck_importance, now)
        scored.append(ScoredCard(state, score, forget, score.priority_score))
    return scored


def build_queue(
    candidates: Iterable,
    profile: LearningProfile,
    deck_importance: float = 1.0,
    max_cards: Optional[int] = None,
    *,
    config: Optional[SrsConfig] = None,
    now: Optional[datetime] = None,
    mastered_pool: Iterable = (),
) -> list[ScoredCard]:
    """Score candidates, apply the learner's difficulty preference, sort by priority.

    mastered_pool holds cards that are not due; in "confidence" mode up to 30%
    of max_cards worth of mastered cards from it are mixed in. Candidates are
    never dropped by the preference, only by max_cards.
    """
    config = config or SrsConfig()
    now = now or datetime.now()
    scored = _score_all(candidates, deck_importance, config, now)

    preference = profile.difficulty_preference
    if preference == DifficultyPreference.CHALLENGE:
        for card in scored:
            card.priority_score *= 1 + (card.state.perceived_difficulty - 5) * 0.1
    elif preference == DifficultyPreference.CONFIDENCE:
        seen = {c.card_id for c in scored if c.card_id is not None}
        extra = [
            c for c in _score_all(mastered_pool, deck_importance, config, now)
            if c.card_id is None or c.card_id not in seen
        ]
        mastered = sorted(
            (c for c in extra if is_mastered(c.state)),
            key=lambda c: c.priority_score, reverse=True,
        )
        include = math.floor(min(len(mastered), (max_cards or DEFAULT_CONFIDENCE_BASE) * CONFIDENCE_SHARE))
        scored = scored + mastered[:include]

    scored.sort(key=lambda c: c.priority_score, reverse=True)
    if max_cards:
        scored = scored[:max_cards]
    return scored


def balance_workload(cards: list[ScoredCard], daily_goal: int) -> WorkloadSplit:
    """Keep the top daily_goal cards for now; defer the rest unless critically overdue."""
    if len(cards) <= daily_goal:
        return WorkloadSplit(review_now=list(cards), defer_to_tomorrow=[])
    ranked = sorted(cards, key=lambda c: c.priority_score, reverse=True)
    deferred = [
        c for c in ranked[daily_goal:]
        if c.days_overdue < DEFER_MAX_DAYS_OVERDUE and c.urgency_score < DEFER_MAX_URGENCY
    ]
    return WorkloadSplit(review_now=ranked[:daily_goal], defer_to_tomorrow=deferred)


def is_due(state: ScheduleState, now: datetime) -> bool:
    return state.next_review_at is None or state.next_review_at <= now


def in_cooldown(state: ScheduleState, now: datetime, config: SrsConfig) -> bool:
    if state.last_reviewed_at is None:
        return False
    return now - state.last_reviewed_at < timedelta(minutes=config.min_next_review_minutes)


def _fill_session(prioritized: list[ScoredCard], limit: int, config: SrsConfig) -> list[ScoredCard]:
    # Review cards first; new cards are capped only while reviews compete for slots.
    review_pool = [c for c in prioritized if not c.state.is_new]
    new_pool = [c for c in prioritized if c.state.is_new]

    selected = review_pool[:limit]
    remaining = limit - len(selected)
    if review_pool:
        new_cap = min(len(new_pool), max(1, math.floor(limit * config.new_card_ratio)), remaining)
    else:
        new_cap = min(len(new_pool), remaining)
    selected.extend(new_pool[:new_cap])

    if len(selected) < limit and len(new_pool) > new_cap:
        backfill = min(len(new_pool) - new_cap, limit - len(selected))
        selected.extend(new_pool[new_cap:new_cap + backfill])
    return selected


def select_session(
    states: Iterable,
    profile: LearningProfile,
    limit: int,
    *,
    config: Optional[SrsConfig] = None,
    now: Optional[datetime] = None,
    ordering: Optional[str] = None,
    rng: Optional[random.Random] = None,
    deck_importance: float = 1.0,
) -> list[ScoredCard]:
    """Pick the cards for one study session from a deck's schedule states.

    ordering "priority" honours priority order (with a new-card cap and
    workload balancing); "shuffled" serves a uniform random sample of the
    eligible cards so equally-due cards rotate between sessions.
    """
    config = config or SrsConfig()
    now = now or datetime.now()
    ordering = ordering or config.ordering
    normalized = [normalize_state(s, config) for s in states]

    due = [s for s in normalized if is_due(s, now)]
    eligible = [s for s in due if not in_cooldown(s, now, config)]
    not_due = [s for s in normalized if not is_due(s, now) and not in_cooldown(s, now, config)]
    logger.debug(
        "Session for %s: %d cards, %d due, %d eligible",
        profile.user_id, len(normalized), len(due), len(eligible),
    )

    if ordering == "shuffled":
        scored = _score_all(eligible, deck_importance, config, now)
        (rng or random.Random()).shuffle(scored)
        return scored[:limit]
    if ordering != "priority":
        raise ValueError(f"Unknown ordering: {ordering!r}")

    prioritized = build_queue(
        eligible, profile, deck_importance, None,
        config=config, now=now, mastered_pool=not_due,
    )
    selected = _fill_session(prioritized, limit, config)
    split = balance_workload(selected, profile.daily_review_goal)
    return split.review_now[:limit]


def calculate_daily_workload(states: Iterable, day: date,
                             config: Optional[SrsConfig] = None) -> DailyWorkload:
    """Count the cards due by the end of `day`."""
    end_of_day = datetime.combine(day, time.max)
    due = new = review = 0
    for raw in states:
        state = normalize_state(raw, config)
        if state.next_review_at is None:
            if state.current_state == CardState.NEW:
                new += 1
                due += 1
        elif state.next_review_at <= end_of_day:
            due += 1
            if state.current_state == CardState.REVIEW:
                review += 1
    return DailyWorkload(
        due_cards=due,
        new_cards=new,
        review_cards=review,
        estimated_minutes=math.ceil(due * SECONDS_PER_CARD / 60),
    )
