"""
Pure PQA scoring: rule matching, conditions, decay, tiers and trend.

Nothing here touches the database; the engine feeds it signal history and
stores what comes back.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from devsignal.models import ScoreTier, ScoreTrend
from devsignal.schemas.scoring import (
    CONDITION_FIELDS,
    ScoreFactor,
    ScoreResult,
    ScoringCondition,
    ScoringRuleConfig,
    TierThresholds,
)

logger = logging.getLogger(__name__)

DECAY_WINDOW_DAYS = {
    "7d": 7,
    "14d": 14,
    "30d": 30,
    "90d": 90,
}

DECAY_CURVES = ("step", "linear")


@dataclass
class SignalRecord:
    """The slice of a stored signal that scoring needs."""
    type: str
    timestamp: datetime
    actor: Optional[str] = None

    @classmethod
    def from_signal(cls, signal) -> "SignalRecord":
        actor = None
        if signal.actor_id is not None:
            actor = str(signal.actor_id)
        elif signal.anonymous_id:
            actor = signal.anonymous_id
        return cls(type=signal.type, timestamp=signal.timestamp, actor=actor)


class MalformedRule(ValueError):
    """Rule cannot be evaluated and must be skipped."""
    pass


# ============================================================================
# DECAY
# ============================================================================

def decay_factor(age: timedelta, decay: str, curve: str = "step") -> float:
    """
    Weight multiplier for a signal of the given age.

    "none" never decays. "<N>d" keeps full weight inside the window:
        step:   1.0 inside, 0.0 at or past the window edge
        linear: 1 - age/window, 0.0 at or past the window edge

    Both curves are non-increasing in age.
    """
    if decay == "none":
        return 1.0
    if decay not in DECAY_WINDOW_DAYS:
        raise MalformedRule(f"unknown decay policy '{decay}'")
    if curve not in DECAY_CURVES:
        raise MalformedRule(f"unknown decay curve '{curve}'")

    window = timedelta(days=DECAY_WINDOW_DAYS[decay])
    if age < timedelta(0):
        age = timedelta(0)
    if age >= window:
        return 0.0
    if curve == "step":
        return 1.0
    return 1.0 - (age / window)


def within_window(age: timedelta, decay: str) -> bool:
    if decay == "none":
        return True
    if decay not in DECAY_WINDOW_DAYS:
        raise MalformedRule(f"unknown decay policy '{decay}'")
    return age < timedelta(days=DECAY_WINDOW_DAYS[decay])


# ============================================================================
# CONDITIONS
# ============================================================================

def _numeric(value: Any) -> float:
    if isinstance(value, bool):
        raise MalformedRule(f"non-numeric condition value {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise MalformedRule(f"non-numeric condition value {value!r}")


def evaluate_condition(condition: ScoringCondition, context: Dict[str, float]) -> bool:
    if condition.field not in CONDITION_FIELDS:
        raise MalformedRule(f"unknown condition field '{condition.field}'")

    actual = context[condition.field]
    expected = _numeric(condition.value)
    op = condition.operator

    if op == "gt":
        return actual > expected
    if op == "gte":
        return actual >= expected
    if op == "lt":
        return actual < expected
    if op == "lte":
        return actual <= expected
    if op == "eq":
        return actual == expected
    if op == "neq":
        return actual != expected
    raise MalformedRule(f"unknown condition operator '{op}'")


def validate_rule(rule: ScoringRuleConfig, curve: str = "step") -> None:
    """Raise MalformedRule for anything the engine would have to skip."""
    decay_factor(timedelta(0), rule.decay, curve)
    for condition in rule.conditions:
        evaluate_condition(condition, {name: 0 for name in CONDITION_FIELDS})


# ============================================================================
# RULES
# ============================================================================

def rule_matches(rule: ScoringRuleConfig, signal_type: str) -> bool:
    return rule.signal_type == "*" or rule.signal_type == signal_type


def rule_contribution(
    rule: ScoringRuleConfig,
    history: List[SignalRecord],
    now: datetime,
    user_count: int,
    curve: str = "step"
) -> Optional[ScoreFactor]:
    """
    weight * decay(age of the freshest matching signal), when every
    condition holds. None when nothing matches or a condition fails.
    """
    validate_rule(rule, curve)
    matching = [s for s in history if rule_matches(rule, s.type)]
    if not matching:
        return None

    freshest = max(s.timestamp for s in matching)
    in_window = [s for s in matching if within_window(now - s.timestamp, rule.decay)]

    context = {
        "signal_count": len(in_window),
        "user_count": user_count,
        "total_signals": len(history),
    }
    for condition in rule.conditions:
        if not evaluate_condition(condition, context):
            return None

    factor = decay_factor(now - freshest, rule.decay, curve)
    return ScoreFactor(
        rule_id=rule.id,
        name=rule.name or rule.signal_type,
        contribution=rule.weight * factor,
        matched_signals=len(in_window),
        decay_factor=factor,
    )


# ============================================================================
# TIER & TREND
# ============================================================================

def classify_tier(score: int, thresholds: TierThresholds) -> str:
    if score >= thresholds.hot:
        return ScoreTier.HOT.value
    if score >= thresholds.warm:
        return ScoreTier.WARM.value
    if score >= thresholds.cold:
        return ScoreTier.COLD.value
    return ScoreTier.INACTIVE.value


def compute_trend(new_score: int, previous_score: Optional[int], epsilon: float) -> str:
    if previous_score is None:
        return ScoreTrend.STABLE.value
    delta = new_score - previous_score
    if delta > epsilon:
        return ScoreTrend.RISING.value
    if delta < -epsilon:
        return ScoreTrend.FALLING.value
    return ScoreTrend.STABLE.value


def distinct_actors(history: Iterable[SignalRecord]) -> int:
    return len({s.actor for s in history if s.actor})


def compute_score(
    rules: List[ScoringRuleConfig],
    history: List[SignalRecord],
    now: datetime,
    thresholds: TierThresholds,
    max_score: int,
    previous_score: Optional[int] = None,
    trend_epsilon: float = 4.0,
    curve: str = "step",
    account_id: Optional[UUID] = None
) -> ScoreResult:
    """
    Score = round(sum of rule contributions), clamped to [0, max_score].
    Malformed rules are skipped with a warning.
    """
    user_count = distinct_actors(history)
    factors: List[ScoreFactor] = []
    total = 0.0

    for rule in rules:
        if not rule.enabled:
            continue
        try:
            factor = rule_contribution(rule, history, now, user_count, curve)
        except MalformedRule as e:
            logger.warning(f"Skipping scoring rule {rule.id} ({rule.name}) for account {account_id}: {e}")
            continue
        if factor is None:
            continue
        factors.append(factor)
        total += factor.contribution

    score = max(0, min(max_score, int(round(total))))
    last_signal_at = max((s.timestamp for s in history), default=None)

    return ScoreResult(
        score=score,
        tier=classify_tier(score, thresholds),
        trend=compute_trend(score, previous_score, trend_epsilon),
        signal_count=len(history),
        user_count=user_count,
        last_signal_at=last_signal_at,
        factors=factors,
    )
