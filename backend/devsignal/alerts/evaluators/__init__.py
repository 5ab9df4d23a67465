"""
Evaluator factory and registry.
"""
from devsignal.models import AlertTriggerType

from .base import TriggerEvaluator
from .activity import AccountInactiveEvaluator, EngagementDropEvaluator, NewHotSignalEvaluator
from .score_change import ScoreDropEvaluator, ScoreRiseEvaluator
from .threshold import ScoreThresholdEvaluator

# Registry of available evaluators
EVALUATOR_REGISTRY = {
    AlertTriggerType.SCORE_DROP: ScoreDropEvaluator,
    AlertTriggerType.SCORE_RISE: ScoreRiseEvaluator,
    AlertTriggerType.SCORE_THRESHOLD: ScoreThresholdEvaluator,
    AlertTriggerType.ENGAGEMENT_DROP: EngagementDropEvaluator,
    AlertTriggerType.NEW_HOT_SIGNAL: NewHotSignalEvaluator,
    AlertTriggerType.ACCOUNT_INACTIVE: AccountInactiveEvaluator,
}

# Evaluated right after a score computation
REACTIVE_TRIGGERS = (
    AlertTriggerType.SCORE_DROP,
    AlertTriggerType.SCORE_RISE,
    AlertTriggerType.SCORE_THRESHOLD,
    AlertTriggerType.NEW_HOT_SIGNAL,
)

# Evaluated by the periodic sweep
TIME_BASED_TRIGGERS = (
    AlertTriggerType.ENGAGEMENT_DROP,
    AlertTriggerType.ACCOUNT_INACTIVE,
)


def get_evaluator(trigger_type: str) -> TriggerEvaluator:
    """
    Factory function to create the evaluator for a trigger type.

    Raises:
        ValueError: If trigger_type is not a known trigger
    """
    try:
        key = AlertTriggerType(trigger_type)
    except ValueError:
        raise ValueError(
            f"Unknown trigger type: {trigger_type}. "
            f"Available: {[t.value for t in EVALUATOR_REGISTRY]}"
        )
    return EVALUATOR_REGISTRY[key]()
