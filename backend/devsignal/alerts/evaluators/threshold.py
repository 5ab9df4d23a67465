"""score_threshold evaluator: fires on crossings only."""

from datetime import datetime

from devsignal.alerts.evaluators.base import NOT_TRIGGERED, TriggerEvaluator
from devsignal.alerts.lookup import AlertLookup
from devsignal.models import AlertTriggerType
from devsignal.schemas.alerts import AlertConditions, EvaluationContext, EvaluationResult

DEFAULT_THRESHOLD = 70.0


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


class ScoreThresholdEvaluator(TriggerEvaluator):
    """
    direction "above": old < threshold <= new
    direction "below": old > threshold >= new

    With no previous score (first computation) it fires when the new score
    already satisfies the direction.
    """

    trigger_type = AlertTriggerType.SCORE_THRESHOLD

    async def evaluate(self, conditions: AlertConditions, ctx: EvaluationContext,
                       lookup: AlertLookup, now: datetime) -> EvaluationResult:
        threshold = conditions.threshold if conditions.threshold is not None else DEFAULT_THRESHOLD
        direction = (conditions.direction or "above").lower()
        new, old = ctx.new_score, ctx.old_score
        label = _fmt(threshold)

        if old is None:
            if direction == "above" and new >= threshold:
                return EvaluationResult(triggered=True, reason=f"Score ({new}) is above threshold ({label})")
            if direction == "below" and new <= threshold:
                return EvaluationResult(triggered=True, reason=f"Score ({new}) is below threshold ({label})")
            return NOT_TRIGGERED

        if direction == "above":
            if old < threshold <= new:
                return EvaluationResult(
                    triggered=True,
                    reason=f"Score crossed above threshold {label} (was {old}, now {new})"
                )
        elif direction == "below":
            if old > threshold >= new:
                return EvaluationResult(
                    triggered=True,
                    reason=f"Score crossed below threshold {label} (was {old}, now {new})"
                )
        return NOT_TRIGGERED
