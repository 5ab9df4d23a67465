"""score_drop and score_rise evaluators."""

from datetime import datetime, timedelta
from typing import Optional, Tuple

from devsignal.alerts.evaluators.base import NOT_TRIGGERED, TriggerEvaluator
from devsignal.alerts.lookup import AlertLookup
from devsignal.models import AlertTriggerType
from devsignal.schemas.alerts import AlertConditions, EvaluationContext, EvaluationResult

DEFAULT_PERCENT = 10.0
DEFAULT_WITHIN_DAYS = 7


async def resolve_baseline(
    ctx: EvaluationContext,
    lookup: AlertLookup,
    within_days: int,
    now: datetime
) -> Tuple[Optional[int], bool]:
    """
    Baseline score to compare against: the oldest snapshot inside the
    window, else the previous score from the context.

    Returns:
        (baseline, from_snapshot). baseline is None when there is nothing
        to compare against.
    """
    since = now - timedelta(days=within_days)
    snapshot_score = await lookup.oldest_snapshot_score(
        ctx.organization_id, ctx.account_id, since, before=ctx.as_of
    )
    if snapshot_score is not None:
        return snapshot_score, True
    return ctx.old_score, False


class ScoreDropEvaluator(TriggerEvaluator):
    trigger_type = AlertTriggerType.SCORE_DROP

    async def evaluate(self, conditions: AlertConditions, ctx: EvaluationContext,
                       lookup: AlertLookup, now: datetime) -> EvaluationResult:
        drop_percent = conditions.drop_percent if conditions.drop_percent is not None else DEFAULT_PERCENT
        within_days = conditions.within_days if conditions.within_days is not None else DEFAULT_WITHIN_DAYS

        baseline, from_snapshot = await resolve_baseline(ctx, lookup, within_days, now)
        if baseline is None or baseline <= 0:
            return NOT_TRIGGERED

        actual = (baseline - ctx.new_score) * 100 / baseline
        if actual < drop_percent:
            return NOT_TRIGGERED

        reason = f"Score dropped {round(actual)}% (from {baseline} to {ctx.new_score})"
        if from_snapshot:
            reason += f" over the last {within_days} days"
        return EvaluationResult(triggered=True, reason=reason)


class ScoreRiseEvaluator(TriggerEvaluator):
    trigger_type = AlertTriggerType.SCORE_RISE

    async def evaluate(self, conditions: AlertConditions, ctx: EvaluationContext,
                       lookup: AlertLookup, now: datetime) -> EvaluationResult:
        rise_percent = conditions.rise_percent if conditions.rise_percent is not None else DEFAULT_PERCENT
        within_days = conditions.within_days if conditions.within_days is not None else DEFAULT_WITHIN_DAYS

        baseline, from_snapshot = await resolve_baseline(ctx, lookup, within_days, now)
        if baseline is None or baseline <= 0:
            return NOT_TRIGGERED

        actual = (ctx.new_score - baseline) * 100 / baseline
        if actual < rise_percent:
            return NOT_TRIGGERED

        reason = f"Score rose {round(actual)}% (from {baseline} to {ctx.new_score})"
        if from_snapshot:
            reason += f" over the last {within_days} days"
        return EvaluationResult(triggered=True, reason=reason)
