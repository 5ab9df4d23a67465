"""Activity-based evaluators: engagement_drop, new_hot_signal, account_inactive."""

from datetime import datetime, timedelta

from devsignal.alerts.evaluators.base import NOT_TRIGGERED, TriggerEvaluator
from devsignal.alerts.lookup import AlertLookup
from devsignal.config import settings
from devsignal.models import AlertTriggerType
from devsignal.schemas.alerts import AlertConditions, EvaluationContext, EvaluationResult


class EngagementDropEvaluator(TriggerEvaluator):
    """No signals inside the window, but the account had some before."""

    trigger_type = AlertTriggerType.ENGAGEMENT_DROP
    default_inactive_days = 7

    async def evaluate(self, conditions: AlertConditions, ctx: EvaluationContext,
                       lookup: AlertLookup, now: datetime) -> EvaluationResult:
        inactive_days = conditions.inactive_days if conditions.inactive_days is not None else self.default_inactive_days
        since = now - timedelta(days=inactive_days)

        recent = await lookup.count_signals(ctx.organization_id, ctx.account_id, since=since)
        if recent > 0:
            return NOT_TRIGGERED

        total = await lookup.count_signals(ctx.organization_id, ctx.account_id)
        if total == 0:
            return NOT_TRIGGERED

        return EvaluationResult(
            triggered=True,
            reason=f"No signals received in the last {inactive_days} days (account had {total} total signals)"
        )


class NewHotSignalEvaluator(TriggerEvaluator):
    """A signal of a watched type arrived within the last few minutes."""

    trigger_type = AlertTriggerType.NEW_HOT_SIGNAL

    async def evaluate(self, conditions: AlertConditions, ctx: EvaluationContext,
                       lookup: AlertLookup, now: datetime) -> EvaluationResult:
        source_types = conditions.source_types or []
        if not source_types:
            return NOT_TRIGGERED

        since = now - timedelta(minutes=settings.HOT_SIGNAL_WINDOW_MINUTES)
        recent = await lookup.latest_signal_of_types(ctx.organization_id, ctx.account_id, source_types, since)
        if recent is None:
            return NOT_TRIGGERED

        signal_type, _ = recent
        return EvaluationResult(triggered=True, reason=f'New signal of type "{signal_type}" detected')


class AccountInactiveEvaluator(TriggerEvaluator):
    trigger_type = AlertTriggerType.ACCOUNT_INACTIVE
    default_inactive_days = 14

    async def evaluate(self, conditions: AlertConditions, ctx: EvaluationContext,
                       lookup: AlertLookup, now: datetime) -> EvaluationResult:
        inactive_days = conditions.inactive_days if conditions.inactive_days is not None else self.default_inactive_days

        last_signal_at = await lookup.last_signal_at(ctx.organization_id, ctx.account_id)
        if last_signal_at is None:
            return NOT_TRIGGERED

        days_since = (now - last_signal_at) / timedelta(days=1)
        if days_since < inactive_days:
            return NOT_TRIGGERED

        return EvaluationResult(
            triggered=True,
            reason=f"Account has been inactive for {round(days_since)} days (threshold: {inactive_days} days)"
        )
