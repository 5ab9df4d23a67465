"""
Alert evaluation engine.

Reactive rules (score_drop, score_rise, score_threshold, new_hot_signal) run
right after an account's score is recomputed. Time-based rules
(engagement_drop, account_inactive) run from the periodic sweep across all
scored accounts.

Cooldown is per rule: a rule that fired less than ALERT_COOLDOWN_MINUTES ago
is skipped for every account. The trigger time is committed before any
channel is contacted.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession

from devsignal.alerts.dispatcher import AlertDispatcher, RuleView
from devsignal.alerts.evaluators import REACTIVE_TRIGGERS, TIME_BASED_TRIGGERS, get_evaluator
from devsignal.alerts.lookup import AlertLookup
from devsignal.config import settings
from devsignal.models import AccountAlertRule, AccountScore, AlertTriggerType, Company
from devsignal.schemas.alerts import EvaluationContext, EvaluationSummary
from devsignal.services.notifications import NotificationService

logger = logging.getLogger(__name__)


class AlertEngine:

    def __init__(
        self,
        db: AsyncSession,
        notifications=None,
        dispatcher: Optional[AlertDispatcher] = None,
        now_fn: Optional[Callable[[], datetime]] = None,
        cooldown: Optional[timedelta] = None
    ):
        self.db = db
        self.notifications = notifications or NotificationService(db)
        self.dispatcher = dispatcher or AlertDispatcher(self.notifications)
        self.lookup = AlertLookup(db)
        self.now_fn = now_fn or (lambda: datetime.now(timezone.utc))
        self.cooldown = cooldown or timedelta(minutes=settings.ALERT_COOLDOWN_MINUTES)

    # ========================================================================
    # RULES
    # ========================================================================

    async def load_rules(
        self,
        organization_id: UUID,
        trigger_types: Sequence[AlertTriggerType]
    ) -> List[RuleView]:
        result = await self.db.execute(
            select(AccountAlertRule).where(
                and_(
                    AccountAlertRule.organization_id == organization_id,
                    AccountAlertRule.enabled.is_(True),
                    AccountAlertRule.trigger_type.in_([t.value for t in trigger_types])
                )
            ).order_by(AccountAlertRule.created_at)
            .execution_options(populate_existing=True)
        )
        return [RuleView.from_model(rule) for rule in result.scalars().all()]

    def in_cooldown(self, rule: RuleView, now: datetime) -> bool:
        if rule.last_triggered_at is None:
            return False
        return now - rule.last_triggered_at < self.cooldown

    # ========================================================================
    # EVALUATION
    # ========================================================================

    async def _evaluate_rules(
        self,
        rules: List[RuleView],
        ctx: EvaluationContext,
        summary: EvaluationSummary
    ) -> None:
        for rule in rules:
            now = self.now_fn()
            if self.in_cooldown(rule, now):
                logger.debug(f"Alert rule {rule.id} skipped (cooldown) for account {ctx.account_id}")
                continue

            summary.evaluated += 1
            try:
                evaluator = get_evaluator(rule.trigger_type)
                result = await evaluator.evaluate(rule.parsed_conditions(), ctx, self.lookup, now)
                if not result.triggered:
                    continue

                logger.info(
                    f"Alert rule {rule.id} ({rule.name}) triggered for account {ctx.account_id}: {result.reason}"
                )
                await self._stamp(rule, now)
                summary.triggered += 1
            except Exception as e:
                await self.db.rollback()
                summary.errors += 1
                message = f"rule {rule.id}, account {ctx.account_id}: {e}"
                logger.error(f"Error evaluating alert {message}")
                if len(summary.error_messages) < settings.ALERT_ERROR_SAMPLE_SIZE:
                    summary.error_messages.append(message)
                continue

            await self.dispatcher.dispatch(rule, ctx, result.reason)

    async def _stamp(self, rule: RuleView, now: datetime) -> None:
        await self.db.execute(
            update(AccountAlertRule)
            .where(AccountAlertRule.id == rule.id)
            .values(last_triggered_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        rule.last_triggered_at = now

    async def evaluate_for_account(self, ctx: EvaluationContext) -> EvaluationSummary:
        """Evaluate reactive rules after a score computation."""
        summary = EvaluationSummary()
        rules = await self.load_rules(ctx.organization_id, REACTIVE_TRIGGERS)
        if not rules:
            return summary

        await self._evaluate_rules(rules, ctx, summary)
        return summary

    async def evaluate_time_based(self, organization_id: UUID) -> EvaluationSummary:
        """Evaluate engagement_drop and account_inactive across every scored account."""
        summary = EvaluationSummary()
        rules = await self.load_rules(organization_id, TIME_BASED_TRIGGERS)
        if not rules:
            return summary

        result = await self.db.execute(
            select(AccountScore.account_id, AccountScore.score, AccountScore.tier, Company.name)
            .join(Company, Company.id == AccountScore.account_id)
            .where(AccountScore.organization_id == organization_id)
        )
        accounts = result.all()

        for account_id, score, tier, name in accounts:
            ctx = EvaluationContext(
                organization_id=organization_id,
                account_id=account_id,
                account_name=name or "Unknown Account",
                new_score=score,
                new_tier=tier,
            )
            await self._evaluate_rules(rules, ctx, summary)

        logger.info(
            f"Time-based alerts for org {organization_id}: {summary.evaluated} evaluated, "
            f"{summary.triggered} triggered, {summary.errors} errors"
        )
        return summary

    async def organizations_with_time_based_rules(self) -> List[UUID]:
        result = await self.db.execute(
            select(AccountAlertRule.organization_id)
            .where(
                and_(
                    AccountAlertRule.enabled.is_(True),
                    AccountAlertRule.trigger_type.in_([t.value for t in TIME_BASED_TRIGGERS])
                )
            )
            .distinct()
        )
        return [row[0] for row in result.all()]
