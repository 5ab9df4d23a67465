"""
Base interface for alert trigger evaluators.
"""
from abc import ABC, abstractmethod
from datetime import datetime

from devsignal.alerts.lookup import AlertLookup
from devsignal.models import AlertTriggerType
from devsignal.schemas.alerts import AlertConditions, EvaluationContext, EvaluationResult

NOT_TRIGGERED = EvaluationResult(triggered=False)


class TriggerEvaluator(ABC):
    """
    Decides whether one rule fires for one account.

    Evaluators are side-effect free: they read facts through the lookup and
    return a result. Cooldown and dispatch belong to the engine.
    """

    trigger_type: AlertTriggerType

    @abstractmethod
    async def evaluate(
        self,
        conditions: AlertConditions,
        ctx: EvaluationContext,
        lookup: AlertLookup,
        now: datetime
    ) -> EvaluationResult:
        """
        Evaluate the trigger.

        Args:
            conditions: Rule parameters (missing values use trigger defaults)
            ctx: Account state after the latest score computation
            lookup: Read access to snapshots and signals
            now: Evaluation time (timezone-aware UTC)

        Returns:
            EvaluationResult with a human-readable reason when triggered
        """
        pass
