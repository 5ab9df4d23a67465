"""
Debounced score recomputation driven by signal_received events.

A burst of signals for one account collapses into a single recomputation;
signals that arrive while a recomputation is running schedule another one.
After each recomputation the account's reactive alert rules are evaluated.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Set, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from devsignal.alerts.engine import AlertEngine
from devsignal.config import settings
from devsignal.database import AsyncSessionLocal
from devsignal.schemas.alerts import EvaluationContext, EvaluationSummary
from devsignal.scoring.engine import RecomputeOutcome, ScoringEngine
from devsignal.services.notifications import NotificationService
from devsignal.services.tier_notifier import TierChangeNotifier

logger = logging.getLogger(__name__)


async def recompute_and_alert(
    db: AsyncSession,
    organization_id: UUID,
    account_id: UUID,
    notifications=None
) -> Tuple[RecomputeOutcome, Optional[EvaluationSummary]]:
    """Recompute one account's score, then evaluate its reactive alert rules."""
    notifications = notifications or NotificationService(db)
    engine = ScoringEngine(db, tier_notifier=TierChangeNotifier(notifications))
    outcome = await engine.recompute(organization_id, account_id)

    if not settings.ENABLE_REACTIVE_ALERTS:
        return outcome, None

    score = outcome.account_score
    ctx = EvaluationContext(
        organization_id=organization_id,
        account_id=account_id,
        account_name=outcome.account_name,
        new_score=score.score,
        old_score=outcome.previous_score,
        new_tier=score.tier,
        old_tier=outcome.previous_tier,
        as_of=outcome.computed_at,
    )
    summary = await AlertEngine(db, notifications=notifications).evaluate_for_account(ctx)
    return outcome, summary


class ScoreRecomputeQueue:

    def __init__(self, session_factory=None, debounce_seconds: Optional[float] = None):
        self.session_factory = session_factory or AsyncSessionLocal
        self.debounce_seconds = (
            settings.SCORE_RECOMPUTE_DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds
        )
        self._pending: Dict[Tuple[UUID, UUID], asyncio.Task] = {}
        self._running: Set[asyncio.Task] = set()

    def schedule(self, organization_id: UUID, account_id: UUID) -> bool:
        """
        Queue a recomputation.

        Returns:
            False when one is already pending for the account (coalesced)
        """
        key = (organization_id, account_id)
        task = self._pending.get(key)
        if task is not None and not task.done():
            return False

        task = asyncio.create_task(self._run(key))
        self._pending[key] = task
        self._running.add(task)
        task.add_done_callback(self._running.discard)
        return True

    async def _run(self, key: Tuple[UUID, UUID]) -> None:
        organization_id, account_id = key
        try:
            await asyncio.sleep(self.debounce_seconds)
        finally:
            self._pending.pop(key, None)

        try:
            async with self.session_factory() as db:
                await recompute_and_alert(db, organization_id, account_id)
        except Exception as e:
            logger.error(f"Debounced recompute failed for account {account_id} in org {organization_id}: {e}")

    async def on_signal_received(self, event: Dict[str, Any]) -> None:
        """event_bus subscriber."""
        account_id = event.get("account_id")
        if not account_id:
            return
        self.schedule(UUID(event["organization_id"]), UUID(account_id))

    async def drain(self) -> None:
        """Wait for every pending recomputation."""
        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)


# Singleton instance
score_queue = ScoreRecomputeQueue()
