"""
Scoring engine: persists PQA scores computed by scoring.rules.

One recomputation per account runs at a time. Each run writes the
AccountScore row (guarded by its version) and appends a ScoreSnapshot, then
reports tier transitions.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, update, and_, union
from sqlalchemy.ext.asyncio import AsyncSession

from devsignal.config import settings
from devsignal.exceptions import AccountNotFound, StaleAccountScore
from devsignal.models import AccountScore, Company, ScoreSnapshot, Signal
from devsignal.schemas.scoring import ScorePreviewEntry, ScoringConfig
from devsignal.scoring.rules import SignalRecord, compute_score
from devsignal.services.account_locks import AccountLockManager, account_locks
from devsignal.services.scoring_config import ScoringConfigService, validate_proposed_config
from devsignal.services.tier_notifier import TierChangeNotifier

logger = logging.getLogger(__name__)


@dataclass
class RecomputeOutcome:
    account_score: AccountScore
    account_name: str
    previous_score: Optional[int]
    previous_tier: Optional[str]
    computed_at: datetime

    @property
    def tier_changed(self) -> bool:
        return self.previous_tier is not None and self.previous_tier != self.account_score.tier


class ScoringEngine:

    def __init__(
        self,
        db: AsyncSession,
        tier_notifier: Optional[TierChangeNotifier] = None,
        locks: Optional[AccountLockManager] = None,
        now_fn: Optional[Callable[[], datetime]] = None
    ):
        self.db = db
        self.tier_notifier = tier_notifier
        self.locks = locks or account_locks
        self.config_service = ScoringConfigService(db)
        self.now_fn = now_fn or (lambda: datetime.now(timezone.utc))

    # ========================================================================
    # READS
    # ========================================================================

    async def load_history(self, organization_id: UUID, account_id: UUID) -> List[SignalRecord]:
        result = await self.db.execute(
            select(Signal).where(
                and_(
                    Signal.organization_id == organization_id,
                    Signal.account_id == account_id
                )
            ).order_by(Signal.timestamp)
        )
        return [SignalRecord.from_signal(s) for s in result.scalars().all()]

    async def get_account_score(self, organization_id: UUID, account_id: UUID) -> Optional[AccountScore]:
        result = await self.db.execute(
            select(AccountScore).where(
                and_(
                    AccountScore.organization_id == organization_id,
                    AccountScore.account_id == account_id
                )
            ).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def latest_snapshot(self, organization_id: UUID, account_id: UUID) -> Optional[ScoreSnapshot]:
        result = await self.db.execute(
            select(ScoreSnapshot).where(
                and_(
                    ScoreSnapshot.organization_id == organization_id,
                    ScoreSnapshot.account_id == account_id
                )
            ).order_by(ScoreSnapshot.captured_at.desc()).limit(1)
        )
        return result.scalar_one_or_none()

    async def _get_company(self, organization_id: UUID, account_id: UUID) -> Company:
        company = await self.db.get(Company, account_id)
        if company is None or company.organization_id != organization_id:
            raise AccountNotFound(f"Account {account_id} not found for org {organization_id}")
        return company

    # ========================================================================
    # RECOMPUTE
    # ========================================================================

    async def recompute(self, organization_id: UUID, account_id: UUID) -> RecomputeOutcome:
        company = await self._get_company(organization_id, account_id)
        account_name = company.name

        async with self.locks.hold(organization_id, account_id):
            outcome = await self._recompute_locked(organization_id, account_id, account_name)

        score = outcome.account_score
        logger.info(
            f"Recomputed account {account_id}: score={score.score} tier={score.tier} "
            f"trend={score.trend} (previous={outcome.previous_score})"
        )

        if outcome.tier_changed and self.tier_notifier is not None:
            await self.tier_notifier.notify(
                organization_id, account_id, account_name,
                outcome.previous_tier, score.tier, score.score
            )
        return outcome

    async def _recompute_locked(self, organization_id: UUID, account_id: UUID, account_name: str) -> RecomputeOutcome:
        now = self.now_fn()
        config = await self.config_service.load(organization_id)
        history = await self.load_history(organization_id, account_id)
        existing = await self.get_account_score(organization_id, account_id)
        snapshot = await self.latest_snapshot(organization_id, account_id)

        baseline = snapshot.score if snapshot is not None else (existing.score if existing else None)
        result = compute_score(
            config.rules,
            history,
            now,
            config.tier_thresholds,
            config.max_score,
            previous_score=baseline,
            trend_epsilon=settings.SCORE_TREND_EPSILON,
            curve=settings.SCORING_DECAY_CURVE,
            account_id=account_id,
        )

        previous_score = existing.score if existing else None
        previous_tier = existing.tier if existing else None
        values = {
            "score": result.score,
            "tier": result.tier,
            "trend": result.trend,
            "factors": [f.model_dump() for f in result.factors],
            "signal_count": result.signal_count,
            "user_count": result.user_count,
            "last_signal_at": result.last_signal_at,
            "computed_at": now,
        }

        try:
            if existing is None:
                row = AccountScore(
                    organization_id=organization_id,
                    account_id=account_id,
                    version=1,
                    **values
                )
                self.db.add(row)
            else:
                res = await self.db.execute(
                    update(AccountScore)
                    .where(
                        and_(
                            AccountScore.id == existing.id,
                            AccountScore.version == existing.version
                        )
                    )
                    .values(version=existing.version + 1, **values)
                    .execution_options(synchronize_session=False)
                )
                if res.rowcount == 0:
                    raise StaleAccountScore(
                        f"AccountScore for account {account_id} changed during recompute "
                        f"(expected version {existing.version})"
                    )
                row = existing

            self.db.add(ScoreSnapshot(
                organization_id=organization_id,
                account_id=account_id,
                score=result.score,
                tier=result.tier,
                captured_at=now,
            ))
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(row)
        return RecomputeOutcome(
            account_score=row,
            account_name=account_name,
            previous_score=previous_score,
            previous_tier=previous_tier,
            computed_at=now,
        )

    async def recompute_organization(self, organization_id: UUID) -> Dict[str, Any]:
        """Recompute every account with signals or an existing score."""
        signal_accounts = select(Signal.account_id).where(
            and_(Signal.organization_id == organization_id, Signal.account_id.is_not(None))
        )
        scored_accounts = select(AccountScore.account_id).where(
            AccountScore.organization_id == organization_id
        )
        result = await self.db.execute(union(signal_accounts, scored_accounts))
        account_ids = [row[0] for row in result.all()]

        summary = {"accounts": len(account_ids), "recomputed": 0, "failed": 0, "errors": []}
        for account_id in account_ids:
            try:
                await self.recompute(organization_id, account_id)
                summary["recomputed"] += 1
            except Exception as e:
                summary["failed"] += 1
                logger.error(f"Score recompute failed for account {account_id} in org {organization_id}: {e}")
                if len(summary["errors"]) < settings.ALERT_ERROR_SAMPLE_SIZE:
                    summary["errors"].append(f"{account_id}: {e}")

        logger.info(f"Org {organization_id} score sweep: {summary['recomputed']}/{summary['accounts']} recomputed")
        return summary

    # ========================================================================
    # PREVIEW
    # ========================================================================

    async def preview(
        self,
        organization_id: UUID,
        proposed: Dict[str, Any],
        limit: int = 10
    ) -> List[ScorePreviewEntry]:
        """
        Projected scores under a proposed config for the top-scored accounts,
        largest change first. Nothing is written.
        """
        config: ScoringConfig = validate_proposed_config(proposed)
        now = self.now_fn()

        result = await self.db.execute(
            select(AccountScore)
            .where(AccountScore.organization_id == organization_id)
            .order_by(AccountScore.score.desc())
            .limit(limit)
        )
        current_scores = result.scalars().all()

        entries = []
        for current in current_scores:
            history = await self.load_history(organization_id, current.account_id)
            projected = compute_score(
                config.rules,
                history,
                now,
                config.tier_thresholds,
                config.max_score,
                previous_score=current.score,
                trend_epsilon=settings.SCORE_TREND_EPSILON,
                curve=settings.SCORING_DECAY_CURVE,
                account_id=current.account_id,
            )
            entries.append(ScorePreviewEntry(
                account_id=current.account_id,
                current_score=current.score,
                current_tier=current.tier,
                projected_score=projected.score,
                projected_tier=projected.tier,
                delta=projected.score - current.score,
            ))

        entries.sort(key=lambda e: abs(e.delta), reverse=True)
        return entries
