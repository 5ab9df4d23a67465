"""Database facts that trigger evaluators read."""

from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from devsignal.models import ScoreSnapshot, Signal


class AlertLookup:
    """Read-only, organization-scoped queries for one evaluation pass."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def oldest_snapshot_score(
        self,
        organization_id: UUID,
        account_id: UUID,
        since: datetime,
        before: Optional[datetime] = None
    ) -> Optional[int]:
        """Score of the oldest snapshot captured in [since, before)."""
        conditions = [
            ScoreSnapshot.organization_id == organization_id,
            ScoreSnapshot.account_id == account_id,
            ScoreSnapshot.captured_at >= since,
        ]
        if before is not None:
            conditions.append(ScoreSnapshot.captured_at < before)

        result = await self.db.execute(
            select(ScoreSnapshot.score)
            .where(and_(*conditions))
            .order_by(ScoreSnapshot.captured_at.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def count_signals(
        self,
        organization_id: UUID,
        account_id: UUID,
        since: Optional[datetime] = None
    ) -> int:
        conditions = [
            Signal.organization_id == organization_id,
            Signal.account_id == account_id,
        ]
        if since is not None:
            conditions.append(Signal.timestamp >= since)

        result = await self.db.execute(select(func.count(Signal.id)).where(and_(*conditions)))
        return result.scalar_one()

    async def latest_signal_of_types(
        self,
        organization_id: UUID,
        account_id: UUID,
        types: List[str],
        since: datetime
    ) -> Optional[Tuple[str, datetime]]:
        result = await self.db.execute(
            select(Signal.type, Signal.timestamp)
            .where(
                and_(
                    Signal.organization_id == organization_id,
                    Signal.account_id == account_id,
                    Signal.type.in_(types),
                    Signal.timestamp >= since
                )
            )
            .order_by(Signal.timestamp.desc())
            .limit(1)
        )
        row = result.first()
        return (row[0], row[1]) if row else None

    async def last_signal_at(self, organization_id: UUID, account_id: UUID) -> Optional[datetime]:
        result = await self.db.execute(
            select(Signal.timestamp)
            .where(
                and_(
                    Signal.organization_id == organization_id,
                    Signal.account_id == account_id
                )
            )
            .order_by(Signal.timestamp.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()
