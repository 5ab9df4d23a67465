"""
Signal ingestion pipeline: dedup -> resolve identity -> persist -> emit.
"""

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from devsignal.config import settings
from devsignal.exceptions import SignalSourceNotFound
from devsignal.models import Signal, SignalSource
from devsignal.schemas.signal import BatchIngestResult, IngestResult, NormalizedSignal
from devsignal.services.deduplication import DeduplicationService, dedup_service
from devsignal.services.event_bus import EventBus, build_signal_received_event, event_bus
from devsignal.services.identity_resolver import IdentityResolver
from devsignal.services.identity_store import IdentityStore
from devsignal.services.normalization import derive_idempotency_key, to_utc

logger = logging.getLogger(__name__)


class SignalIngestionService:
    """
    Ingests normalized signals for one organization.

    Replaying a signal with the same idempotency key never creates a second
    row; the existing id comes back with deduplicated=True.
    """

    def __init__(
        self,
        db: AsyncSession,
        dedup: Optional[DeduplicationService] = None,
        bus: Optional[EventBus] = None
    ):
        self.db = db
        self.dedup = dedup or dedup_service
        self.bus = bus or event_bus
        self.store = IdentityStore(db)
        self.resolver = IdentityResolver(db)

    async def get_source(self, organization_id: UUID, source_id: UUID) -> SignalSource:
        result = await self.db.execute(
            select(SignalSource).where(
                and_(
                    SignalSource.id == source_id,
                    SignalSource.organization_id == organization_id
                )
            )
        )
        source = result.scalar_one_or_none()
        if source is None:
            raise SignalSourceNotFound(f"Signal source {source_id} not found for org {organization_id}")
        return source

    async def ingest(
        self,
        organization_id: UUID,
        source_id: UUID,
        signal: NormalizedSignal,
        source_type: Optional[str] = None
    ) -> IngestResult:
        if source_type is None:
            source = await self.get_source(organization_id, source_id)
            source_type = source.type

        timestamp = to_utc(signal.timestamp)
        key = derive_idempotency_key(source_type, signal, timestamp)

        # Step 1: already ingested?
        existing_id = await self.dedup.find_existing(organization_id, key, self.db)
        if existing_id:
            logger.debug(f"Duplicate signal {key} for org {organization_id}")
            return IngestResult(signal_id=existing_id, deduplicated=True)

        # Step 2: who did it
        try:
            resolution = await self.resolver.resolve(
                organization_id,
                signal.actor_evidence,
                source_type,
                account_hint=signal.account_hint,
                source_id=source_id
            )

            # Step 3: persist, losing gracefully to a concurrent duplicate
            signal_id, inserted = await self.store.insert_signal({
                "organization_id": organization_id,
                "source_id": source_id,
                "type": signal.type,
                "actor_id": resolution.contact_id,
                "account_id": resolution.account_id,
                "anonymous_id": resolution.anonymous_id,
                "metadata": signal.metadata,
                "idempotency_key": key,
                "timestamp": timestamp,
            })
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.dedup.remember(organization_id, key, signal_id)

        if not inserted:
            logger.info(f"Concurrent duplicate for key {key}; returning existing signal {signal_id}")
            return IngestResult(signal_id=signal_id, deduplicated=True)

        logger.info(
            f"Ingested signal {signal_id} ({signal.type}) for org {organization_id}, "
            f"account={resolution.account_id}, contact={resolution.contact_id}"
        )

        # Step 4: emit
        stored = await self.db.get(Signal, signal_id)
        await self.bus.publish(build_signal_received_event(stored))

        return IngestResult(
            signal_id=signal_id,
            deduplicated=False,
            contact_id=resolution.contact_id,
            account_id=resolution.account_id,
        )

    async def ingest_batch(
        self,
        organization_id: UUID,
        source_id: UUID,
        signals: List[NormalizedSignal]
    ) -> BatchIngestResult:
        """Ingest items independently; one bad item never blocks the rest."""
        source = await self.get_source(organization_id, source_id)
        # Plain value: a rollback after a failed item expires ORM instances
        source_type = source.type
        summary = BatchIngestResult()

        for index, signal in enumerate(signals):
            try:
                result = await self.ingest(organization_id, source_id, signal, source_type=source_type)
            except Exception as e:
                summary.failed += 1
                message = f"item {index} ({signal.type}): {e}"
                logger.error(f"Batch ingest failed for source {source_id}, {message}")
                if len(summary.errors) < settings.ALERT_ERROR_SAMPLE_SIZE:
                    summary.errors.append(message)
                continue

            summary.results.append(result)
            if result.deduplicated:
                summary.deduplicated += 1
            else:
                summary.ingested += 1

        logger.info(
            f"Batch ingest for source {source_id}: {summary.ingested} ingested, "
            f"{summary.deduplicated} deduplicated, {summary.failed} failed"
        )
        return summary
