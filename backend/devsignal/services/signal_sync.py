"""Polling sync: pull records from HTTP sources and ingest them."""

import logging
from datetime import datetime, timezone
from typing import List
from uuid import UUID

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from devsignal.adapters import get_adapter
from devsignal.adapters.http_poll import HTTPPollAdapter
from devsignal.config import settings
from devsignal.models import SignalSource
from devsignal.schemas.signal import SyncSummary
from devsignal.services.signal_ingestion import SignalIngestionService

logger = logging.getLogger(__name__)


class SignalSyncService:
    """
    A fetch failure ends the run with an error in the summary; a bad record
    is counted and skipped. Already-ingested signals are never touched.
    """

    def __init__(self, db: AsyncSession, ingestion: SignalIngestionService = None):
        self.db = db
        self.ingestion = ingestion or SignalIngestionService(db)

    def _record_error(self, summary: SyncSummary, message: str):
        if len(summary.errors) < settings.ALERT_ERROR_SAMPLE_SIZE:
            summary.errors.append(message)

    async def sync_source(self, source: SignalSource) -> SyncSummary:
        source_id = source.id
        organization_id = source.organization_id
        source_type = source.type
        since = source.last_sync_at
        summary = SyncSummary(source_id=source_id)

        adapter = get_adapter(source_type, source.config)
        if not isinstance(adapter, HTTPPollAdapter):
            raise ValueError(f"Source {source_id} ({source_type}) is not a polling source")
        config_errors = adapter.validate_config()
        if config_errors:
            raise ValueError(f"Source {source_id} is misconfigured: {'; '.join(config_errors)}")

        started_at = datetime.now(timezone.utc)
        try:
            records = await adapter.fetch_records(since=since)
        except Exception as e:
            summary.failed += 1
            self._record_error(summary, f"fetch: {e}")
            logger.error(f"Fetch failed for source {source_id}: {e}")
            return summary

        summary.fetched = len(records)
        for index, record in enumerate(records):
            try:
                signal = adapter.normalize(record)
                if signal is None:
                    summary.skipped += 1
                    continue
                result = await self.ingestion.ingest(organization_id, source_id, signal, source_type=source_type)
            except Exception as e:
                summary.failed += 1
                self._record_error(summary, f"record {index}: {e}")
                logger.error(f"Record {index} from source {source_id} failed: {e}")
                continue

            if result.deduplicated:
                summary.deduplicated += 1
            else:
                summary.ingested += 1

        stored = await self.db.get(SignalSource, source_id)
        stored.last_sync_at = started_at
        await self.db.commit()

        logger.info(
            f"Synced source {source_id}: {summary.fetched} fetched, {summary.ingested} ingested, "
            f"{summary.deduplicated} deduplicated, {summary.failed} failed"
        )
        return summary

    async def polling_sources(self) -> List[SignalSource]:
        result = await self.db.execute(
            select(SignalSource).where(
                and_(
                    SignalSource.enabled.is_(True),
                    SignalSource.type == "HTTP_POLL"
                )
            )
        )
        return list(result.scalars().all())

    async def sync_all(self) -> List[SyncSummary]:
        summaries = []
        for source in await self.polling_sources():
            source_id: UUID = source.id
            try:
                summaries.append(await self.sync_source(source))
            except Exception as e:
                logger.error(f"Sync failed for source {source_id}: {e}")
        return summaries
