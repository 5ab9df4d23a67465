"""
Signal intake routes - canonical signals, batches and provider webhooks.
"""
import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from devsignal.adapters import get_adapter
from devsignal.database import get_db
from devsignal.exceptions import SignalSourceNotFound
from devsignal.schemas.signal import BatchIngestResult, IngestResult, NormalizedSignal, SyncSummary
from devsignal.services.signal_ingestion import SignalIngestionService
from devsignal.services.signal_sync import SignalSyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/organizations/{organization_id}", tags=["Signals"])


@router.post("/sources/{source_id}/signals", response_model=IngestResult)
async def ingest_signal(
    organization_id: UUID,
    source_id: UUID,
    signal: NormalizedSignal,
    db: AsyncSession = Depends(get_db)
):
    try:
        return await SignalIngestionService(db).ingest(organization_id, source_id, signal)
    except SignalSourceNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("/sources/{source_id}/signals/batch", response_model=BatchIngestResult)
async def ingest_signal_batch(
    organization_id: UUID,
    source_id: UUID,
    signals: List[NormalizedSignal],
    db: AsyncSession = Depends(get_db)
):
    try:
        return await SignalIngestionService(db).ingest_batch(organization_id, source_id, signals)
    except SignalSourceNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("/webhooks/{source_id}", response_model=Optional[IngestResult])
async def receive_webhook(
    organization_id: UUID,
    source_id: UUID,
    payload: Dict[str, Any],
    db: AsyncSession = Depends(get_db)
):
    """Normalize a provider payload with the source's adapter, then ingest it."""
    service = SignalIngestionService(db)
    try:
        source = await service.get_source(organization_id, source_id)
    except SignalSourceNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    source_type = source.type
    try:
        adapter = get_adapter(source_type, source.config)
        signal = adapter.normalize(payload)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if signal is None:
        logger.debug(f"Webhook for source {source_id} carried no tracked signal")
        return None
    return await service.ingest(organization_id, source_id, signal, source_type=source_type)


@router.post("/sources/{source_id}/sync", response_model=SyncSummary)
async def sync_source(
    organization_id: UUID,
    source_id: UUID,
    db: AsyncSession = Depends(get_db)
):
    try:
        source = await SignalIngestionService(db).get_source(organization_id, source_id)
        return await SignalSyncService(db).sync_source(source)
    except SignalSourceNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
