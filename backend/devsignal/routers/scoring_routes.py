"""
Scoring routes - recompute, read and preview PQA scores.
"""
from typing import Any, Dict, List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from devsignal.database import get_db
from devsignal.exceptions import AccountLockTimeout, AccountNotFound, InvalidScoringConfig, StaleAccountScore
from devsignal.schemas.scoring import AccountScoreResponse, ScorePreviewEntry
from devsignal.scoring.engine import ScoringEngine
from devsignal.services.score_queue import recompute_and_alert
from devsignal.services.scoring_config import ScoringConfigService

router = APIRouter(prefix="/api/v1/organizations/{organization_id}", tags=["Scoring"])


@router.post("/accounts/{account_id}/score/recompute", response_model=AccountScoreResponse)
async def recompute_account_score(
    organization_id: UUID,
    account_id: UUID,
    db: AsyncSession = Depends(get_db)
):
    try:
        outcome, _ = await recompute_and_alert(db, organization_id, account_id)
    except AccountNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except (AccountLockTimeout, StaleAccountScore) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return outcome.account_score


@router.get("/accounts/{account_id}/score", response_model=AccountScoreResponse)
async def get_account_score(
    organization_id: UUID,
    account_id: UUID,
    db: AsyncSession = Depends(get_db)
):
    score = await ScoringEngine(db).get_account_score(organization_id, account_id)
    if score is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account has not been scored")
    return score


@router.put("/scoring/config")
async def update_scoring_config(
    organization_id: UUID,
    config: Dict[str, Any],
    db: AsyncSession = Depends(get_db)
):
    try:
        saved = await ScoringConfigService(db).save(organization_id, config)
    except InvalidScoringConfig as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return saved.model_dump(by_alias=True)


@router.post("/scoring/preview", response_model=List[ScorePreviewEntry])
async def preview_scoring_config(
    organization_id: UUID,
    config: Dict[str, Any],
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    try:
        return await ScoringEngine(db).preview(organization_id, config, limit=limit)
    except InvalidScoringConfig as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
