"""
Alert routes - run alert evaluation on demand.
"""
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from devsignal.alerts.engine import AlertEngine
from devsignal.database import get_db
from devsignal.models import Company
from devsignal.schemas.alerts import AlertEvaluationRequest, EvaluationContext, EvaluationSummary
from devsignal.scoring.engine import ScoringEngine

router = APIRouter(prefix="/api/v1/organizations/{organization_id}/alerts", tags=["Alerts"])


@router.post("/evaluate", response_model=EvaluationSummary)
async def evaluate_alerts(
    organization_id: UUID,
    request: AlertEvaluationRequest,
    db: AsyncSession = Depends(get_db)
):
    """
    With an account_id: reactive rules against the account's current score.
    Without: the time-based sweep for the whole organization.
    """
    engine = AlertEngine(db)
    if request.account_id is None:
        return await engine.evaluate_time_based(organization_id)

    company = await db.get(Company, request.account_id)
    score = await ScoringEngine(db).get_account_score(organization_id, request.account_id)
    if company is None or company.organization_id != organization_id or score is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account has not been scored")

    ctx = EvaluationContext(
        organization_id=organization_id,
        account_id=request.account_id,
        account_name=company.name,
        new_score=score.score,
        new_tier=score.tier,
        as_of=score.computed_at,
    )
    return await engine.evaluate_for_account(ctx)
