"""
Pydantic schemas for alert rules and evaluation.
"""
from typing import Optional, List
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class AlertConditions(BaseModel):
    """Trigger parameters; absent values fall back to the trigger's defaults."""
    drop_percent: Optional[float] = Field(None, alias="dropPercent")
    rise_percent: Optional[float] = Field(None, alias="risePercent")
    within_days: Optional[int] = Field(None, alias="withinDays")
    threshold: Optional[float] = None
    direction: Optional[str] = None
    inactive_days: Optional[int] = Field(None, alias="inactiveDays")
    source_types: Optional[List[str]] = Field(None, alias="sourceTypes")

    class Config:
        populate_by_name = True
        extra = "ignore"


class AlertChannels(BaseModel):
    in_app: bool = Field(True, alias="inApp")
    email: bool = False
    slack: bool = False
    slack_channel: Optional[str] = Field(None, alias="slackChannel")

    class Config:
        populate_by_name = True
        extra = "ignore"


class EvaluationContext(BaseModel):
    """State of one account right after a score computation."""
    organization_id: UUID
    account_id: UUID
    account_name: str
    new_score: int
    old_score: Optional[int] = None
    new_tier: Optional[str] = None
    old_tier: Optional[str] = None
    # Snapshots captured at or after this instant are ignored as baselines
    as_of: Optional[datetime] = None


class EvaluationResult(BaseModel):
    triggered: bool
    reason: str = ""


class EvaluationSummary(BaseModel):
    evaluated: int = 0
    triggered: int = 0
    errors: int = 0
    error_messages: List[str] = Field(default_factory=list)

    def merge(self, other: "EvaluationSummary", sample_size: int = 5) -> None:
        self.evaluated += other.evaluated
        self.triggered += other.triggered
        self.errors += other.errors
        room = sample_size - len(self.error_messages)
        if room > 0:
            self.error_messages.extend(other.error_messages[:room])


class AlertEvaluationRequest(BaseModel):
    account_id: Optional[UUID] = None
