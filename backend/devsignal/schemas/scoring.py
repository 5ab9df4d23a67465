"""
Pydantic schemas for PQA scoring configuration and results.
"""
from typing import Optional, Dict, Any, List, Union
from datetime import datetime
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, model_validator

from devsignal.config import settings


DECAY_POLICIES = ("none", "7d", "14d", "30d", "90d")
CONDITION_FIELDS = ("signal_count", "user_count", "total_signals")
CONDITION_OPERATORS = ("gt", "gte", "lt", "lte", "eq", "neq")


# ============================================================================
# CONFIG
# ============================================================================

class ScoringCondition(BaseModel):
    field: str
    operator: str
    value: Union[float, int, str]


class ScoringRuleConfig(BaseModel):
    """
    One weighted rule. Stored loosely: unknown decay policies or malformed
    conditions are tolerated here and skipped by the scoring engine.
    """
    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str = ""
    signal_type: str = Field("*", alias="signalType")
    weight: float = 0
    decay: str = "none"
    conditions: List[ScoringCondition] = Field(default_factory=list)
    enabled: bool = True

    class Config:
        populate_by_name = True


class TierThresholds(BaseModel):
    hot: int = Field(default=settings.DEFAULT_HOT_THRESHOLD, ge=0)
    warm: int = Field(default=settings.DEFAULT_WARM_THRESHOLD, ge=0)
    cold: int = Field(default=settings.DEFAULT_COLD_THRESHOLD, ge=0)

    @model_validator(mode="after")
    def check_order(self):
        if not (self.hot >= self.warm >= self.cold >= 0):
            raise ValueError(
                f"tier thresholds must satisfy hot >= warm >= cold >= 0 "
                f"(got hot={self.hot}, warm={self.warm}, cold={self.cold})"
            )
        return self

    @classmethod
    def clipped(cls, raw: Optional[Dict[str, Any]]) -> "TierThresholds":
        """Build thresholds from stored data, clipping into a valid order."""
        raw = raw or {}
        hot = max(0, int(raw.get("hot", raw.get("HOT", settings.DEFAULT_HOT_THRESHOLD))))
        warm = max(0, int(raw.get("warm", raw.get("WARM", settings.DEFAULT_WARM_THRESHOLD))))
        cold = max(0, int(raw.get("cold", raw.get("COLD", settings.DEFAULT_COLD_THRESHOLD))))
        warm = min(warm, hot)
        cold = min(cold, warm)
        return cls(hot=hot, warm=warm, cold=cold)


class ScoringConfig(BaseModel):
    rules: List[ScoringRuleConfig] = Field(default_factory=list)
    tier_thresholds: TierThresholds = Field(default_factory=TierThresholds, alias="tierThresholds")
    max_score: int = Field(default=settings.DEFAULT_MAX_SCORE, gt=0, alias="maxScore")

    class Config:
        populate_by_name = True


# ============================================================================
# RESULTS
# ============================================================================

class ScoreFactor(BaseModel):
    rule_id: str
    name: str
    contribution: float
    matched_signals: int
    decay_factor: float


class ScoreResult(BaseModel):
    score: int
    tier: str
    trend: str
    signal_count: int
    user_count: int
    last_signal_at: Optional[datetime] = None
    factors: List[ScoreFactor] = Field(default_factory=list)


class AccountScoreResponse(BaseModel):
    organization_id: UUID
    account_id: UUID
    score: int
    tier: str
    trend: str
    signal_count: int
    user_count: int
    last_signal_at: Optional[datetime] = None
    computed_at: Optional[datetime] = None
    factors: Optional[List[Dict[str, Any]]] = None

    class Config:
        from_attributes = True


class ScorePreviewEntry(BaseModel):
    account_id: UUID
    current_score: int
    current_tier: str
    projected_score: int
    projected_tier: str
    delta: int
