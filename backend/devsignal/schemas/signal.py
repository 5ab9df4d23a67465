"""
Pydantic schemas for signal intake.
"""
from typing import Optional, Dict, Any, List
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


# ============================================================================
# NORMALIZED SIGNAL
# ============================================================================

class ActorEvidence(BaseModel):
    """Whatever the source told us about who performed the action."""
    email: Optional[str] = None
    external_id: Optional[str] = None
    display_name: Optional[str] = None
    profile_url: Optional[str] = None


class NormalizedSignal(BaseModel):
    """Canonical shape every adapter produces."""
    type: str = Field(..., min_length=1, max_length=100)
    actor_evidence: ActorEvidence = Field(default_factory=ActorEvidence)
    account_hint: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[datetime] = None
    idempotency_key: Optional[str] = Field(None, max_length=512)
    delivery_id: Optional[str] = None
    natural_key: Optional[str] = None

    @field_validator("type")
    @classmethod
    def strip_type(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("signal type must not be blank")
        return v


# ============================================================================
# RESULTS
# ============================================================================

class IngestResult(BaseModel):
    signal_id: UUID
    deduplicated: bool = False
    contact_id: Optional[UUID] = None
    account_id: Optional[UUID] = None


class BatchIngestResult(BaseModel):
    ingested: int = 0
    deduplicated: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)
    results: List[IngestResult] = Field(default_factory=list)


class SyncSummary(BaseModel):
    source_id: UUID
    fetched: int = 0
    ingested: int = 0
    deduplicated: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)
