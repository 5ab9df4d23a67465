# backend/devsignal/models.py
"""
SQLAlchemy ORM models for the signal -> identity -> score -> alert pipeline.

Uniqueness that the pipeline relies on (idempotency keys, identity ownership,
one score row per account) is enforced here with database constraints, so
concurrent writers race on the constraint rather than on application checks.
"""

import uuid
from enum import Enum

from sqlalchemy import (
    Column, String, Boolean, Integer, Float, Text, ForeignKey, Index,
    CheckConstraint, UniqueConstraint, Uuid
)
from sqlalchemy.orm import relationship

from devsignal.database import Base, JSONType, OrderedJSONType, UTCDateTime, utcnow


# ============================================================================
# ENUMS
# ============================================================================

class IdentityType(str, Enum):
    EMAIL = "EMAIL"
    GITHUB = "GITHUB"
    NPM = "NPM"
    LINKEDIN = "LINKEDIN"
    INTERCOM = "INTERCOM"
    TWITTER = "TWITTER"
    POSTHOG = "POSTHOG"
    SEGMENT = "SEGMENT"
    OTHER = "OTHER"


class ScoreTier(str, Enum):
    HOT = "HOT"
    WARM = "WARM"
    COLD = "COLD"
    INACTIVE = "INACTIVE"


class ScoreTrend(str, Enum):
    RISING = "RISING"
    STABLE = "STABLE"
    FALLING = "FALLING"


class AlertTriggerType(str, Enum):
    SCORE_DROP = "score_drop"
    SCORE_RISE = "score_rise"
    SCORE_THRESHOLD = "score_threshold"
    ENGAGEMENT_DROP = "engagement_drop"
    NEW_HOT_SIGNAL = "new_hot_signal"
    ACCOUNT_INACTIVE = "account_inactive"


def _in_list(column: str, enum_cls) -> str:
    values = ", ".join(f"'{member.value}'" for member in enum_cls)
    return f"{column} IN ({values})"


# ============================================================================
# ORGANIZATION & USER MODELS
# ============================================================================

class Organization(Base):
    """Tenant. Scoring config and Slack webhook live in `settings`."""
    __tablename__ = "organizations"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    settings = Column(JSONType, default=dict)
    created_at = Column(UTCDateTime, default=utcnow)

    def __repr__(self):
        return f"<Organization(id={self.id}, name='{self.name}')>"


class User(Base):
    """Organization member; receives in-app and email alerts."""
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid(as_uuid=True), ForeignKey("organizations.id"), nullable=False, index=True)
    email = Column(String(255))
    name = Column(String(255))
    created_at = Column(UTCDateTime, default=utcnow)


# ============================================================================
# SIGNAL SOURCES & SIGNALS
# ============================================================================

class SignalSource(Base):
    """A configured producer of signals (webhook receiver or polled API)."""
    __tablename__ = "signal_sources"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid(as_uuid=True), ForeignKey("organizations.id"), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    name = Column(String(255), nullable=False)
    config = Column(JSONType, default=dict)
    enabled = Column(Boolean, default=True, nullable=False)
    last_sync_at = Column(UTCDateTime)
    created_at = Column(UTCDateTime, default=utcnow)

    def __repr__(self):
        return f"<SignalSource(id={self.id}, type='{self.type}', name='{self.name}')>"


class Signal(Base):
    """
    One observed event. Created once, never updated by the pipeline.

    `metadata` is a reserved attribute on declarative classes, so the column
    is exposed as `metadata_`.
    """
    __tablename__ = "signals"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid(as_uuid=True), ForeignKey("organizations.id"), nullable=False)
    source_id = Column(Uuid(as_uuid=True), ForeignKey("signal_sources.id"), nullable=False)
    type = Column(String(100), nullable=False)
    actor_id = Column(Uuid(as_uuid=True), ForeignKey("contacts.id"), nullable=True)
    account_id = Column(Uuid(as_uuid=True), ForeignKey("companies.id"), nullable=True)
    anonymous_id = Column(String(512))
    metadata_ = Column("metadata", OrderedJSONType, default=dict)
    idempotency_key = Column(String(512), nullable=False)
    timestamp = Column(UTCDateTime, nullable=False, default=utcnow)
    created_at = Column(UTCDateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("organization_id", "idempotency_key", name="uq_signal_idempotency"),
        Index("ix_signals_org_account_ts", "organization_id", "account_id", "timestamp"),
    )

    def __repr__(self):
        return f"<Signal(id={self.id}, type='{self.type}', account_id={self.account_id})>"


# ============================================================================
# CONTACTS, COMPANIES & IDENTITIES
# ============================================================================

class Company(Base):
    """Account being scored."""
    __tablename__ = "companies"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid(as_uuid=True), ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    domain = Column(String(255), index=True)
    created_at = Column(UTCDateTime, default=utcnow)

    def __repr__(self):
        return f"<Company(id={self.id}, name='{self.name}', domain='{self.domain}')>"


class Contact(Base):
    """Known person inside an organization."""
    __tablename__ = "contacts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid(as_uuid=True), ForeignKey("organizations.id"), nullable=False, index=True)
    company_id = Column(Uuid(as_uuid=True), ForeignKey("companies.id"), nullable=True)
    email = Column(String(255), index=True)
    first_name = Column(String(255))
    last_name = Column(String(255))
    title = Column(String(255))
    linkedin_url = Column(String(512))
    github_username = Column(String(255))
    twitter_handle = Column(String(255))
    created_at = Column(UTCDateTime, default=utcnow)

    identities = relationship("ContactIdentity", foreign_keys="ContactIdentity.contact_id")

    def __repr__(self):
        return f"<Contact(id={self.id}, email='{self.email}')>"


class ContactIdentity(Base):
    """
    External identity owned by exactly one contact.

    (type, value) is unique system-wide; ownership is never reassigned and
    confidence only ever increases.
    """
    __tablename__ = "contact_identities"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    contact_id = Column(Uuid(as_uuid=True), ForeignKey("contacts.id"), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    value = Column(String(512), nullable=False)
    verified = Column(Boolean, default=False, nullable=False)
    confidence = Column(Float, default=1.0, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("type", "value", name="uq_identity_type_value"),
        CheckConstraint(_in_list("type", IdentityType), name="chk_identity_type"),
        CheckConstraint("confidence >= 0 AND confidence <= 1", name="chk_identity_confidence"),
    )

    def __repr__(self):
        return f"<ContactIdentity(type='{self.type}', value='{self.value}', contact_id={self.contact_id})>"


# ============================================================================
# SCORING
# ============================================================================

class AccountScore(Base):
    """Current PQA score for one account. `version` increases on every write."""
    __tablename__ = "account_scores"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid(as_uuid=True), ForeignKey("organizations.id"), nullable=False)
    account_id = Column(Uuid(as_uuid=True), ForeignKey("companies.id"), nullable=False)
    score = Column(Integer, nullable=False, default=0)
    tier = Column(String(20), nullable=False, default=ScoreTier.INACTIVE.value)
    factors = Column(JSONType, default=list)
    signal_count = Column(Integer, nullable=False, default=0)
    user_count = Column(Integer, nullable=False, default=0)
    last_signal_at = Column(UTCDateTime)
    trend = Column(String(20), nullable=False, default=ScoreTrend.STABLE.value)
    computed_at = Column(UTCDateTime, default=utcnow)
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("organization_id", "account_id", name="uq_account_score"),
        CheckConstraint(_in_list("tier", ScoreTier), name="chk_account_score_tier"),
        CheckConstraint(_in_list("trend", ScoreTrend), name="chk_account_score_trend"),
        CheckConstraint("score >= 0", name="chk_account_score_non_negative"),
    )

    def __repr__(self):
        return f"<AccountScore(account_id={self.account_id}, score={self.score}, tier='{self.tier}')>"


class ScoreSnapshot(Base):
    """Append-only score history used for trends and score-change alerts."""
    __tablename__ = "score_snapshots"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid(as_uuid=True), ForeignKey("organizations.id"), nullable=False)
    account_id = Column(Uuid(as_uuid=True), ForeignKey("companies.id"), nullable=False)
    score = Column(Integer, nullable=False)
    tier = Column(String(20), nullable=False)
    captured_at = Column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_snapshots_org_account_captured", "organization_id", "account_id", "captured_at"),
    )


# ============================================================================
# ALERTS & NOTIFICATIONS
# ============================================================================

class AccountAlertRule(Base):
    """User-defined alert rule. Cooldown is derived from last_triggered_at."""
    __tablename__ = "account_alert_rules"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid(as_uuid=True), ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    trigger_type = Column(String(50), nullable=False)
    conditions = Column(JSONType, default=dict)
    channels = Column(JSONType, default=dict)
    enabled = Column(Boolean, default=True, nullable=False)
    last_triggered_at = Column(UTCDateTime)
    created_at = Column(UTCDateTime, default=utcnow)

    __table_args__ = (
        CheckConstraint(_in_list("trigger_type", AlertTriggerType), name="chk_alert_trigger_type"),
    )

    def __repr__(self):
        return f"<AccountAlertRule(id={self.id}, name='{self.name}', trigger='{self.trigger_type}')>"


class Notification(Base):
    """In-app notification for one organization member."""
    __tablename__ = "notifications"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid(as_uuid=True), ForeignKey("organizations.id"), nullable=False)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    body = Column(Text)
    entity_type = Column(String(50))
    entity_id = Column(String(64))
    read = Column(Boolean, default=False, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow)
