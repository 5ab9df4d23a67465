"""
Identity resolution: map a signal's actor evidence to a known contact and,
through it, to an account.

Stages run in order and the first match wins:
    1. email on the organization's contacts
    2. existing ContactIdentity rows (email, source external id, profile URL)
    3. secondary profile columns on the contact
    4. case-insensitive first/last name match on the display name
    5. no match: anonymous

Matches from stages 1, 3 and 4 backfill an identity row so later signals
resolve at stage 2.
"""

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from devsignal.models import Contact, IdentityType
from devsignal.schemas.signal import ActorEvidence
from devsignal.services.identity_store import IdentityStore
from devsignal.services.normalization import (
    anonymous_id,
    external_identity_value,
    identity_type_for_source,
    normalize_evidence,
    profile_identity_type,
    split_display_name,
)

logger = logging.getLogger(__name__)

# Confidence recorded for each kind of evidence
CONFIDENCE_EXACT_EMAIL = 1.0
CONFIDENCE_VERIFIED_IDENTITY = 0.95
CONFIDENCE_EMAIL_BACKFILL = 0.9
CONFIDENCE_PROFILE_MATCH = 0.7
CONFIDENCE_NAME_MATCH = 0.5


@dataclass
class Resolution:
    contact_id: Optional[UUID]
    account_id: Optional[UUID]
    confidence: float
    method: str
    anonymous_id: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return self.contact_id is not None


class IdentityResolver:
    """Staged resolver; only storage errors propagate."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.store = IdentityStore(db)

    async def resolve(
        self,
        organization_id: UUID,
        evidence: ActorEvidence,
        source_type: str,
        account_hint: Optional[str] = None,
        source_id: Optional[UUID] = None
    ) -> Resolution:
        evidence = normalize_evidence(evidence, source_type)
        external_type = identity_type_for_source(source_type)
        external_value = external_identity_value(evidence.external_id, external_type, source_id)
        profile_type = profile_identity_type(evidence.profile_url)

        contact, method, confidence = await self._match(
            organization_id, evidence, external_type, external_value, profile_type
        )

        if contact is None:
            account_id = await self._account_from_hint(organization_id, account_hint)
            return Resolution(
                contact_id=None,
                account_id=account_id,
                confidence=0.0,
                method="anonymous",
                anonymous_id=anonymous_id(source_type, evidence),
            )

        account_id = contact.company_id
        if account_id is None:
            account_id = await self._account_from_hint(organization_id, account_hint)

        logger.debug(f"Resolved actor to contact {contact.id} via {method} (confidence={confidence})")
        return Resolution(
            contact_id=contact.id,
            account_id=account_id,
            confidence=confidence,
            method=method,
        )

    async def _match(self, organization_id, evidence, external_type, external_value, profile_type):
        # Stage 1: exact email
        if evidence.email:
            contact = await self.store.find_contact_by_email(organization_id, evidence.email)
            if contact is not None:
                if external_value:
                    await self.store.upsert_identity(
                        contact.id, external_type, external_value,
                        verified=True, confidence=CONFIDENCE_EMAIL_BACKFILL
                    )
                return contact, "email", CONFIDENCE_EXACT_EMAIL

        # Stage 2: existing identities
        candidates = []
        if evidence.email:
            candidates.append((IdentityType.EMAIL, evidence.email))
        if external_value:
            candidates.append((external_type, external_value))
        if evidence.profile_url and profile_type:
            candidates.append((profile_type, evidence.profile_url))

        for identity_type, value in candidates:
            contact = await self.store.find_contact_by_identity(organization_id, identity_type, value)
            if contact is not None:
                return contact, f"identity:{identity_type.value}", CONFIDENCE_VERIFIED_IDENTITY

        # Stage 3: profile columns on the contact
        contact = await self._match_profile_columns(organization_id, evidence, external_type, profile_type)
        if contact is not None:
            return contact, "profile", CONFIDENCE_PROFILE_MATCH

        # Stage 4: display name
        first_name, last_name = split_display_name(evidence.display_name)
        if first_name and last_name:
            contact = await self.store.find_contact_by_name(organization_id, first_name, last_name)
            if contact is not None:
                backfill = self._backfill_target(evidence, external_type, external_value, profile_type)
                if backfill is not None:
                    await self.store.upsert_identity(
                        contact.id, backfill[0], backfill[1],
                        verified=False, confidence=CONFIDENCE_NAME_MATCH
                    )
                return contact, "name", CONFIDENCE_NAME_MATCH

        return None, "anonymous", 0.0

    async def _match_profile_columns(
        self,
        organization_id: UUID,
        evidence: ActorEvidence,
        external_type: IdentityType,
        profile_type: Optional[IdentityType]
    ) -> Optional[Contact]:
        lookups = []
        if evidence.profile_url and profile_type:
            lookups.append((profile_type, evidence.profile_url))
        if evidence.external_id and external_type in (IdentityType.GITHUB, IdentityType.TWITTER):
            lookups.append((external_type, evidence.external_id))

        for identity_type, value in lookups:
            contact = await self.store.find_contact_by_profile_column(organization_id, identity_type, value)
            if contact is not None:
                await self.store.upsert_identity(
                    contact.id, identity_type, value,
                    verified=False, confidence=CONFIDENCE_PROFILE_MATCH
                )
                return contact
        return None

    @staticmethod
    def _backfill_target(evidence, external_type, external_value, profile_type):
        if external_value:
            return external_type, external_value
        if evidence.profile_url and profile_type:
            return profile_type, evidence.profile_url
        return None

    async def _account_from_hint(self, organization_id: UUID, account_hint: Optional[str]) -> Optional[UUID]:
        if not account_hint:
            return None
        company = await self.store.find_company(organization_id, account_hint)
        return company.id if company else None
