"""
Durable lookups of contacts, identities and signals.

Every lookup is scoped to one organization. Uniqueness (identity ownership,
signal idempotency keys) is enforced by constraints and written with
INSERT .. ON CONFLICT DO NOTHING so concurrent writers cannot duplicate rows.
"""

import logging
from typing import Any, Dict, Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy import select, update, func, and_
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from devsignal.models import Contact, ContactIdentity, Company, Signal, IdentityType

logger = logging.getLogger(__name__)

# Contact columns that hold secondary profile handles
PROFILE_COLUMNS = {
    IdentityType.LINKEDIN: "linkedin_url",
    IdentityType.GITHUB: "github_username",
    IdentityType.TWITTER: "twitter_handle",
}


def _dialect_insert(db: AsyncSession, table):
    """Dialect-specific INSERT that supports on_conflict_do_nothing()."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"Unsupported database dialect for upserts: {dialect}")


class IdentityStore:
    """Organization-scoped reads and conflict-safe writes."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ========================================================================
    # CONTACT LOOKUPS
    # ========================================================================

    async def find_contact_by_email(self, organization_id: UUID, email: str) -> Optional[Contact]:
        result = await self.db.execute(
            select(Contact).where(
                and_(
                    Contact.organization_id == organization_id,
                    func.lower(Contact.email) == email.lower()
                )
            ).order_by(Contact.created_at).limit(1)
        )
        return result.scalar_one_or_none()

    async def find_contact_by_identity(
        self,
        organization_id: UUID,
        identity_type: IdentityType,
        value: str
    ) -> Optional[Contact]:
        """
        Contact owning (type, value), only when that contact belongs to the
        organization. An identity owned by another organization is never
        returned.
        """
        result = await self.db.execute(
            select(ContactIdentity, Contact)
            .join(Contact, Contact.id == ContactIdentity.contact_id)
            .where(
                and_(
                    ContactIdentity.type == identity_type.value,
                    ContactIdentity.value == value
                )
            )
        )
        row = result.first()
        if row is None:
            return None

        identity, contact = row
        if contact.organization_id != organization_id:
            logger.warning(
                f"Identity {identity_type.value}:{value} belongs to another organization; "
                f"ignoring for org {organization_id}"
            )
            return None
        return contact

    async def find_contact_by_profile_column(
        self,
        organization_id: UUID,
        identity_type: IdentityType,
        value: str
    ) -> Optional[Contact]:
        column_name = PROFILE_COLUMNS.get(identity_type)
        if not column_name:
            return None
        column = getattr(Contact, column_name)
        result = await self.db.execute(
            select(Contact).where(
                and_(
                    Contact.organization_id == organization_id,
                    func.lower(column) == value.lower()
                )
            ).order_by(Contact.created_at).limit(1)
        )
        return result.scalar_one_or_none()

    async def find_contact_by_name(
        self,
        organization_id: UUID,
        first_name: str,
        last_name: str
    ) -> Optional[Contact]:
        result = await self.db.execute(
            select(Contact).where(
                and_(
                    Contact.organization_id == organization_id,
                    func.lower(Contact.first_name) == first_name.lower(),
                    func.lower(Contact.last_name) == last_name.lower()
                )
            ).order_by(Contact.created_at).limit(1)
        )
        return result.scalar_one_or_none()

    async def find_company(self, organization_id: UUID, hint: str) -> Optional[Company]:
        """Company by id, then domain (email domains accepted), then name."""
        hint = hint.strip()
        if not hint:
            return None

        try:
            company_id = UUID(hint)
        except ValueError:
            company_id = None

        if company_id is not None:
            company = await self.db.get(Company, company_id)
            if company is not None and company.organization_id == organization_id:
                return company

        domain = hint.lower()
        if "@" in domain:
            domain = domain.split("@", 1)[1]
        result = await self.db.execute(
            select(Company).where(
                and_(
                    Company.organization_id == organization_id,
                    func.lower(Company.domain) == domain
                )
            ).order_by(Company.created_at).limit(1)
        )
        company = result.scalar_one_or_none()
        if company is not None:
            return company

        result = await self.db.execute(
            select(Company).where(
                and_(
                    Company.organization_id == organization_id,
                    func.lower(Company.name) == hint.lower()
                )
            ).order_by(Company.created_at).limit(1)
        )
        return result.scalar_one_or_none()

    # ========================================================================
    # IDENTITY UPSERT
    # ========================================================================

    async def upsert_identity(
        self,
        contact_id: UUID,
        identity_type: IdentityType,
        value: str,
        verified: bool,
        confidence: float
    ) -> Optional[ContactIdentity]:
        """
        Record that `contact_id` owns (type, value).

        - Missing identity: inserted.
        - Owned by the same contact: confidence raised if the new evidence is
          stronger, verified only ever flips to True.
        - Owned by another contact: left untouched.
        """
        table = ContactIdentity.__table__
        stmt = _dialect_insert(self.db, table).values(
            id=uuid4(),
            contact_id=contact_id,
            type=identity_type.value,
            value=value,
            verified=verified,
            confidence=confidence,
        ).on_conflict_do_nothing(index_elements=["type", "value"]).returning(table.c.id)

        inserted_id = (await self.db.execute(stmt)).scalar_one_or_none()
        if inserted_id is not None:
            logger.debug(f"Backfilled identity {identity_type.value}:{value} -> contact {contact_id}")
            return await self.db.get(ContactIdentity, inserted_id)

        result = await self.db.execute(
            select(ContactIdentity).where(
                and_(
                    ContactIdentity.type == identity_type.value,
                    ContactIdentity.value == value
                )
            )
        )
        existing = result.scalar_one_or_none()
        if existing is None:
            return None

        if existing.contact_id != contact_id:
            logger.info(
                f"Identity {identity_type.value}:{value} already owned by contact "
                f"{existing.contact_id}; not reassigning to {contact_id}"
            )
            return existing

        changed = False
        if confidence > existing.confidence:
            res = await self.db.execute(
                update(ContactIdentity)
                .where(
                    and_(
                        ContactIdentity.id == existing.id,
                        ContactIdentity.contact_id == contact_id,
                        ContactIdentity.confidence < confidence
                    )
                )
                .values(confidence=confidence)
                .execution_options(synchronize_session=False)
            )
            changed = changed or res.rowcount > 0
        if verified and not existing.verified:
            await self.db.execute(
                update(ContactIdentity)
                .where(ContactIdentity.id == existing.id)
                .values(verified=True)
                .execution_options(synchronize_session=False)
            )
            changed = True

        if changed:
            await self.db.refresh(existing)
        return existing

    # ========================================================================
    # SIGNALS
    # ========================================================================

    async def find_signal_id(self, organization_id: UUID, idempotency_key: str) -> Optional[UUID]:
        result = await self.db.execute(
            select(Signal.id).where(
                and_(
                    Signal.organization_id == organization_id,
                    Signal.idempotency_key == idempotency_key
                )
            )
        )
        return result.scalar_one_or_none()

    async def insert_signal(self, values: Dict[str, Any]) -> Tuple[UUID, bool]:
        """
        Insert a signal row unless (organization_id, idempotency_key) exists.

        Returns:
            (signal_id, inserted). On conflict, the id of the row that won.
        """
        table = Signal.__table__
        row = dict(values)
        row.setdefault("id", uuid4())
        stmt = _dialect_insert(self.db, table).values(**row).on_conflict_do_nothing(
            index_elements=["organization_id", "idempotency_key"]
        ).returning(table.c.id)

        inserted_id = (await self.db.execute(stmt)).scalar_one_or_none()
        if inserted_id is not None:
            return inserted_id, True

        existing_id = await self.find_signal_id(row["organization_id"], row["idempotency_key"])
        if existing_id is None:
            # Conflict row vanished between statements; surface it to the caller
            raise RuntimeError(
                f"Signal insert conflicted but no row found for key {row['idempotency_key']}"
            )
        return existing_id, False
