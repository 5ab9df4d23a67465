# tests/services/test_identity_resolver.py
"""
Tests for staged identity resolution and identity backfill.

Coverage:
- Email match with external identity backfill
- Existing identity lookup, scoped to the organization
- Profile column and display-name fallbacks
- Anonymous fallback and account hints
- Confidence only rises; ownership never moves
"""

from uuid import uuid4

import pytest
from sqlalchemy import select

from devsignal.models import ContactIdentity, IdentityType
from devsignal.schemas.signal import ActorEvidence
from devsignal.services.identity_resolver import IdentityResolver
from devsignal.services.identity_store import IdentityStore
from tests.factories import make_company, make_contact, make_identity, make_org


async def identities_for(db, contact):
    result = await db.execute(select(ContactIdentity).where(ContactIdentity.contact_id == contact.id))
    return list(result.scalars().all())


# ============================================================================
# TEST: Stage order
# ============================================================================

class TestResolutionStages:

    @pytest.mark.asyncio
    async def test_email_match_backfills_verified_external_identity(self, db):
        org = await make_org(db)
        company = await make_company(db, org)
        contact = await make_contact(db, org, company, email="jane@globex.io", first_name="Jane", last_name="Doe")

        resolution = await IdentityResolver(db).resolve(
            org.id, ActorEvidence(email="Jane@Globex.io", external_id="ic_42"), "INTERCOM"
        )

        assert resolution.contact_id == contact.id
        assert resolution.account_id == company.id
        assert resolution.method == "email"
        assert resolution.confidence == 1.0

        identities = await identities_for(db, contact)
        assert len(identities) == 1
        assert identities[0].type == IdentityType.INTERCOM.value
        assert identities[0].value == "ic_42"
        assert identities[0].verified is True
        assert identities[0].confidence == pytest.approx(0.9)

    @pytest.mark.asyncio
    async def test_existing_identity_matches(self, db):
        org = await make_org(db)
        contact = await make_contact(db, org, email="someone@else.io")
        await make_identity(db, contact, IdentityType.GITHUB.value, "octocat")

        resolution = await IdentityResolver(db).resolve(
            org.id, ActorEvidence(external_id="OctoCat"), "GITHUB"
        )

        assert resolution.contact_id == contact.id
        assert resolution.method == "identity:GITHUB"

    @pytest.mark.asyncio
    async def test_profile_column_match_backfills_unverified(self, db):
        org = await make_org(db)
        contact = await make_contact(db, org, linkedin_url="https://www.linkedin.com/in/jane")

        resolution = await IdentityResolver(db).resolve(
            org.id, ActorEvidence(profile_url="https://www.linkedin.com/in/jane/"), "LINKEDIN"
        )

        assert resolution.contact_id == contact.id
        assert resolution.method == "profile"
        identities = await identities_for(db, contact)
        assert [(i.type, i.verified, i.confidence) for i in identities] == [
            (IdentityType.LINKEDIN.value, False, pytest.approx(0.7))
        ]

    @pytest.mark.asyncio
    async def test_display_name_match_is_case_insensitive(self, db):
        org = await make_org(db)
        contact = await make_contact(db, org, first_name="Ada", last_name="Lovelace")

        resolution = await IdentityResolver(db).resolve(
            org.id, ActorEvidence(display_name="ada LOVELACE", external_id="ada-l"), "NPM"
        )

        assert resolution.contact_id == contact.id
        assert resolution.method == "name"
        assert resolution.confidence == pytest.approx(0.5)
        identities = await identities_for(db, contact)
        assert identities[0].type == IdentityType.NPM.value
        assert identities[0].verified is False

    @pytest.mark.asyncio
    async def test_single_token_name_does_not_match(self, db):
        org = await make_org(db)
        await make_contact(db, org, first_name="Ada", last_name="Lovelace")

        resolution = await IdentityResolver(db).resolve(org.id, ActorEvidence(display_name="Ada"), "NPM")

        assert resolution.contact_id is None

    @pytest.mark.asyncio
    async def test_email_wins_over_name(self, db):
        org = await make_org(db)
        by_email = await make_contact(db, org, email="ada@analytical.io")
        await make_contact(db, org, first_name="Ada", last_name="Lovelace")

        resolution = await IdentityResolver(db).resolve(
            org.id, ActorEvidence(email="ada@analytical.io", display_name="Ada Lovelace"), "SEGMENT"
        )

        assert resolution.contact_id == by_email.id

    @pytest.mark.asyncio
    async def test_email_wins_over_external_identity_of_another_contact(self, db):
        org = await make_org(db)
        by_email = await make_contact(db, org, email="ada@analytical.io")
        by_identity = await make_contact(db, org, email="babbage@analytical.io")
        await make_identity(db, by_identity, IdentityType.INTERCOM.value, "ic_1", confidence=0.95)

        resolution = await IdentityResolver(db).resolve(
            org.id, ActorEvidence(email="ada@analytical.io", external_id="ic_1"), "INTERCOM"
        )

        assert resolution.contact_id == by_email.id
        assert resolution.method == "email"
        identity = (await identities_for(db, by_identity))[0]
        assert (identity.value, identity.contact_id) == ("ic_1", by_identity.id)
        assert identity.confidence == pytest.approx(0.95)
        assert await identities_for(db, by_email) == []


# ============================================================================
# TEST: Generic source ids
# ============================================================================

class TestGenericSourceIdentities:

    @pytest.mark.asyncio
    async def test_same_id_from_two_custom_sources_stays_separate(self, db):
        org = await make_org(db)
        ada = await make_contact(db, org, email="ada@analytical.io")
        grace = await make_contact(db, org, email="grace@navy.mil")
        forms, billing = uuid4(), uuid4()
        resolver = IdentityResolver(db)

        await resolver.resolve(org.id, ActorEvidence(email=ada.email, external_id="42"), "CUSTOM", source_id=forms)
        await resolver.resolve(org.id, ActorEvidence(email=grace.email, external_id="42"), "CUSTOM", source_id=billing)

        assert [i.value for i in await identities_for(db, ada)] == [f"{forms}:42"]
        assert [i.value for i in await identities_for(db, grace)] == [f"{billing}:42"]

        resolution = await resolver.resolve(org.id, ActorEvidence(external_id="42"), "CUSTOM", source_id=billing)
        assert resolution.contact_id == grace.id
        assert resolution.method == "identity:OTHER"

    @pytest.mark.asyncio
    async def test_generic_id_without_source_not_stored(self, db):
        org = await make_org(db)
        ada = await make_contact(db, org, email="ada@analytical.io")

        resolution = await IdentityResolver(db).resolve(
            org.id, ActorEvidence(email=ada.email, external_id="42"), "HTTP_POLL"
        )

        assert resolution.contact_id == ada.id
        assert await identities_for(db, ada) == []


# ============================================================================
# TEST: Anonymous and accounts
# ============================================================================

class TestAnonymousResolution:

    @pytest.mark.asyncio
    async def test_no_match_returns_anonymous_id(self, db):
        org = await make_org(db)

        resolution = await IdentityResolver(db).resolve(
            org.id, ActorEvidence(profile_url="https://www.linkedin.com/in/ghost"), "LINKEDIN"
        )

        assert resolution.contact_id is None
        assert resolution.account_id is None
        assert resolution.anonymous_id == "linkedin:https://www.linkedin.com/in/ghost"
        assert resolution.resolved is False

    @pytest.mark.asyncio
    async def test_account_hint_by_domain(self, db):
        org = await make_org(db)
        company = await make_company(db, org, domain="globex.io")

        resolution = await IdentityResolver(db).resolve(
            org.id, ActorEvidence(email="new@globex.io"), "SEGMENT", account_hint="new@globex.io"
        )

        assert resolution.contact_id is None
        assert resolution.account_id == company.id

    @pytest.mark.asyncio
    async def test_account_hint_from_other_org_ignored(self, db):
        org = await make_org(db)
        other = await make_org(db, name="Other")
        foreign_company = await make_company(db, other, domain="globex.io")

        resolution = await IdentityResolver(db).resolve(
            org.id, ActorEvidence(), "SEGMENT", account_hint=str(foreign_company.id)
        )

        assert resolution.account_id is None


# ============================================================================
# TEST: Organization isolation
# ============================================================================

class TestOrganizationIsolation:

    @pytest.mark.asyncio
    async def test_foreign_identity_never_resolves(self, db):
        org_a = await make_org(db, name="A")
        org_b = await make_org(db, name="B")
        contact_a = await make_contact(db, org_a, email="dev@shared.io")
        await make_identity(db, contact_a, IdentityType.GITHUB.value, "shared-dev")

        resolution = await IdentityResolver(db).resolve(
            org_b.id, ActorEvidence(email="dev@shared.io", external_id="shared-dev"), "GITHUB"
        )

        assert resolution.contact_id is None
        assert resolution.anonymous_id == "github:dev@shared.io"


# ============================================================================
# TEST: Identity upsert
# ============================================================================

class TestUpsertIdentity:

    @pytest.mark.asyncio
    async def test_confidence_raised_for_same_owner(self, db):
        org = await make_org(db)
        contact = await make_contact(db, org)
        await make_identity(db, contact, IdentityType.NPM.value, "ada", verified=False, confidence=0.5)

        identity = await IdentityStore(db).upsert_identity(
            contact.id, IdentityType.NPM, "ada", verified=True, confidence=0.9
        )

        assert identity.confidence == pytest.approx(0.9)
        assert identity.verified is True

    @pytest.mark.asyncio
    async def test_confidence_never_lowered(self, db):
        org = await make_org(db)
        contact = await make_contact(db, org)
        await make_identity(db, contact, IdentityType.NPM.value, "ada", verified=True, confidence=0.95)

        identity = await IdentityStore(db).upsert_identity(
            contact.id, IdentityType.NPM, "ada", verified=False, confidence=0.5
        )

        assert identity.confidence == pytest.approx(0.95)
        assert identity.verified is True

    @pytest.mark.asyncio
    async def test_ownership_never_reassigned(self, db):
        org = await make_org(db)
        owner = await make_contact(db, org, email="owner@x.io")
        other = await make_contact(db, org, email="other@x.io")
        await make_identity(db, owner, IdentityType.GITHUB.value, "dup", confidence=0.5)

        identity = await IdentityStore(db).upsert_identity(
            other.id, IdentityType.GITHUB, "dup", verified=True, confidence=1.0
        )

        assert identity.contact_id == owner.id
        assert identity.confidence == pytest.approx(0.5)
        assert await identities_for(db, other) == []

    @pytest.mark.asyncio
    async def test_insert_when_missing(self, db):
        org = await make_org(db)
        contact = await make_contact(db, org)

        identity = await IdentityStore(db).upsert_identity(
            contact.id, IdentityType.TWITTER, "ada_l", verified=False, confidence=0.7
        )
        await db.commit()

        assert identity.contact_id == contact.id
        assert len(await identities_for(db, contact)) == 1
