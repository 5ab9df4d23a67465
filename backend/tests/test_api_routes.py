# tests/test_api_routes.py
"""
HTTP-level tests for the signal, scoring and alert routers.

The app runs in-process through httpx.ASGITransport with get_db overridden
to the test session factory. Startup hooks (scheduler, queue) do not run.
"""

import httpx
import pytest
import pytest_asyncio

from devsignal.database import get_db
from devsignal.main import app
from tests.factories import make_company, make_contact, make_org, make_source


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


CONFIG = {
    "rules": [{"id": "installs", "signalType": "package_install", "weight": 55, "decay": "30d"}],
    "tierThresholds": {"hot": 80, "warm": 50, "cold": 20},
}


class TestSignalRoutes:

    @pytest.mark.asyncio
    async def test_ingest_is_idempotent(self, client, db):
        org = await make_org(db)
        source = await make_source(db, org)
        body = {"type": "package_install", "idempotency_key": "npm:1", "metadata": {"package": "acme-sdk"}}
        url = f"/api/v1/organizations/{org.id}/sources/{source.id}/signals"

        first = await client.post(url, json=body)
        second = await client.post(url, json=body)

        assert first.status_code == 200
        assert first.json()["deduplicated"] is False
        assert second.json() == {**first.json(), "deduplicated": True, "contact_id": None, "account_id": None}

    @pytest.mark.asyncio
    async def test_unknown_source_is_404(self, client, db):
        org = await make_org(db)
        response = await client.post(
            f"/api/v1/organizations/{org.id}/sources/{org.id}/signals", json={"type": "x"}
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_blank_type_rejected(self, client, db):
        org = await make_org(db)
        source = await make_source(db, org)
        response = await client.post(
            f"/api/v1/organizations/{org.id}/sources/{source.id}/signals", json={"type": "   "}
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_linkedin_webhook(self, client, db):
        org = await make_org(db)
        company = await make_company(db, org)
        contact = await make_contact(db, org, company, email="jane@globex.io")
        source = await make_source(db, org, type="LINKEDIN", name="LinkedIn")

        response = await client.post(
            f"/api/v1/organizations/{org.id}/webhooks/{source.id}",
            json={"type": "linkedin_post_engagement", "actor": {"email": "jane@globex.io", "name": "Jane"}},
        )

        assert response.status_code == 200
        assert response.json()["contact_id"] == str(contact.id)
        assert response.json()["account_id"] == str(company.id)

    @pytest.mark.asyncio
    async def test_webhook_bad_payload_is_400(self, client, db):
        org = await make_org(db)
        source = await make_source(db, org, type="LINKEDIN", name="LinkedIn")

        response = await client.post(
            f"/api/v1/organizations/{org.id}/webhooks/{source.id}", json={"type": "linkedin_dm"}
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_batch(self, client, db):
        org = await make_org(db)
        source = await make_source(db, org)

        response = await client.post(
            f"/api/v1/organizations/{org.id}/sources/{source.id}/signals/batch",
            json=[{"type": "signup", "idempotency_key": "a"}, {"type": "signup", "idempotency_key": "a"}],
        )

        assert response.status_code == 200
        assert response.json()["ingested"] == 1
        assert response.json()["deduplicated"] == 1


class TestScoringRoutes:

    @pytest.mark.asyncio
    async def test_config_recompute_and_read(self, client, db):
        org = await make_org(db)
        source = await make_source(db, org)
        company = await make_company(db, org)
        base = f"/api/v1/organizations/{org.id}"

        saved = await client.put(f"{base}/scoring/config", json=CONFIG)
        assert saved.status_code == 200
        assert saved.json()["maxScore"] == 100

        await client.post(
            f"{base}/sources/{source.id}/signals",
            json={"type": "package_install", "account_hint": "globex.io", "idempotency_key": "i1"},
        )

        missing = await client.get(f"{base}/accounts/{company.id}/score")
        assert missing.status_code == 404

        recomputed = await client.post(f"{base}/accounts/{company.id}/score/recompute")
        assert recomputed.status_code == 200
        assert recomputed.json()["score"] == 55
        assert recomputed.json()["tier"] == "WARM"

        read = await client.get(f"{base}/accounts/{company.id}/score")
        assert read.json()["score"] == 55

    @pytest.mark.asyncio
    async def test_invalid_config_is_400(self, client, db):
        org = await make_org(db)
        response = await client.put(
            f"/api/v1/organizations/{org.id}/scoring/config",
            json={"tierThresholds": {"hot": 10, "warm": 60, "cold": 0}},
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_recompute_foreign_account_is_404(self, client, db):
        org = await make_org(db)
        other = await make_org(db, name="Other")
        foreign = await make_company(db, other)

        response = await client.post(f"/api/v1/organizations/{org.id}/accounts/{foreign.id}/score/recompute")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_preview_empty_org(self, client, db):
        org = await make_org(db)
        response = await client.post(f"/api/v1/organizations/{org.id}/scoring/preview", json=CONFIG)
        assert response.status_code == 200
        assert response.json() == []

    @pytest.mark.asyncio
    async def test_unknown_decay_is_400(self, client, db):
        org = await make_org(db)
        bad = {"rules": [{"id": "r", "signalType": "package_install", "weight": 10, "decay": "45d"}]}
        base = f"/api/v1/organizations/{org.id}/scoring"

        assert (await client.put(f"{base}/config", json=bad)).status_code == 400
        assert (await client.post(f"{base}/preview", json=bad)).status_code == 400


class TestAlertRoutes:

    @pytest.mark.asyncio
    async def test_evaluate_unscored_account_is_404(self, client, db):
        org = await make_org(db)
        company = await make_company(db, org)

        response = await client.post(
            f"/api/v1/organizations/{org.id}/alerts/evaluate", json={"account_id": str(company.id)}
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_sweep_without_rules(self, client, db):
        org = await make_org(db)

        response = await client.post(f"/api/v1/organizations/{org.id}/alerts/evaluate", json={})

        assert response.status_code == 200
        assert response.json() == {"evaluated": 0, "triggered": 0, "errors": 0, "error_messages": []}


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.json()["status"] == "healthy"
