# tests/adapters/test_signal_adapters.py
"""
Tests for source adapters and HTTP polling sync.

Run with: pytest backend/tests/adapters/test_signal_adapters.py -v
"""

from datetime import datetime, timezone
from unittest.mock import patch

import httpx
import pytest
from sqlalchemy import func, select

from devsignal.adapters import ADAPTER_REGISTRY, get_adapter
from devsignal.adapters.base import extract_path, parse_timestamp
from devsignal.adapters.http_poll import HTTPPollAdapter
from devsignal.adapters.intercom import IntercomAdapter
from devsignal.adapters.linkedin import LinkedInAdapter
from devsignal.adapters.webhook import WebhookAdapter
from devsignal.models import Signal, SignalSource
from devsignal.services.signal_ingestion import SignalIngestionService
from devsignal.services.signal_sync import SignalSyncService
from tests.factories import make_org, make_source


INTERCOM_REPLY = {
    "id": "notif_8f1",
    "topic": "conversation.user.replied",
    "app_id": "abc123",
    "created_at": 1714555800,
    "data": {
        "item": {
            "id": "conv_77",
            "title": "Webhook retries",
            "user": {"id": "ic_u1", "email": "Dev@Globex.io", "name": "Grace Hopper"},
            "tags": {"tags": [{"name": "api"}, {"name": "billing"}]},
            "conversation_parts": {"total_count": 4},
            "priority": "priority",
        }
    },
}

POLL_CONFIG = {
    "http_config": {
        "base_url": "https://api.example.dev",
        "endpoint": "/v1/events",
        "auth_type": "bearer",
        "auth_config": {"token": "{{api_key}}"},
        "records_path": "$.data",
        "since_param": "updated_since",
    },
    "variables": {"api_key": "sk_test_123"},
    "field_mappings": {
        "id": "$.id",
        "type": "$.event",
        "email": "$.user.email",
        "timestamp": "$.at",
    },
    "metadata_fields": {"plan": "$.properties.plan"},
}


def mock_http(handler):
    """Route httpx.AsyncClient through a MockTransport."""
    real_client = httpx.AsyncClient
    transport = httpx.MockTransport(handler)
    return patch(
        "devsignal.adapters.http_poll.httpx.AsyncClient",
        side_effect=lambda **kwargs: real_client(transport=transport, **kwargs),
    )


# ============================================================================
# TEST: Registry and helpers
# ============================================================================

class TestRegistry:

    def test_known_sources(self):
        assert isinstance(get_adapter("intercom"), IntercomAdapter)
        assert isinstance(get_adapter("LINKEDIN"), LinkedInAdapter)
        assert isinstance(get_adapter("CUSTOM"), WebhookAdapter)
        assert set(ADAPTER_REGISTRY) >= {"INTERCOM", "LINKEDIN", "WEBHOOK", "HTTP_POLL"}

    def test_unknown_source(self):
        with pytest.raises(ValueError, match="Unknown source type"):
            get_adapter("FAX")

    def test_extract_path(self):
        data = {"contacts": [{"id": "c1"}], "user": {"email": "a@b.io"}}
        assert extract_path(data, "$.user.email") == "a@b.io"
        assert extract_path(data, "contacts[0].id") == "c1"
        assert extract_path(data, "$.missing") is None

    def test_parse_timestamp(self):
        expected = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)
        assert parse_timestamp("2024-05-01T09:30:00Z") == expected
        assert parse_timestamp(1714555800) == expected
        assert parse_timestamp(None) is None


# ============================================================================
# TEST: Intercom
# ============================================================================

class TestIntercomAdapter:

    def test_reply_normalized(self):
        signal = IntercomAdapter().normalize(INTERCOM_REPLY)

        assert signal.type == "intercom_conversation_reply"
        assert signal.actor_evidence.email == "Dev@Globex.io"
        assert signal.actor_evidence.external_id == "ic_u1"
        assert signal.delivery_id == "notif_8f1"
        assert signal.natural_key == "conv_77"
        assert signal.timestamp == datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)
        assert signal.metadata["tags"] == ["api", "billing"]
        assert signal.metadata["replyCount"] == 4
        assert signal.metadata["conversationUrl"] == (
            "https://app.intercom.com/a/apps/abc123/inbox/inbox/all/conversations/conv_77"
        )

    def test_untracked_topic_ignored(self):
        assert IntercomAdapter().normalize({"topic": "user.created", "data": {}}) is None

    def test_tracked_events_config(self):
        adapter = IntercomAdapter({"trackedEvents": ["intercom_conversation_open"]})
        assert adapter.normalize(INTERCOM_REPLY) is None

    def test_missing_topic(self):
        with pytest.raises(ValueError, match="Missing topic"):
            IntercomAdapter().normalize({"data": {}})

    def test_rating_and_close_metadata(self):
        rated = dict(INTERCOM_REPLY, topic="conversation.rating.added")
        rated["data"] = {"item": {"id": "conv_1", "conversation_rating": {"rating": 5, "remark": "great"}}}
        closed = dict(INTERCOM_REPLY, topic="conversation.admin.closed")
        closed["data"] = {"item": {"id": "conv_2", "created_at": 1000, "updated_at": 1600}}

        assert IntercomAdapter().normalize(rated).metadata["satisfactionScore"] == 5
        assert IntercomAdapter().normalize(closed).metadata["responseTimeSeconds"] == 600


# ============================================================================
# TEST: LinkedIn
# ============================================================================

class TestLinkedInAdapter:

    def test_page_view(self):
        signal = LinkedInAdapter().normalize({
            "type": "linkedin_page_view",
            "actor": {"name": "Jane Doe", "profileUrl": "https://www.linkedin.com/in/jane", "company": "Globex"},
            "metadata": {"page": "/pricing"},
            "timestamp": "2024-05-01T09:30:00Z",
        })

        assert signal.account_hint == "Globex"
        assert signal.natural_key == "https://www.linkedin.com/in/jane"
        assert signal.metadata["page"] == "/pricing"
        assert signal.metadata["actorName"] == "Jane Doe"

    def test_anonymous_actor(self):
        signal = LinkedInAdapter().normalize({"type": "linkedin_company_follow"})
        assert signal.natural_key == "anon"
        assert signal.metadata["actorName"] == "Unknown"

    def test_invalid_type(self):
        with pytest.raises(ValueError, match="Invalid signal type"):
            LinkedInAdapter().normalize({"type": "linkedin_dm"})


# ============================================================================
# TEST: Webhook
# ============================================================================

class TestWebhookAdapter:

    def test_default_shape(self):
        signal = WebhookAdapter().normalize({
            "type": "package_install",
            "actor": {"email": "dev@globex.io", "externalId": 42},
            "account": "globex.io",
            "metadata": {"package": "acme-sdk", "version": "2.1.0"},
            "idempotencyKey": "npm:acme-sdk:42",
        })

        assert signal.actor_evidence.external_id == "42"
        assert signal.account_hint == "globex.io"
        assert signal.idempotency_key == "npm:acme-sdk:42"
        assert signal.metadata == {"package": "acme-sdk", "version": "2.1.0"}

    def test_field_mappings_override(self):
        adapter = WebhookAdapter({"field_mappings": {"type": "$.event.name", "email": "$.who"}})
        signal = adapter.normalize({"event": {"name": "docs_view"}, "who": "a@b.io"})

        assert signal.type == "docs_view"
        assert signal.actor_evidence.email == "a@b.io"

    def test_missing_type(self):
        with pytest.raises(ValueError):
            WebhookAdapter().normalize({"actor": {}})
        assert WebhookAdapter({"default_type": "ping"}).normalize({}).type == "ping"


# ============================================================================
# TEST: HTTP polling
# ============================================================================

class TestHTTPPollAdapter:

    @pytest.mark.asyncio
    async def test_fetch_renders_auth_and_since(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["auth"] = request.headers.get("Authorization")
            seen["params"] = dict(request.url.params)
            seen["path"] = request.url.path
            return httpx.Response(200, json={"data": [{"id": 1}, {"id": 2}]})

        adapter = HTTPPollAdapter(POLL_CONFIG)
        since = datetime(2024, 5, 1, tzinfo=timezone.utc)
        with mock_http(handler):
            records = await adapter.fetch_records(since=since)

        assert records == [{"id": 1}, {"id": 2}]
        assert seen["auth"] == "Bearer sk_test_123"
        assert seen["path"] == "/v1/events"
        assert seen["params"] == {"updated_since": since.isoformat()}

    @pytest.mark.asyncio
    async def test_http_error_propagates(self):
        with mock_http(lambda request: httpx.Response(503)):
            with pytest.raises(httpx.HTTPStatusError):
                await HTTPPollAdapter(POLL_CONFIG).fetch_records()

    def test_normalize_record(self):
        signal = HTTPPollAdapter(POLL_CONFIG).normalize({
            "id": 7, "event": "trial_started", "user": {"email": "a@b.io"},
            "at": "2024-05-01T09:30:00Z", "properties": {"plan": "team"},
        })

        assert signal.type == "trial_started"
        assert signal.natural_key == "7"
        assert signal.metadata == {"plan": "team"}

    def test_validate_config(self):
        assert HTTPPollAdapter(POLL_CONFIG).validate_config() == []
        assert len(HTTPPollAdapter({}).validate_config()) == 2


class TestSignalSync:

    @pytest.mark.asyncio
    async def test_sync_ingests_and_isolates_bad_records(self, db, dedup, bus):
        org = await make_org(db)
        source = await make_source(db, org, type="HTTP_POLL", name="Events API", config=POLL_CONFIG)
        payload = {"data": [
            {"id": 1, "event": "trial_started", "user": {"email": "a@b.io"}, "at": "2024-05-01T09:30:00Z"},
            {"id": 2, "user": {"email": "b@b.io"}},
            {"id": 1, "event": "trial_started", "user": {"email": "a@b.io"}, "at": "2024-05-01T09:30:00Z"},
        ]}
        service = SignalSyncService(db, ingestion=SignalIngestionService(db, dedup=dedup, bus=bus))

        with mock_http(lambda request: httpx.Response(200, json=payload)):
            summary = await service.sync_source(source)

        assert summary.fetched == 3
        assert summary.ingested == 1
        assert summary.deduplicated == 1
        assert summary.failed == 1
        assert "record 1" in summary.errors[0]
        assert (await db.execute(select(func.count(Signal.id)))).scalar_one() == 1
        assert (await db.get(SignalSource, source.id)).last_sync_at is not None

    @pytest.mark.asyncio
    async def test_fetch_failure_reported(self, db, dedup, bus):
        org = await make_org(db)
        source = await make_source(db, org, type="HTTP_POLL", config=POLL_CONFIG)
        service = SignalSyncService(db, ingestion=SignalIngestionService(db, dedup=dedup, bus=bus))

        with mock_http(lambda request: httpx.Response(500)):
            summary = await service.sync_source(source)

        assert summary.failed == 1
        assert summary.errors[0].startswith("fetch:")
        assert source.last_sync_at is None

    @pytest.mark.asyncio
    async def test_non_polling_source_rejected(self, db):
        org = await make_org(db)
        source = await make_source(db, org, type="INTERCOM")

        with pytest.raises(ValueError, match="not a polling source"):
            await SignalSyncService(db).sync_source(source)
