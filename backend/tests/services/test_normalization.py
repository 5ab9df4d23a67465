# tests/services/test_normalization.py
"""
Tests for actor evidence normalization and idempotency key derivation.

Run with: pytest backend/tests/services/test_normalization.py -v
"""

from datetime import datetime, timezone

import pytest

from devsignal.models import IdentityType
from devsignal.schemas.signal import ActorEvidence, NormalizedSignal
from devsignal.services.normalization import (
    anonymous_id,
    derive_idempotency_key,
    external_identity_value,
    identity_type_for_source,
    normalize_email,
    normalize_evidence,
    normalize_external_id,
    normalize_profile_url,
    profile_identity_type,
    split_display_name,
    stable_hash,
)


TS = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)


# ============================================================================
# TEST: Evidence normalization
# ============================================================================

class TestEvidenceNormalization:

    def test_email_lowercased_and_trimmed(self):
        assert normalize_email("  Jane.Doe@Example.COM ") == "jane.doe@example.com"

    def test_email_without_at_sign_is_dropped(self):
        assert normalize_email("not-an-email") is None
        assert normalize_email("") is None
        assert normalize_email(None) is None

    def test_profile_url_canonical_form(self):
        url = "HTTPS://www.LinkedIn.com/in/JaneDoe/?trk=public_profile#about"
        assert normalize_profile_url(url) == "https://www.linkedin.com/in/JaneDoe"

    def test_profile_url_without_scheme(self):
        assert normalize_profile_url("github.com/octocat/") == "https://github.com/octocat"

    def test_external_id_case_folded_for_case_insensitive_sources(self):
        assert normalize_external_id("OctoCat", "GITHUB") == "octocat"
        assert normalize_external_id("OctoCat", "INTERCOM") == "OctoCat"

    def test_external_id_blank_is_none(self):
        assert normalize_external_id("   ", "GITHUB") is None

    def test_normalize_evidence_combines_rules(self):
        evidence = normalize_evidence(
            ActorEvidence(email="A@B.io", external_id="Dev", display_name="  Ada  Lovelace ",
                          profile_url="https://GitHub.com/Dev/"),
            "GITHUB",
        )
        assert evidence.email == "a@b.io"
        assert evidence.external_id == "dev"
        assert evidence.display_name == "Ada  Lovelace"
        assert evidence.profile_url == "https://github.com/Dev"


class TestDisplayNameSplit:

    def test_first_token_and_remaining_tokens(self):
        assert split_display_name("Ada King Lovelace") == ("Ada", "King Lovelace")

    def test_single_token_has_no_last_name(self):
        assert split_display_name("Ada") == ("Ada", None)

    def test_empty_name(self):
        assert split_display_name("   ") == (None, None)
        assert split_display_name(None) == (None, None)


class TestIdentityTypes:

    def test_source_identity_type(self):
        assert identity_type_for_source("github") == IdentityType.GITHUB
        assert identity_type_for_source("HTTP_POLL") == IdentityType.OTHER

    def test_generic_external_ids_prefixed_with_source(self):
        assert external_identity_value("octocat", IdentityType.GITHUB, "src-1") == "octocat"
        assert external_identity_value("42", IdentityType.OTHER, "src-1") == "src-1:42"
        assert external_identity_value("42", IdentityType.OTHER) is None
        assert external_identity_value(None, IdentityType.GITHUB) is None

    def test_profile_identity_type_from_host(self):
        assert profile_identity_type("https://www.linkedin.com/in/jane") == IdentityType.LINKEDIN
        assert profile_identity_type("https://github.com/jane") == IdentityType.GITHUB
        assert profile_identity_type(None) is None


# ============================================================================
# TEST: Idempotency keys
# ============================================================================

class TestIdempotencyKey:

    def test_caller_key_used_verbatim(self):
        signal = NormalizedSignal(type="repo_star", idempotency_key="Custom-Key-1", delivery_id="d1")
        assert derive_idempotency_key("GITHUB", signal, TS) == "Custom-Key-1"

    def test_delivery_id_key(self):
        signal = NormalizedSignal(type="intercom_conversation_open", delivery_id="notif_123")
        assert derive_idempotency_key("INTERCOM", signal, TS) == "intercom:notif_123"

    def test_natural_key_with_timestamp(self):
        signal = NormalizedSignal(type="intercom_conversation_open", natural_key="conv_9")
        assert derive_idempotency_key("INTERCOM", signal, TS) == (
            "intercom:intercom_conversation_open:conv_9:2024-05-01T09:30:00+00:00"
        )

    def test_fallback_uses_actor_and_metadata_hash(self):
        signal = NormalizedSignal(
            type="page_view",
            actor_evidence=ActorEvidence(email="dev@acme.io"),
            metadata={"b": 2, "a": 1},
        )
        key = derive_idempotency_key("SEGMENT", signal, TS)
        assert key == f"segment:page_view:dev@acme.io:{stable_hash({'a': 1, 'b': 2})}:2024-05-01T09:30:00+00:00"

    def test_same_content_same_key(self):
        first = NormalizedSignal(type="page_view", metadata={"x": 1, "y": [1, 2]})
        second = NormalizedSignal(type="page_view", metadata={"y": [1, 2], "x": 1})
        assert derive_idempotency_key("SEGMENT", first, TS) == derive_idempotency_key("SEGMENT", second, TS)

    def test_different_metadata_different_key(self):
        first = NormalizedSignal(type="page_view", metadata={"page": "/pricing"})
        second = NormalizedSignal(type="page_view", metadata={"page": "/docs"})
        assert derive_idempotency_key("SEGMENT", first, TS) != derive_idempotency_key("SEGMENT", second, TS)

    def test_stable_hash_is_eight_hex_chars(self):
        digest = stable_hash({"k": "v"})
        assert len(digest) == 8
        int(digest, 16)


class TestAnonymousId:

    @pytest.mark.parametrize("evidence,expected", [
        (ActorEvidence(email="a@b.io", profile_url="https://x.io/a"), "linkedin:a@b.io"),
        (ActorEvidence(profile_url="https://www.linkedin.com/in/a"), "linkedin:https://www.linkedin.com/in/a"),
        (ActorEvidence(), "linkedin:anonymous"),
    ])
    def test_anonymous_id_precedence(self, evidence, expected):
        assert anonymous_id("LINKEDIN", evidence) == expected
