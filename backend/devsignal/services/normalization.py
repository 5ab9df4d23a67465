"""Canonical forms for actor evidence and idempotency keys."""

import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

from devsignal.models import IdentityType
from devsignal.schemas.signal import ActorEvidence, NormalizedSignal


# Providers whose usernames are case-insensitive
CASE_INSENSITIVE_SOURCES = {"GITHUB", "NPM", "TWITTER"}

# Which identity type a source's external ids belong to
SOURCE_IDENTITY_TYPES = {
    "GITHUB": IdentityType.GITHUB,
    "NPM": IdentityType.NPM,
    "LINKEDIN": IdentityType.LINKEDIN,
    "INTERCOM": IdentityType.INTERCOM,
    "TWITTER": IdentityType.TWITTER,
    "POSTHOG": IdentityType.POSTHOG,
    "SEGMENT": IdentityType.SEGMENT,
}


def normalize_email(email: Optional[str]) -> Optional[str]:
    if not email or not isinstance(email, str):
        return None
    email = email.strip().lower()
    if "@" not in email:
        return None
    return email


def normalize_profile_url(url: Optional[str]) -> Optional[str]:
    """
    Canonical profile URL: lowercase scheme and host, no query or fragment,
    no trailing slash.

    Examples:
        "HTTPS://www.LinkedIn.com/in/Jane/?trk=x" -> "https://www.linkedin.com/in/Jane"
    """
    if not url or not isinstance(url, str):
        return None
    url = url.strip()
    if not url:
        return None
    if "://" not in url:
        url = f"https://{url}"
    parts = urlsplit(url)
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, "", ""))


def normalize_external_id(external_id: Optional[str], source_type: str) -> Optional[str]:
    if external_id is None:
        return None
    external_id = str(external_id).strip()
    if not external_id:
        return None
    if source_type.upper() in CASE_INSENSITIVE_SOURCES:
        external_id = external_id.lower()
    return external_id


def normalize_evidence(evidence: ActorEvidence, source_type: str) -> ActorEvidence:
    display_name = evidence.display_name.strip() if evidence.display_name else None
    return ActorEvidence(
        email=normalize_email(evidence.email),
        external_id=normalize_external_id(evidence.external_id, source_type),
        display_name=display_name or None,
        profile_url=normalize_profile_url(evidence.profile_url),
    )


def split_display_name(display_name: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """First whitespace token is the first name, the rest is the last name."""
    if not display_name:
        return None, None
    tokens = display_name.split()
    if not tokens:
        return None, None
    first = tokens[0]
    last = " ".join(tokens[1:]) or None
    return first, last


def identity_type_for_source(source_type: str) -> IdentityType:
    return SOURCE_IDENTITY_TYPES.get(source_type.upper(), IdentityType.OTHER)


def external_identity_value(
    external_id: Optional[str],
    identity_type: IdentityType,
    source_id: Optional[Any] = None
) -> Optional[str]:
    """
    Value stored for a source's external id. Ids from generic sources
    (OTHER) only mean something inside that source, so they are prefixed
    with the source id; without one they are not stored or looked up.
    """
    if not external_id:
        return None
    if identity_type != IdentityType.OTHER:
        return external_id
    if source_id is None:
        return None
    return f"{source_id}:{external_id}"


def profile_identity_type(profile_url: Optional[str]) -> Optional[IdentityType]:
    """Guess which network a profile URL belongs to."""
    if not profile_url:
        return None
    host = urlsplit(profile_url).netloc
    if "linkedin.com" in host:
        return IdentityType.LINKEDIN
    if "github.com" in host:
        return IdentityType.GITHUB
    if "twitter.com" in host or host.endswith("x.com"):
        return IdentityType.TWITTER
    return IdentityType.OTHER


# ============================================================================
# IDEMPOTENCY
# ============================================================================

def stable_hash(data: Dict[str, Any], length: int = 8) -> str:
    """SHA-256 over key-sorted JSON, truncated."""
    payload = json.dumps(data or {}, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(payload.encode()).hexdigest()[:length]


def to_utc(ts: Optional[datetime]) -> datetime:
    if ts is None:
        return datetime.now(timezone.utc)
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def actor_key(evidence: ActorEvidence) -> str:
    return evidence.email or evidence.external_id or evidence.profile_url or "anonymous"


def derive_idempotency_key(source_type: str, signal: NormalizedSignal, timestamp: datetime) -> str:
    """
    Key precedence:
        1. caller-supplied idempotency key, as-is
        2. "<source>:<delivery_id>"
        3. "<source>:<type>:<natural_key>:<timestamp iso>"

    Without a natural key the actor plus a metadata hash stands in, so the
    same event replayed with identical content maps to the same key.
    """
    if signal.idempotency_key:
        return signal.idempotency_key

    source = source_type.lower()
    if signal.delivery_id:
        return f"{source}:{signal.delivery_id}"

    natural_key = signal.natural_key
    if not natural_key:
        natural_key = f"{actor_key(signal.actor_evidence)}:{stable_hash(signal.metadata)}"
    return f"{source}:{signal.type}:{natural_key}:{to_utc(timestamp).isoformat()}"


def anonymous_id(source_type: str, evidence: ActorEvidence) -> str:
    return f"{source_type.lower()}:{actor_key(evidence)}"
