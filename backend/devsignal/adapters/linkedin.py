"""
Adapter for LinkedIn activity webhooks (page views, post engagement, follows).
"""
from typing import Any, Dict, Optional

from .base import SignalAdapter, parse_timestamp
from devsignal.schemas.signal import ActorEvidence, NormalizedSignal

VALID_TYPES = (
    "linkedin_page_view",
    "linkedin_post_engagement",
    "linkedin_employee_activity",
    "linkedin_company_follow",
)


class LinkedInAdapter(SignalAdapter):

    source_type = "LINKEDIN"

    def normalize(self, payload: Dict[str, Any]) -> Optional[NormalizedSignal]:
        signal_type = payload.get("type")
        if signal_type not in VALID_TYPES:
            raise ValueError(f"Invalid signal type: {signal_type}")

        actor = payload.get("actor") or {}
        metadata = dict(payload.get("metadata") or {})
        metadata.update({
            "actorName": actor.get("name") or "Unknown",
            "actorEmail": actor.get("email"),
            "actorProfileUrl": actor.get("profileUrl"),
            "actorTitle": actor.get("title"),
            "actorCompany": actor.get("company"),
        })

        return NormalizedSignal(
            type=signal_type,
            actor_evidence=ActorEvidence(
                email=actor.get("email"),
                display_name=actor.get("name"),
                profile_url=actor.get("profileUrl"),
            ),
            account_hint=actor.get("company"),
            metadata=metadata,
            timestamp=parse_timestamp(payload.get("timestamp")),
            natural_key=actor.get("email") or actor.get("profileUrl") or "anon",
        )
