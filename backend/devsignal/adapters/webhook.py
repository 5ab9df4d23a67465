"""
Adapter for generic JSON webhooks that are already close to canonical form.
"""
from typing import Any, Dict, Optional

from .base import SignalAdapter, extract_path, parse_timestamp
from devsignal.schemas.signal import ActorEvidence, NormalizedSignal


class WebhookAdapter(SignalAdapter):
    """
    Accepts payloads shaped like:

        {"type": "...", "actor": {"email", "externalId", "name", "profileUrl"},
         "account": "...", "metadata": {...}, "timestamp": "...",
         "idempotencyKey": "...", "deliveryId": "..."}

    Optional `field_mappings` (JSONPath per canonical field) override the
    default locations.
    """

    source_type = "CUSTOM"

    DEFAULT_PATHS = {
        "type": "$.type",
        "email": "$.actor.email",
        "external_id": "$.actor.externalId",
        "display_name": "$.actor.name",
        "profile_url": "$.actor.profileUrl",
        "account_hint": "$.account",
        "timestamp": "$.timestamp",
        "idempotency_key": "$.idempotencyKey",
        "delivery_id": "$.deliveryId",
        "metadata": "$.metadata",
    }

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.paths = {**self.DEFAULT_PATHS, **self.config.get("field_mappings", {})}

    def _get(self, payload: Dict[str, Any], field: str) -> Any:
        return extract_path(payload, self.paths[field])

    def normalize(self, payload: Dict[str, Any]) -> Optional[NormalizedSignal]:
        signal_type = self._get(payload, "type") or self.config.get("default_type")
        if not signal_type:
            raise ValueError("Webhook payload is missing a signal type")

        metadata = self._get(payload, "metadata")
        if not isinstance(metadata, dict):
            metadata = {}

        external_id = self._get(payload, "external_id")
        return NormalizedSignal(
            type=str(signal_type),
            actor_evidence=ActorEvidence(
                email=self._get(payload, "email"),
                external_id=str(external_id) if external_id is not None else None,
                display_name=self._get(payload, "display_name"),
                profile_url=self._get(payload, "profile_url"),
            ),
            account_hint=self._get(payload, "account_hint"),
            metadata=metadata,
            timestamp=parse_timestamp(self._get(payload, "timestamp")),
            idempotency_key=self._get(payload, "idempotency_key"),
            delivery_id=self._get(payload, "delivery_id"),
        )
