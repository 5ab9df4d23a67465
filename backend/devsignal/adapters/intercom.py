"""
Adapter for Intercom conversation webhooks.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .base import SignalAdapter
from devsignal.schemas.signal import ActorEvidence, NormalizedSignal

logger = logging.getLogger(__name__)

# Intercom webhook topic -> signal type
TOPIC_MAP = {
    "conversation.user.created": "intercom_conversation_open",
    "conversation.user.replied": "intercom_conversation_reply",
    "conversation.admin.closed": "intercom_conversation_closed",
    "conversation.rating.added": "intercom_conversation_rated",
}

ALL_TRACKED_EVENTS = list(TOPIC_MAP.values())


class IntercomAdapter(SignalAdapter):

    source_type = "INTERCOM"

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.tracked_events: List[str] = self.config.get("trackedEvents") or ALL_TRACKED_EVENTS

    @staticmethod
    def _customer(item: Dict[str, Any]) -> Dict[str, Any]:
        """Intercom puts the customer in user, contacts[] or contacts.contacts[]."""
        user = item.get("user") or item.get("contacts") or {}
        if isinstance(user, list):
            return user[0] if user else {}
        if isinstance(user, dict):
            nested = user.get("contacts")
            if isinstance(nested, list) and nested:
                return nested[0]
            return user
        return {}

    def normalize(self, payload: Dict[str, Any]) -> Optional[NormalizedSignal]:
        topic = payload.get("topic")
        if not topic:
            raise ValueError("Missing topic in webhook payload")

        signal_type = TOPIC_MAP.get(topic)
        if not signal_type:
            logger.debug(f"Intercom webhook topic not tracked: {topic}")
            return None
        if signal_type not in self.tracked_events:
            logger.debug(f"Intercom event type not tracked by config: {signal_type}")
            return None

        item = (payload.get("data") or {}).get("item") or {}
        conversation_id = item.get("id")
        customer = self._customer(item)

        tags = [t.get("name") for t in (item.get("tags") or {}).get("tags", []) if t.get("name")]
        source_data = item.get("source") or {}

        satisfaction_score = None
        satisfaction_remark = None
        if signal_type == "intercom_conversation_rated":
            rating = item.get("conversation_rating") or {}
            satisfaction_score = rating.get("rating")
            satisfaction_remark = rating.get("remark")

        response_time_seconds = None
        if signal_type == "intercom_conversation_closed":
            if item.get("created_at") and item.get("updated_at"):
                response_time_seconds = item["updated_at"] - item["created_at"]

        reply_count = None
        parts = item.get("conversation_parts")
        if isinstance(parts, dict):
            if isinstance(parts.get("conversation_parts"), list):
                reply_count = len(parts["conversation_parts"])
            else:
                reply_count = parts.get("total_count")

        app_id = payload.get("app_id")
        conversation_url = None
        if conversation_id and app_id:
            conversation_url = (
                f"https://app.intercom.com/a/apps/{app_id}/inbox/inbox/all/conversations/{conversation_id}"
            )
        elif conversation_id:
            conversation_url = f"https://app.intercom.com/inbox/conversation/{conversation_id}"

        created_at = payload.get("created_at")
        timestamp = (
            datetime.fromtimestamp(created_at, tz=timezone.utc) if created_at else datetime.now(timezone.utc)
        )

        return NormalizedSignal(
            type=signal_type,
            actor_evidence=ActorEvidence(
                email=customer.get("email"),
                external_id=customer.get("id"),
                display_name=customer.get("name"),
            ),
            metadata={
                "conversationId": conversation_id,
                "conversationUrl": conversation_url,
                "subject": source_data.get("subject") or item.get("title"),
                "customerEmail": customer.get("email"),
                "customerName": customer.get("name"),
                "intercomUserId": customer.get("id"),
                "tags": tags,
                "priority": item.get("priority"),
                "satisfactionScore": satisfaction_score,
                "satisfactionRemark": satisfaction_remark,
                "responseTimeSeconds": response_time_seconds,
                "replyCount": reply_count,
                "topic": topic,
                "appId": app_id,
            },
            timestamp=timestamp,
            delivery_id=payload.get("id"),
            natural_key=conversation_id or "unknown",
        )
