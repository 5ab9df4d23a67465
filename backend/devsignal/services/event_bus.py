"""
signal_received event publishing.

Delivery is at-least-once and best effort: subscribers and the Redis stream
are notified after the signal is committed, and any failure here is logged
without touching the persisted signal. Consumers that miss an event can
rebuild it from the stored row with build_signal_received_event().
"""

import json
import logging
from typing import Any, Awaitable, Callable, Dict, List

from devsignal.config import settings
from devsignal.models import Signal
from devsignal.redis_client import get_redis

logger = logging.getLogger(__name__)

SIGNAL_RECEIVED = "signal_received"

EventHandler = Callable[[Dict[str, Any]], Awaitable[None]]


def build_signal_received_event(signal: Signal) -> Dict[str, Any]:
    return {
        "event": SIGNAL_RECEIVED,
        "signal_id": str(signal.id),
        "organization_id": str(signal.organization_id),
        "type": signal.type,
        "account_id": str(signal.account_id) if signal.account_id else None,
        "actor_id": str(signal.actor_id) if signal.actor_id else None,
        "metadata": signal.metadata_ or {},
        "timestamp": signal.timestamp.isoformat() if signal.timestamp else None,
    }


class EventBus:
    """In-process subscribers plus an optional Redis stream."""

    def __init__(self, redis_client=None, stream_name: str = None):
        self._handlers: List[EventHandler] = []
        self._redis_client = redis_client
        self.stream_name = stream_name or settings.EVENT_STREAM_NAME

    def subscribe(self, handler: EventHandler):
        if handler not in self._handlers:
            self._handlers.append(handler)

    def unsubscribe(self, handler: EventHandler):
        if handler in self._handlers:
            self._handlers.remove(handler)

    async def publish(self, event: Dict[str, Any]) -> int:
        """
        Deliver an event to every subscriber and the stream.

        Returns:
            Number of successful deliveries
        """
        delivered = 0
        for handler in list(self._handlers):
            try:
                await handler(event)
                delivered += 1
            except Exception as e:
                logger.error(
                    f"Event handler {getattr(handler, '__name__', handler)} failed "
                    f"for signal {event.get('signal_id')}: {e}",
                    exc_info=True
                )

        client = self._redis_client or get_redis()
        if client is not None:
            try:
                await client.xadd(self.stream_name, {"payload": json.dumps(event, default=str)})
                delivered += 1
            except Exception as e:
                logger.warning(f"Failed to publish signal {event.get('signal_id')} to stream: {e}")

        return delivered


# Singleton instance
event_bus = EventBus()
