"""
Adapter factory and registry.
"""
from typing import Any, Dict, Optional

from .base import SignalAdapter
from .http_poll import HTTPPollAdapter
from .intercom import IntercomAdapter
from .linkedin import LinkedInAdapter
from .webhook import WebhookAdapter

# Registry of available adapters, keyed by SignalSource.type
ADAPTER_REGISTRY = {
    "INTERCOM": IntercomAdapter,
    "LINKEDIN": LinkedInAdapter,
    "WEBHOOK": WebhookAdapter,
    "CUSTOM": WebhookAdapter,
    "HTTP_POLL": HTTPPollAdapter,
}


def get_adapter(source_type: str, config: Optional[Dict[str, Any]] = None) -> SignalAdapter:
    """
    Factory function to create appropriate adapter.

    Args:
        source_type: SignalSource.type (INTERCOM, LINKEDIN, WEBHOOK, ...)
        config: SignalSource.config

    Returns:
        Instantiated adapter

    Raises:
        ValueError: If source_type has no adapter
    """
    adapter_class = ADAPTER_REGISTRY.get(source_type.upper())

    if not adapter_class:
        raise ValueError(
            f"Unknown source type: {source_type}. "
            f"Available: {list(ADAPTER_REGISTRY.keys())}"
        )

    return adapter_class(config or {})
