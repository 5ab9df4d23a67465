"""
Base adapter interface for signal sources.
All adapters must implement this interface.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from jsonpath_ng import parse as jsonpath_parse

from devsignal.schemas.signal import NormalizedSignal

logger = logging.getLogger(__name__)


def extract_path(data: Any, path: str) -> Any:
    """
    Extract a value with a JSONPath expression; first match wins.

    Examples:
        "$.user.email" -> data["user"]["email"]
        "contacts[0].id" -> data["contacts"][0]["id"]
    """
    if not path:
        return None
    try:
        matches = jsonpath_parse(path).find(data)
    except Exception as e:
        logger.warning(f"Invalid JSONPath '{path}': {e}")
        return None
    return matches[0].value if matches else None


def parse_timestamp(value: Union[str, int, float, datetime, None]) -> Optional[datetime]:
    """Accept ISO-8601 strings (with or without Z), epoch seconds or datetimes."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class SignalAdapter(ABC):
    """
    Abstract base class for all signal adapters.
    Turns a provider payload into a NormalizedSignal.
    """

    source_type: str = "CUSTOM"

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize adapter with the SignalSource config.

        Args:
            config: Source config (tracked events, field mappings, endpoints)
        """
        self.config = config or {}

    @abstractmethod
    def normalize(self, payload: Dict[str, Any]) -> Optional[NormalizedSignal]:
        """
        Normalize one provider payload.

        Returns:
            NormalizedSignal, or None for payloads that carry no tracked signal

        Raises:
            ValueError: If the payload is malformed
        """
        pass

    def validate_config(self) -> List[str]:
        """
        Validate configuration, return list of errors.

        Returns:
            List of error messages (empty if valid)
        """
        return []
