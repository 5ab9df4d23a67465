"""
Generic HTTP polling adapter for any JSON API.
Configuration-driven - no code changes needed for new providers.
"""
import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from .base import SignalAdapter, extract_path, parse_timestamp
from devsignal.config import settings
from devsignal.schemas.signal import ActorEvidence, NormalizedSignal

logger = logging.getLogger(__name__)


class HTTPPollAdapter(SignalAdapter):
    """
    Pulls records from a REST endpoint and maps each one to a signal.

    Config:
        http_config: base_url, endpoint, method, headers, query_params,
                     auth_type ("bearer"), auth_config, records_path,
                     since_param, timeout_seconds
        variables: values substituted into {{name}} placeholders
        field_mappings: JSONPath per canonical field (type, email,
                        external_id, display_name, profile_url,
                        account_hint, timestamp, id)
        signal_type: fallback type when no mapping yields one
        metadata_fields: {metadata key: JSONPath}
    """

    source_type = "CUSTOM"

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.http_config = self.config.get("http_config", {})
        self.variables = self.config.get("variables", {})
        self.field_mappings = self.config.get("field_mappings", {})
        self.metadata_fields = self.config.get("metadata_fields", {})
        self.timeout = float(self.http_config.get("timeout_seconds", settings.HTTP_TIMEOUT_SECONDS))

    def _render_template(self, template: Any) -> Any:
        """
        Substitute {{variable_name}} placeholders.

        Examples:
            "Bearer {{api_key}}" -> "Bearer actual_key_123"
        """
        if isinstance(template, str):
            def replace_var(match):
                return str(self.variables.get(match.group(1), match.group(0)))
            return re.sub(r"\{\{(\w+)\}\}", replace_var, template)
        if isinstance(template, list):
            return [self._render_template(item) for item in template]
        if isinstance(template, dict):
            return {key: self._render_template(value) for key, value in template.items()}
        return template

    def _build_url(self) -> str:
        base_url = self._render_template(self.http_config.get("base_url", ""))
        endpoint = self._render_template(self.http_config.get("endpoint", ""))
        return f"{base_url.rstrip('/')}/{endpoint.lstrip('/')}"

    def _build_headers(self) -> Dict[str, str]:
        headers = self._render_template(dict(self.http_config.get("headers", {})))
        if self.http_config.get("auth_type") == "bearer":
            token = self._render_template(self.http_config.get("auth_config", {}).get("token"))
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def fetch_records(self, since: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """
        Fetch raw records. HTTP and decoding errors propagate to the caller.
        """
        params = self._render_template(dict(self.http_config.get("query_params", {})))
        since_param = self.http_config.get("since_param")
        if since and since_param:
            params[since_param] = since.isoformat()

        method = self.http_config.get("method", "GET").upper()
        url = self._build_url()

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            if method == "POST":
                body = self._render_template(self.http_config.get("request_body", {}))
                response = await client.post(url, headers=self._build_headers(), params=params, json=body)
            else:
                response = await client.get(url, headers=self._build_headers(), params=params)
            response.raise_for_status()
            data = response.json()

        records_path = self.http_config.get("records_path")
        records = extract_path(data, records_path) if records_path else data
        if records is None:
            return []
        if not isinstance(records, list):
            records = [records]
        logger.debug(f"Fetched {len(records)} records from {url}")
        return records

    def normalize(self, payload: Dict[str, Any]) -> Optional[NormalizedSignal]:
        def mapped(field: str) -> Any:
            path = self.field_mappings.get(field)
            return extract_path(payload, path) if path else None

        signal_type = mapped("type") or self.config.get("signal_type")
        if not signal_type:
            raise ValueError("Record has no signal type and no default signal_type is configured")

        metadata = {key: extract_path(payload, path) for key, path in self.metadata_fields.items()}
        external_id = mapped("external_id")
        record_id = mapped("id")

        return NormalizedSignal(
            type=str(signal_type),
            actor_evidence=ActorEvidence(
                email=mapped("email"),
                external_id=str(external_id) if external_id is not None else None,
                display_name=mapped("display_name"),
                profile_url=mapped("profile_url"),
            ),
            account_hint=mapped("account_hint"),
            metadata=metadata,
            timestamp=parse_timestamp(mapped("timestamp")),
            natural_key=str(record_id) if record_id is not None else None,
        )

    def validate_config(self) -> List[str]:
        errors = super().validate_config()
        if not self.http_config.get("base_url"):
            errors.append("http_config.base_url is required")
        if not self.field_mappings.get("type") and not self.config.get("signal_type"):
            errors.append("field_mappings.type or signal_type is required")
        return errors
