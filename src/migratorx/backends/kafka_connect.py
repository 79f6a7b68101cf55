"""Debezium status over the Kafka Connect REST API."""

from __future__ import annotations

from urllib.parse import quote

import httpx
from pydantic import ValidationError

from migratorx.cdc.debezium import ConnectorStatus, DebeziumInspector
from migratorx.domain.context import RunContext
from migratorx.errors import InspectorError


class KafkaConnectInspector(DebeziumInspector):
    """Reads ``GET /connectors/{name}/status``.

    Kafka Connect does not report restart history, so ``restart_count`` and
    ``last_restart_at`` stay at their defaults and restart-loop detection never
    fires for statuses read this way.
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        if not base_url or not base_url.strip():
            raise InspectorError("kafka connect base URL is required")
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds
        self._client = client

    def connector_status(self, ctx: RunContext, connector: str) -> ConnectorStatus:
        url = f"{self._base_url}/connectors/{quote(connector, safe='')}/status"
        timeout = self._timeout
        remaining = ctx.remaining()
        if remaining is not None:
            timeout = min(timeout, remaining)
        try:
            if self._client is not None:
                response = self._client.get(url, timeout=timeout)
            else:
                with httpx.Client() as client:
                    response = client.get(url, timeout=timeout)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise InspectorError(
                f"kafka connect returned {exc.response.status_code} for connector {connector!r}"
            ) from exc
        except httpx.HTTPError as exc:
            raise InspectorError(f"kafka connect request failed: {exc}") from exc
        except ValueError as exc:
            raise InspectorError(f"kafka connect returned invalid JSON: {exc}") from exc

        try:
            status = ConnectorStatus.model_validate(payload)
        except ValidationError as exc:
            raise InspectorError(f"unexpected kafka connect status payload: {exc}") from exc
        if not status.name:
            status = status.model_copy(update={"name": connector})
        return status
