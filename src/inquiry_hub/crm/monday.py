"""Monday.com adapter -- board items over the GraphQL API.

Payloads come from the field mapping layer as
``{"board_id", "group_id", "item_name", "column_values"}`` where
``column_values`` is a JSON-encoded object keyed by column id.

Key implementation details:
- Authorization and API-Version headers on every request
- GraphQL ``errors`` (returned with HTTP 200) raise ExternalRejectedError
- When Monday rejects a dropdown label that does not exist on the board the
  mutation is retried once without label-valued columns; if that also fails
  the original error is raised
"""

from __future__ import annotations

import json
from typing import Any

import httpx
import structlog

from src.inquiry_hub.config import MondayConfig
from src.inquiry_hub.crm.adapter import CRMAdapter, ExternalRecord, classify_http_error
from src.inquiry_hub.errors import ExternalRejectedError, ExternalServiceError
from src.inquiry_hub.inquiries.schemas import SyncTarget

logger = structlog.get_logger(__name__)

TARGET = SyncTarget.MONDAY.value

CREATE_ITEM_MUTATION = """
mutation CreateItem($boardId: ID!, $groupId: String!, $itemName: String!, $columnValues: JSON) {
  create_item(board_id: $boardId, group_id: $groupId, item_name: $itemName, column_values: $columnValues) {
    id
  }
}
"""

UPDATE_ITEM_MUTATION = """
mutation UpdateItem($boardId: ID!, $itemId: ID!, $columnValues: JSON!) {
  change_multiple_column_values(board_id: $boardId, item_id: $itemId, column_values: $columnValues) {
    id
  }
}
"""


def build_item_url(web_base_url: str, board_id: int | str, item_id: str) -> str:
    return f"{web_base_url.rstrip('/')}/boards/{board_id}/pulses/{item_id}"


def is_dropdown_label_error(message: str) -> bool:
    return "dropdown label" in message and "does not exist" in message


def strip_label_columns(column_values: str) -> tuple[str, list[str]]:
    """Drop columns whose value carries a ``labels`` key. Returns (json, removed ids)."""
    values = json.loads(column_values)
    kept: dict[str, Any] = {}
    removed: list[str] = []
    for key, value in values.items():
        if isinstance(value, dict) and "labels" in value:
            removed.append(key)
            continue
        kept[key] = value
    return json.dumps(kept), removed


class MondayAdapter(CRMAdapter):
    """Monday GraphQL adapter.

    Args:
        config: API URL, token, API version, board id and request timeout.
        transport: Optional httpx transport (tests pass httpx.MockTransport).
    """

    def __init__(self, config: MondayConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._config = config
        self._transport = transport
        self._headers = {
            "Content-Type": "application/json",
            "Authorization": config.api_token,
            "API-Version": config.api_version,
        }

    def _client(self) -> httpx.AsyncClient:
        """Create a new httpx client with the configured timeout."""
        return httpx.AsyncClient(
            headers=self._headers,
            timeout=self._config.timeout_seconds,
            transport=self._transport,
        )

    def item_url(self, board_id: int | str, item_id: str) -> str:
        return build_item_url(self._config.web_base_url, board_id, item_id)

    async def graphql(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        """Run one GraphQL operation and return its ``data``."""
        if not self._config.api_token:
            raise ExternalRejectedError(TARGET, "[monday] API token is not configured")
        try:
            async with self._client() as client:
                response = await client.post(
                    self._config.api_url,
                    json={"query": query, "variables": variables},
                )
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise classify_http_error(TARGET, exc) from exc

        errors = payload.get("errors") or []
        if errors or payload.get("error_message"):
            reason = "; ".join(str(e.get("message", e)) for e in errors) or str(payload["error_message"])
            raise ExternalRejectedError(TARGET, f"[monday] GraphQL error: {reason}")
        if not payload.get("data"):
            raise ExternalRejectedError(TARGET, "[monday] GraphQL response contained no data")
        return payload["data"]

    # ── CRMAdapter ──────────────────────────────────────────────────────────

    async def create_record(self, payload: dict[str, Any]) -> ExternalRecord:
        variables = {
            "boardId": payload["board_id"],
            "groupId": payload["group_id"],
            "itemName": payload["item_name"],
            "columnValues": payload["column_values"],
        }
        logger.info(
            "monday.item_create_requested",
            board_id=payload["board_id"],
            group_id=payload["group_id"],
            column_count=len(json.loads(payload["column_values"])),
        )
        data = await self._mutate(CREATE_ITEM_MUTATION, variables)
        item_id = str(data["create_item"]["id"])
        logger.info("monday.item_created", item_id=item_id)
        return ExternalRecord(id=item_id, url=self.item_url(payload["board_id"], item_id))

    async def update_record(self, external_id: str, payload: dict[str, Any]) -> ExternalRecord:
        variables = {
            "boardId": payload["board_id"],
            "itemId": external_id,
            "columnValues": payload["column_values"],
        }
        await self._mutate(UPDATE_ITEM_MUTATION, variables)
        logger.info("monday.item_updated", item_id=external_id)
        return ExternalRecord(id=str(external_id), url=self.item_url(payload["board_id"], external_id))

    async def _mutate(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        try:
            return await self.graphql(query, variables)
        except ExternalRejectedError as exc:
            if not is_dropdown_label_error(str(exc)):
                raise
            cleaned, removed = strip_label_columns(variables["columnValues"])
            logger.warning("monday.dropdown_label_missing", removed_columns=removed)
            try:
                data = await self.graphql(query, {**variables, "columnValues": cleaned})
            except ExternalServiceError as retry_exc:
                logger.error("monday.dropdown_retry_failed", error=str(retry_exc))
                raise exc from retry_exc
            logger.warning("monday.saved_without_labels", removed_columns=removed)
            return data
