"""Insightly CRM adapter -- lead create/update and lead search over REST v3.1.

Implements both CRMAdapter (used by the sync orchestrator) and LeadIndex
(used by duplicate detection).

Key implementation details:
- HTTP Basic auth with the API key as username and an empty password
- Create is POST /Leads; update is PUT /Leads with LEAD_ID in the body
- Search requests retry on HTTP 429 with tenacity (3 attempts, exponential
  backoff 1-10s); create and update are never retried here, retries of
  writes are caller-driven
- Lead status names resolved once through /LeadStatuses and cached
- Every request runs on an httpx client with a bounded timeout
"""

from __future__ import annotations

import base64
from datetime import datetime
from typing import Any

import httpx
import structlog
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from src.inquiry_hub.config import InsightlyConfig
from src.inquiry_hub.crm.adapter import CRMAdapter, ExternalRecord, LeadIndex, classify_http_error
from src.inquiry_hub.errors import ExternalRejectedError
from src.inquiry_hub.inquiries.schemas import DuplicateMatch, SyncTarget

logger = structlog.get_logger(__name__)

TARGET = SyncTarget.INSIGHTLY.value
SEARCH_PAGE_SIZE = 20
UNKNOWN_STATUS = "Unknown"


def _is_rate_limited(exc: BaseException) -> bool:
    return isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code == 429


_search_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception(_is_rate_limited),
    reraise=True,
)


def build_auth_header(api_key: str) -> str:
    token = base64.b64encode(f"{api_key}:".encode()).decode()
    return f"Basic {token}"


def build_lead_url(web_base_url: str | None, lead_id: str | int) -> str | None:
    if not web_base_url:
        return None
    return f"{web_base_url.rstrip('/')}/Leads/Details/{lead_id}"


def _parse_created(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00").replace(" ", "T", 1))
    except ValueError:
        return None


class InsightlyAdapter(CRMAdapter, LeadIndex):
    """Insightly REST adapter.

    Args:
        config: API URL, key, web base URL and request timeout.
        transport: Optional httpx transport (tests pass httpx.MockTransport).
    """

    def __init__(self, config: InsightlyConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._config = config
        self._base_url = config.api_url.rstrip("/")
        self._transport = transport
        self._headers = {
            "Authorization": build_auth_header(config.api_key),
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        self._status_names: dict[int, str] | None = None

    def _client(self) -> httpx.AsyncClient:
        """Create a new httpx client with the configured timeout."""
        return httpx.AsyncClient(
            headers=self._headers,
            timeout=self._config.timeout_seconds,
            transport=self._transport,
        )

    def lead_url(self, lead_id: str | int) -> str | None:
        return build_lead_url(self._config.web_base_url, lead_id)

    # ── CRMAdapter ──────────────────────────────────────────────────────────

    async def create_record(self, payload: dict[str, Any]) -> ExternalRecord:
        """Create a lead. POST /Leads."""
        logger.info(
            "insightly.lead_create_requested",
            has_last_name=bool(payload.get("LAST_NAME")),
            has_email=bool(payload.get("EMAIL")),
            has_phone=bool(payload.get("PHONE")),
            tags_count=len(payload.get("TAGS") or []),
        )
        data = await self._send("POST", "/Leads", payload)
        lead_id = data.get("LEAD_ID") if isinstance(data, dict) else None
        if not lead_id:
            raise ExternalRejectedError(TARGET, "[insightly] Response did not include a LEAD_ID")
        logger.info("insightly.lead_created", lead_id=lead_id)
        return ExternalRecord(id=str(lead_id), url=self.lead_url(lead_id))

    async def update_record(self, external_id: str, payload: dict[str, Any]) -> ExternalRecord:
        """Update a lead. PUT /Leads with LEAD_ID in the body."""
        lead_id: int | str = int(external_id) if str(external_id).isdigit() else external_id
        await self._send("PUT", "/Leads", {**payload, "LEAD_ID": lead_id})
        logger.info("insightly.lead_updated", lead_id=external_id)
        return ExternalRecord(id=str(external_id), url=self.lead_url(external_id))

    async def _send(self, method: str, path: str, body: dict[str, Any]) -> Any:
        try:
            async with self._client() as client:
                response = await client.request(method, f"{self._base_url}{path}", json=body)
                response.raise_for_status()
                return response.json() if response.content else {}
        except (httpx.HTTPError, ValueError) as exc:
            error = classify_http_error(TARGET, exc)
            logger.error(
                "insightly.request_failed",
                method=method,
                path=path,
                status_code=error.status_code,
                error=str(error),
            )
            raise error from exc

    # ── LeadIndex ───────────────────────────────────────────────────────────

    async def search_leads_by_name(self, first_name: str, last_name: str) -> list[DuplicateMatch]:
        """GET /Leads filtered by first and/or last name."""
        params: dict[str, str] = {}
        if first_name:
            params["first_name"] = first_name
        if last_name:
            params["last_name"] = last_name
        if not params:
            return []
        return await self._search(params)

    async def search_leads_by_email(self, email: str) -> list[DuplicateMatch]:
        """GET /Leads filtered by email."""
        if not email:
            return []
        return await self._search({"email": email})

    async def _search(self, params: dict[str, str]) -> list[DuplicateMatch]:
        try:
            leads = await self._get_json("/Leads", {**params, "top": str(SEARCH_PAGE_SIZE), "brief": "false"})
        except (httpx.HTTPError, ValueError) as exc:
            raise classify_http_error(TARGET, exc) from exc

        leads = leads if isinstance(leads, list) else []
        wants_status = any(lead.get("LEAD_STATUS_ID") for lead in leads)
        status_names = await self._lead_status_names() if wants_status else {}
        matches = [self._to_match(lead, status_names) for lead in leads]
        logger.info("insightly.leads_searched", filters=sorted(params), result_count=len(matches))
        return matches

    @_search_retry
    async def _get_json(self, path: str, params: dict[str, str] | None = None) -> Any:
        async with self._client() as client:
            response = await client.get(f"{self._base_url}{path}", params=params)
            response.raise_for_status()
            return response.json()

    async def _lead_status_names(self) -> dict[Any, str]:
        """Status id to name, fetched once per adapter.

        A failed lookup is not cached; the caller holds the empty mapping for
        the rest of its search and the next search asks again.
        """
        if self._status_names is None:
            try:
                statuses = await self._get_json("/LeadStatuses")
            except (httpx.HTTPError, ValueError) as exc:
                logger.warning("insightly.lead_statuses_unavailable", error=str(exc))
                return {}
            self._status_names = {
                s["LEAD_STATUS_ID"]: s.get("LEAD_STATUS") or UNKNOWN_STATUS
                for s in statuses
                if isinstance(s, dict) and "LEAD_STATUS_ID" in s
            }
        return self._status_names

    def _to_match(self, lead: dict[str, Any], status_names: dict[Any, str]) -> DuplicateMatch:
        first = lead.get("FIRST_NAME") or ""
        last = lead.get("LAST_NAME") or ""
        lead_id = lead.get("LEAD_ID")
        return DuplicateMatch(
            external_lead_id=str(lead_id),
            full_name=" ".join(p for p in (first, last) if p) or "Unknown",
            first_name=first,
            last_name=last,
            email=lead.get("EMAIL") or None,
            phone=lead.get("PHONE") or None,
            status=status_names.get(lead.get("LEAD_STATUS_ID"), UNKNOWN_STATUS),
            external_url=self.lead_url(lead_id),
            created_at=_parse_created(lead.get("DATE_CREATED_UTC")),
            tags=[t["TAG_NAME"] for t in lead.get("TAGS") or [] if isinstance(t, dict) and "TAG_NAME" in t],
        )
