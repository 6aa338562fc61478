"""CRM adapter abstract base classes -- the interface every external CRM implements.

CRMAdapter covers the write side used by the sync orchestrator
(create-or-update of one record per inquiry). LeadIndex covers the read side
used by duplicate detection. Both are deliberately small so test doubles are
trivial to write.

classify_http_error() maps transport and HTTP failures onto the
ExternalUnavailableError / ExternalRejectedError split shared by all adapters.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

from src.inquiry_hub.errors import (
    ExternalRejectedError,
    ExternalServiceError,
    ExternalUnavailableError,
)
from src.inquiry_hub.inquiries.schemas import DuplicateMatch


@dataclass(frozen=True)
class ExternalRecord:
    """Reference to a record created or updated in an external CRM."""

    id: str
    url: str | None = None


class CRMAdapter(ABC):
    """Abstract interface for writing inquiries into an external CRM.

    Methods:
        create_record: Create a record from a mapped payload.
        update_record: Update the record previously created for an inquiry.
    """

    @abstractmethod
    async def create_record(self, payload: dict[str, Any]) -> ExternalRecord:
        """Create a record, return its external reference."""
        ...

    @abstractmethod
    async def update_record(self, external_id: str, payload: dict[str, Any]) -> ExternalRecord:
        """Update an existing record by external ID, return its reference."""
        ...


class LeadIndex(ABC):
    """Abstract interface for searching an external CRM's leads."""

    @abstractmethod
    async def search_leads_by_name(self, first_name: str, last_name: str) -> list[DuplicateMatch]:
        """Leads whose first and/or last name match."""
        ...

    @abstractmethod
    async def search_leads_by_email(self, email: str) -> list[DuplicateMatch]:
        """Leads with the given email address."""
        ...


# ── Error Classification ────────────────────────────────────────────────────


def _response_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(body, dict):
        for key in ("message", "error", "Message"):
            if isinstance(body.get(key), str):
                return body[key]
    return str(body)[:500]


def classify_http_error(target: str, exc: Exception) -> ExternalServiceError:
    """Translate an httpx failure into the shared external error taxonomy.

    Timeouts, connection errors, 429 and 5xx are transient; any other HTTP
    status means the CRM rejected the request.
    """
    if isinstance(exc, ExternalServiceError):
        return exc
    if isinstance(exc, httpx.TimeoutException):
        return ExternalUnavailableError(target, f"[{target}] Request timed out: {exc}")
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        detail = _response_detail(exc.response)
        message = f"[{target}] API error ({status}): {detail}"
        if status == 429 or status >= 500:
            return ExternalUnavailableError(target, message, status_code=status)
        return ExternalRejectedError(target, message, status_code=status)
    if isinstance(exc, httpx.TransportError):
        return ExternalUnavailableError(target, f"[{target}] Network error: {exc}")
    return ExternalUnavailableError(target, f"[{target}] {exc}")
