"""Duplicate detection for manual (paper) intake.

Duplicate checking is advisory: a lookup failure is logged, recorded on the
result and flagged as ``degraded``, and never raised to the caller.
"""

from __future__ import annotations

import asyncio

import structlog

from src.inquiry_hub.crm.adapter import LeadIndex
from src.inquiry_hub.inquiries.schemas import DuplicateCheckResult, DuplicateMatch

logger = structlog.get_logger(__name__)


def split_search_name(name: str) -> tuple[str, str]:
    """First token and the rest, e.g. ``"Mary Ann Smith" -> ("Mary", "Ann Smith")``."""
    parts = name.strip().split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


class DuplicateDetector:
    """Finds existing CRM leads that may match a new intake."""

    def __init__(self, index: LeadIndex) -> None:
        self._index = index

    async def find_duplicates(self, name: str, email: str | None = None) -> DuplicateCheckResult:
        first, last = split_search_name(name)
        email = (email or "").strip()

        lookups = []
        labels = []
        if first or last:
            lookups.append(self._index.search_leads_by_name(first, last))
            labels.append("name")
        if email:
            lookups.append(self._index.search_leads_by_email(email))
            labels.append("email")

        outcomes = await asyncio.gather(*lookups, return_exceptions=True)

        matches: list[DuplicateMatch] = []
        seen: set[str] = set()
        errors: list[str] = []
        for label, outcome in zip(labels, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("duplicates.lookup_failed", lookup=label, error=str(outcome))
                errors.append(f"{label} search failed: {outcome}")
                continue
            for match in outcome:
                if match.external_lead_id in seen:
                    continue
                seen.add(match.external_lead_id)
                matches.append(match)

        logger.info(
            "duplicates.checked",
            lookups=labels,
            match_count=len(matches),
            degraded=bool(errors),
        )
        return DuplicateCheckResult(
            has_potential_duplicates=bool(matches),
            matches=matches,
            searched_name=name,
            degraded=bool(errors),
            errors=errors,
        )
