"""formData helpers: storage (de)serialization, display names, scheduling times.

All functions here are total: they never raise on malformed or missing
input, because they run inside lifecycle events that must not abort over a
bad field.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any

ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}")

DEFAULT_PARTICIPANT_NAME = "New Inquiry"

_FIRST_NAME_KEYS = ("firstName", "contactOneFirstName", "participantName")
_LAST_NAME_KEYS = ("lastName", "contactOneLastName")


# ── Storage ─────────────────────────────────────────────────────────────────


def serialize_form_data(value: Any) -> Any:
    """Convert datetimes to ISO strings and drop None entries for storage."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [serialize_form_data(item) for item in value if item is not None]
    if isinstance(value, dict):
        return {k: serialize_form_data(v) for k, v in value.items() if v is not None}
    return value


def hydrate_form_data(value: Any) -> Any:
    """Turn stored ISO timestamp strings back into datetimes."""
    if isinstance(value, str) and ISO_DATE_PATTERN.match(value):
        parsed = _parse_iso(value)
        return parsed if parsed is not None else value
    if isinstance(value, list):
        return [hydrate_form_data(item) for item in value]
    if isinstance(value, dict):
        return {k: hydrate_form_data(v) for k, v in value.items()}
    return value


# ── Display Name ────────────────────────────────────────────────────────────


def _clean(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _first_present(form_data: dict[str, Any], keys: tuple[str, ...]) -> str:
    for key in keys:
        cleaned = _clean(form_data.get(key))
        if cleaned:
            return cleaned
    return ""


def resolve_participant_name(form_data: Any) -> str:
    """Derive a display name from formData.

    Order: combined ``name``, then first/last name under their historical
    aliases, then the ``"New Inquiry"`` placeholder. A last name alone is
    not enough to name anyone.
    """
    if not isinstance(form_data, dict):
        return DEFAULT_PARTICIPANT_NAME

    combined = _clean(form_data.get("name"))
    if combined:
        return combined

    first = _first_present(form_data, _FIRST_NAME_KEYS)
    if not first:
        return DEFAULT_PARTICIPANT_NAME
    last = _first_present(form_data, _LAST_NAME_KEYS)
    return f"{first} {last}".strip()


# ── Scheduling Time ─────────────────────────────────────────────────────────


def _parse_iso(value: str) -> datetime | None:
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_scheduled_time(value: Any) -> datetime | None:
    """Parse a scheduling-provider timestamp, None when absent or unparsable."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str) or not value.strip():
        return None
    return _parse_iso(value)
