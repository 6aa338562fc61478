"""Field mapping layer -- pure functions from validated form data to CRM payloads.

One mapper per (FormType, SyncTarget) pair, registered in MAPPERS.
map_inquiry() is the single entry point: it resolves the mapper, validates
the form variant, builds the payload and checks it against the target's
required fields. Nothing here performs I/O, and a payload is never returned
with a required field missing: every failure raises InvalidPayloadError.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from typing import Any

from src.inquiry_hub.config import MappingContext
from src.inquiry_hub.errors import InvalidPayloadError, UnsupportedTargetError
from src.inquiry_hub.inquiries.schemas import (
    FormType,
    FormVariant,
    MediationSelfReferral,
    RestorativeProgramReferral,
    ServiceArea,
    SyncTarget,
    parse_form_data,
)

Payload = dict[str, Any]
Mapper = Callable[[Any, MappingContext], Payload]

DESCRIPTION_RULE = "-" * 66

RESTORATIVE_ORG_LABELS = {
    "school": "School / District",
    "juvenile-services": "Juvenile Services",
    "community-organization": "Community Organization",
    "court-legal": "Court / Legal System",
    "self-family": "Self / Family",
    "other": "Other",
}

RESTORATIVE_SERVICE_LABELS = {
    "restorative-reflection": "Restorative Reflection",
    "restorative-dialogue": "Restorative Dialogue",
    "restorative-circle": "Restorative Circle",
    "reentry": "Re-entry Support",
    "conflict-mediation": "Conflict Mediation",
    "not-sure": "Not Sure",
}

MONDAY_FORM_TYPE_LABELS = {
    FormType.MEDIATION_SELF_REFERRAL: "Mediation Referral",
    FormType.RESTORATIVE_PROGRAM_REFERRAL: "Restorative Program",
}

MONDAY_SERVICE_AREA_LABELS = {
    ServiceArea.MEDIATION: "Mediation",
    ServiceArea.RESTORATIVE_PRACTICES: "Restorative Program",
    ServiceArea.FACILITATION: "Facilitation",
}


# ── Text Helpers ────────────────────────────────────────────────────────────


def sanitize(value: Any) -> str | None:
    """Trimmed string, or None when empty."""
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def split_full_name(value: str | None) -> tuple[str | None, str | None]:
    cleaned = sanitize(value)
    if not cleaned:
        return None, None
    parts = cleaned.split()
    if len(parts) == 1:
        return parts[0], None
    return parts[0], " ".join(parts[1:])


def description_block(title: str, body: str | None) -> str:
    if not body:
        return ""
    return f"{title}\n{DESCRIPTION_RULE}\n{body.strip()}\n"


def _join_lines(lines: list[str | None]) -> str:
    return "\n".join(line for line in lines if line)


def sanitize_tag_name(tag_name: str) -> str:
    tag = re.sub(r"[^a-zA-Z0-9_-]", "_", tag_name)
    tag = re.sub(r"_+", "_", tag)
    return tag.strip("_")


def build_tags(*names: str | None) -> list[dict[str, str]]:
    return [{"TAG_NAME": sanitize_tag_name(n)} for n in names if n]


def truncate(text: str | None, limit: int = 80) -> str:
    if not text:
        return ""
    if len(text) <= limit:
        return text
    return f"{text[:limit].strip()}…"


def _collapse_whitespace(text: str | None) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def _drop_none(payload: Payload) -> Payload:
    return {k: v for k, v in payload.items() if v is not None}


# ── Insightly Mappers ───────────────────────────────────────────────────────


def _insightly_base(context: MappingContext) -> Payload:
    defaults = context.insightly
    return {
        "LEAD_STATUS_ID": defaults.lead_status_id,
        "OWNER_USER_ID": defaults.owner_user_id,
        "RESPONSIBLE_USER_ID": defaults.responsible_user_id,
        "ADDRESS_COUNTRY": defaults.default_country,
    }


def map_mediation_to_insightly(form: MediationSelfReferral, context: MappingContext) -> Payload:
    description = _join_lines(
        [
            "Source: Mediation Self-Referral (Website)",
            "",
            description_block("What brings you to seek mediation right now?", form.conflict_overview),
            description_block("Are there accessibility needs or notes for staff?", form.accessibility_needs),
            description_block("Other details", form.additional_info),
            f"Preferred contact method: {form.preferred_contact_method}",
            f"Referral source: {form.referral_source}",
            f"Text OK: {form.allow_text}",
            f"Voicemail OK: {form.allow_voicemail}",
            "",
            "(Submitted via self-referral form)",
        ]
    )
    referral = sanitize(form.referral_source)
    return _drop_none(
        {
            **_insightly_base(context),
            "LEAD_SOURCE_ID": context.insightly.self_referral_source_id,
            "FIRST_NAME": sanitize(form.first_name),
            "LAST_NAME": sanitize(form.last_name) or "Unknown",
            "EMAIL": sanitize(form.email),
            "PHONE": sanitize(form.phone),
            "ADDRESS_STREET": sanitize(form.street_address),
            "ADDRESS_CITY": sanitize(form.city),
            "ADDRESS_STATE": sanitize(form.state),
            "ADDRESS_POSTCODE": sanitize(form.zip_code),
            "LEAD_DESCRIPTION": description,
            "TAGS": build_tags(
                "MCRC",
                "Mediation",
                "Self Referral",
                f"Referral: {referral}" if referral else None,
                f"Court Ordered: {form.is_court_ordered}",
            ),
        }
    )


def map_restorative_to_insightly(form: RestorativeProgramReferral, context: MappingContext) -> Payload:
    first, last = split_full_name(form.referrer_name)
    organization = RESTORATIVE_ORG_LABELS.get(form.referrer_org or "", sanitize(form.referrer_org))
    service = RESTORATIVE_SERVICE_LABELS.get(form.service_requested or "", sanitize(form.service_requested))
    description = _join_lines(
        [
            "Source: Restorative Program Referral (Website)",
            "",
            description_block("Brief description of the situation / harm", form.incident_description),
            description_block("Reason for referral", form.reason_referral),
            description_block("Other parties involved", form.other_parties),
            description_block("Safety or confidentiality considerations", form.safety_concerns),
            description_block("Current discipline / school / court actions", form.current_discipline),
            description_block("Additional context for staff", form.additional_notes),
            "",
            f"Participant: {form.participant_name}",
            f"School/Program: {form.participant_school}" if form.participant_school else None,
            (
                f"Best time to contact participant/family: {form.participant_best_time}"
                if form.participant_best_time
                else None
            ),
            f"Requested service: {service}" if service else None,
            f"Urgency: {form.urgency}" if form.urgency else None,
            "",
            "(Submitted via restorative program referral form)",
        ]
    )
    return _drop_none(
        {
            **_insightly_base(context),
            "LEAD_SOURCE_ID": context.insightly.restorative_source_id,
            "FIRST_NAME": first,
            "LAST_NAME": last or first or "Unknown",
            "EMAIL": sanitize(form.referrer_email),
            "PHONE": sanitize(form.referrer_phone),
            "TITLE": sanitize(form.referrer_role),
            "ORGANIZATION_NAME": organization,
            "LEAD_DESCRIPTION": description,
            "TAGS": build_tags(
                "MCRC",
                "Restorative Program",
                "Partner Referral",
                f"Referral Org: {organization}" if organization else None,
                f"Service: {service}" if service else None,
            ),
        }
    )


# ── Monday Mappers ──────────────────────────────────────────────────────────


def _submission_date(context: MappingContext) -> str | None:
    if context.submitted_at is None:
        return None
    return context.submitted_at.date().isoformat()


def _monday_columns(
    form: FormVariant,
    form_type: FormType,
    service_area: ServiceArea,
    primary_contact: str,
    description: str,
    context: MappingContext,
) -> str:
    cols = context.monday.columns
    values: dict[str, Any] = {
        cols.status: {"label": "New"},
        cols.form_type: {"labels": [MONDAY_FORM_TYPE_LABELS[form_type]]},
        cols.primary_contact: primary_contact,
        cols.service_area: MONDAY_SERVICE_AREA_LABELS[service_area],
        cols.description: description,
        cols.raw_payload: form.model_dump_json(by_alias=True, exclude_none=True),
    }
    submitted = _submission_date(context)
    if submitted:
        values[cols.submission_date] = {"date": submitted}
    if context.monday.default_assignee_id:
        values[cols.assignee] = {
            "personsAndTeams": [{"id": context.monday.default_assignee_id, "kind": "person"}]
        }
    return json.dumps(values)


def map_mediation_to_monday(form: MediationSelfReferral, context: MappingContext) -> Payload:
    first = form.first_name.strip()
    last = form.last_name.strip()
    summary = truncate(_collapse_whitespace(form.conflict_overview))
    item_name = f"Mediation – {first} {last}".strip() + (f" – {summary}" if summary else "")
    contact = " • ".join(
        part
        for part in (
            f"{first} {last}".strip() or "Unknown participant",
            f"Email: {form.email}" if form.email else None,
            f"Phone: {form.phone}" if form.phone else None,
        )
        if part
    )
    description = "\n".join(
        [
            "What brings you to seek mediation right now?",
            DESCRIPTION_RULE,
            form.conflict_overview.strip() or "(no description provided)",
        ]
    )
    return {
        "board_id": context.monday.board_id,
        "group_id": context.monday.group_mediation,
        "item_name": item_name,
        "column_values": _monday_columns(
            form, FormType.MEDIATION_SELF_REFERRAL, ServiceArea.MEDIATION, contact, description, context
        ),
    }


def map_restorative_to_monday(form: RestorativeProgramReferral, context: MappingContext) -> Payload:
    referrer = sanitize(form.referrer_name) or "Unknown referrer"
    org = form.referrer_org or "Unknown organization"
    summary = truncate(_collapse_whitespace(form.incident_description))
    item_name = f"Restorative – {org}" + (f" – {summary}" if summary else "")
    contact = " • ".join(
        part
        for part in (
            referrer,
            f"Email: {form.referrer_email}" if form.referrer_email else None,
            f"Phone: {form.referrer_phone}" if form.referrer_phone else None,
        )
        if part
    )
    description = _join_lines(
        [
            "Brief description of the situation / harm:",
            DESCRIPTION_RULE,
            form.incident_description.strip() or "(no description provided)",
            "",
            f"Referrer: {referrer}",
            f"Role: {form.referrer_role}" if form.referrer_role else None,
            f"Participant: {form.participant_name}",
            f"School / Program: {form.participant_school}" if form.participant_school else None,
        ]
    )
    return {
        "board_id": context.monday.board_id,
        "group_id": context.monday.group_restorative,
        "item_name": item_name,
        "column_values": _monday_columns(
            form,
            FormType.RESTORATIVE_PROGRAM_REFERRAL,
            ServiceArea.RESTORATIVE_PRACTICES,
            contact,
            description,
            context,
        ),
    }


MAPPERS: dict[tuple[FormType, SyncTarget], Mapper] = {
    (FormType.MEDIATION_SELF_REFERRAL, SyncTarget.INSIGHTLY): map_mediation_to_insightly,
    (FormType.RESTORATIVE_PROGRAM_REFERRAL, SyncTarget.INSIGHTLY): map_restorative_to_insightly,
    (FormType.MEDIATION_SELF_REFERRAL, SyncTarget.MONDAY): map_mediation_to_monday,
    (FormType.RESTORATIVE_PROGRAM_REFERRAL, SyncTarget.MONDAY): map_restorative_to_monday,
}


# ── Payload Validation ──────────────────────────────────────────────────────


def validate_insightly_payload(payload: Payload, context: MappingContext) -> list[str]:
    problems = []
    if not sanitize(payload.get("LAST_NAME")):
        problems.append("LAST_NAME is required")
    if not payload.get("LEAD_SOURCE_ID"):
        problems.append("LEAD_SOURCE_ID is required")
    if not any(payload.get(key) for key in ("EMAIL", "PHONE", "MOBILE")):
        problems.append("At least one contact method (EMAIL, PHONE, or MOBILE) is required")
    return problems


def validate_monday_payload(payload: Payload, context: MappingContext) -> list[str]:
    problems = []
    if context.submitted_at is None:
        problems.append("submitted_at is required for the submission date column")
    if not payload.get("board_id"):
        problems.append("board_id is required")
    if not payload.get("group_id"):
        problems.append("group_id is required")
    if not sanitize(payload.get("item_name")):
        problems.append("item_name is required")
    if not isinstance(payload.get("column_values"), str):
        problems.append("column_values must be a JSON string")
    return problems


VALIDATORS: dict[SyncTarget, Callable[[Payload, MappingContext], list[str]]] = {
    SyncTarget.INSIGHTLY: validate_insightly_payload,
    SyncTarget.MONDAY: validate_monday_payload,
}


# ── Update Payloads ─────────────────────────────────────────────────────────

INSIGHTLY_WORKFLOW_FIELDS = ("LEAD_STATUS_ID", "OWNER_USER_ID", "RESPONSIBLE_USER_ID")


def without_workflow_fields(target: SyncTarget, payload: Payload, context: MappingContext) -> Payload:
    """Drop the status and ownership fields only set when a record is created."""
    if target == SyncTarget.INSIGHTLY:
        return {k: v for k, v in payload.items() if k not in INSIGHTLY_WORKFLOW_FIELDS}
    cols = context.monday.columns
    columns = json.loads(payload["column_values"])
    for column in (cols.status, cols.assignee):
        columns.pop(column, None)
    return {**payload, "column_values": json.dumps(columns)}


# ── Entry Points ────────────────────────────────────────────────────────────


def _form_type_key(form_type: str) -> FormType | None:
    try:
        return FormType(form_type)
    except ValueError:
        return None


def has_mapper(form_type: str, target: SyncTarget) -> bool:
    key = _form_type_key(form_type)
    return key is not None and (key, target) in MAPPERS


def targets_for(form_type: str) -> list[SyncTarget]:
    """Targets with a registered mapper for ``form_type``."""
    return [target for target in SyncTarget if has_mapper(form_type, target)]


def map_inquiry(
    form_type: str,
    target: SyncTarget,
    form_data: dict[str, Any] | FormVariant,
    context: MappingContext,
    for_update: bool = False,
) -> Payload:
    """Build the ``target`` payload for an inquiry.

    ``for_update`` builds the payload for a record that already exists: the
    status and ownership fields staff manage in the CRM are left out.

    Raises:
        UnsupportedTargetError: No mapper is registered for (form_type, target).
        InvalidPayloadError: The form data or the resulting payload is invalid.
    """
    key = _form_type_key(form_type)
    if key is None or (key, target) not in MAPPERS:
        raise UnsupportedTargetError(form_type, target.value)

    if isinstance(form_data, dict):
        try:
            form = parse_form_data(key.value, form_data)
        except InvalidPayloadError as exc:
            raise InvalidPayloadError(target.value, exc.problems) from exc
    else:
        form = form_data

    payload = MAPPERS[(key, target)](form, context)
    problems = VALIDATORS[target](payload, context)
    if problems:
        raise InvalidPayloadError(target.value, problems)
    return without_workflow_fields(target, payload, context) if for_update else payload
