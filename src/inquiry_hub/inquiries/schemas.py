"""Pydantic schemas for inquiries, staff tasks, activity and CRM sync.

Defines all structured types for the inquiry lifecycle:
- Enums: FormType, ServiceArea, InquiryStatus, SyncTarget, SyncState,
  TaskType, TaskStatus, TaskPriority, StaffRole
- Form variants: MediationSelfReferral, RestorativeProgramReferral
  (frozen, keyed by formType via parse_form_data)
- Records: Inquiry, CalendlyScheduling, Task, ActivityItem
- Sync: SyncStatus, SyncResult
- Duplicate detection: DuplicateMatch, DuplicateCheckResult
- API payloads: InquiryCreate, InquiryCreated, StatusUpdate, ...

Stored documents keep camelCase field names; every model here uses
snake_case attributes with camelCase aliases.
"""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from src.inquiry_hub.errors import InvalidPayloadError, SyncErrorKind

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _digits(value: str) -> str:
    return re.sub(r"\D", "", value)


class CamelModel(BaseModel):
    """Base model: snake_case attributes, camelCase on the wire and in storage."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Enums ───────────────────────────────────────────────────────────────────


class FormType(str, Enum):
    """Public and paper intake forms."""

    MEDIATION_SELF_REFERRAL = "mediation-self-referral"
    RESTORATIVE_PROGRAM_REFERRAL = "restorative-program-referral"
    GROUP_FACILITATION_INQUIRY = "group-facilitation-inquiry"
    COMMUNITY_EDUCATION_TRAINING_REQUEST = "community-education-training-request"


class ServiceArea(str, Enum):
    """Program areas; inquiries are partitioned by service area."""

    MEDIATION = "mediation"
    RESTORATIVE_PRACTICES = "restorativePractices"
    FACILITATION = "facilitation"


class InquiryStatus(str, Enum):
    SUBMITTED = "submitted"
    INTAKE_SCHEDULED = "intake-scheduled"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CLOSED = "closed"


class SyncTarget(str, Enum):
    """External CRMs an inquiry is mirrored into."""

    INSIGHTLY = "insightly"
    MONDAY = "monday"


class SyncState(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    NEVER_SYNCED = "never-synced"


class TaskType(str, Enum):
    NEW_INQUIRY = "new-inquiry"
    INTAKE_CALL = "intake-call"
    FOLLOW_UP = "follow-up"
    REVIEW_EVALS = "review-evals"


class TaskStatus(str, Enum):
    PENDING = "pending"
    DONE = "done"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class StaffRole(str, Enum):
    ADMIN = "admin"
    COORDINATOR = "coordinator"
    VOLUNTEER = "volunteer"
    USER = "user"


FORM_TO_SERVICE_AREA: dict[FormType, ServiceArea] = {
    FormType.MEDIATION_SELF_REFERRAL: ServiceArea.MEDIATION,
    FormType.RESTORATIVE_PROGRAM_REFERRAL: ServiceArea.RESTORATIVE_PRACTICES,
    FormType.GROUP_FACILITATION_INQUIRY: ServiceArea.FACILITATION,
    FormType.COMMUNITY_EDUCATION_TRAINING_REQUEST: ServiceArea.FACILITATION,
}

SERVICE_AREA_LABELS: dict[str, str] = {
    ServiceArea.MEDIATION.value: "Mediation",
    ServiceArea.RESTORATIVE_PRACTICES.value: "Restorative Practices",
    ServiceArea.FACILITATION.value: "Facilitation",
}


def service_area_label(service_area: str) -> str:
    """Human label for a service area; unknown areas read as Mediation."""
    return SERVICE_AREA_LABELS.get(str(service_area), "Mediation")


# ── Form Variants ───────────────────────────────────────────────────────────


class _FormModel(CamelModel):
    """Frozen form snapshot. Unknown keys are ignored, not rejected."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
        str_strip_whitespace=True,
    )


def _check_email(value: str | None, required: bool) -> str | None:
    if value is None or value == "":
        if required:
            raise ValueError("Invalid email address.")
        return value
    if not _EMAIL_RE.match(value):
        raise ValueError("Invalid email address.")
    return value


def _check_phone(value: str | None, required: bool) -> str | None:
    if value is None or value.strip() == "":
        if required:
            raise ValueError("Phone number is required.")
        return value
    if len(_digits(value)) != 10:
        raise ValueError("Please enter a valid 10-digit phone number.")
    return value


class AdditionalContact(_FormModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    phone: str
    email: str

    @field_validator("phone")
    @classmethod
    def _phone(cls, v: str) -> str:
        return _check_phone(v, required=True)

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return _check_email(v, required=True)


YesNo = Literal["No", "Yes"]


class MediationSelfReferral(_FormModel):
    """Public mediation self-referral form."""

    form_type: Literal["mediation-self-referral"] = "mediation-self-referral"

    prefix: str = Field(min_length=1)
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    phone: str
    email: str
    preferred_contact_method: Literal["Email", "Phone", "Either is fine"]
    allow_voicemail: YesNo
    allow_text: YesNo
    street_address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    zip_code: str = Field(min_length=1)
    referral_source: str = Field(min_length=1)

    conflict_overview: str = Field(min_length=1, max_length=1000)
    is_court_ordered: YesNo

    contact_one_first_name: str | None = None
    contact_one_last_name: str | None = None
    contact_one_phone: str | None = None
    contact_one_email: str | None = None
    additional_contacts: tuple[AdditionalContact, ...] = Field(default=(), max_length=5)

    deadline: datetime | None = None
    accessibility_needs: str = Field(min_length=1, max_length=500)
    additional_info: str = Field(min_length=1, max_length=500)

    @field_validator("phone")
    @classmethod
    def _phone(cls, v: str) -> str:
        return _check_phone(v, required=True)

    @field_validator("contact_one_phone")
    @classmethod
    def _contact_phone(cls, v: str | None) -> str | None:
        return _check_phone(v, required=False)

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return _check_email(v, required=True)

    @field_validator("contact_one_email")
    @classmethod
    def _contact_email(cls, v: str | None) -> str | None:
        return _check_email(v, required=False)


RestorativeOrg = Literal[
    "school",
    "juvenile-services",
    "community-organization",
    "court-legal",
    "self-family",
    "other",
    "",
]

RestorativeService = Literal[
    "restorative-reflection",
    "restorative-dialogue",
    "restorative-circle",
    "reentry",
    "conflict-mediation",
    "not-sure",
    "",
]


class RestorativeProgramReferral(_FormModel):
    """Partner referral into the restorative program."""

    form_type: Literal["restorative-program-referral"] = "restorative-program-referral"

    referrer_name: str = Field(min_length=1)
    referrer_email: str
    referrer_phone: str | None = None
    referrer_org: RestorativeOrg | None = None
    referrer_role: str | None = None
    referrer_preferred_contact: Literal["email", "phone-call", "text", ""] | None = None

    participant_name: str = Field(min_length=1)
    participant_dob: datetime | None = None
    participant_pronouns: str | None = None
    participant_school: str | None = None
    participant_phone: str | None = None
    participant_email: str | None = None
    parent_guardian_name: str | None = None
    parent_guardian_phone: str | None = None
    parent_guardian_email: str | None = None
    participant_best_time: str | None = None

    incident_date: datetime | None = None
    incident_location: str | None = None
    incident_description: str = Field(min_length=1)
    other_parties: str | None = None
    reason_referral: str | None = None
    service_requested: RestorativeService | None = None
    safety_concerns: str | None = None
    current_discipline: str | None = None

    urgency: Literal["high", "medium", "low", ""] | None = None
    additional_notes: str | None = None

    @field_validator("referrer_email")
    @classmethod
    def _email(cls, v: str) -> str:
        return _check_email(v, required=True)

    @field_validator("referrer_phone", "participant_phone", "parent_guardian_phone")
    @classmethod
    def _optional_phone(cls, v: str | None) -> str | None:
        return _check_phone(v, required=False)


FormVariant = MediationSelfReferral | RestorativeProgramReferral

FORM_VARIANTS: dict[FormType, type[_FormModel]] = {
    FormType.MEDIATION_SELF_REFERRAL: MediationSelfReferral,
    FormType.RESTORATIVE_PROGRAM_REFERRAL: RestorativeProgramReferral,
}


def _validation_problems(exc: ValidationError) -> list[str]:
    problems = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err["loc"]) or "formData"
        problems.append(f"{location}: {err['msg']}")
    return problems


def parse_form_data(form_type: str, data: dict[str, Any]) -> FormVariant | None:
    """Validate ``data`` against the strict variant for ``form_type``.

    Returns None for form types stored as open mappings (facilitation,
    training requests).

    Raises:
        InvalidPayloadError: If the data does not satisfy the variant schema.
    """
    try:
        variant = FORM_VARIANTS.get(FormType(form_type))
    except ValueError:
        return None
    if variant is None:
        return None
    payload = {k: v for k, v in data.items() if k != "formType"}
    try:
        return variant.model_validate(payload)
    except ValidationError as exc:
        raise InvalidPayloadError(str(form_type), _validation_problems(exc)) from exc


# ── Inquiry Records ─────────────────────────────────────────────────────────


class CalendlyScheduling(CamelModel):
    """Scheduling details written by the intake scheduling integration."""

    event_uri: str | None = None
    scheduled_time: str | datetime | None = None
    invitee_uri: str | None = None


class SyncStatus(CamelModel):
    """Per-target sync sub-record as read back from an inquiry."""

    status: SyncState = SyncState.NEVER_SYNCED
    external_id: str | None = None
    external_url: str | None = None
    error: str | None = None
    last_synced_at: datetime | None = None


class Inquiry(CamelModel):
    """An inquiry document, read from the record store."""

    id: str
    path: str
    form_type: str
    service_area: str
    form_data: dict[str, Any] = Field(default_factory=dict)
    status: str = InquiryStatus.SUBMITTED.value
    submitted_at: datetime | None = None
    submitted_by: str = "anonymous"
    submission_type: Literal["authenticated", "anonymous"] = "anonymous"
    reviewed: bool = False
    reviewed_at: datetime | None = None
    reviewed_by: str | None = None
    calendly_scheduling: CalendlyScheduling | None = None


class Task(CamelModel):
    """A unit of staff work stored under ``users/{uid}/tasks``."""

    id: str | None = None
    title: str
    type: TaskType
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    service_area: str | None = None
    inquiry_id: str | None = None
    link: str | None = None
    assigned_to: str
    created_at: datetime | None = None
    due: datetime | None = None
    completed_at: datetime | None = None


class ActivityItem(CamelModel):
    """A notification entry stored under ``users/{uid}/activity``."""

    id: str | None = None
    message: str
    type: TaskType | None = None
    service_area: str | None = None
    inquiry_id: str | None = None
    link: str | None = None
    read: bool = False
    created_at: datetime | None = None


# ── Sync Results ────────────────────────────────────────────────────────────


class SyncResult(CamelModel):
    """Outcome of one sync invocation for one (inquiry, target)."""

    success: bool
    target: SyncTarget
    external_id: str | None = None
    external_url: str | None = None
    error: str | None = None
    error_kind: SyncErrorKind | None = None


# ── Duplicate Detection ─────────────────────────────────────────────────────


class DuplicateMatch(CamelModel):
    """A CRM lead that may be the same person as a new intake."""

    external_lead_id: str
    full_name: str
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    status: str | None = None
    external_url: str | None = None
    created_at: datetime | None = None
    tags: list[str] = Field(default_factory=list)


class DuplicateCheckResult(CamelModel):
    """Advisory duplicate check outcome; ``degraded`` marks a failed lookup."""

    has_potential_duplicates: bool = False
    matches: list[DuplicateMatch] = Field(default_factory=list)
    searched_name: str
    degraded: bool = False
    errors: list[str] = Field(default_factory=list)


# ── API Payloads ────────────────────────────────────────────────────────────


class InquiryCreate(CamelModel):
    """Submission of a new inquiry."""

    form_type: FormType
    form_data: dict[str, Any]
    submitted_by: str | None = None


class InquiryCreated(CamelModel):
    id: str
    service_area: ServiceArea
    path: str


class StatusUpdate(CamelModel):
    status: InquiryStatus


class InquiryTransition(CamelModel):
    """Before/after snapshots produced by a status-changing operation."""

    inquiry_id: str
    service_area: str
    before: dict[str, Any]
    after: dict[str, Any]


class DuplicateCheckRequest(CamelModel):
    name: str
    email: str | None = None


class InquiryCreatedEvent(CamelModel):
    """Webhook body for a newly written inquiry document."""

    inquiry_id: str
    service_area: str
    data: dict[str, Any]


class InquiryUpdatedEvent(CamelModel):
    """Webhook body for a changed inquiry document."""

    inquiry_id: str
    service_area: str
    before: dict[str, Any]
    after: dict[str, Any]


class PriorityUpdate(CamelModel):
    priority: TaskPriority
