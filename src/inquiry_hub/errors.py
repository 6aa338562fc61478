"""Exception taxonomy for inquiry synchronization and the record store.

Fatal (never worth retrying without a code or config change):
- InquiryNotFoundError: the inquiry document does not exist.
- UnsupportedTargetError: no field mapper is registered for (formType, target).
- InvalidPayloadError: the form data cannot produce a valid payload. Raised
  before any network call.

Retryable (recorded as ``failed`` and left for an explicit retry):
- ExternalUnavailableError: network failure, timeout, 429 or 5xx.
- ExternalRejectedError: the CRM refused the payload. Retrying identical
  input will fail identically, so it is marked ``needs_correction``.

Store errors (RecordStoreError, DocumentNotFoundError) propagate to the
triggering event so the delivery mechanism can redeliver.
"""

from __future__ import annotations

from enum import Enum


class SyncErrorKind(str, Enum):
    """Classification of a failed sync, stored alongside SyncResult."""

    NOT_FOUND = "not_found"
    UNSUPPORTED = "unsupported"
    INVALID_PAYLOAD = "invalid_payload"
    EXTERNAL_UNAVAILABLE = "external_unavailable"
    EXTERNAL_REJECTED = "external_rejected"
    UNEXPECTED = "unexpected"


class InquiryHubError(Exception):
    """Base exception for every error raised by this package."""

    kind: SyncErrorKind = SyncErrorKind.UNEXPECTED
    retryable: bool = False


class InquiryNotFoundError(InquiryHubError):
    """Raised when an inquiry cannot be located."""

    kind = SyncErrorKind.NOT_FOUND

    def __init__(self, inquiry_id: str) -> None:
        self.inquiry_id = inquiry_id
        super().__init__(f"Inquiry not found: {inquiry_id}")


class UnsupportedTargetError(InquiryHubError):
    """Raised when a form type has no mapping for the requested target."""

    kind = SyncErrorKind.UNSUPPORTED

    def __init__(self, form_type: str | None, target: str) -> None:
        self.form_type = form_type
        self.target = target
        super().__init__(f"Form type {form_type!r} is not configured for {target} sync")


class InvalidPayloadError(InquiryHubError):
    """Raised when form data fails validation or maps to an incomplete payload."""

    kind = SyncErrorKind.INVALID_PAYLOAD

    def __init__(self, target: str, problems: list[str]) -> None:
        self.target = target
        self.problems = problems
        super().__init__(f"[{target}] Payload validation failed: {'; '.join(problems)}")


class ExternalServiceError(InquiryHubError):
    """Base for failures reported by (or on the way to) an external CRM."""

    retryable = True

    def __init__(self, target: str, message: str, status_code: int | None = None) -> None:
        self.target = target
        self.status_code = status_code
        super().__init__(message)


class ExternalUnavailableError(ExternalServiceError):
    """Transient failure: timeout, connection error, rate limit or 5xx."""

    kind = SyncErrorKind.EXTERNAL_UNAVAILABLE


class ExternalRejectedError(ExternalServiceError):
    """The CRM rejected the payload (4xx or GraphQL error)."""

    kind = SyncErrorKind.EXTERNAL_REJECTED
    needs_correction = True


class RecordStoreError(InquiryHubError):
    """Raised when a record store read or write fails."""


class DocumentNotFoundError(RecordStoreError):
    """Raised when a partial update targets a document that does not exist."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Document not found: {path}")
