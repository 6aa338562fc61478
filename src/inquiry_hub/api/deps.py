"""FastAPI dependencies resolving services wired onto ``app.state``.

Every getter raises 503 when its service was not initialized (for example
duplicate detection without Insightly credentials).
"""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request, status

from src.inquiry_hub.crm.duplicates import DuplicateDetector
from src.inquiry_hub.crm.sync import CRMSyncOrchestrator
from src.inquiry_hub.inquiries.hooks import InquiryLifecycleHooks
from src.inquiry_hub.inquiries.repository import InquiryRepository, InquiryService, TaskRepository


def _from_state(request: Request, name: str, label: str) -> Any:
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} not initialized",
        )
    return service


def get_inquiry_service(request: Request) -> InquiryService:
    return _from_state(request, "inquiry_service", "Inquiry service")


def get_inquiry_repository(request: Request) -> InquiryRepository:
    return _from_state(request, "inquiry_repository", "Inquiry repository")


def get_task_repository(request: Request) -> TaskRepository:
    return _from_state(request, "task_repository", "Task repository")


def get_orchestrator(request: Request) -> CRMSyncOrchestrator:
    return _from_state(request, "sync_orchestrator", "CRM sync")


def get_lifecycle_hooks(request: Request) -> InquiryLifecycleHooks:
    return _from_state(request, "lifecycle_hooks", "Lifecycle hooks")


def get_duplicate_detector(request: Request) -> DuplicateDetector:
    return _from_state(request, "duplicate_detector", "Duplicate detection")
