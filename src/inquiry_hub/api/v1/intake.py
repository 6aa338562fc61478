"""Manual (paper) intake support: advisory duplicate lookup against the CRM."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from src.inquiry_hub.api.deps import get_duplicate_detector
from src.inquiry_hub.crm.duplicates import DuplicateDetector
from src.inquiry_hub.inquiries.schemas import DuplicateCheckRequest, DuplicateCheckResult

router = APIRouter(prefix="/intake", tags=["intake"])


@router.post("/duplicates", response_model=DuplicateCheckResult)
async def check_duplicates(
    body: DuplicateCheckRequest,
    detector: DuplicateDetector = Depends(get_duplicate_detector),
) -> DuplicateCheckResult:
    """Look up likely existing leads. Lookup failures come back as ``degraded``."""
    return await detector.find_duplicates(body.name, body.email)
