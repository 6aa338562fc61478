"""Construct the CRM adapters configured in Settings."""

from __future__ import annotations

from src.inquiry_hub.config import Settings
from src.inquiry_hub.crm.adapter import CRMAdapter, LeadIndex
from src.inquiry_hub.crm.insightly import InsightlyAdapter
from src.inquiry_hub.crm.monday import MondayAdapter
from src.inquiry_hub.inquiries.schemas import SyncTarget


def build_adapters(settings: Settings) -> dict[SyncTarget, CRMAdapter]:
    """CRM adapters for every target with credentials configured."""
    adapters: dict[SyncTarget, CRMAdapter] = {}
    if settings.INSIGHTLY_API_KEY:
        adapters[SyncTarget.INSIGHTLY] = InsightlyAdapter(settings.insightly_config())
    if settings.MONDAY_API_TOKEN and settings.MONDAY_MASTER_BOARD_ID:
        adapters[SyncTarget.MONDAY] = MondayAdapter(settings.monday_config())
    return adapters


def lead_index_from(adapters: dict[SyncTarget, CRMAdapter]) -> LeadIndex | None:
    """The adapter that can answer duplicate lookups, if one is configured."""
    insightly = adapters.get(SyncTarget.INSIGHTLY)
    return insightly if isinstance(insightly, LeadIndex) else None
