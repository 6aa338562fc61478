#!/usr/bin/env python3
"""Operator sweep: replay inquiry-created events that were never handled.

Usage:
    python scripts/redeliver_lifecycle_events.py
    python scripts/redeliver_lifecycle_events.py --dry-run

With inline lifecycle events, a submission is stored with a
``lifecycleEventPending`` marker that is cleared once staff fan-out has
committed. Inquiries still marked (fan-out batch rejected, process stopped
before the background task ran) get the whole created event again: staff
tasks for the inquiry are superseded rather than duplicated and CRM syncs
update records that already exist.

Reads DATABASE_URL and CRM credentials from environment or .env file.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

# Ensure project root is on sys.path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))

import structlog  # noqa: E402

from src.inquiry_hub.api.middleware.logging import configure_structlog  # noqa: E402
from src.inquiry_hub.config import get_settings  # noqa: E402
from src.inquiry_hub.core.database import close_db, get_session  # noqa: E402
from src.inquiry_hub.crm.factory import build_adapters  # noqa: E402
from src.inquiry_hub.crm.status import SyncStatusTracker  # noqa: E402
from src.inquiry_hub.crm.sync import CRMSyncOrchestrator  # noqa: E402
from src.inquiry_hub.inquiries.directory import StaffDirectory  # noqa: E402
from src.inquiry_hub.inquiries.fanout import EVENT_CREATED, FanoutEngine  # noqa: E402
from src.inquiry_hub.inquiries.hooks import InquiryLifecycleHooks, redeliver_pending_created  # noqa: E402
from src.inquiry_hub.inquiries.repository import InquiryRepository, InquiryService  # noqa: E402
from src.inquiry_hub.store.sql import SqlRecordStore  # noqa: E402

logger = structlog.get_logger(__name__)


async def main_async(args: argparse.Namespace) -> None:
    settings = get_settings()
    configure_structlog()

    store = SqlRecordStore(session_factory=get_session)
    repository = InquiryRepository(store)
    service = InquiryService(store, repository)
    orchestrator = CRMSyncOrchestrator(
        repository, SyncStatusTracker(store), build_adapters(settings), settings.mapping_context()
    )
    hooks = InquiryLifecycleHooks(
        FanoutEngine(store, StaffDirectory(store, settings.STAFF_ROLES)), orchestrator
    )

    try:
        if args.dry_run:
            for doc in await repository.list_pending_events(EVENT_CREATED):
                print(f"  [dry-run] {doc.id} ({doc.path.split('/')[1]})")
            return
        delivered, still_pending = await redeliver_pending_created(hooks, service, repository)
        print(f"{delivered} delivered, {still_pending} still pending")
    finally:
        await close_db()


def main() -> None:
    parser = argparse.ArgumentParser(description="Redeliver unhandled inquiry-created events")
    parser.add_argument("--dry-run", action="store_true", help="List pending inquiries without delivering")
    args = parser.parse_args()

    asyncio.run(main_async(args))


if __name__ == "__main__":
    main()
