#!/usr/bin/env python3
"""Backfill Monday items for inquiries that were never synced to Monday.

Usage:
    python scripts/backfill_monday.py
    python scripts/backfill_monday.py --limit 50 --dry-run

Only form types with a Monday mapping are considered; everything else is
skipped without touching its sync status.

Reads DATABASE_URL and MONDAY_* settings from environment or .env file.
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
from src.inquiry_hub.crm.mapping import has_mapper  # noqa: E402
from src.inquiry_hub.crm.monday import MondayAdapter  # noqa: E402
from src.inquiry_hub.crm.status import SyncStatusTracker  # noqa: E402
from src.inquiry_hub.crm.sync import CRMSyncOrchestrator  # noqa: E402
from src.inquiry_hub.inquiries.repository import InquiryRepository  # noqa: E402
from src.inquiry_hub.inquiries.schemas import SyncTarget  # noqa: E402
from src.inquiry_hub.store.sql import SqlRecordStore  # noqa: E402

logger = structlog.get_logger(__name__)


async def main_async(args: argparse.Namespace) -> None:
    settings = get_settings()
    configure_structlog()

    if not settings.MONDAY_API_TOKEN or not settings.MONDAY_MASTER_BOARD_ID:
        print("Error: MONDAY_API_TOKEN and MONDAY_MASTER_BOARD_ID must be set")
        sys.exit(1)

    store = SqlRecordStore(session_factory=get_session)
    tracker = SyncStatusTracker(store)
    orchestrator = CRMSyncOrchestrator(
        InquiryRepository(store),
        tracker,
        {SyncTarget.MONDAY: MondayAdapter(settings.monday_config())},
        settings.mapping_context(),
    )

    try:
        pending = [
            doc
            for doc in await tracker.list_never_synced(SyncTarget.MONDAY)
            if has_mapper(str(doc.data.get("formType") or ""), SyncTarget.MONDAY)
        ]
        if args.limit:
            pending = pending[: args.limit]
        logger.info("backfill.found", count=len(pending), dry_run=args.dry_run)

        created = failed = 0
        for doc in pending:
            if args.dry_run:
                print(f"  [dry-run] {doc.id} ({doc.data.get('formType')})")
                continue
            result = await orchestrator.sync(doc.id, SyncTarget.MONDAY, doc.path.split("/")[1])
            if result.success:
                created += 1
            else:
                failed += 1
                print(f"  {doc.id} failed: {result.error}")

        if not args.dry_run:
            print(f"\nBackfill complete: {created} synced, {failed} failed")
    finally:
        await close_db()


def main() -> None:
    parser = argparse.ArgumentParser(description="Backfill Monday items for unsynced inquiries")
    parser.add_argument("--limit", type=int, default=0, help="Maximum inquiries to sync (0 = all)")
    parser.add_argument("--dry-run", action="store_true", help="List inquiries without syncing")
    args = parser.parse_args()

    asyncio.run(main_async(args))


if __name__ == "__main__":
    main()
