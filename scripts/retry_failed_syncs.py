#!/usr/bin/env python3
"""Operator sweep: retry every inquiry whose CRM sync is currently failed.

Usage:
    python scripts/retry_failed_syncs.py
    python scripts/retry_failed_syncs.py --target monday
    python scripts/retry_failed_syncs.py --target insightly --dry-run

Each retry is the same idempotent create-or-update as the original sync: an
inquiry that already has an external reference is updated, never duplicated.
Run it from cron or by hand; nothing retries automatically.

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
from src.inquiry_hub.inquiries.repository import InquiryRepository  # noqa: E402
from src.inquiry_hub.inquiries.schemas import SyncTarget  # noqa: E402
from src.inquiry_hub.store.sql import SqlRecordStore  # noqa: E402

logger = structlog.get_logger(__name__)


async def retry_target(
    orchestrator: CRMSyncOrchestrator,
    tracker: SyncStatusTracker,
    target: SyncTarget,
    dry_run: bool,
) -> tuple[int, int]:
    """Retry every failed sync for ``target``. Returns (succeeded, still_failed)."""
    failed = await tracker.list_failed(target)
    logger.info("retry_sweep.found", target=target.value, count=len(failed))

    succeeded = still_failed = 0
    for doc in failed:
        service_area = doc.path.split("/")[1]
        if dry_run:
            print(f"  [dry-run] {target.value:10s} {doc.id} ({service_area})")
            continue
        result = await orchestrator.retry_sync(doc.id, target, service_area)
        if result.success:
            succeeded += 1
        else:
            still_failed += 1
            print(f"  {target.value:10s} {doc.id} still failing: {result.error}")
    return succeeded, still_failed


async def main_async(args: argparse.Namespace) -> None:
    settings = get_settings()
    configure_structlog()

    adapters = build_adapters(settings)
    targets = [SyncTarget(args.target)] if args.target else list(adapters)
    missing = [t.value for t in targets if t not in adapters]
    if missing:
        print(f"Error: no credentials configured for {', '.join(missing)}")
        sys.exit(1)

    store = SqlRecordStore(session_factory=get_session)
    repository = InquiryRepository(store)
    tracker = SyncStatusTracker(store)
    orchestrator = CRMSyncOrchestrator(repository, tracker, adapters, settings.mapping_context())

    try:
        for target in targets:
            succeeded, still_failed = await retry_target(orchestrator, tracker, target, args.dry_run)
            if not args.dry_run:
                print(f"{target.value}: {succeeded} recovered, {still_failed} still failed")
    finally:
        await close_db()


def main() -> None:
    parser = argparse.ArgumentParser(description="Retry failed CRM syncs")
    parser.add_argument("--target", choices=[t.value for t in SyncTarget], help="Only retry this target")
    parser.add_argument("--dry-run", action="store_true", help="List failed inquiries without syncing")
    args = parser.parse_args()

    asyncio.run(main_async(args))


if __name__ == "__main__":
    main()
