"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, CORS, the
lifespan that opens the record store, and the v1 API router.

Services live on ``app.state``. ``create_app(store=...)`` wires them
immediately (tests, scripts); otherwise the lifespan wires them against the
SQL record store and the CRM adapters configured in the environment.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.inquiry_hub.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.inquiry_hub.api.v1.router import router as v1_router
from src.inquiry_hub.config import Settings, get_settings
from src.inquiry_hub.core.database import close_db, get_session, init_db
from src.inquiry_hub.core.monitoring import MetricsMiddleware, get_metrics_response
from src.inquiry_hub.crm.adapter import CRMAdapter, LeadIndex
from src.inquiry_hub.crm.duplicates import DuplicateDetector
from src.inquiry_hub.crm.factory import build_adapters, lead_index_from
from src.inquiry_hub.crm.status import SyncStatusTracker
from src.inquiry_hub.crm.sync import CRMSyncOrchestrator
from src.inquiry_hub.inquiries.directory import StaffDirectory
from src.inquiry_hub.inquiries.fanout import FanoutEngine
from src.inquiry_hub.inquiries.hooks import InquiryLifecycleHooks
from src.inquiry_hub.inquiries.repository import InquiryRepository, InquiryService, TaskRepository
from src.inquiry_hub.inquiries.schemas import SyncTarget
from src.inquiry_hub.store.base import RecordStore
from src.inquiry_hub.store.sql import SqlRecordStore

logger = structlog.get_logger(__name__)


def wire_services(
    app: FastAPI,
    store: RecordStore,
    adapters: dict[SyncTarget, CRMAdapter],
    lead_index: LeadIndex | None,
    settings: Settings,
) -> None:
    """Build every service over ``store`` and attach it to ``app.state``."""
    repository = InquiryRepository(store)
    orchestrator = CRMSyncOrchestrator(
        repository=repository,
        tracker=SyncStatusTracker(store),
        adapters=adapters,
        mapping_context=settings.mapping_context(),
    )
    fanout = FanoutEngine(store, StaffDirectory(store, settings.STAFF_ROLES))

    app.state.store = store
    app.state.inquiry_repository = repository
    app.state.inquiry_service = InquiryService(store, repository)
    app.state.task_repository = TaskRepository(store)
    app.state.sync_orchestrator = orchestrator
    app.state.lifecycle_hooks = InquiryLifecycleHooks(fanout, orchestrator)
    app.state.duplicate_detector = DuplicateDetector(lead_index) if lead_index is not None else None
    app.state.inline_lifecycle_events = settings.INLINE_LIFECYCLE_EVENTS

    logger.info(
        "app.services_wired",
        store=type(store).__name__,
        crm_targets=sorted(t.value for t in adapters),
        duplicate_detection=lead_index is not None,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Open the SQL record store unless a store was injected."""
    settings = get_settings()
    configure_structlog()

    owns_database = getattr(app.state, "store", None) is None
    if owns_database:
        await init_db()
        adapters = build_adapters(settings)
        wire_services(
            app,
            SqlRecordStore(session_factory=get_session),
            adapters,
            lead_index_from(adapters),
            settings,
        )

    yield

    if owns_database:
        await close_db()


def create_app(
    store: RecordStore | None = None,
    adapters: dict[SyncTarget, CRMAdapter] | None = None,
    lead_index: LeadIndex | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Inquiry Hub API",
        version="0.1.0",
        description="Inquiry lifecycle: staff tasks, activity and CRM sync",
        lifespan=lifespan,
    )
    app.state.store = None
    if store is not None:
        wire_services(app, store, adapters or {}, lead_index, settings)

    # Middleware is added in reverse order (last added = outermost)

    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    app.include_router(v1_router)

    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
