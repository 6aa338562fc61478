"""V1 API router -- aggregates all v1 endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.inquiry_hub.api.v1 import events, health, inquiries, intake, tasks

router = APIRouter()

router.include_router(health.router)

v1 = APIRouter(prefix="/v1")
v1.include_router(inquiries.router)
v1.include_router(intake.router)
v1.include_router(tasks.router)
v1.include_router(events.router)

router.include_router(v1)
