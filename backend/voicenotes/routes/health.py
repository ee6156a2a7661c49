"""
VoiceNotes Backend — Health Check Route
=========================================

What:  GET /health for Docker health checks and load balancers.
How:   Probes the database (SELECT 1) and Gemini (circuit state, then
       list_models) and reports which storage backend is configured.

Status levels:
    healthy    all dependencies operational
    degraded   Gemini unavailable or its circuit is open; notes still work
    unhealthy  database unreachable
"""

import logging
import time

from fastapi import APIRouter
from sqlalchemy import text

from voicenotes import __version__
from voicenotes.database import engine
from voicenotes.schemas.common import HealthResponse
from voicenotes.services.gemini_service import CircuitBreaker, gemini_service
from voicenotes.services.storage_service import recording_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check() -> HealthResponse:
    db_status = "connected"
    gemini_status = "available"
    overall = "healthy"

    # ── Database ──────────────────────────────────────────────────────────
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    # ── Gemini ────────────────────────────────────────────────────────────
    if gemini_service.circuit_breaker.state == CircuitBreaker.OPEN:
        gemini_status = "circuit_open"
    elif not await gemini_service.health_check():
        gemini_status = "unavailable"

    if gemini_status != "available" and overall == "healthy":
        overall = "degraded"

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        gemini=gemini_status,
        storage=recording_service.backend.name,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
