"""Health-check router."""

import logging
import os
from datetime import datetime, timezone

from fastapi import APIRouter

from app.database import is_database_configured

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])

API_VERSION = "1.0.0"


@router.get("/")
async def root():
    """Health check"""
    return {"status": "ok", "message": "Accord API is running"}


@router.get("/api/v1/health")
async def health_check():
    """Detailed health check with per-service configuration status."""
    from app import deps
    from app.scheduler import is_scheduler_running

    services = {
        "database": is_database_configured(),
        "supabase": deps.supabase is not None,
        "email": bool(os.getenv("RESEND_API_KEY")),
        "feedback": bool(os.getenv("CANNY_API_KEY")),
        "scheduler": is_scheduler_running(),
    }
    # email, feedback and the scheduler are optional
    degraded = [name for name in ("database", "supabase") if not services[name]]

    return {
        "status": "healthy" if not degraded else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": API_VERSION,
        "services": services,
        "degraded": degraded or None,
    }
