"""
Accord API - FastAPI backend for project, resource and portfolio management
"""

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware

# Load environment variables from .env file
load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

from app.database import dispose_engine  # noqa: E402
from app.security import setup_security  # noqa: E402
from app.scheduler import start_scheduler, shutdown_scheduler  # noqa: E402
from app.routers import (  # noqa: E402
    activity,
    allocation,
    contacts,
    dependencies,
    email,
    feedback,
    health,
    masterbook,
    milestones,
    notifications,
    org,
    permissions,
    portfolios,
    projects,
    reports,
    status_updates,
    stream,
    tasks,
    timeline,
)


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "y", "on")


# Lifecycle management
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - startup and shutdown"""
    if _flag("ENABLE_SCHEDULER", "true"):
        start_scheduler()
    else:
        logger.info("Scheduler disabled by ENABLE_SCHEDULER")
    logger.info("Accord API started")
    yield
    shutdown_scheduler()
    await dispose_engine()
    logger.info("Accord API shutdown complete")


app = FastAPI(
    title="Accord API",
    description="Projects, tasks, resource allocation and portfolio reporting",
    version=health.API_VERSION,
    lifespan=lifespan,
)

# =============================================================================
# CORS Configuration
# =============================================================================
# Production accepts HTTPS origins only; development allows localhost.

ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower()


def build_allowed_origins(environment: str, raw: str | None) -> list[str]:
    if environment == "production":
        default_origin = "https://app.accord.dev"
        origins = []
        for origin in (raw or default_origin).split(","):
            origin = origin.strip()
            if not origin:
                continue
            if not origin.startswith("https://"):
                logger.warning("[CORS] Rejecting non-HTTPS origin in production: %s", origin)
                continue
            if "localhost" in origin or "127.0.0.1" in origin:
                logger.warning("[CORS] Rejecting localhost origin in production: %s", origin)
                continue
            origins.append(origin)
        return origins or [default_origin]

    default_origins = "http://localhost:3000,http://localhost:5173,http://localhost:5174"
    return [o.strip() for o in (raw or default_origins).split(",") if o.strip()]


ALLOWED_ORIGINS = build_allowed_origins(ENVIRONMENT, os.getenv("ALLOWED_ORIGINS"))
logger.info("[CORS] Environment: %s, allowed origins: %s", ENVIRONMENT, ALLOWED_ORIGINS)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Requested-With"],
)
app.add_middleware(GZipMiddleware, minimum_size=500)

# Rate limiting, security headers and error handlers; must follow CORS
setup_security(app, ALLOWED_ORIGINS)

# =============================================================================
# Routers
# =============================================================================

for module in (
    health,
    notifications,
    contacts,
    portfolios,
    projects,
    tasks,
    dependencies,
    milestones,
    timeline,
    allocation,
    permissions,
    masterbook,
    status_updates,
    email,
    feedback,
    reports,
    org,
    activity,
    stream,
):
    app.include_router(module.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
