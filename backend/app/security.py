"""
Security hardening for the Accord API.

- IP-keyed rate limiting (slowapi) with stricter limits for outbound
  email, feedback and membership changes
- Security response headers and a per-request id
- Request body size cap
- Exception handlers that keep CORS headers and hide internals in production

Configuration via environment variables:
- RATE_LIMIT_PER_MINUTE: default per-IP limit (default: 100)
- MAX_REQUEST_SIZE_MB: maximum request body size (default: 10)
- TRUSTED_PROXY_COUNT: reverse proxies in front of the app (default: 1)
- SLOW_REQUEST_SECONDS: requests slower than this are logged as warnings (default: 2)
- ENVIRONMENT: 'production' enables HSTS and generic error bodies
"""

import ipaddress
import logging
import os
import time
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

load_dotenv()

logger = logging.getLogger(__name__)

# =============================================================================
# Configuration
# =============================================================================

RATE_LIMIT_PER_MINUTE = int(os.getenv("RATE_LIMIT_PER_MINUTE", "100"))
DEFAULT_RATE_LIMIT = f"{RATE_LIMIT_PER_MINUTE}/minute"

MAX_REQUEST_SIZE_MB = int(os.getenv("MAX_REQUEST_SIZE_MB", "10"))
MAX_REQUEST_SIZE_BYTES = MAX_REQUEST_SIZE_MB * 1024 * 1024

TRUSTED_PROXY_COUNT = int(os.getenv("TRUSTED_PROXY_COUNT", "1"))
SLOW_REQUEST_SECONDS = float(os.getenv("SLOW_REQUEST_SECONDS", "2"))

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
IS_PRODUCTION = ENVIRONMENT.lower() == "production"

SENSITIVE_RATE_LIMIT = "10/minute"
AUTH_RATE_LIMIT = "5/minute"

RETRY_AFTER_SECONDS = 60

# =============================================================================
# Client IP and Rate Limiter
# =============================================================================


def _is_valid_ip(value: str) -> bool:
    if not value or len(value) > 45:
        return False
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def get_client_ip(request: Request) -> str:
    """
    Best-effort client address for rate limiting and audit lines.

    ``X-Forwarded-For`` is read from the right: the last
    ``TRUSTED_PROXY_COUNT`` entries were appended by our own proxies, the one
    before them is the client. Entries further left are client-controlled.
    Falls back to ``X-Real-IP``, then the socket peer, then ``"unknown"``.
    """
    peer = request.client.host if request.client else None

    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
        if hops:
            candidate = hops[-(TRUSTED_PROXY_COUNT + 1)] if len(hops) > TRUSTED_PROXY_COUNT else hops[0]
            if _is_valid_ip(candidate):
                return candidate
            logger.warning("Ignoring malformed X-Forwarded-For hop %r (peer=%s)", candidate[:50], peer)

    real_ip = (request.headers.get("X-Real-IP") or "").strip()
    if real_ip:
        if _is_valid_ip(real_ip):
            return real_ip
        logger.warning("Ignoring malformed X-Real-IP %r (peer=%s)", real_ip[:50], peer)

    if peer and _is_valid_ip(peer):
        return peer
    return "unknown"


limiter = Limiter(
    key_func=get_client_ip,
    default_limits=[DEFAULT_RATE_LIMIT],
    storage_uri="memory://",
    strategy="fixed-window",
)


def get_rate_limiter() -> Limiter:
    return limiter


def rate_limit_sensitive():
    """Stricter limit for endpoints that send mail, post feedback or change membership."""
    return limiter.limit(SENSITIVE_RATE_LIMIT)


def rate_limit_auth():
    return limiter.limit(AUTH_RATE_LIMIT)


# =============================================================================
# Middleware
# =============================================================================

SECURITY_HEADERS: Dict[str, str] = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": (
        "accelerometer=(), camera=(), geolocation=(), gyroscope=(), "
        "magnetometer=(), microphone=(), payment=(), usb=()"
    ),
}
HSTS_HEADER = "max-age=31536000; includeSubDomains; preload"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds security headers and ``X-Request-ID``; logs request timing."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        started = time.perf_counter()

        response = await call_next(request)

        for name, value in SECURITY_HEADERS.items():
            response.headers[name] = value
        if IS_PRODUCTION:
            response.headers["Strict-Transport-Security"] = HSTS_HEADER
        response.headers["X-Request-ID"] = request_id
        response.headers.setdefault("Cache-Control", "no-store, no-cache, must-revalidate, private")

        elapsed = time.perf_counter() - started
        log = logger.warning if elapsed > SLOW_REQUEST_SECONDS else logger.info
        log(
            "%s %s status=%s duration=%.3fs request_id=%s client_ip=%s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed,
            request_id,
            get_client_ip(request),
        )
        return response


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Rejects bodies whose declared length exceeds ``MAX_REQUEST_SIZE_MB``."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        declared = request.headers.get("content-length")
        if declared is not None:
            try:
                size = int(declared)
            except ValueError:
                return JSONResponse(
                    status_code=400,
                    content={"detail": "Invalid Content-Length header", "code": "INVALID_CONTENT_LENGTH"},
                )
            if size > MAX_REQUEST_SIZE_BYTES:
                log_security_event("request_too_large", request, {"content_length": size})
                return JSONResponse(
                    status_code=413,
                    content={
                        "detail": f"Request body too large. Maximum size is {MAX_REQUEST_SIZE_MB}MB.",
                        "code": "REQUEST_TOO_LARGE",
                    },
                )
        return await call_next(request)


# =============================================================================
# Exception Handlers
# =============================================================================


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


def _response_headers(request: Request, allowed_origins: List[str], request_id: str) -> Dict[str, str]:
    # Handlers run outside CORSMiddleware for some errors, so echo the origin here
    headers = {"X-Request-ID": request_id}
    origin = request.headers.get("origin", "")
    if origin in allowed_origins:
        headers["Access-Control-Allow-Origin"] = origin
        headers["Access-Control-Allow-Credentials"] = "true"
    return headers


def create_secure_exception_handler(allowed_origins: List[str]) -> Callable:
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        request_id = _request_id(request)
        logger.error(
            "Unhandled %s on %s %s request_id=%s client_ip=%s",
            type(exc).__name__,
            request.method,
            request.url.path,
            request_id,
            get_client_ip(request),
            exc_info=exc,
        )
        if IS_PRODUCTION:
            content = {
                "detail": "An internal server error occurred. Please try again later.",
                "code": "INTERNAL_ERROR",
                "request_id": request_id,
            }
        else:
            content = {"detail": str(exc), "error_type": type(exc).__name__, "request_id": request_id}
        return JSONResponse(
            status_code=500,
            content=content,
            headers=_response_headers(request, allowed_origins, request_id),
        )

    return unhandled_exception_handler


def create_rate_limit_exceeded_handler(allowed_origins: List[str]) -> Callable:
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        request_id = _request_id(request)
        log_security_event("rate_limit_exceeded", request, {"limit": str(exc.detail)})
        headers = _response_headers(request, allowed_origins, request_id)
        headers["Retry-After"] = str(RETRY_AFTER_SECONDS)
        return JSONResponse(
            status_code=429,
            content={
                "detail": "Rate limit exceeded. Please slow down your requests.",
                "code": "RATE_LIMIT_EXCEEDED",
                "retry_after_seconds": RETRY_AFTER_SECONDS,
                "request_id": request_id,
            },
            headers=headers,
        )

    return rate_limit_handler


def create_http_exception_handler(allowed_origins: List[str]) -> Callable:
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        request_id = _request_id(request)
        if exc.status_code in (401, 403):
            logger.warning(
                "%s on %s client_ip=%s request_id=%s",
                "Authentication failed" if exc.status_code == 401 else "Authorization denied",
                request.url.path,
                get_client_ip(request),
                request_id,
            )
        headers = _response_headers(request, allowed_origins, request_id)
        if exc.headers:
            headers.update(exc.headers)
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail, "request_id": request_id},
            headers=headers,
        )

    return http_exception_handler


def setup_security(app: FastAPI, allowed_origins: List[str]) -> None:
    """Install the limiter, security middleware and exception handlers on ``app``."""
    app.state.limiter = limiter

    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware)

    app.add_exception_handler(RateLimitExceeded, create_rate_limit_exceeded_handler(allowed_origins))
    app.add_exception_handler(Exception, create_secure_exception_handler(allowed_origins))
    app.add_exception_handler(HTTPException, create_http_exception_handler(allowed_origins))

    logger.info(
        "Security configured: rate_limit=%s max_request_size=%sMB environment=%s",
        DEFAULT_RATE_LIMIT,
        MAX_REQUEST_SIZE_MB,
        ENVIRONMENT,
    )


# =============================================================================
# Audit Logging
# =============================================================================


def log_security_event(event_type: str, request: Request, details: Optional[dict] = None) -> None:
    """Emit one ``SECURITY_EVENT`` warning line describing ``request``."""
    event = {
        "event_type": event_type,
        "request_id": getattr(request.state, "request_id", "unknown"),
        "client_ip": get_client_ip(request),
        "path": request.url.path,
        "method": request.method,
        "user_agent": (request.headers.get("user-agent") or "")[:200],
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if details:
        event.update(details)
    logger.warning("SECURITY_EVENT: %s", event)
