import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.inquiries import router as inquiries_router
from app.api.notifications import router as notifications_router
from app.core.config import get_settings
from app.core.dependencies import build_notification_queue
from app.services.recurring_jobs import start_notification_retention_worker
from app.utils.alerting import alert_tracker
from app.utils.rate_limit import get_client_ip, rate_limiter

settings = get_settings()
_retention_task = None

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Gentle Space Realty Notifications API",
    version="1.0.0",
    docs_url="/docs" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.openapi_enabled else None,
)


@app.on_event("startup")
async def _startup_jobs():
    global _retention_task
    if getattr(app.state, "notification_queue", None) is None:
        app.state.notification_queue = build_notification_queue(settings)
    if _retention_task is None and settings.enable_recurring_jobs:
        _retention_task = start_notification_retention_worker(app.state.notification_queue)


@app.on_event("shutdown")
async def _shutdown_jobs():
    global _retention_task
    if _retention_task is not None:
        _retention_task.cancel()
        _retention_task = None
    queue = getattr(app.state, "notification_queue", None)
    if queue is not None:
        await queue.shutdown(timeout=settings.notification_shutdown_timeout_seconds)
        app.state.notification_queue = None


if settings.cors_allow_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

app.include_router(notifications_router, prefix="/api", tags=["notifications"])
app.include_router(inquiries_router, prefix="/api", tags=["inquiries"])


@app.exception_handler(StarletteHTTPException)
async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
    # Hide internal details for 5xx in production unless explicitly enabled.
    if exc.status_code >= 500 and not get_settings().expose_error_details:
        return JSONResponse(status_code=exc.status_code, content={"success": False, "detail": "Internal server error"})
    return JSONResponse(status_code=exc.status_code, content={"success": False, "detail": exc.detail})


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception")
    if get_settings().expose_error_details:
        return JSONResponse(status_code=500, content={"success": False, "detail": str(exc)})
    return JSONResponse(status_code=500, content={"success": False, "detail": "Internal server error"})


@app.middleware("http")
async def api_rate_limit_middleware(request: Request, call_next):
    if request.method == "OPTIONS" or not request.url.path.startswith("/api/"):
        return await call_next(request)

    current = get_settings()
    if not current.rate_limit_api_enabled:
        return await call_next(request)

    ip = get_client_ip(request) or "unknown"
    allowed, _ = rate_limiter.allow(f"api:ip:{ip}", current.rate_limit_api_per_min, 60)
    if not allowed:
        alert_tracker.record("RATE_LIMIT_BLOCKED", {"scope": "api", "path": request.url.path})
        return JSONResponse(status_code=429, content={"success": False, "detail": "Too Many Requests"})

    return await call_next(request)


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    headers = response.headers
    headers.setdefault("X-Content-Type-Options", "nosniff")
    headers.setdefault("X-Frame-Options", "DENY")
    headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    headers.setdefault("Cache-Control", "no-store")
    return response


@app.get("/health")
async def health_check():
    queue = getattr(app.state, "notification_queue", None)
    if queue is None:
        return {"status": "ok", "notifications": None}
    stats = queue.get_queue_stats()
    return {"status": "ok", "notifications": {"queued": stats.queued, "processing": stats.processing}}
