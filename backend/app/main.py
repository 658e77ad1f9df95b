"""
Rail Exchange Verification — FastAPI entry point.

Wires the subject, admin, cron and notification routers, request timing,
CORS and database creation at startup.
"""
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.config import get_settings
from app.database import engine, init_db
from app.routes import admin_router, cron_router, notification_router, verification_router
from app.utils.logger import get_logger

settings = get_settings()
logger = get_logger("SERVER", "server.log")
STARTED_AT = time.monotonic()

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=(
        "Seller and contractor verification: document upload, AI document analysis, "
        "SLA batch processing, admin review and renewal reminders."
    ),
)


def _flag(ok, good: str, bad: str) -> str:
    return f"[OK] {good}" if ok else f"[!] {bad}"


def _boot_summary() -> str:
    lines = [
        f"{settings.APP_NAME} v{settings.APP_VERSION}",
        f"database     {settings.DATABASE_URL}",
        f"analyzer     {_flag(settings.GEMINI_API_KEY, settings.GEMINI_MODEL, 'GEMINI_API_KEY missing')}",
        f"cron         {_flag(settings.CRON_SECRET, 'secret set', 'CRON_SECRET missing, triggers locked')}",
        f"storage      s3://{settings.S3_BUCKET} ({settings.AWS_REGION})",
        f"email        {settings.EMAIL_BACKEND}",
        f"sla          standard {settings.STANDARD_SLA_HOURS}h / priority {settings.PRIORITY_SLA_HOURS}h"
        f" / escalate {settings.HARD_ESCALATION_HOURS}h",
    ]
    return "\n".join(["=" * 60, *(f"  {line}" for line in lines), "=" * 60])


@app.on_event("startup")
def on_startup():
    init_db()
    logger.info("\n" + _boot_summary())


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def time_api_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    if request.url.path.startswith("/api"):
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(f"{request.method} {request.url.path} {response.status_code} {elapsed_ms:.1f}ms")
    return response


app.include_router(verification_router)
app.include_router(admin_router)
app.include_router(cron_router)
app.include_router(notification_router)


@app.get("/health", tags=["Health"])
def health():
    """Liveness plus database reachability and integration configuration."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        database = "connected"
    except SQLAlchemyError as e:
        logger.error(f"Health check could not reach the database: {e}")
        database = "disconnected"

    return {
        "status": "healthy" if database == "connected" else "degraded",
        "database": database,
        "ai_analyzer": "available" if settings.GEMINI_API_KEY else "unavailable",
        "storage": "configured" if settings.S3_BUCKET else "unconfigured",
        "email": settings.EMAIL_BACKEND,
        "uptime_seconds": round(time.monotonic() - STARTED_AT, 1),
        "version": settings.APP_VERSION,
    }
