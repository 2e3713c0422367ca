# helpmatch/transport/http_app.py
"""
HTTP application: intake endpoints plus the in-process notification scheduler.

Security layers:
1. Public: health and intake endpoints
2. Protected: admin endpoints (require admin token)
3. No information leakage in production
"""
from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from helpmatch.config import settings
from helpmatch.core.matching.domain import MatchingConfig
from helpmatch.core.matching.pipeline import NotificationPipeline
from helpmatch.core.matching.scheduler import NotificationScheduler
from helpmatch.infra.db_async import close_pool, init_pool
from helpmatch.infra.http_client import close_sender_session
from helpmatch.infra.logging_config import get_logger, setup_logging
from helpmatch.infra.metrics import get_metrics_collector
from helpmatch.infra.pg_account_directory_async import get_account_directory
from helpmatch.infra.pg_help_offer_repo_async import get_help_offer_repo
from helpmatch.infra.pg_help_request_repo_async import get_help_request_repo
from helpmatch.infra.pg_stats_repo_async import get_stats_repo
from helpmatch.infra.schema_validator import validate_schema_version
from helpmatch.infra.sendgrid_sender import get_mail_sender
from helpmatch.intake.errors import IntakeError
from helpmatch.intake.models import (
    CreateHelpOffer,
    CreateHelpRequest,
    CreatedResponse,
    OfferReply,
    OkResponse,
    ReplyResponse,
    ReportPost,
)
from helpmatch.intake.service import IntakeApplicationService
from helpmatch.transport.middleware import (
    RequestIDMiddleware,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
)
from helpmatch.transport.security import require_admin_auth, sanitize_error_message

# Initialize logging first
setup_logging(
    level=settings.log_level,
    use_json=settings.is_production,
)

logger = get_logger(__name__)


# ============================================================================
# DEPENDENCIES
# ============================================================================

def get_intake(request: Request) -> IntakeApplicationService:
    """Get intake service from app state"""
    return request.app.state.intake


def get_scheduler(request: Request) -> NotificationScheduler:
    """Get notification scheduler from app state"""
    return request.app.state.scheduler


# ============================================================================
# LIFESPAN
# ============================================================================

@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    """Application lifecycle: startup and shutdown"""

    # STARTUP
    logger.info(
        f"Starting application: env={settings.app_env}, run_mode={settings.run_mode}"
    )

    await init_pool()
    logger.info("Database pool initialized")

    # Validate schema version (does NOT run migrations)
    try:
        schema_result = await validate_schema_version()
        logger.info(
            f"Schema validated: {schema_result['current_version']}",
            extra=schema_result,
        )
    except Exception:
        logger.critical(
            "Schema validation failed. Run migrations first: python -m helpmatch.infra.migrate",
            exc_info=True,
        )
        await close_pool()
        raise

    config = MatchingConfig.from_settings(settings)
    sender = get_mail_sender(settings)
    requests = get_help_request_repo()

    pipeline = NotificationPipeline(
        offers=get_help_offer_repo(),
        requests=requests,
        directory=get_account_directory(),
        sender=sender,
        config=config,
    )
    scheduler = NotificationScheduler(requests=requests, pipeline=pipeline, config=config)

    fastapi_app.state.scheduler = scheduler
    fastapi_app.state.intake = IntakeApplicationService(
        requests=requests,
        stats=get_stats_repo(),
        sender=sender,
        config=config,
    )

    # Only tick in "all" or "worker" mode so web replicas don't double-process
    if settings.run_mode in ("all", "worker") and settings.scheduler_enabled:
        await scheduler.start()
    elif not settings.scheduler_enabled:
        logger.info("Notification scheduler skipped (scheduler_enabled=false)")
    else:
        logger.info(f"Notification scheduler skipped (run_mode={settings.run_mode})")

    logger.info("Application startup complete")

    yield

    # SHUTDOWN
    logger.info("Shutting down application")

    if scheduler.running:
        await scheduler.stop()

    await close_sender_session()
    await close_pool()
    logger.info("Application shutdown complete")


# ============================================================================
# CREATE APP
# ============================================================================

app = FastAPI(
    title="helpmatch",
    description="Neighbourhood help requests matched to nearby helpers by email",
    version="1.0.0",
    lifespan=lifespan,
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
    openapi_url=None if settings.is_production else "/openapi.json",
)

app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware, enabled=settings.enable_request_logging)
app.add_middleware(RequestIDMiddleware)


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with appropriate logging"""
    if exc.status_code >= 500:
        logger.error(f"Server error: {exc.detail}", extra={"status_code": exc.status_code})

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=exc.headers,
    )


@app.exception_handler(IntakeError)
async def intake_error_handler(request: Request, exc: IntakeError):
    """Map typed intake errors to their status codes"""
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions"""
    logger.error(f"Unhandled exception: {exc.__class__.__name__}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={"error": sanitize_error_message(exc, settings.is_production)},
    )


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/health")
def health():
    """Liveness probe for load balancers. Returns minimal information."""
    return {"status": "ok"}


@app.post("/ask-for-help", response_model=CreatedResponse, status_code=201)
async def ask_for_help(
    payload: CreateHelpRequest,
    intake: IntakeApplicationService = Depends(get_intake),
):
    return await intake.ask_for_help(payload)


@app.post("/offer-help", response_model=CreatedResponse, status_code=201)
async def offer_help(
    payload: CreateHelpOffer,
    intake: IntakeApplicationService = Depends(get_intake),
):
    return await intake.subscribe_region(payload)


@app.post("/ask-for-help/{request_id}/offer-help", response_model=ReplyResponse)
async def reply_to_request(
    request_id: str,
    payload: OfferReply,
    intake: IntakeApplicationService = Depends(get_intake),
):
    return await intake.forward_reply(request_id, payload)


@app.get("/stats")
async def stats(intake: IntakeApplicationService = Depends(get_intake)):
    """Public activity counters."""
    return await intake.get_stats()


@app.post("/reported-posts", response_model=OkResponse)
async def report_post(
    payload: ReportPost,
    intake: IntakeApplicationService = Depends(get_intake),
):
    return await intake.report_post(payload)


# ============================================================================
# ADMIN ENDPOINTS (Require admin token)
# ============================================================================

@app.get("/metrics", dependencies=[Depends(require_admin_auth)])
def metrics():
    """In-process counters and histograms."""
    return get_metrics_collector().get_metrics()


@app.post("/admin/notifications/run", dependencies=[Depends(require_admin_auth)])
async def admin_run_notifications(
    scheduler: NotificationScheduler = Depends(get_scheduler),
):
    """Run one notification tick now and return its report."""
    report = await scheduler.run_once()
    logger.info(f"Manual notification tick: {report.selected} request(s) selected")
    return report.to_dict()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "helpmatch.transport.http_app:app",
        host="0.0.0.0",
        port=8080,
        reload=not settings.is_production,
        log_level=settings.log_level.lower(),
        access_log=not settings.is_production,
        server_header=False,
    )
