"""FastAPI application entry point."""
import logging
import re
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from taxdesk.core.config import settings
from taxdesk.core.errors import ServiceError
from taxdesk.core.structured_logging import build_log_context, configure_logging
from taxdesk.db.session import engine

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# ============================================================================
# Sentry Integration (optional, for production error tracking)
# ============================================================================

if settings.SENTRY_DSN and settings.ENV != "dev":
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1,
        send_default_pii=False,  # Client tokens and contact details stay out of Sentry
    )
    logger.info("Sentry initialized for error tracking")

# ============================================================================
# Rate Limiting
# ============================================================================

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from taxdesk.core.rate_limit import limiter

# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="TaxDesk API",
    description="Document requests, intake links and drip campaigns for a tax practice CRM",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Organization-ID", "X-User-ID", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)

_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Propagate a caller-supplied X-Request-ID or mint one."""
    incoming = request.headers.get("X-Request-ID", "")
    request_id = incoming if _REQUEST_ID_PATTERN.match(incoming) else uuid4().hex
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ============================================================================
# Error Handling
# ============================================================================

@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    log_extra = build_log_context(
        request_id=getattr(request.state, "request_id", None),
        route=request.url.path if not request.url.path.startswith("/public/") else None,
        method=request.method,
    )
    if exc.status_code >= 500:
        logger.error("%s: %s", exc.__class__.__name__, exc.message, extra=log_extra)
        detail = exc.message if exc.status_code == 502 else "Internal server error"
    else:
        logger.info("%s: %s", exc.__class__.__name__, exc.message, extra=log_extra)
        detail = exc.message
    return JSONResponse(status_code=exc.status_code, content={"detail": detail})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(
        "Unhandled error",
        extra=build_log_context(
            request_id=getattr(request.state, "request_id", None), method=request.method
        ),
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# ============================================================================
# Routers
# ============================================================================

from taxdesk.routers import (
    document_requests,
    documents,
    drip_campaigns,
    intake_links,
    internal,
    public_document_requests,
    public_intake,
    sms,
)

# Public (token-authenticated)
app.include_router(public_document_requests.router)
app.include_router(public_intake.router)

# Staff
app.include_router(document_requests.router)
app.include_router(documents.router)
app.include_router(intake_links.router)
app.include_router(drip_campaigns.router)
app.include_router(sms.router)

# Cron
app.include_router(internal.router)


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
def health():
    """
    Health check endpoint.

    Verifies database connectivity and returns environment info.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
