"""
CreditFlow - Main FastAPI Application
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse

from creditflow.core.config import settings
from creditflow.core.logging import setup_logging, get_logger
from creditflow.core.middleware import setup_middleware, setup_exception_handlers
from creditflow.api.routes import router as api_router
from creditflow.db.database import engine, Base
from creditflow.db import models  # noqa: F401  registers every table on Base.metadata

# Setup logging before anything else
setup_logging(
    level="DEBUG" if settings.DEBUG else "INFO",
    json_format=not settings.DEBUG,
    app_name=settings.APP_NAME
)

logger = get_logger(__name__)


def _parse_allowed_origins(raw: str) -> list[str]:
    """Parse comma-separated CORS origins string into a clean list."""
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


_OPENAPI_TAGS = [
    {
        "name": "Credit Requests",
        "description": "Incentive requests: creation, signature, HOD and employee approval.",
    },
    {"name": "Wallet", "description": "Balance summary, ledger history and redeemable credits."},
    {"name": "Redemptions", "description": "Redemption requests and the accounts payout queue."},
    {"name": "Notifications", "description": "In-app notices for the caller."},
    {"name": "Admin", "description": "Currency reconciliation."},
    {"name": "Webhooks", "description": "E-signature completion callback."},
    {"name": "Health", "description": "Liveness and readiness probes."},
]


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Incentive credit workflow, wallet ledger and redemption processing.",
    openapi_tags=_OPENAPI_TAGS,
)

# Setup middleware (correlation ID, request logging)
setup_middleware(app)
setup_exception_handlers(app)

allowed_origins = _parse_allowed_origins(settings.ALLOWED_ORIGINS)

if not allowed_origins and settings.DEBUG:
    allowed_origins = [
        "http://localhost",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

if allowed_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Correlation-ID", "X-Signature-Webhook-Secret"],
    )

app.include_router(api_router, prefix="/api")


@app.on_event("startup")
async def startup() -> None:
    """Initialize database tables on startup"""
    logger.info("Starting application", extra_data={"app_name": settings.APP_NAME})
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized")


@app.on_event("shutdown")
async def shutdown() -> None:
    """Cleanup on shutdown"""
    logger.info("Shutting down application")
    await engine.dispose()
    logger.info("Database connections disposed")


@app.get(
    "/health",
    summary="Liveness probe",
    description="The process is up. No dependency checks, so a database outage never triggers a restart.",
    tags=["Health"],
)
async def health_check() -> dict[str, str]:
    return {"status": "healthy"}


@app.get(
    "/health/ready",
    summary="Readiness probe",
    description=(
        "Pings the database and reports the email and e-signature collaborators. "
        "Returns 503 with status=degraded when a check fails."
    ),
    responses={
        200: {
            "description": "All checks passed",
            "content": {
                "application/json": {
                    "example": {"status": "healthy", "db": "ok", "email": "disabled", "signature": "ok"}
                }
            },
        },
        503: {
            "description": "At least one check failed",
            "content": {
                "application/json": {
                    "example": {
                        "status": "degraded",
                        "db": "error: db_unavailable",
                        "email": "ok",
                        "signature": "ok",
                    }
                }
            },
        },
    },
    tags=["Health"],
)
async def readiness_check():
    from creditflow.domain.services.health_service import check_readiness

    result = await check_readiness()
    status_code = 200 if result["status"] == "healthy" else 503
    return JSONResponse(content=result, status_code=status_code)
