"""
Health checks - database ping plus the state of collaborator circuit breakers

liveness: the process is up (no dependency checks)
readiness: the database answers; email/e-signature are reported but only an
open breaker on a configured collaborator degrades the status
"""
from typing import Any, Callable, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.core.circuit_breaker import breaker_states
from creditflow.core.logging import get_logger
from creditflow.db.database import AsyncSessionLocal
from creditflow.domain.services.email_service import EmailService
from creditflow.domain.services.signature_service import SignatureService

logger = get_logger(__name__)

_STATUS_HEALTHY = "healthy"
_STATUS_DEGRADED = "degraded"

_CHECK_OK = "ok"
_CHECK_DISABLED = "disabled"

# Infrastructure details stay out of the response
_ERROR_DB = "error: db_unavailable"
_ERROR_CIRCUIT_OPEN = "error: circuit_open"


async def _check_db(session_factory: Callable[[], AsyncSession]) -> str:
    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
        return _CHECK_OK
    except Exception as e:
        logger.warning("Database health check failed", extra_data={"error": str(e)})
        return _ERROR_DB


def _check_collaborator(name: str, configured: bool, states: dict[str, str]) -> str:
    if not configured:
        return _CHECK_DISABLED
    if states.get(name) == "open":
        return _ERROR_CIRCUIT_OPEN
    return _CHECK_OK


async def check_readiness(session_factory: Optional[Callable[[], AsyncSession]] = None) -> dict[str, Any]:
    states = breaker_states()
    checks = {
        "db": await _check_db(session_factory or AsyncSessionLocal),
        "email": _check_collaborator("email", EmailService.is_configured(), states),
        "signature": _check_collaborator("signature", SignatureService.is_configured(), states),
    }

    all_ok = all(value in (_CHECK_OK, _CHECK_DISABLED) for value in checks.values())
    if not all_ok:
        logger.warning("Readiness check degraded", extra_data=checks)

    return {"status": _STATUS_HEALTHY if all_ok else _STATUS_DEGRADED, **checks}
