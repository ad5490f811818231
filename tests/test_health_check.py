"""
Health probes: liveness, readiness and the readiness check itself.
"""
import pytest
from unittest.mock import AsyncMock, patch

import httpx

from creditflow.core.circuit_breaker import get_email_circuit_breaker
from creditflow.core.config import settings
from creditflow.domain.services.health_service import check_readiness


class _BrokenSession:
    async def __aenter__(self):
        raise ConnectionRefusedError("db down")

    async def __aexit__(self, *exc_info):
        return False


# ============================================================================
# Liveness Probe - GET /health
# ============================================================================


class TestLivenessProbe:
    @pytest.mark.unit
    async def test_liveness_returns_healthy(self, test_client: httpx.AsyncClient) -> None:
        response = await test_client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


# ============================================================================
# Readiness Probe - GET /health/ready
# ============================================================================


class TestReadinessProbe:
    @pytest.mark.unit
    async def test_readiness_all_healthy(self, test_client: httpx.AsyncClient) -> None:
        with patch(
            "creditflow.domain.services.health_service._check_db",
            new_callable=AsyncMock,
            return_value="ok",
        ):
            response = await test_client.get("/health/ready")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "db": "ok", "email": "disabled", "signature": "disabled"}

    @pytest.mark.unit
    async def test_readiness_db_down(self, test_client: httpx.AsyncClient) -> None:
        with patch(
            "creditflow.domain.services.health_service._check_db",
            new_callable=AsyncMock,
            return_value="error: db_unavailable",
        ):
            response = await test_client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"


class TestCheckReadiness:
    @pytest.mark.integration
    async def test_database_ping(self, session_factory) -> None:
        result = await check_readiness(session_factory)
        assert result["db"] == "ok"
        assert result["status"] == "healthy"

    @pytest.mark.unit
    async def test_unreachable_database_is_masked(self) -> None:
        result = await check_readiness(lambda: _BrokenSession())
        assert result["db"] == "error: db_unavailable"
        assert result["status"] == "degraded"
        assert "refused" not in str(result)

    @pytest.mark.integration
    async def test_open_breaker_degrades_configured_collaborator(self, session_factory) -> None:
        breaker = get_email_circuit_breaker()

        async def _fail():
            raise RuntimeError("gateway down")

        for _ in range(breaker.config.failure_threshold):
            with pytest.raises(RuntimeError):
                await breaker.execute(_fail)

        # unconfigured collaborators are reported as disabled whatever their breaker says
        assert (await check_readiness(session_factory))["email"] == "disabled"

        with patch.object(settings, "EMAIL_GATEWAY_URL", "https://mail.example.com"):
            result = await check_readiness(session_factory)
        assert result["email"] == "error: circuit_open"
        assert result["status"] == "degraded"

    @pytest.mark.integration
    async def test_configured_and_closed_is_ok(self, session_factory) -> None:
        with patch.object(settings, "SIGNATURE_SERVICE_URL", "https://sign.example.com"):
            result = await check_readiness(session_factory)
        assert result["signature"] == "ok"
