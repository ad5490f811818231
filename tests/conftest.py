"""
Pytest Configuration and Fixtures

Provides fixtures for:
- Database sessions (async, in-memory SQLite)
- The FastAPI test client
- Test data factories (users, policies, initiator links)
- A small organisation: admin, HOD, accounts, initiator, employee, freelancer
"""
# JWT_SECRET_KEY must exist before the app is imported; the settings validator
# refuses an empty key when DEBUG=False
import os
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-for-testing-only-do-not-use-in-production")

import pytest
from decimal import Decimal
from types import SimpleNamespace
from typing import AsyncGenerator, Iterable
from unittest.mock import AsyncMock, MagicMock, patch

from httpx import Response

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from creditflow.core.auth import create_access_token
from creditflow.core.config import settings
from creditflow.db.database import Base, get_db
from creditflow.db.models.policy import EmployeeInitiator, EmployeePolicy, Policy, PolicyInitiator
from creditflow.db.models.user import EmployeeType, User, UserRole
from creditflow.domain.roles import Actor
from creditflow.domain.services.credit_request_service import CreditRequestInput, CreditRequestService
from creditflow.domain.services.currency_policy import currency_for
from creditflow.main import app
from creditflow.state_machine.states import CreditRequestType


# Test database URL (SQLite in memory for fast tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

_TEST_JWT_SECRET = "test-jwt-secret-key-for-testing-only-do-not-use-in-production"


def actor_of(user: User) -> Actor:
    """Plain snapshot of a user; stays readable after a session rollback expires the ORM row"""
    return Actor(user_id=user.id, role=user.role, name=user.name, email=user.email)


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def session_factory(async_engine):
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture(scope="function")
async def test_client(db_session: AsyncSession):
    """Create test client with database override"""
    from httpx import AsyncClient, ASGITransport

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ============================================================================
# Test Data Factories
# ============================================================================

@pytest.fixture
def user_factory(db_session: AsyncSession):
    """Factory for creating test users; currency follows the employee type unless given"""
    counter = {"n": 0}

    async def _create_user(
        email: str | None = None,
        name: str | None = "Test User",
        role: UserRole = UserRole.EMPLOYEE,
        employee_type: EmployeeType | None = None,
        hod_id: int | None = None,
        is_active: bool = True,
        currency=None,
    ) -> User:
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@example.com",
            name=name,
            role=role,
            employee_type=employee_type,
            currency=currency or (currency_for(employee_type) if employee_type else None),
            hod_id=hod_id,
            is_active=is_active,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _create_user


@pytest.fixture
def policy_factory(db_session: AsyncSession):
    async def _create_policy(name: str = "Quarterly sales incentive") -> Policy:
        policy = Policy(name=name, description=f"{name} policy", status="active")
        db_session.add(policy)
        await db_session.commit()
        await db_session.refresh(policy)
        return policy

    return _create_policy


@pytest.fixture
def assign_policy(db_session: AsyncSession):
    """Assign a policy to an employee and link the given initiators to the assignment"""
    async def _assign(user_id: int, policy_id: int, initiator_ids: Iterable[int] = ()) -> EmployeePolicy:
        assignment = EmployeePolicy(user_id=user_id, policy_id=policy_id)
        db_session.add(assignment)
        await db_session.flush()
        for initiator_id in initiator_ids:
            db_session.add(PolicyInitiator(assignment_id=assignment.id, initiator_id=initiator_id))
        await db_session.commit()
        await db_session.refresh(assignment)
        return assignment

    return _assign


@pytest.fixture
def link_freelancer(db_session: AsyncSession):
    """Allow ``initiator_id`` to file freelancer requests for ``employee_id``"""
    async def _link(employee_id: int, initiator_id: int) -> EmployeeInitiator:
        link = EmployeeInitiator(employee_id=employee_id, initiator_id=initiator_id)
        db_session.add(link)
        await db_session.commit()
        await db_session.refresh(link)
        return link

    return _link


# ============================================================================
# Sample Organisation
# ============================================================================

@pytest.fixture
async def org(user_factory, policy_factory, assign_policy, link_freelancer) -> SimpleNamespace:
    """
    One department:

    - admin, accounts: staff roles
    - hod: HOD of initiator, employee and freelancer
    - other_hod: HOD of nobody here
    - initiator: linked to the employee's policy assignment and to the freelancer
    - employee: permanent_india (INR), freelancer: freelancer_usa (USD)
    """
    admin = await user_factory(email="admin@example.com", name="Asha Admin", role=UserRole.ADMIN)
    hod = await user_factory(email="hod@example.com", name="Hari Hod", role=UserRole.HOD)
    other_hod = await user_factory(email="other.hod@example.com", name="Omar Hod", role=UserRole.HOD)
    accounts = await user_factory(email="accounts@example.com", name="Anil Accounts", role=UserRole.ACCOUNT)
    initiator = await user_factory(
        email="initiator@example.com",
        name="Ines Initiator",
        employee_type=EmployeeType.PERMANENT_INDIA,
        hod_id=hod.id,
    )
    employee = await user_factory(
        email="employee@example.com",
        name="Esha Employee",
        employee_type=EmployeeType.PERMANENT_INDIA,
        hod_id=hod.id,
    )
    freelancer = await user_factory(
        email="freelancer@example.com",
        name="Finn Freelancer",
        employee_type=EmployeeType.FREELANCER_USA,
        hod_id=hod.id,
    )

    policy = await policy_factory()
    await assign_policy(employee.id, policy.id, initiator_ids=[initiator.id])
    await link_freelancer(freelancer.id, initiator.id)

    return SimpleNamespace(
        admin=actor_of(admin),
        hod=actor_of(hod),
        other_hod=actor_of(other_hod),
        accounts=actor_of(accounts),
        initiator=actor_of(initiator),
        employee=actor_of(employee),
        freelancer=actor_of(freelancer),
        policy_id=policy.id,
    )


@pytest.fixture
def approved_policy_credit(db_session: AsyncSession, org):
    """Run a policy request for the employee through HOD approval; returns the posted credit"""
    async def _approve(
        base_amount: str = "115.00",
        bonus: str = "0",
        deductions: str = "0",
    ) -> SimpleNamespace:
        service = CreditRequestService(db_session)
        request = await service.create(
            org.initiator,
            CreditRequestInput(
                user_id=org.employee.user_id,
                type=CreditRequestType.POLICY,
                base_amount=Decimal(base_amount),
                bonus=Decimal(bonus),
                deductions=Decimal(deductions),
                policy_id=org.policy_id,
            ),
        )
        request, credit = await service.approve_by_hod(org.hod, request.id)
        return SimpleNamespace(request_id=request.id, credit_id=credit.id, amount=credit.amount)

    return _approve


@pytest.fixture
def auth_headers():
    """Bearer header for an Actor"""
    def _headers(actor: Actor) -> dict[str, str]:
        token = create_access_token(actor.user_id, actor.role.value)
        return {"Authorization": f"Bearer {token}"}

    return _headers


# ============================================================================
# Mock External Services
# ============================================================================

def _mock_http_client(mock_client, status_code: int, body: dict) -> AsyncMock:
    mock_response = MagicMock(spec=Response)
    mock_response.status_code = status_code
    mock_response.text = ""
    mock_response.json.return_value = body

    mock_instance = AsyncMock()
    mock_instance.post = AsyncMock(return_value=mock_response)
    mock_instance.__aenter__ = AsyncMock(return_value=mock_instance)
    mock_instance.__aexit__ = AsyncMock(return_value=None)

    mock_client.return_value = mock_instance
    return mock_instance


@pytest.fixture
def mock_email_gateway():
    """Mock email gateway responses; the gateway URL is configured for the test"""
    with patch("httpx.AsyncClient") as mock_client, \
         patch.object(settings, "EMAIL_GATEWAY_URL", "https://mail.example.com"):
        yield _mock_http_client(mock_client, 202, {"queued": True})


@pytest.fixture
def mock_signature_api():
    """Mock e-signature provider responses; the service URL is configured for the test"""
    with patch("httpx.AsyncClient") as mock_client, \
         patch.object(settings, "SIGNATURE_SERVICE_URL", "https://sign.example.com"):
        yield _mock_http_client(mock_client, 201, {"id": "doc-123"})


# ============================================================================
# Isolation
# ============================================================================

@pytest.fixture(autouse=True)
def reset_circuit_breakers():
    """Reset circuit breakers between tests"""
    from creditflow.core.circuit_breaker import CircuitBreaker
    CircuitBreaker.reset_all()
    yield
    CircuitBreaker.reset_all()


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path):
    """No outbound collaborators, proofs under tmp_path, a fixed JWT secret"""
    with patch.object(settings, "JWT_SECRET_KEY", _TEST_JWT_SECRET), \
         patch.object(settings, "JWT_ALGORITHM", "HS256"), \
         patch.object(settings, "JWT_ACCESS_TOKEN_EXPIRE_MINUTES", 480), \
         patch.object(settings, "EMAIL_GATEWAY_URL", ""), \
         patch.object(settings, "SIGNATURE_SERVICE_URL", ""), \
         patch.object(settings, "SIGNATURE_WEBHOOK_SECRET", ""), \
         patch.object(settings, "PROOF_DOCUMENT_DIR", str(tmp_path / "proofs")):
        yield


# Each test gets a fresh in-memory database through async_engine (function scoped)
