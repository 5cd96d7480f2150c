"""
Test configuration and fixtures.

Provides:
- Fresh in-memory SQLite schema per test
- Staff users per role and bearer-token headers
- HTTPX AsyncClient wired to the test session
- Factories for violations, agents, orders, payouts and salary deductions
"""
import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Generator

# Must be set before any costguard import builds settings / engine / limiter
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["TESTING"] = "1"
os.environ["ENV"] = "test"
os.environ["JWT_SECRET"] = "test-secret"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from costguard.main import app
from costguard.core.deps import get_db
from costguard.core.security import create_access_token
from costguard.db import models  # noqa: F401  (registers tables on Base.metadata)
from costguard.db.base import Base
from costguard.db.enums import (
    DeductionReason,
    DeductionStatus,
    EscalationStatus,
    PayoutStatus,
    Role,
    ViolationStatus,
)
from costguard.db.models import (
    DeliveryAgent,
    EscalationRequest,
    Order,
    Payout,
    SalaryDeduction,
    ThresholdViolation,
    User,
)
from costguard.db.session import SessionLocal, engine


FIXED_NOW = datetime(2026, 3, 4, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Creates the schema, yields a session, then drops everything.

    Services commit freely; isolation comes from rebuilding the schema.
    """
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


# =============================================================================
# User / Auth Fixtures
# =============================================================================

@pytest.fixture
def make_user(db: Session):
    counter = {"n": 0}

    def _make(role: Role, *, is_active: bool = True, name: str | None = None) -> User:
        counter["n"] += 1
        user = User(
            name=name or f"{role.value.upper()} User {counter['n']}",
            email=f"{role.value}-{counter['n']}@test.com",
            role=role.value,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def fc_user(make_user) -> User:
    return make_user(Role.FC)


@pytest.fixture
def gm_user(make_user) -> User:
    return make_user(Role.GM)


@pytest.fixture
def ceo_user(make_user) -> User:
    return make_user(Role.CEO)


@pytest.fixture
def compliance_user(make_user) -> User:
    return make_user(Role.COMPLIANCE)


@pytest.fixture
def staff_user(make_user) -> User:
    return make_user(Role.STAFF)


@pytest.fixture
def auth_headers():
    """Build bearer headers for a user: auth_headers(user)."""
    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}

    return _headers


# =============================================================================
# Domain Factories
# =============================================================================

@pytest.fixture
def make_violation(db: Session):
    def _make(
        amount,
        limit,
        *,
        cost_type: str = "expense",
        category: str | None = None,
        created_by: int | None = None,
        created_at: datetime | None = None,
    ) -> ThresholdViolation:
        amount = Decimal(str(amount))
        limit = Decimal(str(limit))
        violation = ThresholdViolation(
            cost_type=cost_type,
            category=category,
            amount=amount,
            threshold_limit=limit,
            overage_amount=amount - limit,
            status=ViolationStatus.BLOCKED.value,
            created_by=created_by,
            created_at=created_at or FIXED_NOW,
        )
        db.add(violation)
        db.commit()
        return violation

    return _make


@pytest.fixture
def make_agent(db: Session):
    counter = {"n": 0}

    def _make(*, zone: str | None = "Lagos", eligible: bool = True, name: str | None = None):
        counter["n"] += 1
        agent = DeliveryAgent(
            da_code=f"DA-{counter['n']:03d}",
            name=name or f"Agent {counter['n']}",
            zone=zone,
            eligible_for_next_payout=eligible,
        )
        db.add(agent)
        db.commit()
        return agent

    return _make


@pytest.fixture
def make_order(db: Session):
    counter = {"n": 0}

    def _make(agent: DeliveryAgent | None = None, *, customer_name: str = "Test Customer"):
        counter["n"] += 1
        order = Order(
            order_number=f"ORD-{counter['n']:05d}",
            customer_name=customer_name,
            assigned_da_id=agent.id if agent else None,
            total_amount=Decimal("25000"),
        )
        db.add(order)
        db.commit()
        return order

    return _make


@pytest.fixture
def make_payout(db: Session):
    def _make(
        agent: DeliveryAgent,
        *,
        status: PayoutStatus = PayoutStatus.PENDING,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
        order: Order | None = None,
        amount: str = "5000",
        compliance_score: int = 0,
        flagged: bool = False,
    ) -> Payout:
        payout = Payout(
            delivery_agent_id=agent.id,
            order_id=order.id if order else None,
            amount=Decimal(amount),
            status=status.value,
            compliance_score=compliance_score,
            flagged=flagged,
            created_at=created_at or FIXED_NOW,
            updated_at=updated_at,
        )
        db.add(payout)
        db.commit()
        return payout

    return _make


@pytest.fixture
def make_deduction(db: Session, make_violation):
    """Pending deduction backed by a rejected escalation, due ``due_in`` from FIXED_NOW."""
    def _make(
        user: User,
        *,
        amount: str = "5000",
        status: DeductionStatus = DeductionStatus.PENDING,
        due_in: timedelta = timedelta(days=15),
    ) -> SalaryDeduction:
        violation = make_violation(110000, 100000, created_by=user.id)
        violation.status = ViolationStatus.REJECTED.value
        escalation = EscalationRequest(
            threshold_violation_id=violation.id,
            escalation_type=violation.cost_type,
            amount_requested=violation.amount,
            threshold_limit=violation.threshold_limit,
            overage_amount=violation.overage_amount,
            priority="medium",
            approval_required=["fc"],
            status=EscalationStatus.REJECTED.value,
            expires_at=FIXED_NOW + timedelta(hours=48),
            created_by=user.id,
            created_at=FIXED_NOW,
        )
        db.add(escalation)
        db.flush()
        deduction = SalaryDeduction(
            user_id=user.id,
            threshold_violation_id=violation.id,
            escalation_request_id=escalation.id,
            amount=Decimal(amount),
            reason=DeductionReason.REJECTED_ESCALATION.value,
            status=status.value,
            deduction_date=FIXED_NOW + due_in,
            created_at=FIXED_NOW,
        )
        db.add(deduction)
        db.commit()
        return deduction

    return _make


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient sharing the test session; pass auth_headers(user) per request."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
