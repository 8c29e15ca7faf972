"""Shared test fixtures for all test modules."""

import contextlib
from datetime import UTC, datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  (registers every table on Base.metadata)
from app.core import database as db_module
from app.core.database import Base, get_db
from app.models.discount_code import DiscountCode, DiscountType
from app.models.subscription_plan import SubscriptionPlan

# Create an in-memory SQLite engine with StaticPool so all connections
# share the same database state and there are no file-locking issues.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)

# Fixed clock used by tests that need deterministic windows and expiries
FIXED_NOW = datetime(2026, 3, 2, 12, 0, 30, tzinfo=UTC)


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and SessionLocal so all application code
    uses the in-memory test database. Clears data after each test.
    """
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal

    Base.metadata.create_all(bind=_test_engine)

    yield
    with _test_engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys = OFF"))
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        conn.execute(text("PRAGMA foreign_keys = ON"))
        conn.commit()

    db_module.engine = original_engine
    db_module.SessionLocal = original_session


@pytest.fixture
def db_session():
    """Create a database session for direct repository testing."""
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def make_plan(db_session):
    """Factory for subscription plans."""

    def _make_plan(**overrides) -> SubscriptionPlan:
        values = {
            "business_name": "Premium Monthly",
            "price_amount": Decimal("29.00"),
            "price_currency": "USD",
            "billing_cycle": "monthly",
            "is_default": False,
            "is_active": True,
        }
        values.update(overrides)
        plan = SubscriptionPlan(**values)
        db_session.add(plan)
        db_session.commit()
        db_session.refresh(plan)
        return plan

    return _make_plan


@pytest.fixture
def plan(make_plan):
    """The default plan every code points at unless a test says otherwise."""
    return make_plan(business_name="Standard", is_default=True)


@pytest.fixture
def make_code(db_session, plan):
    """Factory for discount codes; defaults to 50% off the default plan, 10 uses."""

    def _make_code(code: str = "SAVE50", **overrides) -> DiscountCode:
        values = {
            "code": code.upper(),
            "plan_id": plan.id,
            "discount_type": DiscountType.PERCENTAGE.value,
            "discount_value": Decimal("50"),
            "discount_duration_months": 1,
            "max_uses": 10,
            "max_uses_per_customer": 1,
            "is_active": True,
        }
        values.update(overrides)
        discount_code = DiscountCode(**values)
        db_session.add(discount_code)
        db_session.commit()
        db_session.refresh(discount_code)
        return discount_code

    return _make_code
