"""
Pytest Configuration and Shared Fixtures.

Sample record types and an in-memory SQLite database for the expiration tests.
"""

from collections.abc import Generator
from datetime import datetime, timedelta
from typing import Any
from unittest.mock import patch

import pytest
import structlog
from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, Session, mapped_column

from src.config.settings import DatabaseSettings, Settings, get_settings
from src.expiration import Expirable, expired_at_column_for
from src.observability import configure_from_settings
from src.persistence import Database, HasTimestamps, Record, utcnow


# =============================================================================
# Sample Records
# =============================================================================


class Plan(Record):
    """Plain record that also carries an expired_at column (join ambiguity)."""

    __tablename__ = "plans"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(64))
    expired_at: Mapped[datetime | None] = mapped_column(nullable=True)


class Subscription(Expirable, HasTimestamps, Record):
    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(64))
    plan_id: Mapped[int | None] = mapped_column(ForeignKey("plans.id"), nullable=True)
    expired_at: Mapped[datetime | None] = expired_at_column_for()


class Coupon(Expirable, Record):
    """Expirable record with a custom expired-at column."""

    __tablename__ = "coupons"

    EXPIRED_AT = "retired_at"

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(String(32))
    retired_at: Mapped[datetime | None] = expired_at_column_for()


class ExpiredHandler:
    """Named handler resolved from a "module:attr" reference."""

    calls: list[Any] = []

    def handle(self, record: Any) -> None:
        ExpiredHandler.calls.append(record)


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture
def test_settings() -> Generator[Settings, None, None]:
    """Provide settings read from a patched environment."""
    with patch.dict(
        "os.environ",
        {
            "DATABASE_URL": "sqlite://",
            "EXPIRATION_DATE_FORMAT": "%d/%m/%Y %H:%M",
            "LOG_LEVEL": "debug",
        },
    ):
        get_settings.cache_clear()
        yield get_settings()
    get_settings.cache_clear()


@pytest.fixture
def configured_logging(test_settings: Settings) -> Generator[Settings, None, None]:
    """structlog configured the way the application configures it."""
    configure_from_settings(test_settings)
    yield test_settings
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def database() -> Generator[Database, None, None]:
    """In-memory database with every sample table created."""
    db = Database(DatabaseSettings(url="sqlite://"))
    db.create_all()
    yield db
    db.drop_all()
    db.disconnect()


@pytest.fixture
def session(database: Database) -> Generator[Session, None, None]:
    session = database.session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(autouse=True)
def flush_listeners() -> Generator[None, None, None]:
    """Listeners are registered per type, so clear them between tests."""
    yield
    for model in (Plan, Subscription, Coupon):
        model.flush_event_listeners()
    ExpiredHandler.calls.clear()


# =============================================================================
# Test Data Fixtures
# =============================================================================


@pytest.fixture
def now() -> datetime:
    return utcnow()


@pytest.fixture
def plans(session: Session, now: datetime) -> dict[str, Plan]:
    """Two plans; the retired one has a past expired_at of its own."""
    basic = Plan(name="basic", expired_at=None)
    retired = Plan(name="retired", expired_at=now - timedelta(days=30))
    session.add_all([basic, retired])
    session.flush()
    return {"basic": basic, "retired": retired}


@pytest.fixture
def subscriptions(
    session: Session,
    plans: dict[str, Plan],
    now: datetime,
) -> dict[str, Subscription]:
    """
    A: never expires (NULL)
    B: expired yesterday
    C: expires tomorrow
    """
    records = {
        "A": Subscription(name="A", plan_id=plans["retired"].id, expired_at=None),
        "B": Subscription(name="B", plan_id=plans["basic"].id, expired_at=now - timedelta(days=1)),
        "C": Subscription(name="C", plan_id=plans["basic"].id, expired_at=now + timedelta(days=1)),
    }
    for record in records.values():
        assert record.save(session) is True
    return records


@pytest.fixture
def coupons(session: Session, now: datetime) -> dict[str, Coupon]:
    records = {
        "live": Coupon(code="LIVE", retired_at=None),
        "retired": Coupon(code="OLD", retired_at=now - timedelta(hours=1)),
    }
    session.add_all(records.values())
    session.flush()
    return records


# =============================================================================
# Utility Functions
# =============================================================================


def names(records: list[Any]) -> set[str]:
    """Names of a list of subscriptions."""
    return {record.name for record in records}
