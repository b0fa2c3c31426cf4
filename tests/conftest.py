"""
Pytest configuration and fixtures for Consultation Reminders tests.
"""

from datetime import date, datetime, timedelta
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.domain.reminder import Base
from app.domain.appointment import Appointment, AppointmentStatus, PaymentStatus
from app.domain.notification import Notification  # noqa: F401 - needed for table creation
from app.domain.notification_intent import NotificationIntent  # noqa: F401 - needed for table creation
from app.infrastructure.email_sender import SendResult
from app.utils.time import IST


# Use a separate in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def test_session_factory(test_engine) -> async_sessionmaker:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def test_session(test_session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with test_session_factory() as session:
        yield session
        await session.rollback()


def make_appointment(**overrides) -> Appointment:
    """Build an appointment; defaults to a paid booking three days out."""
    values = dict(
        id="appt-123",
        name="Rohit Sharma",
        email="rohit@example.com",
        phone="7000610047",
        service="Interior Design",
        slot_date=date.today() + timedelta(days=3),
        slot_start_time="15:00",
        slot_end_time="15:30",
        meeting_link="https://zoom.us/j/123",
        status=AppointmentStatus.BOOKED,
        payment_status=PaymentStatus.COMPLETED,
        whatsapp_job_ids=[],
    )
    values.update(overrides)
    return Appointment(**values)


@pytest.fixture
def sample_appointment() -> Appointment:
    return make_appointment()


@pytest.fixture
def slot_today_15() -> Appointment:
    """Appointment fixed at 2026-03-10 15:00 IST."""
    return make_appointment(slot_date=date(2026, 3, 10), slot_start_time="15:00")


def ist(*args) -> datetime:
    """Aware IST datetime shortcut."""
    return datetime(*args, tzinfo=IST)


@pytest.fixture
def mock_email_sender():
    """Email sender whose sends always succeed."""
    sender = MagicMock()
    sender.send = AsyncMock(return_value=SendResult(success=True, message_id="<msg@test>"))
    sender.send_internal_alert = AsyncMock(return_value=SendResult(success=True))
    return sender


@pytest.fixture
def mock_whatsapp_client():
    """WhatsApp campaign client that hands out sequential job ids."""
    client = MagicMock()
    counter = iter(range(1, 1000))
    client.schedule = AsyncMock(side_effect=lambda *args, **kwargs: f"job-{next(counter)}")
    client.cancel = AsyncMock(return_value={"status": "success"})
    client.send_template = AsyncMock(return_value={"status": "success"})
    return client
