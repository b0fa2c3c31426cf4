"""
Tests for the file-backed engine: sessions must not share a transaction.
"""

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.domain.appointment import Appointment
from app.domain.reminder import Base, EmailReminder
from app.infrastructure.database import create_database_engine
from app.infrastructure.reminder_store import ReminderStore
from app.usecases.reminder_plan import build_reminder_plan

from conftest import ist


class TestFileDatabaseSessions:
    """Two sessions on the same file database keep separate transactions."""

    @pytest_asyncio.fixture
    async def file_session_factory(self, tmp_path, slot_today_15):
        engine = create_database_engine(f"sqlite+aiosqlite:///{tmp_path}/consultations.db")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        async with factory() as session:
            session.add(slot_today_15)
            await ReminderStore(session).create_plan(
                "appt-123", build_reminder_plan(slot_today_15, now=ist(2026, 3, 9, 9, 0))
            )
            await session.commit()

        yield factory

        await engine.dispose()

    @pytest.mark.asyncio
    async def test_rollback_in_other_session_keeps_pending_delete(self, file_session_factory):
        async with file_session_factory() as request, file_session_factory() as tick:
            assert await ReminderStore(request).delete_by_appointment("appt-123") == 1

            # the other session still sees the committed document
            assert await ReminderStore(tick).get_by_appointment("appt-123") is not None
            await tick.rollback()

            await request.commit()

        async with file_session_factory() as fresh:
            assert await ReminderStore(fresh).get_by_appointment("appt-123") is None

    @pytest.mark.asyncio
    async def test_commit_in_other_session_does_not_publish_pending_change(self, file_session_factory):
        async with file_session_factory() as request, file_session_factory() as tick:
            appointment = await request.get(Appointment, "appt-123")
            appointment.whatsapp_job_ids = [{"delay": "24hr", "job_id": "job-1"}]
            await request.flush()

            await ReminderStore(tick).find_due(ist(2026, 3, 11, 0, 0))
            await tick.commit()

            await request.rollback()

        async with file_session_factory() as fresh:
            stored = (await fresh.execute(select(Appointment.whatsapp_job_ids))).scalar_one()
            assert stored == []
            assert len((await fresh.execute(select(EmailReminder))).scalars().all()) == 1
