"""
Unit tests for the email reminder dispatcher.
"""

import pytest
import pytest_asyncio
from datetime import date, timedelta
from unittest.mock import AsyncMock, patch

from sqlalchemy import select

from app.domain.reminder import EmailReminder, PlannedReminder, ReminderKind
from app.infrastructure.email_sender import SendResult, appointment_fields
from app.infrastructure.reminder_store import ReminderStore
from app.usecases.email_dispatcher import EmailReminderDispatcher

from conftest import ist, make_appointment


TICK = ist(2026, 3, 10, 14, 0)


def planned(kind: ReminderKind, when) -> PlannedReminder:
    return PlannedReminder(
        kind=kind,
        scheduled_time=when,
        subject=kind.subject,
        heading=kind.heading,
        subheading=kind.subheading,
    )


class TestEmailReminderDispatcher:
    """Tests for EmailReminderDispatcher.run_tick."""

    @pytest_asyncio.fixture
    async def seed(self, test_session_factory):
        """Store reminder documents directly, bypassing the plan builder."""
        async def _seed(appointment_id, records, with_appointment=True):
            async with test_session_factory() as session:
                if with_appointment:
                    session.add(make_appointment(id=appointment_id, slot_date=date(2026, 3, 10)))
                document = await ReminderStore(session).create_plan(appointment_id, records)
                await session.commit()
                return document.id
        return _seed

    async def _document(self, test_session_factory, appointment_id):
        async with test_session_factory() as session:
            return await ReminderStore(session).get_by_appointment(appointment_id)

    @pytest.mark.asyncio
    async def test_sends_due_records_in_order_and_deletes_document(
        self, seed, test_session_factory, mock_email_sender
    ):
        await seed("appt-1", [
            planned(ReminderKind.TEN_MINUTES, TICK - timedelta(seconds=5)),
            planned(ReminderKind.THIRTY_MINUTES, TICK - timedelta(seconds=10)),
        ])
        dispatcher = EmailReminderDispatcher(test_session_factory, mock_email_sender)

        summary = await dispatcher.run_tick(now=TICK)

        assert summary.sent == 2
        assert summary.deleted == 1
        subjects = [c.args[1] for c in mock_email_sender.send.await_args_list]
        assert subjects == [ReminderKind.THIRTY_MINUTES.subject, ReminderKind.TEN_MINUTES.subject]
        assert mock_email_sender.send.await_args_list[0].args[0] == "rohit@example.com"
        assert await self._document(test_session_factory, "appt-1") is None

    @pytest.mark.asyncio
    async def test_reminder_email_carries_appointment_details(
        self, seed, test_session_factory, mock_email_sender
    ):
        await seed("appt-1", [planned(ReminderKind.LIVE, TICK - timedelta(minutes=1))])

        await EmailReminderDispatcher(test_session_factory, mock_email_sender).run_tick(now=TICK)

        recipient, subject, template, fields = mock_email_sender.send.await_args.args
        assert template == "reminder.html"
        assert fields["heading"] == ReminderKind.LIVE.heading
        assert fields["date"] == "10/03/2026"
        assert fields["time"] == "15:00"
        assert fields["meeting_link"] == "https://zoom.us/j/123"
        mock_email_sender.send_internal_alert.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_future_records_keep_document_alive(self, seed, test_session_factory, mock_email_sender):
        await seed("appt-1", [
            planned(ReminderKind.THIRTY_MINUTES, TICK - timedelta(minutes=1)),
            planned(ReminderKind.LIVE, TICK + timedelta(minutes=30)),
        ])

        summary = await EmailReminderDispatcher(test_session_factory, mock_email_sender).run_tick(now=TICK)

        assert summary.sent == 1
        assert summary.deleted == 0
        document = await self._document(test_session_factory, "appt-1")
        assert [i.sent for i in document.items] == [True, False]
        assert document.items[0].sent_at is not None

    @pytest.mark.asyncio
    async def test_failed_send_does_not_block_siblings(self, seed, test_session_factory, mock_email_sender):
        await seed("appt-1", [
            planned(ReminderKind.THIRTY_MINUTES, TICK - timedelta(minutes=2)),
            planned(ReminderKind.TEN_MINUTES, TICK - timedelta(minutes=1)),
        ])
        await seed("appt-2", [planned(ReminderKind.LIVE, TICK - timedelta(minutes=1))])
        mock_email_sender.send = AsyncMock(side_effect=[
            SendResult(success=False, error="SMTP timeout"),
            SendResult(success=True),
            SendResult(success=True),
        ])

        summary = await EmailReminderDispatcher(test_session_factory, mock_email_sender).run_tick(now=TICK)

        assert summary.failed == 1
        assert summary.sent == 2
        document = await self._document(test_session_factory, "appt-1")
        assert [i.sent for i in document.items] == [False, True]
        assert await self._document(test_session_factory, "appt-2") is None

    @pytest.mark.asyncio
    async def test_failed_record_is_retried_next_tick(self, seed, test_session_factory, mock_email_sender):
        await seed("appt-1", [planned(ReminderKind.LIVE, TICK - timedelta(minutes=1))])
        mock_email_sender.send = AsyncMock(side_effect=[
            SendResult(success=False, error="connection refused"),
            SendResult(success=True),
        ])
        dispatcher = EmailReminderDispatcher(test_session_factory, mock_email_sender)

        first = await dispatcher.run_tick(now=TICK)
        second = await dispatcher.run_tick(now=TICK + timedelta(minutes=1))

        assert (first.sent, first.failed) == (0, 1)
        assert (second.sent, second.deleted) == (1, 1)
        assert mock_email_sender.send.await_count == 2

    @pytest.mark.asyncio
    async def test_sender_exception_is_contained(self, seed, test_session_factory, mock_email_sender):
        await seed("appt-1", [planned(ReminderKind.LIVE, TICK - timedelta(minutes=1))])
        await seed("appt-2", [planned(ReminderKind.LIVE, TICK - timedelta(minutes=1))])
        mock_email_sender.send = AsyncMock(side_effect=[RuntimeError("boom"), SendResult(success=True)])

        summary = await EmailReminderDispatcher(test_session_factory, mock_email_sender).run_tick(now=TICK)

        assert summary.failed == 1
        assert summary.sent == 1
        assert await self._document(test_session_factory, "appt-1") is not None

    @pytest.mark.asyncio
    async def test_sent_records_are_not_sent_again(self, seed, test_session_factory, mock_email_sender):
        await seed("appt-1", [
            planned(ReminderKind.THIRTY_MINUTES, TICK - timedelta(minutes=1)),
            planned(ReminderKind.LIVE, TICK + timedelta(minutes=30)),
        ])
        dispatcher = EmailReminderDispatcher(test_session_factory, mock_email_sender)

        await dispatcher.run_tick(now=TICK)
        summary = await dispatcher.run_tick(now=TICK + timedelta(minutes=1))

        assert summary.documents == 0
        assert mock_email_sender.send.await_count == 1

    @pytest.mark.asyncio
    async def test_document_without_appointment_is_skipped(self, seed, test_session_factory, mock_email_sender):
        await seed("gone", [planned(ReminderKind.LIVE, TICK - timedelta(minutes=1))], with_appointment=False)
        await seed("appt-1", [planned(ReminderKind.LIVE, TICK - timedelta(minutes=1))])

        summary = await EmailReminderDispatcher(test_session_factory, mock_email_sender).run_tick(now=TICK)

        assert summary.documents == 1
        assert summary.sent == 1
        async with test_session_factory() as session:
            remaining = (await session.execute(select(EmailReminder.appointment_id))).scalars().all()
        assert remaining == ["gone"]

    @pytest.mark.asyncio
    async def test_nothing_due_sends_nothing(self, seed, test_session_factory, mock_email_sender):
        await seed("appt-1", [planned(ReminderKind.LIVE, TICK + timedelta(minutes=1))])

        summary = await EmailReminderDispatcher(test_session_factory, mock_email_sender).run_tick(now=TICK)

        assert summary.documents == 0
        mock_email_sender.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_malformed_appointment_does_not_abort_tick(self, seed, test_session_factory, mock_email_sender):
        await seed("appt-1", [planned(ReminderKind.LIVE, TICK - timedelta(minutes=1))])
        await seed("appt-2", [planned(ReminderKind.LIVE, TICK - timedelta(minutes=1))])

        def fields_or_fail(appointment):
            if appointment.id == "appt-1":
                raise ValueError("bad slot date")
            return appointment_fields(appointment)

        with patch("app.usecases.email_dispatcher.appointment_fields", side_effect=fields_or_fail):
            summary = await EmailReminderDispatcher(test_session_factory, mock_email_sender).run_tick(now=TICK)

        assert summary.documents == 1
        assert summary.sent == 1
        assert await self._document(test_session_factory, "appt-1") is not None
        assert await self._document(test_session_factory, "appt-2") is None
