"""
Durable store of email reminders, one document per appointment.

Methods flush but never commit; the caller owns the transaction so a store
change can commit together with the appointment change that caused it.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.domain.appointment import Appointment
from app.domain.reminder import EmailReminder, EmailReminderItem, PlannedReminder
from app.utils.time import to_storage

logger = logging.getLogger(__name__)


class ReminderConflictError(Exception):
    """A reminder document already exists for the appointment."""

    def __init__(self, appointment_id: str):
        super().__init__(f"Email reminders already exist for appointment {appointment_id}")
        self.appointment_id = appointment_id


@dataclass
class DueReminders:
    """A reminder document with due records, joined with its appointment."""
    document: EmailReminder
    appointment: Appointment

    def due_items(self, as_of: datetime) -> List[EmailReminderItem]:
        """Unsent records due at ``as_of``, earliest first."""
        as_of = to_storage(as_of)
        items = [i for i in self.document.items if not i.sent and i.scheduled_time <= as_of]
        return sorted(items, key=lambda i: i.scheduled_time)


class ReminderStore:
    """Persistence operations for email reminder documents."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_appointment(self, appointment_id: str) -> Optional[EmailReminder]:
        result = await self.session.execute(
            select(EmailReminder)
            .where(EmailReminder.appointment_id == appointment_id)
            .options(selectinload(EmailReminder.items))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create_plan(
        self,
        appointment_id: str,
        records: Sequence[PlannedReminder],
    ) -> Optional[EmailReminder]:
        """
        Create the reminder document for an appointment.

        Args:
            appointment_id: Appointment the reminders belong to
            records: Planned reminders, in canonical order

        Returns:
            The new document, or None when there is nothing to schedule

        Raises:
            ReminderConflictError: If the appointment already has a document
        """
        if not records:
            logger.info(f"No future reminders for appointment {appointment_id}, nothing created")
            return None

        if await self.get_by_appointment(appointment_id) is not None:
            raise ReminderConflictError(appointment_id)

        document = EmailReminder(
            appointment_id=appointment_id,
            items=[
                EmailReminderItem(
                    position=index,
                    subject=record.subject,
                    heading=record.heading,
                    subheading=record.subheading,
                    scheduled_time=to_storage(record.scheduled_time),
                    sent=False,
                )
                for index, record in enumerate(records)
            ],
        )
        self.session.add(document)
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise ReminderConflictError(appointment_id) from e

        logger.info(f"Created email reminder {document.id} with {len(records)} reminders for appointment {appointment_id}")
        return document

    async def find_due(self, as_of: datetime) -> List[DueReminders]:
        """
        Find documents holding at least one unsent record due at ``as_of``.

        Documents whose appointment no longer exists are skipped.
        """
        due_exists = (
            select(EmailReminderItem.id)
            .where(
                EmailReminderItem.reminder_id == EmailReminder.id,
                EmailReminderItem.sent.is_(False),
                EmailReminderItem.scheduled_time <= to_storage(as_of),
            )
            .exists()
        )
        result = await self.session.execute(
            select(EmailReminder)
            .where(due_exists)
            .options(selectinload(EmailReminder.items))
            .order_by(EmailReminder.id)
            .execution_options(populate_existing=True)
        )
        documents = result.scalars().all()
        if not documents:
            return []

        appointment_ids = {d.appointment_id for d in documents}
        result = await self.session.execute(
            select(Appointment)
            .where(Appointment.id.in_(appointment_ids))
            .execution_options(populate_existing=True)
        )
        appointments = {a.id: a for a in result.scalars().all()}

        due = []
        for document in documents:
            appointment = appointments.get(document.appointment_id)
            if appointment is None:
                logger.warning(
                    f"Appointment {document.appointment_id} not found for email reminder {document.id}, skipping"
                )
                continue
            due.append(DueReminders(document=document, appointment=appointment))
        return due

    async def mark_sent(self, document_id: int, record_index: int, sent_at: datetime) -> bool:
        """
        Mark one record as sent. Marking an already-sent record is a no-op.

        Returns:
            True if the record changed state
        """
        result = await self.session.execute(
            update(EmailReminderItem)
            .where(
                EmailReminderItem.reminder_id == document_id,
                EmailReminderItem.position == record_index,
                EmailReminderItem.sent.is_(False),
            )
            .values(sent=True, sent_at=to_storage(sent_at))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def delete_if_complete(self, document_id: int) -> bool:
        """
        Delete a document once every record has been sent.

        Returns:
            True if the document was deleted
        """
        result = await self.session.execute(
            select(func.count(EmailReminderItem.id)).where(
                EmailReminderItem.reminder_id == document_id,
                EmailReminderItem.sent.is_(False),
            )
        )
        if result.scalar_one() > 0:
            return False

        deleted = await self._delete_documents(EmailReminder.id == document_id)
        return deleted > 0

    async def delete_by_appointment(self, appointment_id: str) -> int:
        """Delete an appointment's reminder document, whatever its state."""
        deleted = await self._delete_documents(EmailReminder.appointment_id == appointment_id)
        if deleted:
            logger.info(f"Deleted email reminders for appointment {appointment_id}")
        return deleted

    async def _delete_documents(self, criterion) -> int:
        ids = (await self.session.execute(select(EmailReminder.id).where(criterion))).scalars().all()
        if not ids:
            return 0
        await self.session.execute(
            delete(EmailReminderItem)
            .where(EmailReminderItem.reminder_id.in_(ids))
        )
        await self.session.execute(
            delete(EmailReminder)
            .where(EmailReminder.id.in_(ids))
        )
        return len(ids)
