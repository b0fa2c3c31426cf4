"""
Email reminder dispatcher.

One tick finds every due, unsent reminder and delivers it. Ticks are run by
the scheduler with ``max_instances=1`` so two ticks never work on the same
record at once. A failed send stays unsent and is picked up by the next tick.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from app.infrastructure.database import DatabaseSession
from app.infrastructure.email_sender import EmailSender, appointment_fields
from app.infrastructure.reminder_store import DueReminders, ReminderStore
from app.utils.time import get_current_time_ist, to_ist

logger = logging.getLogger(__name__)


@dataclass
class TickSummary:
    documents: int = 0
    sent: int = 0
    failed: int = 0
    deleted: int = 0


@dataclass
class _DueItem:
    position: int
    subject: str
    heading: str
    subheading: str


@dataclass
class _DueDocument:
    """Plain copy of a due document, safe to use after a rollback."""
    document_id: int
    appointment_id: str
    name: str
    email: str
    fields: dict
    items: List[_DueItem] = field(default_factory=list)

    @classmethod
    def from_entry(cls, entry: DueReminders, now: datetime) -> "_DueDocument":
        appointment = entry.appointment
        return cls(
            document_id=entry.document.id,
            appointment_id=appointment.id,
            name=appointment.name,
            email=appointment.email,
            fields=appointment_fields(appointment),
            items=[
                _DueItem(item.position, item.subject, item.heading, item.subheading or "")
                for item in entry.due_items(now)
            ],
        )


class EmailReminderDispatcher:
    """Delivers due email reminders."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        email_sender: Optional[EmailSender] = None,
    ):
        self.session_factory = session_factory
        self.email_sender = email_sender or EmailSender()

    async def run_tick(self, now: Optional[datetime] = None) -> TickSummary:
        """
        Run one sweep. Never raises; every error is logged.

        Args:
            now: Evaluation instant (defaults to the current time in IST)
        """
        now = to_ist(now) if now is not None else get_current_time_ist()
        summary = TickSummary()

        try:
            async with DatabaseSession(self.session_factory) as session:
                store = ReminderStore(session)
                due = []
                for entry in await store.find_due(now):
                    try:
                        due.append(_DueDocument.from_entry(entry, now))
                    except Exception as e:
                        logger.exception(f"Skipping email reminder {entry.document.id}: {e}")
                if not due:
                    logger.debug("No pending email reminders found")
                    return summary

                logger.info(f"Found {len(due)} email reminder documents with pending reminders")
                for document in due:
                    summary.documents += 1
                    try:
                        await self._process_document(store, document, summary)
                    except Exception as e:
                        await session.rollback()
                        logger.exception(f"Error processing email reminder {document.document_id}: {e}")
        except Exception as e:
            logger.exception(f"Error in email reminder tick: {e}")

        if summary.documents:
            logger.info(
                f"Email reminder tick done: {summary.sent} sent, {summary.failed} failed, "
                f"{summary.deleted} documents removed"
            )
        return summary

    async def _process_document(self, store: ReminderStore, document: _DueDocument, summary: TickSummary) -> None:
        logger.info(f"Processing reminders for consultation: {document.name} ({document.appointment_id})")

        for item in document.items:
            fields = {**document.fields, "heading": item.heading, "subheading": item.subheading}
            try:
                result = await self.email_sender.send(document.email, item.subject, "reminder.html", fields)
                if not result.success:
                    summary.failed += 1
                    logger.error(
                        f"Failed to send reminder email '{item.subject}' for appointment "
                        f"{document.appointment_id}: {result.error}"
                    )
                    continue

                await store.mark_sent(document.document_id, item.position, get_current_time_ist())
                await store.session.commit()
            except Exception as e:
                summary.failed += 1
                await store.session.rollback()
                logger.exception(
                    f"Error sending reminder '{item.subject}' for appointment {document.appointment_id}: {e}"
                )
                continue

            summary.sent += 1
            logger.info(f"Reminder email '{item.subject}' sent to {document.email}")
            await self._alert_staff(document)

        if await store.delete_if_complete(document.document_id):
            await store.session.commit()
            summary.deleted += 1
            logger.info(f"Removed completed email reminder {document.document_id}")
        else:
            logger.info(f"Email reminder {document.document_id} still has pending reminders")

    async def _alert_staff(self, document: _DueDocument) -> None:
        try:
            await self.email_sender.send_internal_alert("Consultation Reminder Alert", document.fields)
        except Exception as e:
            logger.warning(f"Internal reminder alert failed for appointment {document.appointment_id}: {e}")


async def dispatch_due_email_reminders() -> None:
    """Scheduler entry point for one email reminder tick."""
    await EmailReminderDispatcher().run_tick()
