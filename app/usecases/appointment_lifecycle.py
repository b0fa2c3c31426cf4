"""
Appointment lifecycle coordinator.

Confirm, reschedule and cancel commit the appointment change together with a
notification intent. The intent is then processed right away; if the process
dies first, the outbox job picks it up. Notification failures never undo the
appointment change.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config.settings import get_settings
from app.domain.appointment import (
    Appointment,
    AppointmentStatus,
    PaymentStatus,
    SlotChange,
    job_ids_of,
)
from app.domain.notification import NotificationType
from app.domain.notification_intent import IntentKind, IntentStatus, NotificationIntent
from app.infrastructure.appointment_repository import AppointmentRepository
from app.infrastructure.database import DatabaseSession
from app.infrastructure.email_sender import EmailSender, appointment_fields
from app.infrastructure.reminder_store import ReminderConflictError, ReminderStore
from app.infrastructure.whatsapp_campaigns import (
    WhatsAppApiError,
    WhatsAppCampaignClient,
    cancel_whatsapp_reminders,
    notice_variables,
    schedule_whatsapp_reminders,
)
from app.usecases.notification_log import record_notification
from app.usecases.reminder_plan import build_reminder_plan
from app.utils.time import format_slot_date

logger = logging.getLogger(__name__)

RESCHEDULABLE_STATUSES = (AppointmentStatus.BOOKED, AppointmentStatus.SCHEDULED)


class AppointmentStateError(Exception):
    """The appointment is not in a state that allows the transition."""


class AppointmentLifecycle:
    """Keeps email and WhatsApp reminders in step with appointment changes."""

    def __init__(
        self,
        session: AsyncSession,
        whatsapp_client: Optional[WhatsAppCampaignClient] = None,
        email_sender: Optional[EmailSender] = None,
    ):
        self.session = session
        self.appointments = AppointmentRepository(session)
        self.store = ReminderStore(session)
        self.whatsapp = whatsapp_client or WhatsAppCampaignClient()
        self.email_sender = email_sender or EmailSender()

    # Transitions

    async def confirm_payment(self, appointment_id: str) -> Appointment:
        """Mark the appointment booked and paid, then schedule its reminders."""
        appointment = await self.appointments.get(appointment_id)
        stale_job_ids = await self._detach_reminders(appointment)
        await self.appointments.update_status(appointment, AppointmentStatus.BOOKED, PaymentStatus.COMPLETED)
        intent = self._enqueue(appointment.id, IntentKind.CONFIRMED, stale_job_ids)
        await self.session.commit()
        logger.info(f"Payment confirmed for appointment {appointment.id}")

        await self.process_intent(intent.id)
        return appointment

    async def reschedule(self, appointment_id: str, slot: SlotChange) -> Appointment:
        """
        Move the appointment to a new slot and rebuild its reminders.

        Raises:
            AppointmentNotFoundError: If the appointment does not exist
            AppointmentStateError: If the appointment is not booked and paid
        """
        appointment = await self.appointments.get(appointment_id)
        if (
            appointment.status not in RESCHEDULABLE_STATUSES
            or appointment.payment_status != PaymentStatus.COMPLETED
        ):
            raise AppointmentStateError(f"Consultation {appointment_id} cannot be rescheduled")

        old_job_ids = await self._detach_reminders(appointment)
        await self.appointments.update_slot(appointment, slot)
        intent = self._enqueue(appointment.id, IntentKind.RESCHEDULED, old_job_ids)
        await self.session.commit()
        logger.info(
            f"Appointment {appointment.id} rescheduled to {appointment.slot_date} {appointment.slot_start_time}"
        )

        await self.process_intent(intent.id)
        return appointment

    async def cancel(self, appointment_id: str) -> Appointment:
        """Cancel the appointment and withdraw every pending reminder."""
        appointment = await self.appointments.get(appointment_id)
        if appointment.status == AppointmentStatus.CANCELED:
            logger.info(f"Appointment {appointment.id} already canceled")
            return appointment

        old_job_ids = await self._detach_reminders(appointment)
        await self.appointments.update_status(appointment, AppointmentStatus.CANCELED)
        intent = self._enqueue(appointment.id, IntentKind.CANCELED, old_job_ids)
        await self.session.commit()
        logger.info(f"Appointment {appointment.id} canceled")

        await self.process_intent(intent.id)
        return appointment

    async def _detach_reminders(self, appointment: Appointment) -> List[str]:
        """Clear the stored job ids and email plan; return the ids to cancel."""
        job_ids = job_ids_of(appointment.whatsapp_job_ids)
        if job_ids:
            await self.appointments.update_whatsapp_job_ids(appointment, [])
        await self.store.delete_by_appointment(appointment.id)
        return job_ids

    def _enqueue(self, appointment_id: str, kind: IntentKind, cancel_job_ids: List[str]) -> NotificationIntent:
        intent = NotificationIntent(
            appointment_id=appointment_id,
            kind=kind,
            payload={"cancel_job_ids": cancel_job_ids},
            status=IntentStatus.PENDING,
        )
        self.session.add(intent)
        return intent

    # Outbox processing

    async def process_intent(self, intent_id: str) -> bool:
        """
        Claim and run a pending intent.

        Returns:
            False if the intent was not pending (already claimed elsewhere)
        """
        claimed = await self.session.execute(
            update(NotificationIntent)
            .where(NotificationIntent.id == intent_id, NotificationIntent.status == IntentStatus.PENDING)
            .values(status=IntentStatus.PROCESSING, claimed_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        if claimed.rowcount == 0:
            logger.info(f"Notification intent {intent_id} already claimed")
            return False

        intent = await self.session.get(NotificationIntent, intent_id, populate_existing=True)
        kind, appointment_id = intent.kind, intent.appointment_id
        cancel_job_ids = list((intent.payload or {}).get("cancel_job_ids", []))

        status, error = IntentStatus.DONE, None
        try:
            if cancel_job_ids:
                cancelled = await cancel_whatsapp_reminders(cancel_job_ids, self.whatsapp)
                logger.info(f"Cancelled {cancelled}/{len(cancel_job_ids)} WhatsApp jobs for appointment {appointment_id}")

            appointment = await self.appointments.find_by_id(appointment_id)
            if appointment is None:
                logger.warning(f"Appointment {appointment_id} no longer exists, skipping {kind.value} notifications")
            elif kind == IntentKind.CONFIRMED:
                await self._on_confirmed(appointment)
            elif kind == IntentKind.RESCHEDULED:
                await self._on_rescheduled(appointment)
            else:
                await self._on_canceled(appointment)
        except Exception as e:
            await self.session.rollback()
            status, error = IntentStatus.FAILED, str(e)[:1000]
            logger.exception(f"Error processing {kind.value} notifications for appointment {appointment_id}: {e}")

        await self.session.execute(
            update(NotificationIntent)
            .where(NotificationIntent.id == intent_id)
            .values(status=status, error=error, processed_at=datetime.utcnow())
        )
        await self.session.commit()
        return True

    async def _on_confirmed(self, appointment: Appointment) -> None:
        fields = appointment_fields(appointment)
        await self._schedule_reminders(appointment)
        await self._send_notice("consultation_confirmation_1", appointment)
        await self._email_client(
            appointment,
            "Consultation Booking Confirmation - Ineffa",
            "booking_confirmation.html",
            fields,
        )
        await self._alert_staff("New Consultation Booking Alert", appointment.id, fields)
        await record_notification(
            self.session,
            "Payment Completed",
            f"Payment has been completed for the consultation booked by {fields['name']} "
            f"for {appointment.service} service on {fields['date']}.",
            NotificationType.SUCCESS,
        )

    async def _on_rescheduled(self, appointment: Appointment) -> None:
        fields = appointment_fields(appointment)
        await self._schedule_reminders(appointment)
        await self._send_notice("reshedule_email", appointment)
        await self._email_client(
            appointment,
            "Consultation Reschedule Confirmation - Ineffa",
            "reschedule_confirmation.html",
            fields,
        )
        await self._alert_staff("Consultation Reschedule Alert", appointment.id, fields)
        await record_notification(
            self.session,
            "Consultation Rescheduled",
            f"A consultation for {fields['name']} has been rescheduled to {fields['date']} at {fields['time']}.",
        )

    async def _on_canceled(self, appointment: Appointment) -> None:
        await record_notification(
            self.session,
            "Consultation Canceled",
            f"The consultation for {appointment.name} on {format_slot_date(appointment.slot_date)} "
            f"at {appointment.slot_start_time} has been canceled.",
            NotificationType.WARNING,
        )

    async def _schedule_reminders(self, appointment: Appointment) -> None:
        """Create the email plan and schedule WhatsApp reminders for the current slot."""
        plan = build_reminder_plan(appointment)
        if plan:
            try:
                await self.store.create_plan(appointment.id, plan)
            except ReminderConflictError:
                logger.warning(f"Replacing existing email reminders for appointment {appointment.id}")
                await self.store.delete_by_appointment(appointment.id)
                await self.store.create_plan(appointment.id, plan)
            await self.session.commit()
        else:
            logger.info(f"No valid reminders to schedule for appointment {appointment.id} (all times are in the past)")

        refs = await schedule_whatsapp_reminders(appointment, self.whatsapp)
        await self.appointments.update_whatsapp_job_ids(appointment, refs)
        await self.session.commit()
        logger.info(f"Scheduled {len(plan)} email and {len(refs)} WhatsApp reminders for appointment {appointment.id}")

    async def _send_notice(self, template: str, appointment: Appointment) -> None:
        try:
            await self.whatsapp.send_template(template, appointment.phone, notice_variables(appointment))
        except WhatsAppApiError as e:
            logger.error(f"Failed to send WhatsApp {template} for appointment {appointment.id}: {e}")

    async def _email_client(self, appointment: Appointment, subject: str, template: str, fields: dict) -> None:
        result = await self.email_sender.send(appointment.email, subject, template, fields)
        if not result.success:
            logger.error(f"Error sending '{subject}' for appointment {appointment.id}: {result.error}")

    async def _alert_staff(self, title: str, appointment_id: str, fields: dict) -> None:
        result = await self.email_sender.send_internal_alert(title, fields)
        if not result.success:
            logger.warning(f"Internal alert '{title}' not sent for appointment {appointment_id}: {result.error}")


async def reclaim_stalled_intents(session: AsyncSession, older_than: Optional[timedelta] = None) -> int:
    """
    Return intents stuck in processing (the worker died mid-run) to pending.

    Returns:
        Number of intents reclaimed
    """
    if older_than is None:
        older_than = timedelta(seconds=get_settings().outbox_reclaim_seconds)
    cutoff = datetime.utcnow() - older_than

    result = await session.execute(
        update(NotificationIntent)
        .where(
            NotificationIntent.status == IntentStatus.PROCESSING,
            NotificationIntent.processed_at.is_(None),
            or_(NotificationIntent.claimed_at.is_(None), NotificationIntent.claimed_at < cutoff),
        )
        .values(status=IntentStatus.PENDING, claimed_at=None)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    if result.rowcount:
        logger.warning(f"Reclaimed {result.rowcount} stalled notification intents")
    return result.rowcount


async def process_pending_intents(
    session_factory: Optional[async_sessionmaker] = None,
    whatsapp_client: Optional[WhatsAppCampaignClient] = None,
    email_sender: Optional[EmailSender] = None,
) -> int:
    """
    Outbox sweep: run intents still pending, e.g. after a crash.

    Returns:
        Number of intents processed
    """
    processed = 0
    try:
        async with DatabaseSession(session_factory) as session:
            await reclaim_stalled_intents(session)
            result = await session.execute(
                select(NotificationIntent.id)
                .where(NotificationIntent.status == IntentStatus.PENDING)
                .order_by(NotificationIntent.created_at)
            )
            intent_ids = result.scalars().all()
            if intent_ids:
                logger.info(f"Found {len(intent_ids)} pending notification intents")

            lifecycle = AppointmentLifecycle(session, whatsapp_client, email_sender)
            for intent_id in intent_ids:
                if await lifecycle.process_intent(intent_id):
                    processed += 1
    except Exception as e:
        logger.exception(f"Error processing notification outbox: {e}")
    return processed
