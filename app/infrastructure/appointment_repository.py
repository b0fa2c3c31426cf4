"""
Appointment repository used by the reminder subsystem.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.appointment import Appointment, AppointmentStatus, PaymentStatus, SlotChange
from app.domain.reminder import WhatsAppJobRef

logger = logging.getLogger(__name__)


class AppointmentNotFoundError(LookupError):
    """No appointment exists with the requested id."""


class AppointmentRepository:
    """Reads and targeted updates of appointments. Callers commit."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_id(self, appointment_id: str) -> Optional[Appointment]:
        result = await self.session.execute(
            select(Appointment)
            .where(Appointment.id == appointment_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get(self, appointment_id: str) -> Appointment:
        """Like ``find_by_id`` but raises ``AppointmentNotFoundError``."""
        appointment = await self.find_by_id(appointment_id)
        if appointment is None:
            raise AppointmentNotFoundError(f"No consultation found with id {appointment_id}")
        return appointment

    async def update_status(
        self,
        appointment: Appointment,
        status: AppointmentStatus,
        payment_status: Optional[PaymentStatus] = None,
    ) -> Appointment:
        appointment.status = status
        if payment_status is not None:
            appointment.payment_status = payment_status
        appointment.updated_at = datetime.utcnow()
        await self.session.flush()
        return appointment

    async def update_slot(self, appointment: Appointment, slot: SlotChange) -> Appointment:
        appointment.slot_date = slot.slot_date
        appointment.slot_start_time = slot.slot_start_time
        appointment.slot_end_time = slot.slot_end_time
        appointment.updated_at = datetime.utcnow()
        await self.session.flush()
        return appointment

    async def update_whatsapp_job_ids(
        self,
        appointment: Appointment,
        refs: List[WhatsAppJobRef],
    ) -> Appointment:
        """Replace the stored WhatsApp job list; never appends."""
        # Assign a new list so the JSON column is flagged dirty
        appointment.whatsapp_job_ids = [ref.model_dump(mode="json") for ref in refs]
        appointment.updated_at = datetime.utcnow()
        await self.session.flush()
        return appointment
