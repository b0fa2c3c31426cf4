"""
Appointment (consultation) model, owned by the booking subsystem.
"""

import uuid
from datetime import date, datetime
from enum import Enum
from typing import List

from sqlalchemy import Column, String, DateTime, Date, JSON, Enum as SQLEnum
from pydantic import BaseModel, Field

from app.domain.reminder import Base


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""
    PENDING = "pending"
    BOOKED = "booked"
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELED = "canceled"


class PaymentStatus(str, Enum):
    """Payment status enumeration."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Appointment(Base):
    """SQLAlchemy model for consultations."""

    __tablename__ = "consultations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(32), nullable=False)
    service = Column(String(255), nullable=False)
    slot_date = Column(Date, nullable=False)
    slot_start_time = Column(String(5), nullable=False)  # HH:MM, IST
    slot_end_time = Column(String(5), nullable=False)
    meeting_link = Column(String(1000), nullable=True)
    status = Column(SQLEnum(AppointmentStatus), default=AppointmentStatus.PENDING)
    payment_status = Column(SQLEnum(PaymentStatus), default=PaymentStatus.PENDING)
    whatsapp_job_ids = Column(JSON, default=list, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def service_label(self) -> str:
        """Service name as used in client-facing messages."""
        if "consultation" in self.service.lower():
            return self.service
        return f"{self.service} consultation"

    def __repr__(self) -> str:
        return f"<Appointment(id={self.id}, name={self.name}, status={self.status})>"


# Pydantic Schemas

class SlotChange(BaseModel):
    """Schema for moving an appointment to a new slot."""
    slot_date: date
    slot_start_time: str = Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    slot_end_time: str = Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d$")


def job_ids_of(refs: List[dict]) -> List[str]:
    """External job ids from a stored list of ``{delay, job_id}`` pairs."""
    return [ref["job_id"] for ref in refs or [] if ref.get("job_id")]
