"""
Reminder domain model and schemas.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from sqlalchemy import Column, String, DateTime, Integer, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import declarative_base, relationship
from pydantic import BaseModel

Base = declarative_base()


class ReminderKind(str, Enum):
    """The five reminders sent around every consultation, keyed by delay label."""
    DAY_BEFORE = "24hr"
    THIRTY_MINUTES = "30min"
    TEN_MINUTES = "10min"
    LIVE = "live"
    AFTER_START = "after-start"

    @property
    def offset(self) -> timedelta:
        """Offset from the meeting start instant."""
        return _OFFSETS[self]

    @property
    def whatsapp_template(self) -> str:
        return _WHATSAPP_TEMPLATES[self]

    @property
    def subject(self) -> str:
        return _EMAIL_COPY[self][0]

    @property
    def heading(self) -> str:
        return _EMAIL_COPY[self][1]

    @property
    def subheading(self) -> str:
        return _EMAIL_COPY[self][2]


_OFFSETS = {
    ReminderKind.DAY_BEFORE: timedelta(hours=-24),
    ReminderKind.THIRTY_MINUTES: timedelta(minutes=-30),
    ReminderKind.TEN_MINUTES: timedelta(minutes=-10),
    ReminderKind.LIVE: timedelta(0),
    ReminderKind.AFTER_START: timedelta(minutes=5),
}

_WHATSAPP_TEMPLATES = {
    ReminderKind.DAY_BEFORE: "consultation_reminders_24_hour_before",
    ReminderKind.THIRTY_MINUTES: "consultation_reminders_30_min_before",
    ReminderKind.TEN_MINUTES: "consultation_reminders_10_min_before",
    ReminderKind.LIVE: "consultation_reminders_live",
    ReminderKind.AFTER_START: "consultation_reminder_after_5_min",
}

# (subject, heading, subheading)
_EMAIL_COPY = {
    ReminderKind.DAY_BEFORE: (
        "24 Hour Reminder: Your Consultation Tomorrow",
        "Your consultation is scheduled for tomorrow",
        "We're looking forward to meeting you",
    ),
    ReminderKind.THIRTY_MINUTES: (
        "30 Minutes Until Your Consultation",
        "Your consultation starts in 30 minutes",
        "Please prepare to join the meeting",
    ),
    ReminderKind.TEN_MINUTES: (
        "10 Minutes Until Your Consultation",
        "Your consultation starts in 10 minutes",
        "Please get ready to join",
    ),
    ReminderKind.LIVE: (
        "Your Consultation is Starting Now",
        "Your consultation is starting now",
        "Please join the meeting",
    ),
    ReminderKind.AFTER_START: (
        "Consultation Follow-up",
        "Your consultation should be in progress",
        "If you haven't joined yet, please join now or reschedule",
    ),
}


class EmailReminder(Base):
    """SQLAlchemy model for the pending email reminders of one appointment."""

    __tablename__ = "email_reminders"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    # Not a foreign key: appointments may be deleted while reminders are pending
    appointment_id = Column(String(36), nullable=False, unique=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = relationship(
        "EmailReminderItem",
        order_by="EmailReminderItem.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<EmailReminder(id={self.id}, appointment_id={self.appointment_id})>"


class EmailReminderItem(Base):
    """A single scheduled reminder email."""

    __tablename__ = "email_reminder_items"
    __table_args__ = (UniqueConstraint("reminder_id", "position"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    reminder_id = Column(Integer, ForeignKey("email_reminders.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False)
    subject = Column(String(255), nullable=False)
    heading = Column(String(255), nullable=False)
    subheading = Column(String(500), nullable=True)
    scheduled_time = Column(DateTime, nullable=False, index=True)  # naive IST
    sent = Column(Boolean, default=False, nullable=False)
    sent_at = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<EmailReminderItem(subject={self.subject}, scheduled={self.scheduled_time}, sent={self.sent})>"


# Pydantic Schemas

class PlannedReminder(BaseModel):
    """A reminder instant computed from an appointment's slot."""
    kind: ReminderKind
    scheduled_time: datetime
    subject: str
    heading: str
    subheading: Optional[str] = None


class WhatsAppJobRef(BaseModel):
    """A send job scheduled on the WhatsApp campaign platform."""
    delay: ReminderKind
    job_id: str
