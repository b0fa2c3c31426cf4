"""
Notification intent model (outbox).
Each appointment transition records the notification work it owes in the same
transaction as the state change, so a crash before that work runs does not
drop it.
"""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Column, String, DateTime, JSON, Enum as SQLEnum

from app.domain.reminder import Base


class IntentKind(str, Enum):
    CONFIRMED = "confirmed"
    RESCHEDULED = "rescheduled"
    CANCELED = "canceled"


class IntentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


class NotificationIntent(Base):
    """SQLAlchemy model for outstanding notification work."""

    __tablename__ = "notification_intents"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    appointment_id = Column(String(36), nullable=False, index=True)
    kind = Column(SQLEnum(IntentKind), nullable=False)
    # e.g. {"cancel_job_ids": [...]} captured before the appointment was changed
    payload = Column(JSON, default=dict, nullable=False)
    status = Column(SQLEnum(IntentStatus), default=IntentStatus.PENDING, index=True)
    error = Column(String(1000), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    claimed_at = Column(DateTime, nullable=True)
    processed_at = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<NotificationIntent(id={self.id}, kind={self.kind}, status={self.status})>"
