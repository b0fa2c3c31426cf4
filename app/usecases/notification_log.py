"""
Audit trail of appointment events for staff.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.notification import Notification, NotificationType

logger = logging.getLogger(__name__)


async def record_notification(
    session: AsyncSession,
    title: str,
    message: str,
    type: NotificationType = NotificationType.INFO,
) -> None:
    """Write an audit notification. Failures are logged, never raised."""
    try:
        session.add(Notification(title=title, message=message, type=type))
        await session.commit()
    except Exception as e:
        await session.rollback()
        logger.warning(f"Failed to record notification '{title}': {e}")
