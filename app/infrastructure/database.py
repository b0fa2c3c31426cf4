"""
Database setup and session management.
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession, async_sessionmaker

from app.config.settings import get_settings
from app.domain.reminder import Base
from app.domain.appointment import Appointment  # noqa: F401 - needed for table creation
from app.domain.notification import Notification  # noqa: F401 - needed for table creation
from app.domain.notification_intent import NotificationIntent  # noqa: F401 - needed for table creation

settings = get_settings()


def create_database_engine(url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an engine for a file-backed SQLite database.

    Every session checks out its own connection, so one session's commit or
    rollback never touches another session's transaction. WAL lets the
    dispatcher read while a request writes; writers wait on the busy timeout.
    """
    engine = create_async_engine(
        url,
        echo=echo,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute(f"PRAGMA busy_timeout={int(settings.sqlite_busy_timeout_ms)}")
        cursor.close()

    return engine


engine = create_database_engine(settings.database_url, echo=settings.debug)

# Session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_database() -> None:
    """Initialize database and create tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


class DatabaseSession:
    """Context manager for database sessions."""

    def __init__(self, session_factory: async_sessionmaker = None):
        self.session_factory = session_factory or async_session_factory

    async def __aenter__(self) -> AsyncSession:
        self.session = self.session_factory()
        return self.session

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type is not None:
            await self.session.rollback()
        await self.session.close()
