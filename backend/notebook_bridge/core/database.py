import asyncio
import contextlib
import logging
import sqlite3

from sqlalchemy import event
from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import NullPool

from notebook_bridge.core.config import settings

logger = logging.getLogger(__name__)

# Create base class for SQLAlchemy models
Base = declarative_base()


class DatabaseFactory:
    def __init__(self, database_url: str = None):
        self.database_url = database_url or settings.DATABASE_URL
        self.engine = self.get_engine()
        self.session_factory = self.get_session_factory()

    def get_engine(self):
        """Create and return an async engine for the notebook library."""
        try:
            url = make_url(self.database_url)
            if url.drivername == "sqlite":
                url = url.set(drivername="sqlite+aiosqlite")
            is_sqlite = url.drivername.startswith("sqlite")

            logger.info("Creating async database engine (driver=%s)", url.drivername)
            connect_args = {"check_same_thread": False, "timeout": 30} if is_sqlite else {}
            engine = create_async_engine(
                url,
                echo=settings.DEBUG and getattr(logging, settings.SQL_LOG_LEVEL.upper(), logging.WARNING) <= logging.DEBUG,
                poolclass=NullPool,
                connect_args=connect_args,
            )

            if is_sqlite:
                @event.listens_for(engine.sync_engine, "connect")
                def set_sqlite_pragma(dbapi_connection, connection_record):
                    if isinstance(dbapi_connection, sqlite3.Connection):
                        cursor = dbapi_connection.cursor()
                        cursor.execute("PRAGMA journal_mode=WAL")
                        cursor.execute("PRAGMA busy_timeout=5000")
                        cursor.close()

            return engine
        except Exception as e:
            logger.error(f"Error creating database engine: {e}")
            raise

    def get_session_factory(self):
        return sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False,
        )

    async def create_all(self) -> None:
        """Create the library tables if they do not exist yet."""
        # Import models so they register on Base.metadata
        import notebook_bridge.models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


db_factory = DatabaseFactory()


async def get_db():
    """Dependency for getting database session."""
    db = db_factory.session_factory()
    try:
        yield db
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    finally:
        with contextlib.suppress(asyncio.CancelledError):
            try:
                await db.close()
            except Exception as close_error:
                logger.warning(f"Error closing database session: {close_error}")
