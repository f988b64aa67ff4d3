"""
Database Connection Module
Handles the relational store connection using the SQLAlchemy async engine.
"""

import logging
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from app.core.config import get_settings

logger = logging.getLogger(__name__)

DATABASE_URL = get_settings().database_url

IS_SQLITE = DATABASE_URL.startswith("sqlite")

# SQLite (development/tests) gets no pool sizing; PostgreSQL keeps a small pool
engine_options = {"connect_args": {"check_same_thread": False}} if IS_SQLITE else {
    "pool_size": 5,  # Connection pool size
    "max_overflow": 10,  # Extra connections when pool is full
}

engine = create_async_engine(DATABASE_URL, echo=False, **engine_options)

# Ensure SQLite enforces foreign keys
if IS_SQLITE:
    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

# Session factory - creates new database sessions
async_session_maker = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False  # Objects remain accessible after commit
)


# Base class for all our models
class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncSession:
    """
    Dependency injection for FastAPI routes.
    Yields a database session and ensures cleanup.
    """
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db():
    """
    Create all tables in database.
    Called once at application startup.
    """
    if IS_SQLITE and engine.url.database:
        Path(engine.url.database).parent.mkdir(parents=True, exist_ok=True)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")
