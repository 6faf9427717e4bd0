# file: app/database/connection.py

import logging
from contextlib import asynccontextmanager

from sqlalchemy import DateTime, Interval, func, literal_column
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from app import config

logger = logging.getLogger(__name__)

engine = create_async_engine(config.DATABASE_URL, echo=False)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)


class Base(DeclarativeBase):
    pass


def dialect_insert(db: AsyncSession, table):
    """
    Returns an INSERT construct for the session's backend that supports
    ON CONFLICT clauses (PostgreSQL in production, SQLite locally and in tests).
    """
    dialect_name = db.get_bind().dialect.name
    if dialect_name == "postgresql":
        return postgresql.insert(table)
    if dialect_name == "sqlite":
        return sqlite.insert(table)
    raise RuntimeError(f"Upserts are not supported on the '{dialect_name}' backend")


def minutes_before(db: AsyncSession, timestamp, minutes):
    """
    SQL expression for `timestamp - minutes` where `minutes` is an integer
    column. SQLite truncates the result to whole seconds.
    """
    dialect_name = db.get_bind().dialect.name
    if dialect_name == "postgresql":
        return timestamp - literal_column("interval '1 minute'", type_=Interval) * minutes
    if dialect_name == "sqlite":
        return func.datetime(timestamp, func.printf("-%d minutes", minutes), type_=DateTime)
    raise RuntimeError(f"Interval arithmetic is not supported on the '{dialect_name}' backend")


async def get_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def get_db_session():
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db():
    # Models must be registered on Base.metadata before create_all runs.
    from app.database import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready.")
