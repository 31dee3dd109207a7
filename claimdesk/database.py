"""
Async engine and connection helpers for the case store and dedup ledger.

Production runs on Postgres through asyncpg; tests and local development
may point DATABASE_URL at sqlite+aiosqlite.
"""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from .tables import metadata

_engine: AsyncEngine | None = None


def _get_database_url() -> str:
    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        raise ValueError("DATABASE_URL environment variable must be set.")

    # Hosted Postgres hands out plain postgresql:// URLs
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    return database_url


def get_engine() -> AsyncEngine:
    """Return the process-wide engine, creating it from DATABASE_URL on first call."""
    global _engine
    if _engine is None:
        database_url = _get_database_url()
        if database_url.startswith("sqlite"):
            _engine = create_async_engine(database_url)
        else:
            _engine = create_async_engine(
                database_url,
                echo=os.environ.get("SQL_ECHO", "").lower() == "true",
                pool_size=5,
                max_overflow=10,
                pool_timeout=30,
                pool_recycle=1800,
            )
    return _engine


@asynccontextmanager
async def get_connection(
    engine: AsyncEngine | None = None,
) -> AsyncGenerator[AsyncConnection, None]:
    """Read-only connection; falls back to the process-wide engine."""
    async with (engine or get_engine()).connect() as conn:
        yield conn


@asynccontextmanager
async def get_transaction(
    engine: AsyncEngine | None = None,
) -> AsyncGenerator[AsyncConnection, None]:
    """
    Connection inside a transaction.

    Commits when the block exits normally, rolls back if it raises. Every
    collection write goes through here so a failed save leaves the previous
    document in place.
    """
    async with (engine or get_engine()).begin() as conn:
        yield conn


async def create_schema(engine: AsyncEngine | None = None) -> None:
    """Create cases, documents and inbound_events. Postgres uses Alembic instead."""
    async with (engine or get_engine()).begin() as conn:
        await conn.run_sync(metadata.create_all)


async def close_engine() -> None:
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None


def is_configured() -> bool:
    return bool(os.environ.get("DATABASE_URL"))


def get_sync_database_url() -> str:
    """
    DATABASE_URL rewritten for a synchronous driver.

    Alembic migrations run synchronously: psycopg2 for Postgres, the
    built-in sqlite3 driver for SQLite.
    """
    database_url = os.environ.get("DATABASE_URL", "")

    if database_url.startswith("postgresql+asyncpg://"):
        return database_url.replace("postgresql+asyncpg://", "postgresql://", 1)
    if database_url.startswith("postgresql://"):
        return database_url
    if database_url.startswith("sqlite+aiosqlite://"):
        return database_url.replace("sqlite+aiosqlite://", "sqlite://", 1)

    raise ValueError("DATABASE_URL must be set for migrations")
