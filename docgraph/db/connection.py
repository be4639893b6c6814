"""Database connection factory.

Opens an async SQLite connection (default, WAL mode) or an asyncpg pool.
Callers own the returned handle and pass it to repositories and services
explicitly; there is no process-wide connection.
"""
from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Union, Any

import aiosqlite
try:
    import asyncpg
except ImportError:
    asyncpg = None  # type: ignore

from docgraph import config

logger = logging.getLogger("docgraph.db")

# Type alias for DB connection/pool
DbConnection = Union[aiosqlite.Connection, Any]  # Any to support asyncpg.Pool

_SQLITE_CLOSED_MARKERS = ("no active connection", "connection closed", "closed database")


async def open_connection(
    backend: str | None = None,
    db_path: Path | str | None = None,
    database_url: str | None = None,
) -> DbConnection:
    """Open a new database connection/pool for the configured backend."""
    backend = backend or config.DB_BACKEND

    if backend == "postgres":
        if not asyncpg:
            raise ImportError("asyncpg is required for Postgres backend.")
        url = database_url or config.DATABASE_URL
        logger.info("Connecting to PostgreSQL")
        return await asyncpg.create_pool(url)

    path = str(db_path or config.DB_PATH)
    if path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = await aiosqlite.connect(path)
    conn.row_factory = aiosqlite.Row
    await conn.execute("PRAGMA journal_mode=WAL")
    await conn.execute("PRAGMA foreign_keys=ON")
    await conn.execute("PRAGMA busy_timeout=5000")
    logger.info("Database connection established: %s", path)
    return conn


async def close_connection(db: DbConnection | None) -> None:
    """Close a connection or pool returned by open_connection."""
    if db is None:
        return
    await db.close()
    logger.info("Database connection closed")


def is_connection_error(exc: BaseException) -> bool:
    """True when ``exc`` means the store connection itself is gone.

    Such errors abort a batch run; anything else is isolated to the file or
    request that triggered it.
    """
    if isinstance(exc, ConnectionError):
        return True
    message = str(exc).lower()
    if isinstance(exc, (sqlite3.ProgrammingError, ValueError)) and not isinstance(exc, UnicodeError):
        return any(marker in message for marker in _SQLITE_CLOSED_MARKERS)
    if asyncpg is not None:
        connection_errors = (
            asyncpg.exceptions.ConnectionDoesNotExistError,
            asyncpg.exceptions.PostgresConnectionError,
            asyncpg.exceptions.InterfaceError,
        )
        if isinstance(exc, connection_errors):
            return True
    return False
