"""
SQLite database for users, API keys, sessions and prompts.

Uses aiosqlite with WAL journal mode. Every unit of work opens its own
short-lived connection; SQLite serializes writers while readers proceed.
Uniqueness (case-insensitive username/email, one key per user and name)
is enforced by the schema itself.
"""
import sqlite3
import logging
from pathlib import Path
from typing import Union
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiosqlite

from .conf import DATABASE_PATH
from .exceptions import TransientStorageError

logger = logging.getLogger("prompt_keeper.storage")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT NOT NULL UNIQUE COLLATE NOCASE,
    email TEXT NOT NULL UNIQUE COLLATE NOCASE,
    display_name TEXT NOT NULL,
    password_hash TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS user_secrets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    key_name TEXT NOT NULL DEFAULT 'anthropic',
    ciphertext TEXT NOT NULL,
    iv TEXT NOT NULL,
    auth_tag TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now')),
    UNIQUE(user_id, key_name)
);

CREATE TABLE IF NOT EXISTS prompts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    description TEXT NOT NULL,
    form_data TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    user_id INTEGER REFERENCES users(id) ON DELETE CASCADE,
    data TEXT NOT NULL,
    created_at INTEGER NOT NULL,
    expires_at INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_prompts_user_id ON prompts(user_id);
CREATE INDEX IF NOT EXISTS idx_user_secrets_user_id ON user_secrets(user_id);
CREATE INDEX IF NOT EXISTS idx_sessions_expires_at ON sessions(expires_at);
"""

# columns added after the first release: (table, column, definition)
_ADDED_COLUMNS = (
    ("prompts", "is_public", "INTEGER NOT NULL DEFAULT 0"),
)


class Database:
    """Connection factory and schema owner for the application database."""

    def __init__(
        self,
        path: Union[str, Path, None] = None,
        busy_timeout: int = 5000,
    ):
        self.path = Path(path) if path is not None else DATABASE_PATH
        self._busy_timeout = busy_timeout

    def __repr__(self) -> str:
        return f"<Database path={self.path}>"

    async def _connect(self) -> aiosqlite.Connection:
        conn = await aiosqlite.connect(str(self.path))
        conn.row_factory = aiosqlite.Row
        await conn.execute(f"PRAGMA busy_timeout={int(self._busy_timeout)}")
        await conn.execute("PRAGMA foreign_keys=ON")
        return conn

    async def initialize(self) -> None:
        """Create tables if they don't exist. Called once at startup."""
        logger.info("Initializing database at %s", self.path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = await self._connect()
        except sqlite3.OperationalError as err:
            raise TransientStorageError() from err
        try:
            await conn.execute("PRAGMA journal_mode=WAL")
            await conn.executescript(_SCHEMA)
            for table, column, definition in _ADDED_COLUMNS:
                cursor = await conn.execute(f"PRAGMA table_info({table})")
                existing = {row["name"] for row in await cursor.fetchall()}
                if column not in existing:
                    await conn.execute(
                        f"ALTER TABLE {table} ADD COLUMN {column} {definition}"
                    )
                    logger.info("Added column %s.%s", table, column)
            await conn.commit()
        except sqlite3.OperationalError as err:
            raise TransientStorageError() from err
        finally:
            await conn.close()

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[aiosqlite.Connection]:
        """Yield a connection; commit on success, roll back on error.

        Engine-level I/O failures (locked database, disk errors) surface
        as TransientStorageError.
        """
        try:
            conn = await self._connect()
        except sqlite3.OperationalError as err:
            raise TransientStorageError() from err
        try:
            yield conn
            await conn.commit()
        except sqlite3.OperationalError as err:
            await conn.rollback()
            logger.error("Storage failure on %s: %s", self.path, err)
            raise TransientStorageError() from err
        except BaseException:
            await conn.rollback()
            raise
        finally:
            await conn.close()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Like ``acquire`` but takes the write lock up front (BEGIN IMMEDIATE).

        Use for read-check-write sequences that must be all-or-nothing.
        """
        async with self.acquire() as conn:
            await conn.execute("BEGIN IMMEDIATE")
            yield conn
