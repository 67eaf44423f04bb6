"""
User records: identity lookups and mutations.

Username and email are unique ignoring case (``COLLATE NOCASE`` columns),
so two racing registrations cannot both succeed: the loser gets a
ConflictError from the INSERT itself.
"""
import sqlite3
import logging
from typing import Optional

from datamodel import BaseModel

from .exceptions import ConflictError, NotFoundError
from .storage import Database

logger = logging.getLogger("prompt_keeper.auth")

_INSERT_USER = """
INSERT INTO users (username, email, display_name, password_hash)
VALUES (?, ?, ?, ?)
"""

_SELECT_BY_LOGIN = """
SELECT id, username, email, display_name, password_hash
FROM users
WHERE username = ? OR email = ?
ORDER BY id
LIMIT 1
"""

_SELECT_BY_ID = """
SELECT id, username, email, display_name, password_hash, created_at, updated_at
FROM users
WHERE id = ?
"""

_SELECT_TAKEN = """
SELECT id FROM users WHERE username = ? OR email = ? LIMIT 1
"""

_SELECT_EMAIL_OWNER = """
SELECT id FROM users WHERE email = ? AND id != ? LIMIT 1
"""

_UPDATE_PROFILE = """
UPDATE users
SET display_name = ?, email = ?, updated_at = datetime('now')
WHERE id = ?
"""

_UPDATE_PASSWORD = """
UPDATE users
SET password_hash = ?, updated_at = datetime('now')
WHERE id = ?
"""


class Identity(BaseModel):
    """Public identity of a user. Never carries the password hash."""
    id: int
    username: str
    email: str
    display_name: str

    @classmethod
    def from_row(cls, row) -> "Identity":
        return cls(
            id=row["id"],
            username=row["username"],
            email=row["email"],
            display_name=row["display_name"],
        )

    def public(self) -> dict:
        """JSON-ready form used by the HTTP layer."""
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "displayName": self.display_name,
        }


class UserStore:
    """Storage operations over the ``users`` table."""

    def __init__(self, db: Database):
        self._db = db

    async def create_user(
        self,
        username: str,
        email: str,
        display_name: str,
        password_hash: str,
    ) -> Identity:
        """Insert a user row.

        Raises:
            ConflictError: If username or email is taken (any case).
        """
        try:
            async with self._db.acquire() as conn:
                cursor = await conn.execute(
                    _INSERT_USER, (username, email, display_name, password_hash)
                )
                user_id = cursor.lastrowid
        except sqlite3.IntegrityError as err:
            raise ConflictError() from err
        logger.info("Created user id=%s", user_id)
        return Identity(
            id=user_id,
            username=username,
            email=email,
            display_name=display_name,
        )

    async def is_taken(self, username: str, email: str) -> bool:
        """True if a user already has this username or this email."""
        async with self._db.acquire() as conn:
            cursor = await conn.execute(_SELECT_TAKEN, (username, email))
            return await cursor.fetchone() is not None

    async def find_by_login(self, login: str) -> Optional[dict]:
        """Look a user up by username or email, ignoring case."""
        async with self._db.acquire() as conn:
            cursor = await conn.execute(_SELECT_BY_LOGIN, (login, login))
            row = await cursor.fetchone()
        return dict(row) if row else None

    async def get(self, user_id: int) -> Optional[dict]:
        async with self._db.acquire() as conn:
            cursor = await conn.execute(_SELECT_BY_ID, (user_id,))
            row = await cursor.fetchone()
        return dict(row) if row else None

    async def email_in_use(self, email: str, exclude_id: int) -> bool:
        async with self._db.acquire() as conn:
            cursor = await conn.execute(_SELECT_EMAIL_OWNER, (email, exclude_id))
            return await cursor.fetchone() is not None

    async def update_profile(
        self, user_id: int, display_name: str, email: str
    ) -> None:
        """Update display name and email.

        Raises:
            ConflictError: If another user owns the email.
            NotFoundError: If the user does not exist.
        """
        try:
            async with self._db.acquire() as conn:
                cursor = await conn.execute(
                    _UPDATE_PROFILE, (display_name, email, user_id)
                )
                changed = cursor.rowcount
        except sqlite3.IntegrityError as err:
            raise ConflictError("Email already in use") from err
        if not changed:
            raise NotFoundError("User not found")

    async def update_password(self, user_id: int, password_hash: str) -> None:
        async with self._db.acquire() as conn:
            cursor = await conn.execute(
                _UPDATE_PASSWORD, (password_hash, user_id)
            )
            changed = cursor.rowcount
        if not changed:
            raise NotFoundError("User not found")

