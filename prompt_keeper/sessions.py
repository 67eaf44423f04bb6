"""
SessionStorage — server-side sessions persisted in the application database.

The client only ever holds ``<session_id>.<hmac>``; the signature is an
HMAC-SHA256 of the id under the provisioned session secret, so forged or
guessed ids are rejected before touching the database. Sessions have a
fixed maximum lifetime counted from creation.
"""
import hmac
import time
import hashlib
import logging
from typing import Optional

from aiohttp import web

from .conf import (
    SESSION_COOKIE_NAME,
    SESSION_COOKIE_SAMESITE,
    SESSION_COOKIE_SECURE,
    SESSION_MAX_AGE,
)
from .data import SessionData
from .storage import Database
from .vault.config import KeyConfig

logger = logging.getLogger("prompt_keeper.sessions")

_UPSERT_SESSION = """
INSERT INTO sessions (id, user_id, data, created_at, expires_at)
VALUES (?, ?, ?, ?, ?)
ON CONFLICT(id) DO UPDATE SET user_id = excluded.user_id,
                              data = excluded.data
"""

_SELECT_SESSION = """
SELECT data, expires_at FROM sessions WHERE id = ?
"""

_DELETE_SESSION = "DELETE FROM sessions WHERE id = ?"

_PURGE_EXPIRED = "DELETE FROM sessions WHERE expires_at <= ?"


class SessionStorage:
    """Creates, loads, saves and destroys server-side sessions."""

    def __init__(
        self,
        db: Database,
        keys: KeyConfig,
        max_age: int = SESSION_MAX_AGE,
        cookie_name: str = SESSION_COOKIE_NAME,
        secure: bool = SESSION_COOKIE_SECURE,
    ):
        self._db = db
        self._secret = keys.session_secret.encode("utf-8")
        self.max_age = max_age
        self.cookie_name = cookie_name
        self.secure = secure

    # ------------------------------------------------------------------
    # Token signing
    # ------------------------------------------------------------------

    def _signature(self, session_id: str) -> str:
        return hmac.new(
            self._secret, session_id.encode("utf-8"), hashlib.sha256
        ).hexdigest()

    def token_for(self, session: SessionData) -> str:
        """Opaque value handed to the client."""
        return f"{session.session_id}.{self._signature(session.session_id)}"

    def _unsign(self, token: Optional[str]) -> Optional[str]:
        if not token or "." not in token:
            return None
        session_id, signature = token.rsplit(".", 1)
        if not hmac.compare_digest(signature, self._signature(session_id)):
            logger.warning("Rejected session token with a bad signature")
            return None
        return session_id

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def new_session(self) -> SessionData:
        return SessionData(new=True, max_age=self.max_age)

    async def load_session(self, token: Optional[str]) -> SessionData:
        """Return the stored session for ``token`` or a fresh one.

        Unsigned, unknown and expired tokens all yield a new empty session.
        """
        session_id = self._unsign(token)
        if session_id is None:
            return self.new_session()
        async with self._db.acquire() as conn:
            cursor = await conn.execute(_SELECT_SESSION, (session_id,))
            row = await cursor.fetchone()
            if row is not None and row["expires_at"] <= int(time.time()):
                await conn.execute(_DELETE_SESSION, (session_id,))
                logger.debug("Session %s expired", session_id)
                row = None
        if row is None:
            return self.new_session()
        try:
            return SessionData.loads(row["data"], id=session_id, max_age=self.max_age)
        except RuntimeError as err:
            logger.error("Discarding unreadable session %s: %s", session_id, err)
            return self.new_session()

    async def save_session(self, session: SessionData) -> None:
        """Persist the serializable part of ``session``."""
        expires = session.created + self.max_age
        async with self._db.acquire() as conn:
            await conn.execute(
                _UPSERT_SESSION,
                (
                    session.session_id,
                    session.user_id,
                    session.dumps(),
                    session.created,
                    expires,
                ),
            )
        session.is_changed = False

    async def regenerate(self, session: SessionData) -> None:
        """Drop the stored row and move ``session`` to a new id.

        Called on every privilege change so a token issued before login
        never refers to an authenticated session.
        """
        async with self._db.acquire() as conn:
            await conn.execute(_DELETE_SESSION, (session.session_id,))
        session.renew_id()

    async def invalidate(self, session: Optional[SessionData]) -> None:
        """Destroy a session. Safe to call for unknown or missing sessions."""
        if session is None:
            return
        async with self._db.acquire() as conn:
            await conn.execute(_DELETE_SESSION, (session.session_id,))
        session.invalidate()

    async def purge_expired(self) -> int:
        """Delete every expired session row; returns how many were removed."""
        async with self._db.acquire() as conn:
            cursor = await conn.execute(_PURGE_EXPIRED, (int(time.time()),))
            removed = cursor.rowcount
        if removed:
            logger.info("Purged %d expired session(s)", removed)
        return removed

    # ------------------------------------------------------------------
    # Cookies
    # ------------------------------------------------------------------

    def set_cookie(self, response: web.StreamResponse, session: SessionData) -> None:
        """Attach the session cookie; the browser sends it back automatically."""
        response.set_cookie(
            self.cookie_name,
            self.token_for(session),
            max_age=self.max_age,
            path="/",
            httponly=True,
            secure=self.secure,
            samesite=SESSION_COOKIE_SAMESITE,
        )

    def forget_cookie(self, response: web.StreamResponse) -> None:
        response.del_cookie(self.cookie_name, path="/")

    def token_from_request(self, request: web.Request) -> Optional[str]:
        return request.cookies.get(self.cookie_name)
