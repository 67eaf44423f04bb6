"""
Authenticator — registration, login, logout and profile maintenance.

Every operation receives the caller's ``SessionData`` explicitly. A
successful register/login moves that session to a fresh id, binds the
user id to it and persists it through ``SessionStorage``.

Security Note:
    Login failures are deliberately undifferentiated: an unknown
    identifier and a wrong password raise the same AuthError, and an
    unknown identifier still pays for one bcrypt comparison.
"""
import re
import logging
from typing import Optional

from .conf import MIN_PASSWORD_LENGTH
from .data import SessionData
from .exceptions import (
    AuthError,
    ConflictError,
    Unauthenticated,
    ValidationError,
)
from .passwords import PasswordHasher
from .sessions import SessionStorage
from .users import Identity, UserStore

logger = logging.getLogger("prompt_keeper.auth")

USERNAME_PATTERN = re.compile(r"[a-zA-Z0-9_-]+")
EMAIL_PATTERN = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")


def validate_username(username: str) -> None:
    if len(username) < 3 or len(username) > 30:
        raise ValidationError("Username must be 3-30 characters")
    if not USERNAME_PATTERN.fullmatch(username):
        raise ValidationError(
            "Username can only contain letters, numbers, hyphens, and underscores"
        )


def validate_email(email: str) -> None:
    if not EMAIL_PATTERN.fullmatch(email):
        raise ValidationError("Invalid email format")


def validate_password(password: str, label: str = "Password") -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"{label} must be at least {MIN_PASSWORD_LENGTH} characters"
        )


class Authenticator:
    """Account operations over the user store and session storage."""

    def __init__(
        self,
        users: UserStore,
        sessions: SessionStorage,
        hasher: Optional[PasswordHasher] = None,
    ):
        self._users = users
        self._sessions = sessions
        self._hasher = hasher or PasswordHasher()
        # compared against when the identifier is unknown
        self._dummy_hash = self._hasher.hash("not-a-real-password")

    async def _establish(self, session: SessionData, user_id: int) -> None:
        await self._sessions.regenerate(session)
        session.bind(user_id)
        await self._sessions.save_session(session)

    async def register(
        self,
        session: SessionData,
        username: str,
        email: str,
        display_name: str,
        password: str,
    ) -> Identity:
        """Create an account and log it in.

        Raises:
            ValidationError: Missing or malformed field.
            ConflictError: Username or email already taken (ignoring case).
        """
        if not (username and email and display_name and password):
            raise ValidationError("All fields are required")
        validate_username(username)
        validate_email(email)
        validate_password(password)

        if await self._users.is_taken(username, email):
            raise ConflictError()

        password_hash = self._hasher.hash(password)
        # the UNIQUE NOCASE constraints settle any race past the check above
        identity = await self._users.create_user(
            username, email, display_name, password_hash
        )
        await self._establish(session, identity.id)
        logger.info("Registered user id=%s", identity.id)
        return identity

    async def login(
        self, session: SessionData, login: str, password: str
    ) -> Identity:
        """Authenticate by username or email.

        Raises:
            ValidationError: Identifier or password missing.
            AuthError: Unknown identifier or wrong password.
        """
        if not login or not password:
            raise ValidationError("Username/email and password are required")
        user = await self._users.find_by_login(login)
        if user is None:
            self._hasher.verify(self._dummy_hash, password)
            raise AuthError()
        if not self._hasher.verify(user["password_hash"], password):
            raise AuthError()
        await self._establish(session, user["id"])
        logger.info("User id=%s logged in", user["id"])
        return Identity.from_row(user)

    async def logout(self, session: Optional[SessionData]) -> None:
        """Destroy the session. Succeeds even if nobody is logged in."""
        user_id = session.user_id if session is not None else None
        await self._sessions.invalidate(session)
        if user_id is not None:
            logger.info("User id=%s logged out", user_id)

    async def _current_user(self, session: Optional[SessionData]) -> dict:
        if session is None or not session.authenticated:
            raise Unauthenticated()
        user = await self._users.get(session.user_id)
        if user is None:
            raise Unauthenticated("User not found")
        return user

    async def current_identity(self, session: Optional[SessionData]) -> Identity:
        """Identity bound to ``session``.

        Raises:
            Unauthenticated: No user bound, or the user no longer exists.
        """
        return Identity.from_row(await self._current_user(session))

    async def change_password(
        self,
        session: SessionData,
        current_password: str,
        new_password: str,
    ) -> None:
        """Replace the password after re-checking the current one.

        Raises:
            Unauthenticated: Session not logged in.
            ValidationError: Missing fields or new password too short.
            AuthError: Current password is incorrect.
        """
        user = await self._current_user(session)
        if not current_password or not new_password:
            raise ValidationError("Current and new password are required")
        validate_password(new_password, label="New password")
        if not self._hasher.verify(user["password_hash"], current_password):
            raise AuthError("Current password is incorrect")
        await self._users.update_password(
            user["id"], self._hasher.hash(new_password)
        )
        logger.info("User id=%s changed password", user["id"])

    async def update_profile(
        self,
        session: SessionData,
        display_name: str,
        email: str,
    ) -> Identity:
        """Change display name and email.

        Raises:
            Unauthenticated: Session not logged in.
            ValidationError: Missing field or malformed email.
            ConflictError: Email belongs to another user.
        """
        user = await self._current_user(session)
        if not display_name or not email:
            raise ValidationError("displayName and email are required")
        validate_email(email)
        if await self._users.email_in_use(email, user["id"]):
            raise ConflictError("Email already in use")
        await self._users.update_profile(user["id"], display_name, email)
        return Identity(
            id=user["id"],
            username=user["username"],
            email=email,
            display_name=display_name,
        )
