"""Tests for registration, login and profile operations."""
import asyncio

import pytest

from prompt_keeper.exceptions import (
    AuthError,
    ConflictError,
    Unauthenticated,
    ValidationError,
)
from prompt_keeper.users import Identity


class TestRegister:
    """Tests for account creation."""

    @pytest.mark.asyncio
    async def test_register_returns_public_identity(self, alice):
        identity, session = alice
        assert identity.public() == {
            "id": identity.id,
            "username": "alice",
            "email": "alice@x.com",
            "displayName": "Alice",
        }
        assert session.user_id == identity.id

    @pytest.mark.asyncio
    async def test_register_establishes_session(self, auth, alice):
        identity, session = alice
        current = await auth.current_identity(session)
        assert current.id == identity.id

    @pytest.mark.asyncio
    async def test_username_conflict_ignores_case(self, auth, sessions, alice):
        with pytest.raises(ConflictError):
            await auth.register(
                sessions.new_session(), "ALICE", "other@x.com", "Other", "password123"
            )

    @pytest.mark.asyncio
    async def test_email_conflict_ignores_case(self, auth, sessions, alice):
        with pytest.raises(ConflictError):
            await auth.register(
                sessions.new_session(), "bob", "Alice@X.com", "Bob", "password123"
            )

    @pytest.mark.asyncio
    async def test_trailing_newline_is_not_a_new_account(self, auth, sessions, alice):
        """A look-alike of an existing username or email is rejected."""
        with pytest.raises(ValidationError):
            await auth.register(
                sessions.new_session(), "alice\n", "other@x.com", "A", "password123"
            )
        with pytest.raises(ValidationError):
            await auth.register(
                sessions.new_session(), "bob", "alice@x.com\n", "B", "password123"
            )

    @pytest.mark.asyncio
    async def test_store_enforces_uniqueness(self, users, alice):
        """The database rejects a duplicate even without the pre-check."""
        with pytest.raises(ConflictError):
            await users.create_user("Alice", "new@x.com", "Dup", "hash")

    @pytest.mark.asyncio
    async def test_concurrent_registrations(self, auth, sessions):
        """Two racing registrations for one username: exactly one wins."""
        results = await asyncio.gather(
            auth.register(sessions.new_session(), "carol", "c1@x.com", "C", "password123"),
            auth.register(sessions.new_session(), "CAROL", "c2@x.com", "C", "password123"),
            return_exceptions=True,
        )
        assert len([r for r in results if isinstance(r, Identity)]) == 1
        assert len([r for r in results if isinstance(r, ConflictError)]) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("username,email,display_name,password,message", [
        ("", "a@x.com", "A", "password123", "All fields are required"),
        ("ab", "a@x.com", "A", "password123", "Username must be 3-30 characters"),
        ("a" * 31, "a@x.com", "A", "password123", "Username must be 3-30 characters"),
        ("bad name", "a@x.com", "A", "password123", "Username can only contain"),
        ("dave\n", "a@x.com", "A", "password123", "Username can only contain"),
        ("dave", "not-an-email", "D", "password123", "Invalid email format"),
        ("dave", "d@x", "D", "password123", "Invalid email format"),
        ("dave", "d@x.com\n", "D", "password123", "Invalid email format"),
        ("dave", "d@x.com", "D", "short", "Password must be at least 8 characters"),
    ])
    async def test_validation(
        self, auth, sessions, username, email, display_name, password, message
    ):
        with pytest.raises(ValidationError) as exc:
            await auth.register(
                sessions.new_session(), username, email, display_name, password
            )
        assert message in exc.value.message
        assert exc.value.status == 400

    @pytest.mark.asyncio
    async def test_password_hash_is_stored_not_password(self, users, alice):
        identity, _ = alice
        row = await users.get(identity.id)
        assert row["password_hash"] != "password123"
        assert row["password_hash"].startswith("$2b$")


class TestLogin:
    """Tests for login and logout."""

    @pytest.mark.asyncio
    async def test_login_with_username(self, auth, sessions, alice):
        identity, _ = alice
        session = sessions.new_session()
        result = await auth.login(session, "alice", "password123")
        assert result.id == identity.id
        assert (await auth.current_identity(session)).username == "alice"

    @pytest.mark.asyncio
    async def test_login_with_email_any_case(self, auth, sessions, alice):
        session = sessions.new_session()
        result = await auth.login(session, "ALICE@x.com", "password123")
        assert result.username == "alice"

    @pytest.mark.asyncio
    async def test_wrong_password_and_unknown_user_look_alike(
        self, auth, sessions, alice
    ):
        """Both failures carry the same generic message."""
        with pytest.raises(AuthError) as wrong_password:
            await auth.login(sessions.new_session(), "alice", "wrong-password")
        with pytest.raises(AuthError) as unknown_user:
            await auth.login(sessions.new_session(), "nobody", "password123")
        assert wrong_password.value.message == unknown_user.value.message
        assert wrong_password.value.message == "Invalid credentials"

    @pytest.mark.asyncio
    async def test_failed_login_leaves_session_anonymous(self, auth, sessions, alice):
        session = sessions.new_session()
        with pytest.raises(AuthError):
            await auth.login(session, "alice", "wrong-password")
        assert session.authenticated is False
        with pytest.raises(Unauthenticated):
            await auth.current_identity(session)

    @pytest.mark.asyncio
    async def test_login_requires_fields(self, auth, sessions):
        with pytest.raises(ValidationError):
            await auth.login(sessions.new_session(), "", "password123")

    @pytest.mark.asyncio
    async def test_session_survives_reload(self, auth, sessions, alice):
        """The stored session resolves back to the user from its token."""
        identity, session = alice
        restored = await sessions.load_session(sessions.token_for(session))
        assert (await auth.current_identity(restored)).id == identity.id

    @pytest.mark.asyncio
    async def test_login_issues_new_session_id(self, auth, sessions, alice):
        """A token handed out before login is not upgraded by it."""
        planted = sessions.new_session()
        await sessions.save_session(planted)
        planted_token = sessions.token_for(planted)

        session = await sessions.load_session(planted_token)
        await auth.login(session, "alice", "password123")

        assert session.session_id != planted.session_id
        stale = await sessions.load_session(planted_token)
        assert stale.authenticated is False
        with pytest.raises(Unauthenticated):
            await auth.current_identity(stale)
        restored = await sessions.load_session(sessions.token_for(session))
        assert restored.authenticated is True

    @pytest.mark.asyncio
    async def test_register_issues_new_session_id(self, auth, sessions):
        session = sessions.new_session()
        before = session.session_id
        await auth.register(session, "erin", "erin@x.com", "Erin", "password123")
        assert session.session_id != before

    @pytest.mark.asyncio
    async def test_logout(self, auth, sessions, alice):
        _, session = alice
        token = sessions.token_for(session)
        await auth.logout(session)
        with pytest.raises(Unauthenticated):
            await auth.current_identity(session)
        restored = await sessions.load_session(token)
        assert restored.authenticated is False

    @pytest.mark.asyncio
    async def test_logout_is_idempotent(self, auth, sessions, alice):
        _, session = alice
        await auth.logout(session)
        await auth.logout(session)
        await auth.logout(sessions.new_session())
        await auth.logout(None)

    @pytest.mark.asyncio
    async def test_current_identity_without_session(self, auth):
        with pytest.raises(Unauthenticated):
            await auth.current_identity(None)


class TestChangePassword:
    """Tests for password changes."""

    @pytest.mark.asyncio
    async def test_change_password(self, auth, sessions, alice):
        _, session = alice
        await auth.change_password(session, "password123", "new-password-1")
        with pytest.raises(AuthError):
            await auth.login(sessions.new_session(), "alice", "password123")
        await auth.login(sessions.new_session(), "alice", "new-password-1")

    @pytest.mark.asyncio
    async def test_incorrect_current_password(self, auth, alice):
        _, session = alice
        with pytest.raises(AuthError) as exc:
            await auth.change_password(session, "not-my-password", "new-password-1")
        assert exc.value.message == "Current password is incorrect"

    @pytest.mark.asyncio
    async def test_new_password_too_short(self, auth, alice):
        _, session = alice
        with pytest.raises(ValidationError):
            await auth.change_password(session, "password123", "short")

    @pytest.mark.asyncio
    async def test_requires_login(self, auth, sessions):
        with pytest.raises(Unauthenticated):
            await auth.change_password(
                sessions.new_session(), "password123", "new-password-1"
            )


class TestUpdateProfile:
    """Tests for profile updates."""

    @pytest.mark.asyncio
    async def test_update_profile(self, auth, users, alice):
        identity, session = alice
        updated = await auth.update_profile(session, "Alice L.", "alice@y.com")
        assert updated.display_name == "Alice L."
        row = await users.get(identity.id)
        assert row["email"] == "alice@y.com"
        assert row["display_name"] == "Alice L."

    @pytest.mark.asyncio
    async def test_keep_own_email(self, auth, alice):
        """Re-submitting one's own email is not a conflict."""
        _, session = alice
        updated = await auth.update_profile(session, "Alice", "ALICE@x.com")
        assert updated.email == "ALICE@x.com"

    @pytest.mark.asyncio
    async def test_email_taken_by_other_user(self, auth, sessions, alice):
        _, session = alice
        await auth.register(
            sessions.new_session(), "bob", "bob@x.com", "Bob", "password123"
        )
        with pytest.raises(ConflictError) as exc:
            await auth.update_profile(session, "Alice", "BOB@x.com")
        assert exc.value.message == "Email already in use"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("email", ["nope", "alice@x.com\n"])
    async def test_invalid_email(self, auth, alice, email):
        _, session = alice
        with pytest.raises(ValidationError):
            await auth.update_profile(session, "Alice", email)

    @pytest.mark.asyncio
    async def test_requires_login(self, auth, sessions):
        with pytest.raises(Unauthenticated):
            await auth.update_profile(sessions.new_session(), "X", "x@x.com")
