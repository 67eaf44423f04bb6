"""Shared fixtures: a temporary database and deterministic key material."""
import pytest

from prompt_keeper.auth import Authenticator
from prompt_keeper.passwords import PasswordHasher
from prompt_keeper.prompts import PromptStore
from prompt_keeper.sessions import SessionStorage
from prompt_keeper.storage import Database
from prompt_keeper.users import UserStore
from prompt_keeper.vault import KeyConfig, SecretCipher, SecretVault


@pytest.fixture
def keys():
    return KeyConfig(master_key=bytes(range(32)), session_secret="test-session-secret")


@pytest.fixture
async def db(tmp_path):
    database = Database(tmp_path / "app.db")
    await database.initialize()
    return database


@pytest.fixture
def hasher():
    """Lowest bcrypt work factor, keeps the suite fast."""
    return PasswordHasher(rounds=4)


@pytest.fixture
def users(db):
    return UserStore(db)


@pytest.fixture
def sessions(db, keys):
    return SessionStorage(db, keys, max_age=3600)


@pytest.fixture
def auth(users, sessions, hasher):
    return Authenticator(users, sessions, hasher)


@pytest.fixture
def cipher(keys):
    return SecretCipher(keys)


@pytest.fixture
def vault(db, cipher):
    return SecretVault(db, cipher)


@pytest.fixture
def prompts(db):
    return PromptStore(db)


@pytest.fixture
async def alice(auth, sessions):
    """A registered, logged-in user and the session it holds."""
    session = sessions.new_session()
    identity = await auth.register(
        session, "alice", "alice@x.com", "Alice", "password123"
    )
    return identity, session
