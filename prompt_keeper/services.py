"""
Process start-up wiring.

Order matters: keys are resolved before anything that encrypts or signs,
the schema exists before any store is used, and the legacy import runs
last, once the stores are ready.
"""
import logging
from pathlib import Path
from typing import Optional, Union
from collections.abc import Mapping
from dataclasses import dataclass

from . import conf
from .auth import Authenticator
from .migrate import migrate_legacy_prompts
from .passwords import PasswordHasher
from .prompts import PromptStore
from .sessions import SessionStorage
from .storage import Database
from .users import UserStore
from .vault import KeyConfig, SecretCipher, SecretVault, load_or_create_keys

logger = logging.getLogger("prompt_keeper")


@dataclass(frozen=True)
class Services:
    """Everything the HTTP layer needs, built once per process."""
    keys: KeyConfig
    db: Database
    users: UserStore
    sessions: SessionStorage
    auth: Authenticator
    vault: SecretVault
    prompts: PromptStore


async def bootstrap(
    data_dir: Union[str, Path, None] = None,
    env_file: Union[str, Path, None] = None,
    environ: Optional[Mapping[str, str]] = None,
    bcrypt_rounds: int = conf.BCRYPT_ROUNDS,
    session_max_age: int = conf.SESSION_MAX_AGE,
) -> Services:
    """Resolve keys, open the database, wire services and import legacy data.

    Args:
        data_dir: Directory holding ``app.db`` and ``prompts.json``.
        env_file: Durable env file for ENCRYPTION_KEY / SESSION_SECRET.
        environ: Environment mapping (defaults to ``os.environ``).
        bcrypt_rounds: Password hashing work factor.
        session_max_age: Session lifetime in seconds.
    """
    if data_dir is not None:
        data_dir = Path(data_dir)
        db_path = data_dir / conf.DATABASE_PATH.name
        legacy_file = data_dir / conf.LEGACY_PROMPTS_FILE.name
    else:
        db_path = conf.DATABASE_PATH
        legacy_file = conf.LEGACY_PROMPTS_FILE

    keys = load_or_create_keys(env_file, environ)

    db = Database(db_path)
    await db.initialize()

    users = UserStore(db)
    sessions = SessionStorage(db, keys, max_age=session_max_age)
    services = Services(
        keys=keys,
        db=db,
        users=users,
        sessions=sessions,
        auth=Authenticator(users, sessions, PasswordHasher(bcrypt_rounds)),
        vault=SecretVault(db, SecretCipher(keys)),
        prompts=PromptStore(db),
    )

    await sessions.purge_expired()
    await migrate_legacy_prompts(db, legacy_file)
    logger.info("Prompt Keeper ready (database: %s)", db_path)
    return services
