"""
Vault Configuration — Master key and session secret provisioning.

Resolves, per secret, the first usable value from:
    1. the process environment (ENCRYPTION_KEY, SESSION_SECRET)
    2. the local env file (``NAME=value`` lines)
    3. a freshly generated random value, appended to the env file

Security Note:
    Never log key material. Losing the env file means every stored
    API key becomes undecryptable; there is no rotation path.
"""
import os
import re
import secrets
import logging
from pathlib import Path
from collections.abc import Mapping
from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator

from ..conf import ENV_FILE

logger = logging.getLogger("prompt_keeper.vault")

ENCRYPTION_KEY_VAR = "ENCRYPTION_KEY"
SESSION_SECRET_VAR = "SESSION_SECRET"
KEY_LENGTH = 32  # AES-256

_ENV_LINE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)=(.*)$")
_FILE_KEY_PATTERN = re.compile(r"[a-f0-9]{64}")
_ENV_KEY_PATTERN = re.compile(r"[0-9a-fA-F]{64}")


class KeyConfig(BaseModel):
    """Immutable key material resolved once at process start."""

    master_key: bytes = Field(repr=False)
    session_secret: str = Field(repr=False)

    model_config = {"frozen": True}

    @field_validator("master_key")
    @classmethod
    def validate_master_key(cls, v: bytes) -> bytes:
        if len(v) != KEY_LENGTH:
            raise ValueError(
                f"master_key must be exactly {KEY_LENGTH} bytes, got {len(v)}"
            )
        return v

    @field_validator("session_secret")
    @classmethod
    def validate_session_secret(cls, v: str) -> str:
        if not v:
            raise ValueError("session_secret cannot be empty")
        return v


def generate_master_key() -> str:
    """Generate a random 32-byte master key as 64 lowercase hex chars."""
    return secrets.token_bytes(KEY_LENGTH).hex()


def generate_session_secret() -> str:
    """Generate a random session signing secret (opaque hex string)."""
    return secrets.token_bytes(32).hex()


def read_env_file(path: Path) -> dict[str, str]:
    """Parse ``NAME=value`` lines; the first occurrence of a name wins."""
    values: dict[str, str] = {}
    if not path.exists():
        return values
    for line in path.read_text(encoding="utf-8").splitlines():
        match = _ENV_LINE.match(line.strip())
        if match and match.group(1) not in values:
            values[match.group(1)] = match.group(2).strip()
    return values


def _usable_key(value: Optional[str], pattern: re.Pattern) -> Optional[str]:
    if value and pattern.fullmatch(value):
        return value.lower()
    return None


def _persist(path: Path, generated: dict[str, str]) -> None:
    """Write generated values into the env file.

    Existing lines are preserved. A name already present (with an unusable
    value) is replaced in place instead of being appended a second time.
    The file always ends with exactly one newline.
    """
    lines: list[str] = []
    if path.exists():
        lines = path.read_text(encoding="utf-8").strip().splitlines()
    pending = dict(generated)
    for idx, line in enumerate(lines):
        match = _ENV_LINE.match(line.strip())
        if match and match.group(1) in pending:
            name = match.group(1)
            lines[idx] = f"{name}={pending.pop(name)}"
    lines.extend(f"{name}={value}" for name, value in pending.items())
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines).strip() + "\n", encoding="utf-8")
    try:
        os.chmod(path, 0o600)
    except OSError:
        logger.debug("Could not restrict permissions on %s", path)


def load_or_create_keys(
    env_file: Union[str, Path, None] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> KeyConfig:
    """Resolve the master key and session secret, generating what is missing.

    Malformed values are treated as absent. Calling this again once the
    env file holds both values performs no write and returns the same keys.

    Args:
        env_file: Path of the durable env file (defaults to ``conf.ENV_FILE``).
        environ: Environment mapping (defaults to ``os.environ``).

    Returns:
        Frozen KeyConfig.
    """
    path = Path(env_file) if env_file is not None else ENV_FILE
    environ = os.environ if environ is None else environ
    stored = read_env_file(path)

    master_hex = (
        _usable_key(environ.get(ENCRYPTION_KEY_VAR), _ENV_KEY_PATTERN)
        or _usable_key(stored.get(ENCRYPTION_KEY_VAR), _FILE_KEY_PATTERN)
    )
    session_secret = (
        environ.get(SESSION_SECRET_VAR) or stored.get(SESSION_SECRET_VAR)
    )

    generated: dict[str, str] = {}
    if master_hex is None:
        master_hex = generate_master_key()
        generated[ENCRYPTION_KEY_VAR] = master_hex
    if not session_secret:
        session_secret = generate_session_secret()
        generated[SESSION_SECRET_VAR] = session_secret

    if generated:
        _persist(path, generated)
        logger.warning(
            "Generated %s in %s. Keep this file secure: if it is lost, "
            "stored API keys cannot be recovered.",
            ", ".join(generated), path,
        )
    else:
        logger.debug("Loaded encryption key and session secret")

    return KeyConfig(
        master_key=bytes.fromhex(master_hex),
        session_secret=session_secret,
    )
