"""
SecretVault — encrypted per-user API key storage.

Provides the public API used by the API-key routes:
- ``save_secret(user_id, key_name, plaintext)`` — encrypt and upsert
- ``list_previews(user_id)`` — masked previews, never plaintext
- ``decrypt_secret(user_id, key_name)`` — plaintext for an explicit use
- ``delete_secret(user_id, key_name)`` — remove a key

Security Note:
    Never log plaintext or ciphertext values. Only log key names and
    user IDs. (ciphertext, iv, auth_tag) are always written together,
    from a single ``encrypt`` call.
"""
import re
import sqlite3
import logging

from datamodel import BaseModel

from ..conf import DEFAULT_KEY_NAME, MASKED_PLACEHOLDER
from ..exceptions import DecryptionError, NotFoundError, ValidationError
from ..storage import Database
from .crypto import SecretCipher, mask_preview

logger = logging.getLogger("prompt_keeper.vault")

_KEY_NAME_PATTERN = re.compile(r"[a-zA-Z0-9_-]+")
_KEY_NAME_MAX_LENGTH = 64

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_UPSERT_SECRET = """
INSERT INTO user_secrets (user_id, key_name, ciphertext, iv, auth_tag)
VALUES (?, ?, ?, ?, ?)
ON CONFLICT(user_id, key_name)
DO UPDATE SET ciphertext = excluded.ciphertext,
              iv = excluded.iv,
              auth_tag = excluded.auth_tag,
              updated_at = datetime('now')
"""

_SELECT_USER_SECRETS = """
SELECT key_name, ciphertext, iv, auth_tag, updated_at
FROM user_secrets
WHERE user_id = ?
ORDER BY key_name
"""

_SELECT_SECRET = """
SELECT ciphertext, iv, auth_tag
FROM user_secrets
WHERE user_id = ? AND key_name = ?
"""

_DELETE_SECRET = """
DELETE FROM user_secrets WHERE user_id = ? AND key_name = ?
"""


class SecretPreview(BaseModel):
    """Listing entry for a stored key."""
    key_name: str
    preview: str
    updated_at: str

    def public(self) -> dict:
        return {
            "keyName": self.key_name,
            "preview": self.preview,
            "updatedAt": self.updated_at,
        }


class SecretVault:
    """Stores user API keys encrypted under the master key."""

    def __init__(self, db: Database, cipher: SecretCipher):
        self._db = db
        self._cipher = cipher

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_key_name(self, key_name: str) -> None:
        """Validate a key name.

        Raises:
            ValidationError: If empty, too long, or outside [A-Za-z0-9_-].
        """
        if not key_name or len(key_name) > _KEY_NAME_MAX_LENGTH:
            raise ValidationError("Invalid key name")
        if not _KEY_NAME_PATTERN.fullmatch(key_name):
            raise ValidationError("Invalid key name")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def save_secret(
        self,
        user_id: int,
        key_name: str,
        plaintext: str,
    ) -> None:
        """Encrypt and store a key, replacing any previous value.

        Raises:
            ValidationError: Invalid key name or empty secret.
            NotFoundError: If the user does not exist.
        """
        self._validate_key_name(key_name)
        if not plaintext:
            raise ValidationError("apiKey is required")

        sealed = self._cipher.encrypt(plaintext)
        try:
            async with self._db.acquire() as conn:
                await conn.execute(
                    _UPSERT_SECRET,
                    (user_id, key_name, sealed.ciphertext, sealed.iv, sealed.auth_tag),
                )
        except sqlite3.IntegrityError as err:
            raise NotFoundError("User not found") from err

        logger.debug("Vault set: user=%s key=%s", user_id, key_name)

    async def list_previews(self, user_id: int) -> list[SecretPreview]:
        """List a user's keys with masked previews.

        A key that fails to decrypt is shown as a fully masked placeholder.
        """
        async with self._db.acquire() as conn:
            cursor = await conn.execute(_SELECT_USER_SECRETS, (user_id,))
            rows = await cursor.fetchall()

        previews = []
        for row in rows:
            try:
                preview = mask_preview(
                    self._cipher.decrypt(row["ciphertext"], row["iv"], row["auth_tag"])
                )
            except DecryptionError:
                logger.warning(
                    "Unreadable vault secret key=%s for user=%s",
                    row["key_name"], user_id,
                )
                preview = MASKED_PLACEHOLDER
            previews.append(
                SecretPreview(
                    key_name=row["key_name"],
                    preview=preview,
                    updated_at=row["updated_at"],
                )
            )
        return previews

    async def decrypt_secret(
        self, user_id: int, key_name: str = DEFAULT_KEY_NAME
    ) -> str:
        """Return the plaintext of a stored key.

        Raises:
            NotFoundError: No key with this name.
            DecryptionError: Stored key cannot be authenticated; the user
                should re-save it.
        """
        async with self._db.acquire() as conn:
            cursor = await conn.execute(_SELECT_SECRET, (user_id, key_name))
            row = await cursor.fetchone()
        if row is None:
            raise NotFoundError(
                "No API key configured. Add one in Account Settings."
            )
        try:
            return self._cipher.decrypt(row["ciphertext"], row["iv"], row["auth_tag"])
        except DecryptionError:
            logger.error(
                "Failed to decrypt vault secret key=%s for user=%s",
                key_name, user_id,
            )
            raise

    async def delete_secret(
        self, user_id: int, key_name: str = DEFAULT_KEY_NAME
    ) -> None:
        """Remove a key. Deleting a missing key is not an error."""
        async with self._db.acquire() as conn:
            await conn.execute(_DELETE_SECRET, (user_id, key_name))
        logger.debug("Vault delete: user=%s key=%s", user_id, key_name)
