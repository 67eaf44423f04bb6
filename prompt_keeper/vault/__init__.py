"""Vault — Encrypted API key storage.

Security Note (Threat Model):
    Every stored key is encrypted with a single master key kept in the
    env file (or the process environment). Anyone holding that key and a
    copy of the database can recover every secret. Losing the key makes
    every stored secret unrecoverable; there is no rotation path.
"""

from .config import (
    KeyConfig,
    load_or_create_keys,
    generate_master_key,
    generate_session_secret,
)
from .crypto import SecretCipher, EncryptedSecret, mask_preview
from .secrets import SecretVault, SecretPreview

__all__ = [
    "KeyConfig",
    "load_or_create_keys",
    "generate_master_key",
    "generate_session_secret",
    "SecretCipher",
    "EncryptedSecret",
    "mask_preview",
    "SecretVault",
    "SecretPreview",
]
