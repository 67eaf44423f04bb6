"""
Vault Crypto Core — Authenticated encryption of user API keys.

AES-256-GCM with the provisioned master key:
    encrypt(plaintext) → (ciphertext, iv, auth_tag), all hex-encoded

The three parts are stored together; none of them alone is enough to
recover the plaintext.

Security Note:
    Never log plaintext or ciphertext values.
    Nonces are random 96-bit, drawn from the OS CSPRNG on every call.
"""
import os
import logging
from typing import NamedTuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..conf import PREVIEW_MASK_THRESHOLD, MASKED_PLACEHOLDER
from ..exceptions import DecryptionError
from .config import KeyConfig

logger = logging.getLogger("prompt_keeper.vault")

NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16  # 128-bit GCM tag


class EncryptedSecret(NamedTuple):
    """Output of a single ``encrypt`` call."""
    ciphertext: str
    iv: str
    auth_tag: str


class SecretCipher:
    """Encrypts and decrypts short strings with the master key."""

    def __init__(self, keys: KeyConfig):
        self._aead = AESGCM(keys.master_key)

    def encrypt(self, plaintext: str) -> EncryptedSecret:
        """Encrypt a string under a fresh random nonce.

        Args:
            plaintext: Secret to protect.

        Returns:
            EncryptedSecret with hex ciphertext, iv and auth_tag.
        """
        nonce = os.urandom(NONCE_SIZE)
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return EncryptedSecret(
            ciphertext=sealed[:-TAG_SIZE].hex(),
            iv=nonce.hex(),
            auth_tag=sealed[-TAG_SIZE:].hex(),
        )

    def decrypt(self, ciphertext: str, iv: str, auth_tag: str) -> str:
        """Decrypt and authenticate a stored secret.

        Raises:
            DecryptionError: If any part is malformed, was tampered with,
                or was produced under a different master key.
        """
        try:
            ct = bytes.fromhex(ciphertext)
            nonce = bytes.fromhex(iv)
            tag = bytes.fromhex(auth_tag)
        except (TypeError, ValueError) as err:
            raise DecryptionError() from err
        if len(nonce) != NONCE_SIZE or len(tag) != TAG_SIZE:
            raise DecryptionError()
        try:
            data = self._aead.decrypt(nonce, ct + tag, None)
        except InvalidTag as err:
            raise DecryptionError() from err
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as err:
            raise DecryptionError() from err


def mask_preview(plaintext: str) -> str:
    """Masked display form: first 7 and last 4 characters.

    Secrets of ``PREVIEW_MASK_THRESHOLD`` characters or fewer are fully masked.
    """
    if len(plaintext) > PREVIEW_MASK_THRESHOLD:
        return f"{plaintext[:7]}...{plaintext[-4:]}"
    return MASKED_PLACEHOLDER
