"""Password hashing with bcrypt."""
import hashlib

import bcrypt

from .conf import BCRYPT_ROUNDS

# bcrypt only reads the first 72 bytes of its input
_BCRYPT_MAX_BYTES = 72


class PasswordHasher:
    """Salted adaptive hashing of user passwords.

    Every call to ``hash`` draws a fresh random salt. Passwords longer than
    bcrypt's input limit are pre-hashed with SHA-256 so that no part of
    them is silently ignored.
    """

    def __init__(self, rounds: int = BCRYPT_ROUNDS):
        self.rounds = rounds

    @staticmethod
    def _prepare(password: str) -> bytes:
        password_bytes = password.encode('utf-8')
        if len(password_bytes) > _BCRYPT_MAX_BYTES:
            password_bytes = hashlib.sha256(password_bytes).hexdigest().encode('utf-8')
        return password_bytes

    def hash(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(self._prepare(password), salt).decode('utf-8')

    def verify(self, password_hash: str, password: str) -> bool:
        """Constant-time check of a password against a stored hash."""
        try:
            return bcrypt.checkpw(
                self._prepare(password), password_hash.encode('utf-8')
            )
        except ValueError:
            # malformed stored hash
            return False
