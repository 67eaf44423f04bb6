"""
Prompt Keeper exceptions.

Every error carries an HTTP-equivalent ``status`` and a ``message`` that is
safe to show to the end user.
"""
from typing import Optional


class CredentialError(Exception):
    """Base class for all Prompt Keeper errors."""
    status: int = 500
    message: str = 'Internal error'

    def __init__(self, message: Optional[str] = None, *args):
        if message is not None:
            self.message = message
        super().__init__(self.message, *args)

    def __str__(self) -> str:
        return self.message


class ValidationError(CredentialError, ValueError):
    """Malformed input: field length, charset or format."""
    status = 400
    message = 'Invalid input'


class ConflictError(CredentialError):
    """A uniqueness constraint would be violated."""
    status = 409
    message = 'Username or email already taken'


class AuthError(CredentialError):
    """Bad credentials.

    Never says whether the identifier or the password was wrong.
    """
    status = 401
    message = 'Invalid credentials'


class Unauthenticated(CredentialError):
    """The session is not bound to an existing user."""
    status = 401
    message = 'Not authenticated'


class NotFoundError(CredentialError):
    status = 404
    message = 'Not found'


class DecryptionError(CredentialError):
    """Authentication tag mismatch or unusable key material."""
    status = 500
    message = 'Failed to decrypt API key. It may need to be re-saved.'


class TransientStorageError(CredentialError):
    status = 503
    message = 'Storage temporarily unavailable'
