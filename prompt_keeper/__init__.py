"""Prompt Keeper.

User accounts, server-side sessions and encrypted API key storage
for the prompt builder.
"""
from .version import __version__
from .data import SessionData
from .auth import Authenticator
from .services import Services, bootstrap
from .exceptions import (
    CredentialError,
    ValidationError,
    ConflictError,
    AuthError,
    Unauthenticated,
    NotFoundError,
    DecryptionError,
    TransientStorageError,
)

__all__ = (
    "__version__",
    "SessionData",
    "Authenticator",
    "Services",
    "bootstrap",
    "CredentialError",
    "ValidationError",
    "ConflictError",
    "AuthError",
    "Unauthenticated",
    "NotFoundError",
    "DecryptionError",
    "TransientStorageError",
)
