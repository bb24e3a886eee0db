"""Vegandex Client - CLI and library for the Vegandex vegan product discovery API"""

from .client import VegandexClient
from .auth import CredentialStore, MemoryCredentialStore, SessionManager
from .models import Session, SessionStatus, UserProfile
from .exceptions import (
    VegandexAPIError,
    VegandexAuthenticationError,
    VegandexClientError,
    VegandexConnectionError,
    VegandexStorageError,
    VegandexTimeoutError,
    VegandexValidationError,
)

__version__ = "0.1.0"
__all__ = [
    "VegandexClient",
    "SessionManager",
    "CredentialStore",
    "MemoryCredentialStore",
    "Session",
    "SessionStatus",
    "UserProfile",
    "VegandexClientError",
    "VegandexConnectionError",
    "VegandexTimeoutError",
    "VegandexAPIError",
    "VegandexAuthenticationError",
    "VegandexValidationError",
    "VegandexStorageError",
]
