"""Authentication module for vegandex-client."""

from .session import SessionManager
from .store import TOKEN_KEY, USER_KEY, CredentialStore, MemoryCredentialStore

__all__ = ["SessionManager", "CredentialStore", "MemoryCredentialStore", "TOKEN_KEY", "USER_KEY"]
