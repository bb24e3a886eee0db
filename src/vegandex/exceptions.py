"""Custom exceptions for the vegandex client."""

from typing import Optional


class VegandexClientError(Exception):
    """Base exception for vegandex client errors."""

    pass


class VegandexConnectionError(VegandexClientError):
    """Raised when no response reached the client (server unreachable)."""

    pass


class VegandexTimeoutError(VegandexClientError):
    """Raised when a request to the vegandex server times out."""

    pass


class VegandexAPIError(VegandexClientError):
    """Raised when the server answers with a non-2xx status."""

    def __init__(self, message, status_code: Optional[int] = None, server_message: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.server_message = server_message


class VegandexAuthenticationError(VegandexAPIError):
    """Raised when the server rejects the credentials or the token."""

    pass


class VegandexValidationError(VegandexClientError):
    """Raised when a server response or a request input is malformed."""

    pass


class VegandexStorageError(VegandexClientError):
    """Raised when the local credential store cannot be read or written."""

    pass
