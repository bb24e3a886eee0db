"""Session lifecycle: rehydration, login, registration, logout and profile cache."""

import threading
from typing import Any, Callable, Dict, Optional

from loguru import logger

from ..client import VegandexClient
from ..exceptions import (
    VegandexAPIError,
    VegandexAuthenticationError,
    VegandexClientError,
    VegandexStorageError,
    VegandexValidationError,
)
from ..models import Session, SessionStatus, UserProfile
from .store import TOKEN_KEY, USER_KEY, CredentialStore

SESSION_KEYS = (TOKEN_KEY, USER_KEY)

LOGIN_FAILED = "Login failed. Please check your credentials."
REGISTRATION_FAILED = "Registration failed. Please try again."
PROFILE_REFRESH_FAILED = "Could not refresh your profile. Please try again."
STORAGE_FAILED = "Could not save your session on this device."


class SessionManager:
    """
    Owns the in-memory session and keeps the credential store consistent with it.

    The token and the profile are always set together or cleared together,
    both in memory and in the store. Public operations are serialized by a
    per-manager lock, so concurrent callers cannot interleave store writes.

    Args:
        client: Remote API client used for auth calls
        store: Credential store holding ``token`` and ``user``
    """

    def __init__(self, client: VegandexClient, store: Optional[CredentialStore] = None):
        self.client = client
        self.store = store if store is not None else CredentialStore()

        self._token: Optional[str] = None
        self._profile: Optional[UserProfile] = None
        self._status = SessionStatus.INITIALIZING
        self._last_error: Optional[str] = None

        self._lock = threading.RLock()
        self._initialize_started = False
        self.ready = threading.Event()

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def profile(self) -> Optional[UserProfile]:
        return self._profile

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def is_authenticated(self) -> bool:
        return self._status == SessionStatus.AUTHENTICATED

    def snapshot(self) -> Session:
        """Return an immutable copy of the current state."""
        with self._lock:
            return Session(
                status=self._status,
                token=self._token,
                profile=self._profile,
                last_error=self._last_error,
            )

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until initialize() has completed. Returns False on timeout."""
        return self.ready.wait(timeout)

    def initialize(self) -> None:
        """
        Restore the persisted session, validating it against the server.

        Never raises. Whatever the outcome, the session ends up either
        authenticated with a freshly fetched profile or unauthenticated with
        the store cleared, and ``ready`` is set exactly once.
        """
        with self._lock:
            if self._initialize_started:
                logger.warning("Session already initialized; ignoring repeated initialize()")
                return
            self._initialize_started = True

            try:
                self._restore()
            finally:
                if self._status == SessionStatus.INITIALIZING:
                    self._status = SessionStatus.UNAUTHENTICATED
                self.ready.set()

    def _restore(self) -> None:
        try:
            token = self.store.get(TOKEN_KEY)
            stored_user = self.store.get(USER_KEY)
        except VegandexStorageError as e:
            logger.warning("Could not read stored session: {}", e)
            self._invalidate()
            return

        if not token and not stored_user:
            logger.debug("No stored session")
            self._set_unauthenticated()
            return

        if not token or not stored_user:
            logger.warning("Stored session is incomplete; clearing it")
            self._invalidate()
            return

        try:
            UserProfile.from_json(stored_user)
        except VegandexValidationError as e:
            logger.warning("Stored user is unreadable; clearing session: {}", e)
            self._invalidate()
            return

        try:
            profile = UserProfile.from_api(self.client.fetch_profile(token))
            self.store.set(USER_KEY, profile.to_json())
        except VegandexClientError as e:
            logger.warning("Could not restore session: {}", e)
            self._invalidate()
            return

        self._set_authenticated(token, profile)
        logger.info("Restored session for {}", profile.username)

    def login(self, email: str, password: str) -> bool:
        """
        Log in and load the canonical profile.

        Returns:
            bool: True on success; on failure ``last_error`` holds the reason
        """
        return self._authenticate(
            "Login",
            lambda: self.client.login(email, password),
            LOGIN_FAILED,
        )

    def register(self, username: str, email: str, password: str) -> bool:
        """
        Create an account, then behave like login().

        Password confirmation is the caller's responsibility.
        """
        return self._authenticate(
            "Registration",
            lambda: self.client.register(username, email, password),
            REGISTRATION_FAILED,
        )

    def _authenticate(
        self,
        action: str,
        call: Callable[[], Dict[str, Any]],
        generic_message: str,
    ) -> bool:
        with self._lock:
            self._last_error = None
            token_written = False

            try:
                response = call()
                token = response.get("token")
                if not token or not isinstance(token, str):
                    raise VegandexValidationError("Invalid response: missing token")

                self.store.set(TOKEN_KEY, token)
                token_written = True

                # The inline user of the login/register answer is not trusted;
                # the profile endpoint is the source of truth.
                profile = UserProfile.from_api(self.client.fetch_profile(token))
                self.store.set(USER_KEY, profile.to_json())
            except VegandexClientError as e:
                logger.warning("{} failed: {}", action, e)
                if token_written:
                    self._invalidate()
                self._last_error = self._failure_message(e, generic_message)
                return False

            self._set_authenticated(token, profile)
            logger.info("{} succeeded for {}", action, profile.username)
            return True

    def logout(self) -> None:
        """
        Log out remotely (best-effort) and always clear the local session.

        Never raises. Without a token no remote call is made, but the store
        is still cleared. A logout before initialize() completes initialization.
        """
        with self._lock:
            if self._token is not None:
                self._last_error = None
                try:
                    self.client.logout(self._token)
                except VegandexClientError as e:
                    logger.warning("Remote logout failed, clearing local session anyway: {}", e)

            self._invalidate()
            if not self._initialize_started:
                self._initialize_started = True
                self.ready.set()
            logger.info("Logged out")

    def record_uploaded_product(self, product_id: str) -> None:
        """
        Append a product the user just created to the cached profile.

        Local bookkeeping only: the server already knows about the product.
        """
        with self._lock:
            if not self.is_authenticated or self._profile is None:
                logger.debug("Not logged in; not recording product {}", product_id)
                return

            updated = self._profile.with_uploaded_product(product_id)
            try:
                self.store.set(USER_KEY, updated.to_json())
            except VegandexStorageError as e:
                logger.warning("Could not persist uploaded product {}: {}", product_id, e)
            self._profile = updated

    def refresh_profile(self) -> bool:
        """
        Re-fetch the profile for the current token.

        A rejected token ends the session; other failures keep it and set
        ``last_error``.
        """
        with self._lock:
            if not self.is_authenticated:
                return False
            self._last_error = None

            try:
                profile = UserProfile.from_api(self.client.fetch_profile(self._token))
                self.store.set(USER_KEY, profile.to_json())
            except VegandexAuthenticationError as e:
                logger.warning("Token rejected while refreshing profile: {}", e)
                self._invalidate()
                self._last_error = self._failure_message(e, PROFILE_REFRESH_FAILED)
                return False
            except VegandexClientError as e:
                logger.warning("Profile refresh failed: {}", e)
                self._last_error = self._failure_message(e, PROFILE_REFRESH_FAILED)
                return False

            self._profile = profile
            return True

    def _set_authenticated(self, token: str, profile: UserProfile) -> None:
        self._token = token
        self._profile = profile
        self._status = SessionStatus.AUTHENTICATED
        self.client.set_auth_token(token)

    def _set_unauthenticated(self) -> None:
        self._token = None
        self._profile = None
        self._status = SessionStatus.UNAUTHENTICATED
        self.client.set_auth_token(None)

    def _invalidate(self) -> None:
        """Clear both stored keys and the in-memory session."""
        try:
            self.store.remove_all(SESSION_KEYS)
        except VegandexStorageError as e:
            logger.warning("Could not clear stored session: {}", e)
        self._set_unauthenticated()

    @staticmethod
    def _failure_message(error: VegandexClientError, generic_message: str) -> str:
        if isinstance(error, VegandexAPIError):
            return error.server_message or generic_message
        if isinstance(error, VegandexStorageError):
            return STORAGE_FAILED
        return str(error) or generic_message
