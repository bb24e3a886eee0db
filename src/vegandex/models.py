"""Session and user profile data types."""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from .exceptions import VegandexValidationError


class SessionStatus(str, Enum):
    INITIALIZING = "initializing"
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"


def _product_id(item: Any) -> Optional[str]:
    # The server may populate uploadedProducts with full product documents.
    if isinstance(item, Mapping):
        item = item.get("_id") or item.get("id")
    if item is None or item == "":
        return None
    return str(item)


@dataclass(frozen=True)
class UserProfile:
    """Cached copy of the logged-in user's profile."""

    id: str
    email: str
    username: str
    uploaded_products: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_api(cls, payload: Any) -> "UserProfile":
        """Build a profile from a ``/auth/profile`` payload or a persisted snapshot."""
        if not isinstance(payload, Mapping):
            raise VegandexValidationError("Invalid response: profile is not an object")

        user_id = payload.get("_id") or payload.get("id")
        missing = [
            name
            for name, value in (("_id", user_id), ("email", payload.get("email")), ("username", payload.get("username")))
            if not value
        ]
        if missing:
            raise VegandexValidationError(f"Invalid response: profile is missing {', '.join(missing)}")

        uploaded = payload.get("uploadedProducts") or []
        if not isinstance(uploaded, (list, tuple)):
            raise VegandexValidationError("Invalid response: uploadedProducts is not a list")

        return cls(
            id=str(user_id),
            email=str(payload["email"]),
            username=str(payload["username"]),
            uploaded_products=tuple(
                product_id for product_id in map(_product_id, uploaded) if product_id is not None
            ),
        )

    @classmethod
    def from_json(cls, text: str) -> "UserProfile":
        try:
            payload = json.loads(text)
        except (TypeError, ValueError) as e:
            raise VegandexValidationError(f"Stored user is not valid JSON: {e}")
        return cls.from_api(payload)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "_id": self.id,
            "email": self.email,
            "username": self.username,
            "uploadedProducts": list(self.uploaded_products),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    def with_uploaded_product(self, product_id: str) -> "UserProfile":
        """Return a new profile with ``product_id`` appended to the uploads."""
        return UserProfile(
            id=self.id,
            email=self.email,
            username=self.username,
            uploaded_products=self.uploaded_products + (str(product_id),),
        )


@dataclass(frozen=True)
class Session:
    """Immutable snapshot of a SessionManager's state."""

    status: SessionStatus
    token: Optional[str] = None
    profile: Optional[UserProfile] = None
    last_error: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.status == SessionStatus.AUTHENTICATED
