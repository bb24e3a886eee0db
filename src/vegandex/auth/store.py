"""Persistent storage for the auth token and the cached user profile."""

import json
import os
import tempfile
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

from loguru import logger

from ..exceptions import VegandexStorageError

TOKEN_KEY = "token"
USER_KEY = "user"

DEFAULT_STORE_PATH = Path.home() / ".vegandex" / "credentials.json"


class CredentialStore:
    """Key-value store backed by a JSON file.

    Every mutation rewrites the whole file through a temporary file and
    ``os.replace``, so ``remove_all`` drops all of its keys in one write.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path else DEFAULT_STORE_PATH

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise VegandexStorageError(f"Credential store {self.path} is corrupted: {e}")
        except OSError as e:
            raise VegandexStorageError(f"Could not read credential store {self.path}: {e}")

        if not isinstance(data, dict):
            raise VegandexStorageError(f"Credential store {self.path} is corrupted")
        return data

    def _dump(self, data: Dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".credentials-")
            try:
                with os.fdopen(fd, "w") as f:
                    json.dump(data, f)
                os.chmod(tmp_path, 0o600)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise VegandexStorageError(f"Could not write credential store {self.path}: {e}")

    def get(self, key: str) -> Optional[str]:
        value = self._load().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._dump(data)

    def remove_all(self, keys: Iterable[str]) -> None:
        """Remove several keys in a single write. A corrupted file is reset."""
        keys = set(keys)
        try:
            data = self._load()
        except VegandexStorageError as e:
            logger.warning("Discarding unreadable credential store: {}", e)
            data = {}
        remaining = {k: v for k, v in data.items() if k not in keys}
        if remaining or self.path.exists():
            self._dump(remaining)


class MemoryCredentialStore:
    """In-process store with the same interface as CredentialStore."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_all(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._data.pop(key, None)
