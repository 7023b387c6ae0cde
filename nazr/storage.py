"""Key-value backing stores for client-owned persisted state.

A backend holds string values under string keys, the same contract as
browser local storage. Failures surface as PersistenceFailure.
"""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Union

from .exceptions import PersistenceFailure

logger = logging.getLogger(__name__)


class KeyValueBackend(ABC):
    """Abstract string key-value store."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the value stored under key, or None."""
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store value under key."""
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """Remove key; removing an absent key is a no-op."""
        pass

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


class InMemoryBackend(KeyValueBackend):
    """Dictionary-backed store, used in tests and for ephemeral sessions."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self):
        return list(self._data)


class JsonFileBackend(KeyValueBackend):
    """All keys kept in one JSON object on disk.

    Writes go to a temporary file in the same directory and are moved
    into place, so a crash never leaves a half-written file.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _read_all(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceFailure(f"Cannot read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceFailure(f"Unexpected content in {self.path}")
        return data

    def _write_all(self, data: Dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise PersistenceFailure(f"Cannot write {self.path}: {e}") from e

    def get(self, key: str) -> Optional[str]:
        return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)
        logger.debug(f"Wrote key '{key}' to {self.path}")

    def remove(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)
