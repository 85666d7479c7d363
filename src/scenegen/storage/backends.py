"""Key/value storage with a byte quota."""

import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import quote, unquote

from ..errors import QuotaExceededError, StorageError

logger = logging.getLogger(__name__)

SESSIONS_KEY = "scenegen-sessions"
PROMPT_HISTORY_KEY = "scenegen-promptHistory"
WORKSPACE_KEY = "scenegen-workspace"


def entry_size(key: str, value: str) -> int:
    """Bytes a key/value pair counts against the quota."""
    return len(key.encode("utf-8")) + len(value.encode("utf-8"))


class KeyValueStorage(ABC):
    """A string key to string value store with a fixed byte quota.

    ``set_item`` raises QuotaExceededError when the total size of all entries
    after the write would exceed the quota. A failed write changes nothing.
    """

    def __init__(self, quota_bytes: int) -> None:
        if quota_bytes <= 0:
            raise ValueError("quota_bytes must be positive")
        self._quota_bytes = quota_bytes
        self._lock = threading.RLock()

    @property
    def quota_bytes(self) -> int:
        return self._quota_bytes

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def keys(self) -> List[str]:
        ...

    @abstractmethod
    def _write(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def _delete(self, key: str) -> None:
        ...

    def used_bytes(self) -> int:
        with self._lock:
            return sum(entry_size(key, self.get_item(key) or "") for key in self.keys())

    def check_fits(self, key: str, value: str) -> None:
        """Dry run of ``set_item``. Nothing is written.

        The new value is counted in place of the one currently stored under
        ``key``, exactly as a real write would be.

        Raises:
            QuotaExceededError: If the write would not fit.
        """
        with self._lock:
            current = self.get_item(key)
            used = self.used_bytes()
            if current is not None:
                used -= entry_size(key, current)
            required = used + entry_size(key, value)
            if required > self._quota_bytes:
                raise QuotaExceededError(key, required, self._quota_bytes)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self.check_fits(key, value)
            self._write(key, value)

    def remove_item(self, key: str) -> None:
        with self._lock:
            if self.get_item(key) is not None:
                self._delete(key)


class MemoryStorage(KeyValueStorage):
    """In-process storage, handy for tests and scratch work."""

    def __init__(self, quota_bytes: int) -> None:
        super().__init__(quota_bytes)
        self._data: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def keys(self) -> List[str]:
        return list(self._data)

    def _write(self, key: str, value: str) -> None:
        self._data[key] = value

    def _delete(self, key: str) -> None:
        del self._data[key]


class DirectoryStorage(KeyValueStorage):
    """One file per key inside a directory.

    Values are written to a temporary file in the same directory and moved
    into place with ``os.replace``.
    """

    SUFFIX = ".json"

    def __init__(self, root: Path, quota_bytes: int) -> None:
        super().__init__(quota_bytes)
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def _path(self, key: str) -> Path:
        return self._root / f"{quote(key, safe='')}{self.SUFFIX}"

    def get_item(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Could not read '{key}': {e}") from e

    def keys(self) -> List[str]:
        return [
            unquote(path.name[: -len(self.SUFFIX)])
            for path in sorted(self._root.glob(f"*{self.SUFFIX}"))
        ]

    def _write(self, key: str, value: str) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=self._root, prefix=".tmp-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp_name, self._path(key))
        except OSError as e:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise StorageError(f"Could not write '{key}': {e}") from e

    def _delete(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(f"Could not remove '{key}': {e}") from e
