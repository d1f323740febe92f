"""Capacity-constrained key-value substrates.

Both implementations account usage as the UTF-8 size of every key plus its
value and reject a ``set`` that would exceed the quota before touching the
stored value, so a capacity failure never leaves a half-written entry.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol, runtime_checkable
from urllib.parse import quote, unquote

logger = logging.getLogger(__name__)

DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024
_FILE_SUFFIX = ".kv"


class CapacityError(OSError):
    """Raised by a substrate when a write would exceed its quota."""

    def __init__(self, key: str, requested: int, quota: int) -> None:
        self.key = key
        self.requested = requested
        self.quota = quota
        super().__init__(f"Quota exceeded for '{key}': {requested} > {quota} bytes")


def entry_size(key: str, value: str) -> int:
    return len(key.encode("utf-8")) + len(value.encode("utf-8"))


@runtime_checkable
class KeyValueSubstrate(Protocol):
    """Protocol for the storage backend behind PersistenceStore."""

    @property
    def quota_bytes(self) -> int: ...

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``. Raises CapacityError if over quota."""
        ...

    def remove(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...

    def size_of(self, key: str) -> int: ...

    def used_bytes(self) -> int: ...


class MemorySubstrate:
    """In-process store; contents live as long as the process (session-only storage)."""

    def __init__(self, quota_bytes: int = DEFAULT_QUOTA_BYTES) -> None:
        self._quota = quota_bytes
        self._data: dict[str, str] = {}

    @property
    def quota_bytes(self) -> int:
        return self._quota

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        needed = self.used_bytes() - self.size_of(key) + entry_size(key, value)
        if needed > self._quota:
            raise CapacityError(key, needed, self._quota)
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)

    def size_of(self, key: str) -> int:
        value = self._data.get(key)
        return entry_size(key, value) if value is not None else 0

    def used_bytes(self) -> int:
        return sum(entry_size(k, v) for k, v in self._data.items())


class FileSubstrate:
    """One file per key under ``root``, replaced atomically on every write."""

    def __init__(self, root: Path, quota_bytes: int = DEFAULT_QUOTA_BYTES) -> None:
        self.root = root
        self._quota = quota_bytes
        self.root.mkdir(parents=True, exist_ok=True)

    @property
    def quota_bytes(self) -> int:
        return self._quota

    def _path(self, key: str) -> Path:
        return self.root / f"{quote(key, safe='')}{_FILE_SUFFIX}"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def set(self, key: str, value: str) -> None:
        needed = self.used_bytes() - self.size_of(key) + entry_size(key, value)
        if needed > self._quota:
            raise CapacityError(key, needed, self._quota)

        path = self._path(key)
        fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=".tmp-", suffix=_FILE_SUFFIX)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Wrote %s (%d bytes)", key, len(value))

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def keys(self) -> list[str]:
        return sorted(
            unquote(path.name[: -len(_FILE_SUFFIX)])
            for path in self.root.glob(f"*{_FILE_SUFFIX}")
            if not path.name.startswith(".tmp-")
        )

    def size_of(self, key: str) -> int:
        value = self.get(key)
        return entry_size(key, value) if value is not None else 0

    def used_bytes(self) -> int:
        return sum(self.size_of(key) for key in self.keys())
