"""On-device key-value storage (JSON document + fcntl.flock + atomic write)."""

import fcntl
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

import structlog

logger = structlog.get_logger()


class StorageError(Exception):
    """The storage backend could not be read or written."""


class LocalStorage(Protocol):
    def get_item(self, key: str) -> Any | None: ...

    def set_item(self, key: str, value: Any) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryStorage:
    """Process-local storage, used by tests and throwaway sessions."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self._items: dict[str, Any] = dict(initial or {})

    def get_item(self, key: str) -> Any | None:
        return self._items.get(key)

    def set_item(self, key: str, value: Any) -> None:
        # Round-trip through JSON so stored values behave like the file backend.
        self._items[key] = json.loads(json.dumps(value))

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class JsonFileStorage:
    """All keys live in a single JSON object on disk.

    Args:
        path: Location of the JSON document. Created on first write.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock_path = self.path.with_name(self.path.name + ".lock")

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                fcntl.flock(f, fcntl.LOCK_SH)
                data = json.load(f)
                fcntl.flock(f, fcntl.LOCK_UN)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("storage_read_failed", path=str(self.path), error=str(e))
            raise StorageError(f"cannot read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"{self.path} does not hold a JSON object")
        return data

    def _write(self, mutate) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._lock_path, "w") as lock_file:
                fcntl.flock(lock_file, fcntl.LOCK_EX)
                data = self._read()
                mutate(data)
                with tempfile.NamedTemporaryFile(
                    "w", dir=self.path.parent, delete=False, suffix=".json", encoding="utf-8"
                ) as tmp:
                    json.dump(data, tmp, default=str)
                os.replace(tmp.name, self.path)
        except OSError as e:
            logger.error("storage_write_failed", path=str(self.path), error=str(e))
            raise StorageError(f"cannot write {self.path}: {e}") from e

    def get_item(self, key: str) -> Any | None:
        return self._read().get(key)

    def set_item(self, key: str, value: Any) -> None:
        def _set(data: dict[str, Any]) -> None:
            data[key] = value

        self._write(_set)

    def remove_item(self, key: str) -> None:
        self._write(lambda data: data.pop(key, None))
