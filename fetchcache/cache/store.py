"""
Key-value stores backing RefreshableCache.

The cache only needs get/set/remove of values by string key; the store
decides where the values live.
"""
import asyncio
import hashlib
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

from config.settings import settings

from .errors import StoreError

logger = logging.getLogger("cache.store")


class CacheStore(ABC):
    """
    Abstract scoped key-value store.

    Methods are coroutines so implementations may do disk or network I/O.
    Implementations should raise StoreError on failure.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the stored value for key, or None if absent."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store value under key, replacing any previous value."""
        pass

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Remove key. Removing a missing key is not an error."""
        pass


class MemoryStore(CacheStore):
    """Dict-backed store for the lifetime of the process."""

    def __init__(self):
        self._data: Dict[str, Any] = {}

    async def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: str) -> bool:
        return key in self._data


class JsonFileStore(CacheStore):
    """
    Persists each key as a JSON file under a directory.

    File names are a hash of the key so arbitrary key strings are safe.
    Values must be JSON serializable. Blocking file I/O runs in a worker
    thread to keep the event loop free.
    """

    def __init__(self, directory: Optional[Path] = None):
        self.directory = Path(directory or settings.cache_directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]
        return self.directory / f"{digest}.json"

    def _read(self, key: str) -> Optional[Any]:
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(key, "get", e) from e
        return payload.get("value")

    def _write(self, key: str, value: Any) -> None:
        path = self._path_for(key)
        try:
            payload = json.dumps({"key": key, "value": value})
        except (TypeError, ValueError) as e:
            raise StoreError(key, "set", e) from e

        # Each writer gets its own temp file; concurrent sets race only on the
        # final replace, so the last one wins
        tmp_name = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.directory,
                prefix=f"{path.stem}.",
                suffix=".tmp",
                delete=False,
            ) as f:
                tmp_name = f.name
                f.write(payload)
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise StoreError(key, "set", e) from e

    def _delete(self, key: str) -> None:
        try:
            self._path_for(key).unlink(missing_ok=True)
        except OSError as e:
            raise StoreError(key, "remove", e) from e

    async def get(self, key: str) -> Optional[Any]:
        return await asyncio.to_thread(self._read, key)

    async def set(self, key: str, value: Any) -> None:
        await asyncio.to_thread(self._write, key, value)
        logger.debug(f"Wrote {key} to {self.directory}")

    async def remove(self, key: str) -> None:
        await asyncio.to_thread(self._delete, key)
