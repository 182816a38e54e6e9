"""Key-value persistence backends."""

import asyncio
import copy
import json
import logging
import os
from typing import Any, Dict, Iterable, List, Optional, Protocol

from formation_agent.core.exceptions import StorageError

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Async key-value persistence over a flat namespace.

    Every write replaces whole records; there are no transactions.
    """

    async def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        """Return the stored values for the keys that exist."""
        ...

    async def get_all(self) -> Dict[str, Any]:
        ...

    async def set(self, items: Dict[str, Any]) -> None:
        ...

    async def remove(self, keys: Iterable[str]) -> None:
        ...

    async def keys(self) -> List[str]:
        ...


class InMemoryKeyValueStore:
    """Dictionary-backed store; values are deep-copied on the way in and out."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = copy.deepcopy(initial or {})

    async def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        return {key: copy.deepcopy(self._data[key]) for key in keys if key in self._data}

    async def get_all(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)

    async def set(self, items: Dict[str, Any]) -> None:
        for key, value in items.items():
            self._data[key] = copy.deepcopy(value)

    async def remove(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._data.pop(key, None)

    async def keys(self) -> List[str]:
        return list(self._data)


class JsonFileKeyValueStore:
    """Store persisted as a single JSON document on disk."""

    def __init__(self, path: str):
        """
        Initialize the file store.

        Args:
            path: Location of the JSON file; created on first write
        """
        self.path = os.path.expanduser(path)
        self._data: Optional[Dict[str, Any]] = None
        self._lock = asyncio.Lock()
        logger.debug(f"JSON key-value store at {self.path}")

    async def _load(self) -> Dict[str, Any]:
        if self._data is None:
            self._data = await asyncio.to_thread(self._read_file)
        return self._data

    def _read_file(self) -> Dict[str, Any]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read {self.path}: {e}", context={"path": self.path}) from e
        if not isinstance(data, dict):
            raise StorageError(f"Storage file {self.path} does not hold an object", context={"path": self.path})
        return data

    def _write_file(self, data: Dict[str, Any]) -> None:
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            tmp_path = f"{self.path}.tmp"
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StorageError(f"Failed to write {self.path}: {e}", context={"path": self.path}) from e

    async def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        data = await self._load()
        return {key: copy.deepcopy(data[key]) for key in keys if key in data}

    async def get_all(self) -> Dict[str, Any]:
        return copy.deepcopy(await self._load())

    async def set(self, items: Dict[str, Any]) -> None:
        async with self._lock:
            data = dict(await self._load())
            data.update(copy.deepcopy(items))
            await asyncio.to_thread(self._write_file, data)
            self._data = data

    async def remove(self, keys: Iterable[str]) -> None:
        async with self._lock:
            data = dict(await self._load())
            for key in keys:
                data.pop(key, None)
            await asyncio.to_thread(self._write_file, data)
            self._data = data

    async def keys(self) -> List[str]:
        return list(await self._load())
