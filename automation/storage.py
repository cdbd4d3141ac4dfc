import asyncio
import copy
import inspect
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Optional

from pydantic import ValidationError

from automation.error_handler import StorageError, handle_storage_error
from automation.models import EditorBookmarklet
from automation.utils.io_manager import IOManager

logger = logging.getLogger(__name__)

EDITOR_BOOKMARKLETS_KEY = "customBookmarklets"

# listener(changes) where changes = {key: {"oldValue": ..., "newValue": ...}}
ChangeListener = Callable[[Dict[str, Dict[str, Any]]], Any]


class SettingsStorage(ABC):
    """
    Async key-value settings store. Every `set` that changes something is
    pushed to subscribers as a {key: {"newValue": v}} diff.
    """

    def __init__(self):
        self._listeners: List[ChangeListener] = []
        self._lock = asyncio.Lock()

    @abstractmethod
    async def _read_all(self) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def _write_all(self, data: Dict[str, Any]):
        pass

    async def get(self, keys: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        data = await self._read_all()
        if keys is None:
            return copy.deepcopy(data)
        return {k: copy.deepcopy(data[k]) for k in keys if k in data}

    async def set(self, items: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
        async with self._lock:
            data = await self._read_all()
            changes = {}
            for key, value in items.items():
                if data.get(key) != value:
                    changes[key] = {"oldValue": data.get(key), "newValue": copy.deepcopy(value)}
                    data[key] = copy.deepcopy(value)
            if changes:
                await self._write_all(data)
        if changes:
            await self._notify(changes)
        return changes

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    async def _notify(self, changes: Dict[str, Dict[str, Any]]):
        for listener in list(self._listeners):
            try:
                result = listener(changes)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Settings change listener failed: {e}", exc_info=True)


class InMemoryStorage(SettingsStorage):
    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        super().__init__()
        self._data: Dict[str, Any] = copy.deepcopy(initial or {})

    async def _read_all(self) -> Dict[str, Any]:
        return self._data

    async def _write_all(self, data: Dict[str, Any]):
        self._data = data


class JsonFileStorage(SettingsStorage):
    """Settings persisted as one JSON object in a file."""

    def __init__(self, path: str):
        super().__init__()
        self.path = path

    async def _read_all(self) -> Dict[str, Any]:
        try:
            data = await IOManager.read_json(self.path)
        except (OSError, json.JSONDecodeError) as e:
            handle_storage_error(e, f"Could not read settings from {self.path}")
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise StorageError(f"Settings file {self.path} does not hold a JSON object")
        return data

    async def _write_all(self, data: Dict[str, Any]):
        if not await IOManager.write_json(self.path, data):
            raise StorageError(f"Could not write settings to {self.path}")


class EditorBookmarkletStore:
    """The named bookmarklet library, kept under one storage key."""

    def __init__(self, storage: SettingsStorage, key: str = EDITOR_BOOKMARKLETS_KEY):
        self.storage = storage
        self.key = key

    async def _raw(self) -> Dict[str, Any]:
        data = await self.storage.get([self.key])
        return data.get(self.key) or {}

    async def get(self, bookmarklet_id: str) -> Optional[EditorBookmarklet]:
        raw = (await self._raw()).get(bookmarklet_id)
        if raw is None:
            return None
        try:
            return EditorBookmarklet.model_validate({"id": bookmarklet_id, **raw})
        except ValidationError as e:
            logger.warning(f"Editor bookmarklet {bookmarklet_id} is malformed: {e}")
            return None

    async def all(self) -> List[EditorBookmarklet]:
        result = []
        for bookmarklet_id, raw in (await self._raw()).items():
            try:
                result.append(EditorBookmarklet.model_validate({"id": bookmarklet_id, **raw}))
            except ValidationError as e:
                logger.warning(f"Skipping malformed editor bookmarklet {bookmarklet_id}: {e}")
        return result

    async def record_execution(self, bookmarklet_id: str, now_ms: Optional[int] = None):
        """Stamp lastExecuted and bump executionCount."""
        library = await self._raw()
        entry = library.get(bookmarklet_id)
        if entry is None:
            return
        entry["lastExecuted"] = now_ms if now_ms is not None else int(time.time() * 1000)
        entry["executionCount"] = (entry.get("executionCount") or 0) + 1
        await self.storage.set({self.key: library})
