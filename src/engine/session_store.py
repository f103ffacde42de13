"""
Multi-backend persistence for session state.

Strategies are selected per call from three flags:

    large + database available  -> database
    otherwise persistent        -> local_storage
    temporary                   -> session_storage (in addition)
    nothing selected            -> every available key-value backend

Writes are either immediate or queued. The queue holds one entry per key
(last write wins) and is flushed by a debounce deadline, flush(), close()
and interpreter exit.

Reads try the selected strategies in order and return the first hit.
"""

from __future__ import annotations

import atexit
import json
from enum import Enum
from typing import TYPE_CHECKING, Any

from loguru import logger

from .backends import BACKEND_ERRORS, DatabaseBackend, FileBackend, MemoryBackend, StorageBackend
from .scheduler import AsyncioScheduler

if TYPE_CHECKING:
    from config import Settings

    from .scheduler import Handle, Scheduler


class StorageStrategy(str, Enum):
    SESSION = "session_storage"
    LOCAL = "local_storage"
    DATABASE = "database"


def _prepare(data: Any) -> Any:
    """Detach data from the caller: a JSON deep copy taken at save time. Non-JSON values raise."""
    return json.loads(json.dumps(data))


class SessionStore:
    """
    Persistence front-end over the enabled storage backends.

    Usage:
        store = SessionStore.from_settings(get_settings(), scheduler)
        await store.save("quiz-state-42", state)
        state = await store.load("quiz-state-42")
        store.close()
    """

    def __init__(
        self,
        backends: dict[StorageStrategy, StorageBackend],
        scheduler: "Scheduler | None" = None,
        *,
        save_interval: float = 5000,
        namespace: str = "quiz-app",
    ):
        self.namespace = namespace
        self.save_interval = save_interval
        self._scheduler = scheduler or AsyncioScheduler()
        self._backends: dict[StorageStrategy, StorageBackend] = {}
        self._queue: dict[str, tuple[Any, tuple[StorageStrategy, ...]]] = {}
        self._deadline: Handle | None = None
        self._closed = False

        for strategy, backend in backends.items():
            try:
                backend.probe()
            except BACKEND_ERRORS as e:
                logger.warning("{} not available, disabling: {}", strategy.value, e)
                continue
            self._backends[StorageStrategy(strategy)] = backend

        atexit.register(self.flush)
        logger.debug(
            "Session store ready (namespace={}, backends={})",
            namespace,
            [s.value for s in self._backends],
        )

    @classmethod
    def from_settings(cls, settings: "Settings", scheduler: "Scheduler | None" = None) -> "SessionStore":
        backends: dict[StorageStrategy, StorageBackend] = {}
        namespace = settings.storage_namespace
        if settings.enable_session_storage:
            backends[StorageStrategy.SESSION] = MemoryBackend(namespace)
        if settings.enable_local_storage:
            backends[StorageStrategy.LOCAL] = FileBackend(namespace, settings.storage_dir)
        if settings.enable_database:
            try:
                backends[StorageStrategy.DATABASE] = DatabaseBackend(
                    namespace, settings.get_database_url(), echo=settings.log_level == "DEBUG"
                )
            except BACKEND_ERRORS as e:
                logger.warning("database not available, disabling: {}", e)
        return cls(backends, scheduler, save_interval=settings.save_interval_ms, namespace=namespace)

    # =========================================================================
    # Strategy selection
    # =========================================================================

    def available_strategies(self) -> list[StorageStrategy]:
        return list(self._backends)

    def is_available(self, strategy: StorageStrategy | str) -> bool:
        return StorageStrategy(strategy) in self._backends

    def select_strategies(
        self, persistent: bool = True, temporary: bool = False, large: bool = False
    ) -> tuple[StorageStrategy, ...]:
        selected: list[StorageStrategy] = []
        if large and self.is_available(StorageStrategy.DATABASE):
            selected.append(StorageStrategy.DATABASE)
        elif persistent and self.is_available(StorageStrategy.LOCAL):
            selected.append(StorageStrategy.LOCAL)
        if temporary and self.is_available(StorageStrategy.SESSION):
            selected.append(StorageStrategy.SESSION)

        if not selected:
            for fallback in (StorageStrategy.LOCAL, StorageStrategy.SESSION):
                if self.is_available(fallback):
                    selected.append(fallback)
        return tuple(selected)

    # =========================================================================
    # Writes
    # =========================================================================

    async def save(
        self,
        key: str,
        data: Any,
        *,
        persistent: bool = True,
        temporary: bool = False,
        large: bool = False,
        immediate: bool = False,
    ) -> bool:
        """Persist data under key. Returns False when the data cannot be serialized."""
        strategies = self.select_strategies(persistent, temporary, large)
        try:
            prepared = _prepare(data)
        except (TypeError, ValueError) as e:
            logger.error("Failed to save {}: {}", key, e)
            return False

        if immediate:
            self._write(key, prepared, strategies)
        else:
            self._enqueue(key, prepared, strategies)
        return True

    def enqueue(
        self, key: str, data: Any, *, persistent: bool = True, temporary: bool = False, large: bool = False
    ) -> bool:
        """Synchronous queued save, for scheduler callbacks."""
        try:
            prepared = _prepare(data)
        except (TypeError, ValueError) as e:
            logger.error("Failed to queue {}: {}", key, e)
            return False
        self._enqueue(key, prepared, self.select_strategies(persistent, temporary, large))
        return True

    def _enqueue(self, key: str, data: Any, strategies: tuple[StorageStrategy, ...]) -> None:
        self._queue[key] = (data, strategies)
        if self._closed:
            self.flush()
            return
        self.cancel_pending()
        self._deadline = self._scheduler.call_later(self.save_interval, self.flush)

    def flush(self) -> int:
        """Write every queued entry now. Returns the number of keys written."""
        self.cancel_pending()
        queue, self._queue = self._queue, {}
        for key, (data, strategies) in queue.items():
            self._write(key, data, strategies)
        if queue:
            logger.debug("Flushed {} queued save(s)", len(queue))
        return len(queue)

    def cancel_pending(self) -> None:
        """Cancel the debounce deadline without dropping queued entries."""
        if self._deadline is not None:
            self._deadline.cancel()
            self._deadline = None

    @property
    def pending_keys(self) -> list[str]:
        return list(self._queue)

    def _write(self, key: str, data: Any, strategies: tuple[StorageStrategy, ...]) -> None:
        for strategy in strategies:
            backend = self._backends.get(strategy)
            if backend is None:
                continue
            try:
                backend.set(key, data)
            except BACKEND_ERRORS as e:
                logger.warning("Failed to save {} to {}: {}", key, strategy.value, e)

    # =========================================================================
    # Reads and deletes
    # =========================================================================

    async def load(
        self,
        key: str,
        *,
        persistent: bool = True,
        temporary: bool = False,
        large: bool = False,
        default: Any = None,
    ) -> Any:
        # Queued writes are visible before they flush
        if key in self._queue:
            return self._queue[key][0]
        for strategy in self.select_strategies(persistent, temporary, large):
            try:
                data = self._backends[strategy].get(key)
            except BACKEND_ERRORS as e:
                logger.warning("Failed to load {} from {}: {}", key, strategy.value, e)
                continue
            if data is not None:
                return data
        return default

    async def delete(
        self, key: str, *, persistent: bool = True, temporary: bool = False, large: bool = False
    ) -> None:
        self._queue.pop(key, None)
        for strategy in self.select_strategies(persistent, temporary, large):
            try:
                self._backends[strategy].delete(key)
            except BACKEND_ERRORS as e:
                logger.warning("Failed to delete {} from {}: {}", key, strategy.value, e)

    async def clear_all(self) -> None:
        """Remove every namespaced key from every backend and drop the queue."""
        self._queue.clear()
        self.cancel_pending()
        for strategy, backend in self._backends.items():
            try:
                removed = backend.clear()
            except BACKEND_ERRORS as e:
                logger.warning("Failed to clear {}: {}", strategy.value, e)
                continue
            logger.info("Cleared {} record(s) from {}", removed, strategy.value)

    # =========================================================================
    # Database archive
    # =========================================================================

    def _database(self) -> DatabaseBackend | None:
        backend = self._backends.get(StorageStrategy.DATABASE)
        return backend if isinstance(backend, DatabaseBackend) else None

    async def archive_exercise(self, definition: dict) -> bool:
        database = self._database()
        if database is None:
            return False
        try:
            database.archive_exercise(_prepare(definition))
        except BACKEND_ERRORS as e:
            logger.warning("Failed to archive exercise {}: {}", definition.get("id"), e)
            return False
        return True

    async def archive_session(self, exercise_id: str, result: dict) -> bool:
        database = self._database()
        if database is None:
            return False
        try:
            database.archive_session(exercise_id, _prepare(result))
        except BACKEND_ERRORS as e:
            logger.warning("Failed to archive session for {}: {}", exercise_id, e)
            return False
        logger.info("Archived session for exercise {}", exercise_id)
        return True

    # =========================================================================
    # Introspection and shutdown
    # =========================================================================

    def get_storage_stats(self) -> dict[str, Any]:
        stats: dict[str, Any] = {}
        for strategy in StorageStrategy:
            backend = self._backends.get(strategy)
            entry: dict[str, Any] = {"available": backend is not None, "used": 0, "keys": 0}
            if backend is not None:
                try:
                    entry["used"] = backend.used_bytes()
                    entry["keys"] = len(backend.keys())
                except BACKEND_ERRORS as e:
                    logger.warning("Cannot calculate {} stats: {}", strategy.value, e)
            stats[strategy.value] = entry
        stats["pending"] = len(self._queue)
        return stats

    def close(self) -> None:
        """Flush the queue and release backends. Further saves write through."""
        if self._closed:
            return
        self.flush()
        self._closed = True
        atexit.unregister(self.flush)
        for backend in self._backends.values():
            backend.close()
