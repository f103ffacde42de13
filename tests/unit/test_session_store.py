"""
Unit tests for SessionStore and its backends.

Debounce behavior runs on the ManualScheduler; file and database backends
write under tmp_path.
"""

import json

import pytest

from src.engine.backends import (
    ENVELOPE_VERSION,
    DatabaseBackend,
    FileBackend,
    MemoryBackend,
    parse_stored,
    wrap_envelope,
)
from src.engine.session_store import SessionStore, StorageStrategy


class BrokenBackend(MemoryBackend):
    """A backend whose probe always fails."""

    def probe(self):
        raise OSError("storage quota exceeded")


@pytest.fixture
def database_store(tmp_path, scheduler):
    store = SessionStore(
        {
            StorageStrategy.SESSION: MemoryBackend("test"),
            StorageStrategy.LOCAL: FileBackend("test", tmp_path / "kv"),
            StorageStrategy.DATABASE: DatabaseBackend("test", f"sqlite:///{tmp_path / 'db' / 'quiz.db'}"),
        },
        scheduler,
        namespace="test",
    )
    yield store
    store.close()


class TestEnvelope:

    def test_wrap_and_parse(self):
        text = wrap_envelope({"score": 10})
        raw = json.loads(text)

        assert raw["version"] == ENVELOPE_VERSION
        assert raw["timestamp"] > 0
        assert parse_stored(text) == {"score": 10}

    def test_parse_non_envelope(self):
        assert parse_stored("[1, 2]") == [1, 2]
        assert parse_stored("dark") == "dark"


class TestStrategySelection:
    """Test which backends a call goes to."""

    def test_default_is_persistent(self, store):
        assert store.select_strategies() == (StorageStrategy.LOCAL,)

    def test_temporary_adds_session(self, store):
        assert store.select_strategies(temporary=True) == (StorageStrategy.LOCAL, StorageStrategy.SESSION)
        assert store.select_strategies(persistent=False, temporary=True) == (StorageStrategy.SESSION,)

    def test_nothing_selected_falls_back(self, store):
        assert store.select_strategies(persistent=False) == (StorageStrategy.LOCAL, StorageStrategy.SESSION)

    def test_large_without_database(self, store):
        assert store.select_strategies(large=True) == (StorageStrategy.LOCAL,)

    def test_large_with_database(self, database_store):
        assert database_store.select_strategies(large=True) == (StorageStrategy.DATABASE,)

    def test_failed_probe_disables_backend(self, scheduler):
        store = SessionStore(
            {StorageStrategy.SESSION: MemoryBackend("t"), StorageStrategy.LOCAL: BrokenBackend("t")},
            scheduler,
        )

        assert store.available_strategies() == [StorageStrategy.SESSION]
        assert store.select_strategies() == (StorageStrategy.SESSION,)
        store.close()


class TestWrites:
    """Test immediate and queued saves."""

    @pytest.mark.asyncio
    async def test_immediate_save(self, memory_store):
        assert await memory_store.save("settings", {"theme": "dark"}, immediate=True) is True

        backend = memory_store._backends[StorageStrategy.SESSION]
        assert backend.get("settings") == {"theme": "dark"}
        assert "test-settings" in backend._items

    @pytest.mark.asyncio
    async def test_queued_save_is_debounced(self, memory_store, scheduler):
        await memory_store.save("progress", {"step": 1})
        backend = memory_store._backends[StorageStrategy.SESSION]

        assert backend.get("progress") is None
        assert memory_store.pending_keys == ["progress"]
        # Queued values are visible to reads before they flush
        assert await memory_store.load("progress") == {"step": 1}

        scheduler.advance(5000)
        assert backend.get("progress") == {"step": 1}
        assert memory_store.pending_keys == []

    @pytest.mark.asyncio
    async def test_last_write_wins(self, memory_store):
        await memory_store.save("progress", {"step": 1})
        await memory_store.save("progress", {"step": 2})

        assert memory_store.flush() == 1
        assert await memory_store.load("progress") == {"step": 2}

    @pytest.mark.asyncio
    async def test_deadline_rearmed_on_every_save(self, memory_store, scheduler):
        backend = memory_store._backends[StorageStrategy.SESSION]
        await memory_store.save("a", 1)
        scheduler.advance(4000)
        await memory_store.save("b", 2)
        scheduler.advance(4000)

        assert backend.get("a") is None
        scheduler.advance(1000)
        assert backend.get("a") == 1
        assert backend.get("b") == 2

    @pytest.mark.asyncio
    async def test_saved_data_is_detached(self, memory_store):
        data = {"answers": [1]}
        await memory_store.save("progress", data)
        data["answers"].append(2)

        assert await memory_store.load("progress") == {"answers": [1]}

    @pytest.mark.asyncio
    async def test_unserializable_data_rejected(self, memory_store):
        circular = {}
        circular["self"] = circular

        assert await memory_store.save("bad", circular) is False
        assert memory_store.enqueue("bad", circular) is False
        assert memory_store.pending_keys == []

    @pytest.mark.asyncio
    async def test_non_json_values_rejected_not_stringified(self, memory_store):
        assert await memory_store.save("k", {"pick": {"a"}}, immediate=True) is False
        assert memory_store.enqueue("k", {"pick": {"a"}}) is False
        assert await memory_store.load("k") is None

    def test_close_flushes_and_writes_through(self, memory_store):
        backend = memory_store._backends[StorageStrategy.SESSION]
        memory_store.enqueue("a", 1)
        memory_store.close()

        assert backend.get("a") == 1
        memory_store.enqueue("b", 2)
        assert backend.get("b") == 2


class TestReads:

    @pytest.mark.asyncio
    async def test_load_default(self, memory_store):
        assert await memory_store.load("missing", default={}) == {}

    @pytest.mark.asyncio
    async def test_file_backend_survives_store(self, settings, scheduler):
        first = SessionStore.from_settings(settings, scheduler)
        await first.save("quiz-state-1", {"score": 42}, immediate=True)
        first.close()

        second = SessionStore.from_settings(settings, scheduler)
        assert await second.load("quiz-state-1") == {"score": 42}
        second.close()

    @pytest.mark.asyncio
    async def test_delete(self, store):
        await store.save("k", 1, immediate=True, temporary=True)
        await store.delete("k", temporary=True)

        assert await store.load("k", temporary=True) is None

    @pytest.mark.asyncio
    async def test_clear_all(self, store):
        await store.save("a", 1, immediate=True)
        await store.save("b", 2)
        await store.clear_all()

        assert await store.load("a") is None
        assert await store.load("b") is None
        assert store.pending_keys == []

    @pytest.mark.asyncio
    async def test_storage_stats(self, store):
        await store.save("a", {"x": 1}, immediate=True)
        await store.save("b", 2)
        stats = store.get_storage_stats()

        assert stats["local_storage"]["available"] is True
        assert stats["local_storage"]["keys"] == 1
        assert stats["local_storage"]["used"] > 0
        assert stats["database"] == {"available": False, "used": 0, "keys": 0}
        assert stats["pending"] == 1


class TestDatabaseBackend:
    """Test the SQLAlchemy-backed strategy."""

    @pytest.mark.asyncio
    async def test_large_round_trip(self, database_store):
        payload = {"answers": list(range(100))}
        await database_store.save("history", payload, large=True, immediate=True)

        assert await database_store.load("history", large=True) == payload
        database = database_store._backends[StorageStrategy.DATABASE]
        assert database.keys() == ["history"]
        assert database.count("progress") == 1

    @pytest.mark.asyncio
    async def test_overwrite(self, database_store):
        await database_store.save("history", [1], large=True, immediate=True)
        await database_store.save("history", [2], large=True, immediate=True)

        assert await database_store.load("history", large=True) == [2]

    @pytest.mark.asyncio
    async def test_archive(self, database_store):
        definition = {"id": "capitals", "type": "multipleChoice", "questions": [{}, {}]}
        result = {"exercise_id": "capitals", "total_time": 12000.0, "final_score": {"total": 300, "accuracy": 100, "grade": "A+"}}

        assert await database_store.archive_exercise(definition) is True
        assert await database_store.archive_session("capitals", result) is True

        database = database_store._backends[StorageStrategy.DATABASE]
        assert database.count("exercises") == 1
        assert database.sessions_for("capitals") == [result]

        await database_store.clear_all()
        assert database.count("sessions") == 0

    @pytest.mark.asyncio
    async def test_archive_without_database(self, store):
        assert await store.archive_session("capitals", {"final_score": {}}) is False
