"""
Storage backends for SessionStore.

- MemoryBackend (session_storage): in-process dict, gone when the process exits
- FileBackend (local_storage): one JSON file per key under a directory
- DatabaseBackend (database): SQLAlchemy tables exercises, sessions, progress

Key-value backends store the envelope text {"data", "timestamp", "version"}
under "<namespace>-<key>". The database backend keeps {key, data, timestamp}
rows in the progress table.

Backends are synchronous and raise on failure; SessionStore decides what a
failure means.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import quote, unquote

from loguru import logger
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError

from src.db.database import create_db_engine, init_db, make_session_factory, session_scope
from src.db.models import ExerciseRecord, ProgressRecord, SessionRecord

from .scheduler import epoch_ms

ENVELOPE_VERSION = "1.0"

# What a single backend operation may raise
BACKEND_ERRORS: tuple[type[BaseException], ...] = (OSError, SQLAlchemyError, TypeError, ValueError)


def wrap_envelope(data: Any) -> str:
    return json.dumps({"data": data, "timestamp": epoch_ms(), "version": ENVELOPE_VERSION})


def parse_stored(text: str) -> Any:
    """
    Unwrap stored text.

    Envelope -> its data; other JSON -> as parsed; anything unparsable -> the
    raw string (values written by hand, e.g. a bare theme name).
    """
    try:
        parsed = json.loads(text)
    except ValueError:
        return text
    if isinstance(parsed, dict) and "data" in parsed:
        return parsed["data"]
    return parsed


class StorageBackend(Protocol):
    name: str

    def probe(self) -> None: ...

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, data: Any) -> None: ...

    def delete(self, key: str) -> None: ...

    def clear(self) -> int: ...

    def keys(self) -> list[str]: ...

    def used_bytes(self) -> int: ...

    def close(self) -> None: ...


# =============================================================================
# Key-value backends
# =============================================================================


class KeyValueBackend:
    """Shared envelope and namespacing logic; subclasses provide raw text I/O."""

    name = "key_value"

    def __init__(self, namespace: str):
        self.namespace = namespace

    def full_key(self, key: str) -> str:
        return f"{self.namespace}-{key}"

    def probe(self) -> None:
        test_key = self.full_key("test")
        self._write(test_key, "test")
        self._remove(test_key)

    def get(self, key: str) -> Any | None:
        text = self._read(self.full_key(key))
        return None if text is None else parse_stored(text)

    def set(self, key: str, data: Any) -> None:
        self._write(self.full_key(key), wrap_envelope(data))

    def delete(self, key: str) -> None:
        self._remove(self.full_key(key))

    def clear(self) -> int:
        stored = self._stored_keys()
        for full_key in stored:
            self._remove(full_key)
        return len(stored)

    def keys(self) -> list[str]:
        prefix = f"{self.namespace}-"
        return [k[len(prefix):] for k in self._stored_keys()]

    def used_bytes(self) -> int:
        return sum(len(self._read(k) or "") for k in self._stored_keys())

    def close(self) -> None:
        pass

    def _stored_keys(self) -> list[str]:
        prefix = f"{self.namespace}-"
        return [k for k in self._all_keys() if k.startswith(prefix)]

    # Raw text I/O
    def _read(self, full_key: str) -> str | None:
        raise NotImplementedError

    def _write(self, full_key: str, text: str) -> None:
        raise NotImplementedError

    def _remove(self, full_key: str) -> None:
        raise NotImplementedError

    def _all_keys(self) -> list[str]:
        raise NotImplementedError


class MemoryBackend(KeyValueBackend):
    """Ephemeral store. Survives engine instances, not the process."""

    name = "session_storage"

    def __init__(self, namespace: str, items: dict[str, str] | None = None):
        super().__init__(namespace)
        self._items: dict[str, str] = items if items is not None else {}

    def _read(self, full_key: str) -> str | None:
        return self._items.get(full_key)

    def _write(self, full_key: str, text: str) -> None:
        self._items[full_key] = text

    def _remove(self, full_key: str) -> None:
        self._items.pop(full_key, None)

    def _all_keys(self) -> list[str]:
        return list(self._items)


class FileBackend(KeyValueBackend):
    """Persistent store: <directory>/<url-quoted full key>.json."""

    name = "local_storage"

    def __init__(self, namespace: str, directory: Path):
        super().__init__(namespace)
        self.directory = Path(directory)

    def probe(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        super().probe()

    def _path(self, full_key: str) -> Path:
        return self.directory / f"{quote(full_key, safe='')}.json"

    def _read(self, full_key: str) -> str | None:
        path = self._path(full_key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def _write(self, full_key: str, text: str) -> None:
        path = self._path(full_key)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(text, encoding="utf-8")
        tmp.replace(path)

    def _remove(self, full_key: str) -> None:
        self._path(full_key).unlink(missing_ok=True)

    def _all_keys(self) -> list[str]:
        if not self.directory.exists():
            return []
        return [unquote(p.stem) for p in self.directory.glob("*.json")]


# =============================================================================
# Database backend
# =============================================================================


class DatabaseBackend:
    """
    Structured store for large or long-lived records.

    Key-value traffic goes to the progress table; archive_exercise and
    archive_session fill the exercises and sessions tables.
    """

    name = "database"

    def __init__(self, namespace: str, url: str, echo: bool = False):
        self.namespace = namespace
        self.url = url
        self._engine = create_db_engine(url, echo=echo)
        self._factory = make_session_factory(self._engine)

    def full_key(self, key: str) -> str:
        return f"{self.namespace}-{key}"

    def probe(self) -> None:
        init_db(self._engine)
        with session_scope(self._factory) as session:
            session.execute(select(func.count()).select_from(ProgressRecord))

    def get(self, key: str) -> Any | None:
        with session_scope(self._factory) as session:
            record = session.get(ProgressRecord, self.full_key(key))
            return None if record is None else record.data

    def set(self, key: str, data: Any) -> None:
        with session_scope(self._factory) as session:
            session.merge(ProgressRecord(key=self.full_key(key), data=data, timestamp=epoch_ms()))

    def delete(self, key: str) -> None:
        with session_scope(self._factory) as session:
            session.execute(delete(ProgressRecord).where(ProgressRecord.key == self.full_key(key)))

    def clear(self) -> int:
        removed = 0
        with session_scope(self._factory) as session:
            for model in (ProgressRecord, SessionRecord, ExerciseRecord):
                removed += session.execute(delete(model)).rowcount or 0
        return removed

    def keys(self) -> list[str]:
        prefix = f"{self.namespace}-"
        with session_scope(self._factory) as session:
            rows = session.scalars(select(ProgressRecord.key).where(ProgressRecord.key.startswith(prefix)))
            return [k[len(prefix):] for k in rows]

    def used_bytes(self) -> int:
        with session_scope(self._factory) as session:
            return sum(len(json.dumps(d)) for d in session.scalars(select(ProgressRecord.data)))

    def count(self, table: str) -> int:
        model = {"exercises": ExerciseRecord, "sessions": SessionRecord, "progress": ProgressRecord}[table]
        with session_scope(self._factory) as session:
            return session.scalar(select(func.count()).select_from(model)) or 0

    def archive_exercise(self, definition: dict) -> None:
        with session_scope(self._factory) as session:
            session.merge(
                ExerciseRecord(
                    id=str(definition["id"]),
                    exercise_type=str(definition.get("type", "")),
                    title=definition.get("title"),
                    question_count=len(definition.get("questions") or []),
                    definition=definition,
                )
            )

    def archive_session(self, exercise_id: str, result: dict) -> None:
        final = result.get("final_score") or {}
        with session_scope(self._factory) as session:
            session.add(
                SessionRecord(
                    exercise_id=exercise_id,
                    total_score=int(final.get("total", 0)),
                    accuracy=int(final.get("accuracy", 0)),
                    grade=final.get("grade"),
                    total_time=float(result.get("total_time", 0.0)),
                    result=result,
                )
            )

    def sessions_for(self, exercise_id: str) -> list[dict]:
        with session_scope(self._factory) as session:
            rows = session.scalars(
                select(SessionRecord)
                .where(SessionRecord.exercise_id == exercise_id)
                .order_by(SessionRecord.id)
            )
            return [row.result for row in rows]

    def close(self) -> None:
        self._engine.dispose()
        logger.debug("Database backend closed ({})", self.url)
