"""
action_engine/stores.py

Reference adapters for the StateStore and MemoryLog collaborators.

In-memory variants serve tests and single-process use; the SQL variants
persist through SQLAlchemy. Values are stored as JSON.
"""
from typing import Any, Callable, Dict, List, Optional, Tuple
import copy
import json
import threading

from sqlalchemy.orm import Session

from action_engine.database import MemoryRecord, StateEntry


class InMemoryStateStore:
    """Thread-safe dict-backed state store. Values are deep-copied in and out."""

    def __init__(self):
        self._data: Dict[Tuple[str, str], Any] = {}
        self._lock = threading.RLock()

    def get(self, scope: str, id: str) -> Optional[Any]:
        with self._lock:
            if (scope, id) not in self._data:
                return None
            return copy.deepcopy(self._data[(scope, id)])

    def set(self, scope: str, id: str, value: Any) -> None:
        with self._lock:
            self._data[(scope, id)] = copy.deepcopy(value)

    def clear(self) -> None:
        """Clear all entries (for testing)."""
        with self._lock:
            self._data.clear()


class InMemoryMemoryLog:
    """Thread-safe append-only list."""

    def __init__(self):
        self._records: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def append(self, record: Dict[str, Any]) -> None:
        with self._lock:
            self._records.append(copy.deepcopy(record))

    @property
    def records(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._records)

    def __len__(self) -> int:
        return len(self._records)


class SqlStateStore:
    """
    StateStore persisted in the `state_entries` table.

    Example:
        >>> engine = create_db_engine("sqlite:///./state.db")
        >>> init_db(engine)
        >>> store = SqlStateStore(create_session_factory(engine))
        >>> store.set("orders", "user-1", [{"ticker": "ABC"}])
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def get(self, scope: str, id: str) -> Optional[Any]:
        session = self._session_factory()
        try:
            entry = session.get(StateEntry, (scope, id))
            if entry is None:
                return None
            return json.loads(entry.value)
        finally:
            session.close()

    def set(self, scope: str, id: str, value: Any) -> None:
        payload = json.dumps(value, ensure_ascii=False)
        session = self._session_factory()
        try:
            entry = session.get(StateEntry, (scope, id))
            if entry is None:
                session.add(StateEntry(scope=scope, entry_id=id, value=payload))
            else:
                entry.value = payload
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


class SqlMemoryLog:
    """MemoryLog persisted in the `memory_records` table."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def append(self, record: Dict[str, Any]) -> None:
        session = self._session_factory()
        try:
            session.add(MemoryRecord(
                record_type=str(record.get("type", "")),
                payload=json.dumps(record, ensure_ascii=False, default=str),
            ))
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


__all__ = [
    "InMemoryStateStore",
    "InMemoryMemoryLog",
    "SqlStateStore",
    "SqlMemoryLog",
]
