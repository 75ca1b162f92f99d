"""
In-memory base repository.

Stands in for the external persistence layer: records are plain dicts keyed
by id, copied on the way in and out so callers never share mutable state.
"""
import copy
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryRepository:
    """Thread-safe dict-of-dicts table."""

    table_name = "records"

    def __init__(self):
        self._rows: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def _insert(self, data: Dict[str, Any]) -> Dict[str, Any]:
        now = utcnow()
        row = dict(data)
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", now)
        row.setdefault("updated_at", now)
        with self._lock:
            self._rows[row["id"]] = row
            return copy.deepcopy(row)

    def get_by_id(self, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._rows.get(record_id)
            return copy.deepcopy(row) if row else None

    def exists(self, record_id: str) -> bool:
        with self._lock:
            return record_id in self._rows

    def _update(self, record_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._rows.get(record_id)
            if row is None:
                return None
            row.update(changes)
            row["updated_at"] = utcnow()
            return copy.deepcopy(row)

    def delete(self, record_id: str) -> bool:
        with self._lock:
            return self._rows.pop(record_id, None) is not None

    def _select(self, predicate: Callable[[Dict[str, Any]], bool]) -> List[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(row) for row in self._rows.values() if predicate(row)]

    def count(self) -> int:
        with self._lock:
            return len(self._rows)


def paginate(rows: List[Dict[str, Any]], page: int, limit: int) -> List[Dict[str, Any]]:
    start = (page - 1) * limit
    return rows[start:start + limit]
