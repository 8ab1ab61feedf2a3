"""
Storage Backend Module

Provides abstract storage interface and implementations for in-memory (testing)
and SQLite (persistence). Records are JSON documents keyed by id; all monetary
values are stored as Decimal strings.

A unit of work is opened with ``atomic()``. It holds the backend lock until it
commits or rolls back, so other threads never observe a half-applied unit.
Units nest: an inner ``atomic()`` joins the outer one.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Set, Union
from decimal import Decimal
from datetime import datetime, timezone
from enum import Enum
import copy
import json
import re
import sqlite3
import threading
from dataclasses import dataclass, asdict
from pathlib import Path
from contextlib import contextmanager

from .logging_config import get_logger


_IDENTIFIER = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


def _check_identifier(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid table or field name: {name!r}")
    return name


class DuplicateKeyError(Exception):
    """Insert violated a primary key or unique constraint"""

    def __init__(self, table: str, field: str, value: Any):
        super().__init__(f"Duplicate {field} {value!r} in {table}")
        self.table = table
        self.field = field
        self.value = value


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: int
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-ready dictionary"""
        result = asdict(self)
        for key, value in result.items():
            if isinstance(value, datetime):
                result[key] = value.isoformat()
            elif isinstance(value, Decimal):
                result[key] = str(value)
            elif isinstance(value, Enum):
                result[key] = value.value
        return result

    @staticmethod
    def _parse_timestamps(data: Dict[str, Any]) -> Dict[str, Any]:
        data = dict(data)
        for key in ('created_at', 'updated_at'):
            if isinstance(data.get(key), str):
                data[key] = datetime.fromisoformat(data[key])
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StorageRecord':
        """Create instance from dictionary"""
        return cls(**cls._parse_timestamps(data))


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    @abstractmethod
    def insert(self, table: str, record_id: Any, data: Dict[str, Any]) -> None:
        """Insert a new record; raises DuplicateKeyError on any key clash"""
        pass

    @abstractmethod
    def save(self, table: str, record_id: Any, data: Dict[str, Any]) -> None:
        """Insert or replace a record by id (unique constraints still apply)"""
        pass

    @abstractmethod
    def load(self, table: str, record_id: Any) -> Optional[Dict[str, Any]]:
        """Load a record from storage"""
        pass

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table in insertion order"""
        pass

    @abstractmethod
    def delete(self, table: str, record_id: Any) -> bool:
        """Delete a record from storage"""
        pass

    @abstractmethod
    def exists(self, table: str, record_id: Any) -> bool:
        """Check if a record exists"""
        pass

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records whose fields equal all the filter values"""
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        """Count records in table"""
        pass

    @abstractmethod
    def next_id(self, name: str) -> int:
        """Return the next value (1, 2, ...) of a named sequence"""
        pass

    @abstractmethod
    def add_unique_constraint(self, table: str, field: str) -> None:
        """Require ``field`` to be unique across records of ``table``"""
        pass

    @abstractmethod
    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

    @abstractmethod
    def begin_transaction(self) -> None:
        """Open (or join) a unit of work"""
        pass

    @abstractmethod
    def commit(self) -> None:
        """Commit the current unit of work"""
        pass

    @abstractmethod
    def rollback(self) -> None:
        """Roll back the current unit of work"""
        pass

    @contextmanager
    def atomic(self):
        """Context manager for atomic operations"""
        self.begin_transaction()
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        else:
            self.commit()


class InMemoryStorage(StorageInterface):
    """
    In-memory storage implementation for testing and throwaway runs

    Not meant for production data: each outermost unit of work deep-copies
    the whole store so it can roll back, which costs O(size of store) per
    mutation. Use SQLiteStorage for anything long-lived.
    """

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._sequences: Dict[str, int] = {}
        self._unique: Dict[str, Set[str]] = {}
        self._lock = threading.RLock()
        self._depth = 0
        self._snapshot = None

    def _table(self, table: str) -> Dict[str, Dict[str, Any]]:
        return self._data.setdefault(table, {})

    @staticmethod
    def _copy(data: Dict[str, Any]) -> Dict[str, Any]:
        # Deep copy to prevent external mutation
        return json.loads(json.dumps(data, default=str))

    def _check_unique(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        for field in self._unique.get(table, ()):
            value = data.get(field)
            for other_id, other in self._table(table).items():
                if other_id != record_id and other.get(field) == value:
                    raise DuplicateKeyError(table, field, value)

    def insert(self, table: str, record_id: Any, data: Dict[str, Any]) -> None:
        with self._lock:
            key = str(record_id)
            if key in self._table(table):
                raise DuplicateKeyError(table, "id", record_id)
            self._check_unique(table, key, data)
            self._table(table)[key] = self._copy(data)

    def save(self, table: str, record_id: Any, data: Dict[str, Any]) -> None:
        with self._lock:
            key = str(record_id)
            self._check_unique(table, key, data)
            self._table(table)[key] = self._copy(data)

    def load(self, table: str, record_id: Any) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._table(table).get(str(record_id))
            return self._copy(record) if record is not None else None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [self._copy(record) for record in self._table(table).values()]

    def delete(self, table: str, record_id: Any) -> bool:
        with self._lock:
            return self._table(table).pop(str(record_id), None) is not None

    def exists(self, table: str, record_id: Any) -> bool:
        with self._lock:
            return str(record_id) in self._table(table)

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                self._copy(record) for record in self._table(table).values()
                if all(key in record and record[key] == value for key, value in filters.items())
            ]

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._table(table))

    def next_id(self, name: str) -> int:
        with self._lock:
            value = self._sequences.get(name, 0) + 1
            self._sequences[name] = value
            return value

    def add_unique_constraint(self, table: str, field: str) -> None:
        with self._lock:
            seen = set()
            for record in self._table(table).values():
                if record.get(field) in seen:
                    raise DuplicateKeyError(table, field, record.get(field))
                seen.add(record.get(field))
            self._unique.setdefault(table, set()).add(field)

    def clear_table(self, table: str) -> None:
        with self._lock:
            self._data[table] = {}

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass

    def begin_transaction(self) -> None:
        self._lock.acquire()
        if self._depth == 0:
            self._snapshot = (copy.deepcopy(self._data), dict(self._sequences))
        self._depth += 1

    def commit(self) -> None:
        try:
            self._depth -= 1
            if self._depth == 0:
                self._snapshot = None
        finally:
            self._lock.release()

    def rollback(self) -> None:
        try:
            self._depth -= 1
            if self._depth == 0 and self._snapshot is not None:
                self._data, self._sequences = self._snapshot
                self._snapshot = None
        finally:
            self._lock.release()


class SQLiteStorage(StorageInterface):
    """SQLite storage implementation for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        # Autocommit mode; units of work issue BEGIN/COMMIT explicitly
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0
        self._tables: Set[str] = set()
        self._unique: Dict[str, Set[str]] = {}

        # Enable WAL mode for better concurrent access
        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")

        self._connection.execute("""
            CREATE TABLE IF NOT EXISTS sequences (
                name TEXT PRIMARY KEY,
                value INTEGER NOT NULL
            )
        """)

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists with proper schema"""
        if table in self._tables:
            return
        _check_identifier(table)
        with self._lock:
            self._connection.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    id TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            self._connection.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_{table}_created_at
                ON {table}(created_at)
            """)
            # DDL inside a unit of work is undone by its rollback
            if self._depth == 0:
                self._tables.add(table)

    @staticmethod
    def _timestamps(data: Dict[str, Any]):
        now = datetime.now(timezone.utc).isoformat()
        return data.get('created_at', now), data.get('updated_at', now)

    def _integrity_error(self, table: str, record_id: Any, data: Dict[str, Any],
                         error: sqlite3.IntegrityError) -> DuplicateKeyError:
        message = str(error)
        fields = sorted(self._unique.get(table, ()))
        for field in fields:
            if f"uq_{table}_{field}" in message:
                return DuplicateKeyError(table, field, data.get(field))
        if f"{table}.id" in message:
            return DuplicateKeyError(table, "id", record_id)
        # Older SQLite names expression indexes as "<table>.<expr>" in the message
        for field in fields:
            if any(row['id'] != str(record_id) for row in self._rows_with(table, field, data.get(field))):
                return DuplicateKeyError(table, field, data.get(field))
        return DuplicateKeyError(table, "id", record_id)

    def _rows_with(self, table: str, field: str, value: Any):
        return self._connection.execute(
            f"SELECT id FROM {table} WHERE json_extract(data, '$.{field}') IS ?", (value,)
        ).fetchall()

    def insert(self, table: str, record_id: Any, data: Dict[str, Any]) -> None:
        with self._lock:
            self._ensure_table(table)
            created_at, updated_at = self._timestamps(data)
            try:
                self._connection.execute(f"""
                    INSERT INTO {table} (id, data, created_at, updated_at)
                    VALUES (?, ?, ?, ?)
                """, (str(record_id), json.dumps(data, default=str), created_at, updated_at))
            except sqlite3.IntegrityError as e:
                raise self._integrity_error(table, record_id, data, e) from e

    def save(self, table: str, record_id: Any, data: Dict[str, Any]) -> None:
        with self._lock:
            self._ensure_table(table)
            created_at, updated_at = self._timestamps(data)
            try:
                # Upsert on id only, so a unique index clash still fails
                self._connection.execute(f"""
                    INSERT INTO {table} (id, data, created_at, updated_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        data = excluded.data,
                        updated_at = excluded.updated_at
                """, (str(record_id), json.dumps(data, default=str), created_at, updated_at))
            except sqlite3.IntegrityError as e:
                raise self._integrity_error(table, record_id, data, e) from e

    def load(self, table: str, record_id: Any) -> Optional[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            row = self._connection.execute(
                f"SELECT data FROM {table} WHERE id = ?", (str(record_id),)
            ).fetchone()
            return json.loads(row['data']) if row else None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(
                f"SELECT data FROM {table} ORDER BY created_at, rowid"
            )
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def delete(self, table: str, record_id: Any) -> bool:
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(
                f"DELETE FROM {table} WHERE id = ?", (str(record_id),)
            )
            return cursor.rowcount > 0

    def exists(self, table: str, record_id: Any) -> bool:
        with self._lock:
            self._ensure_table(table)
            row = self._connection.execute(
                f"SELECT 1 FROM {table} WHERE id = ? LIMIT 1", (str(record_id),)
            ).fetchone()
            return row is not None

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters using JSON field extraction"""
        with self._lock:
            self._ensure_table(table)
            conditions = []
            params = []
            for key, value in filters.items():
                conditions.append(f"json_extract(data, '$.{_check_identifier(key)}') IS ?")
                params.append(value)
            where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
            cursor = self._connection.execute(
                f"SELECT data FROM {table} {where_clause} ORDER BY created_at, rowid", params
            )
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def count(self, table: str) -> int:
        with self._lock:
            self._ensure_table(table)
            row = self._connection.execute(f"SELECT COUNT(*) AS count FROM {table}").fetchone()
            return row['count']

    def next_id(self, name: str) -> int:
        with self._lock:
            self._connection.execute("""
                INSERT INTO sequences (name, value) VALUES (?, 1)
                ON CONFLICT(name) DO UPDATE SET value = value + 1
            """, (name,))
            row = self._connection.execute(
                "SELECT value FROM sequences WHERE name = ?", (name,)
            ).fetchone()
            return row['value']

    def add_unique_constraint(self, table: str, field: str) -> None:
        _check_identifier(field)
        with self._lock:
            self._ensure_table(table)
            try:
                self._connection.execute(f"""
                    CREATE UNIQUE INDEX IF NOT EXISTS uq_{table}_{field}
                    ON {table}(json_extract(data, '$.{field}'))
                """)
            except sqlite3.IntegrityError as e:
                raise DuplicateKeyError(table, field, None) from e
            self._unique.setdefault(table, set()).add(field)

    def clear_table(self, table: str) -> None:
        with self._lock:
            self._ensure_table(table)
            self._connection.execute(f"DELETE FROM {table}")

    def begin_transaction(self) -> None:
        self._lock.acquire()
        try:
            if self._depth == 0:
                self._connection.execute("BEGIN IMMEDIATE")
            self._depth += 1
        except BaseException:
            self._lock.release()
            raise

    def commit(self) -> None:
        try:
            self._depth -= 1
            if self._depth == 0:
                try:
                    self._connection.execute("COMMIT")
                except sqlite3.Error:
                    self._connection.execute("ROLLBACK")
                    raise
        finally:
            self._lock.release()

    def rollback(self) -> None:
        try:
            self._depth -= 1
            if self._depth == 0 and self._connection.in_transaction:
                self._connection.execute("ROLLBACK")
        finally:
            self._lock.release()

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_storage(database_path: str) -> StorageInterface:
    """Pick a backend from a configured path ("memory://" for in-memory)"""
    if database_path == "memory://":
        get_logger("shxdw.storage").warning(
            "Using in-memory storage; data is lost on exit and not suited to production load"
        )
        return InMemoryStorage()
    return SQLiteStorage(database_path)
