"""
SQLite Storage Implementation

SQLite is the durable backend: a single local file, no server, and real
secondary indices so windowed and grouped lookups touch only matching rows.

Each collection is one table:
- ``seq``      insertion order (stable listing order)
- ``id``       primary key of the entity
- one column per indexed field, each with its own index
- ``payload``  the full record as JSON

TRADEOFFS:
- Blocking sqlite3 calls run in a worker thread via ``asyncio.to_thread``
- One connection guarded by a lock; I/O for different records may be
  in flight together but reaches the file one statement at a time
- No transaction spans more than one collection
"""

import asyncio
import json
import sqlite3
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

import structlog
from pydantic.alias_generators import to_snake

from ledger.models.events import Collection
from ledger.services.storage.interface import (
    COLLECTION_SPECS,
    CollectionSpec,
    CollectionStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    PersistenceError,
    Range,
)


T = TypeVar("T")

logger = structlog.get_logger(__name__)


def _column(field: str) -> str:
    return f'"{field}"'


def build_schema_sql(spec: CollectionSpec) -> str:
    """CREATE TABLE / CREATE INDEX statements for one collection."""
    table = spec.name.value
    columns = ["seq INTEGER PRIMARY KEY AUTOINCREMENT", "id TEXT NOT NULL UNIQUE"]
    columns.extend(_column(field) for field in spec.indexed_fields)
    columns.append("payload TEXT NOT NULL")
    
    statements = [f"CREATE TABLE IF NOT EXISTS {table} ({', '.join(columns)});"]
    for field in spec.indexed_fields:
        statements.append(
            f"CREATE INDEX IF NOT EXISTS ix_{table}_{to_snake(field)} "
            f"ON {table} ({_column(field)});"
        )
    return "\n".join(statements)


class SQLiteCollection(CollectionStorageInterface):
    """One collection stored as a SQLite table."""
    
    def __init__(self, spec: CollectionSpec, storage: "SQLiteStorage"):
        super().__init__(spec)
        self._storage = storage
        self._table = spec.name.value
    
    def _row_values(self, record: dict[str, Any]) -> list[Any]:
        return [
            record[self.spec.key_field],
            *(record.get(field) for field in self.spec.indexed_fields),
            json.dumps(record, ensure_ascii=False),
        ]
    
    def _insert_sql(self) -> str:
        columns = ["id", *(_column(f) for f in self.spec.indexed_fields), "payload"]
        placeholders = ", ".join("?" for _ in columns)
        return f"INSERT INTO {self._table} ({', '.join(columns)}) VALUES ({placeholders})"
    
    async def add(self, record: dict[str, Any]) -> None:
        sql = self._insert_sql()
        values = self._row_values(record)
        await self._storage.run(lambda conn: conn.execute(sql, values))
    
    async def add_many(self, records: list[dict[str, Any]]) -> int:
        sql = self._insert_sql()
        rows = [self._row_values(record) for record in records]
        await self._storage.run(lambda conn: conn.executemany(sql, rows))
        return len(rows)
    
    async def get(self, record_id: str) -> Optional[dict[str, Any]]:
        sql = f"SELECT payload FROM {self._table} WHERE id = ?"
        row = await self._storage.run(lambda conn: conn.execute(sql, (record_id,)).fetchone())
        return json.loads(row[0]) if row else None
    
    async def put(self, record: dict[str, Any]) -> bool:
        assignments = [f"{_column(f)} = ?" for f in self.spec.indexed_fields]
        assignments.append("payload = ?")
        sql = f"UPDATE {self._table} SET {', '.join(assignments)} WHERE id = ?"
        values = [*self._row_values(record)[1:], record[self.spec.key_field]]
        cursor = await self._storage.run(lambda conn: conn.execute(sql, values))
        return cursor.rowcount > 0
    
    async def remove(self, record_id: str) -> bool:
        sql = f"DELETE FROM {self._table} WHERE id = ?"
        cursor = await self._storage.run(lambda conn: conn.execute(sql, (record_id,)))
        return cursor.rowcount > 0
    
    async def query(
        self,
        equals: Optional[Mapping[str, Any]] = None,
        ranges: Optional[Mapping[str, Range]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        equals = equals or {}
        ranges = ranges or {}
        self._check_indexed([*equals, *ranges, *([order_by] if order_by else [])])
        
        clauses = []
        params: list[Any] = []
        for field, value in equals.items():
            if value is None:
                clauses.append(f"{_column(field)} IS NULL")
            else:
                clauses.append(f"{_column(field)} = ?")
                params.append(value)
        for field, (low, high) in ranges.items():
            clauses.append(f"{_column(field)} IS NOT NULL")
            if low is not None:
                clauses.append(f"{_column(field)} >= ?")
                params.append(low)
            if high is not None:
                clauses.append(f"{_column(field)} <= ?")
                params.append(high)
        
        sql = f"SELECT payload FROM {self._table}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        if order_by:
            direction = "DESC" if descending else "ASC"
            sql += f" ORDER BY {_column(order_by)} {direction}, seq ASC"
        else:
            sql += " ORDER BY seq ASC"
        
        rows = await self._storage.run(lambda conn: conn.execute(sql, params).fetchall())
        return [json.loads(row[0]) for row in rows]
    
    async def all(self) -> list[dict[str, Any]]:
        return await self.query()
    
    async def count(self) -> int:
        sql = f"SELECT COUNT(*) FROM {self._table}"
        row = await self._storage.run(lambda conn: conn.execute(sql).fetchone())
        return int(row[0])
    
    async def clear(self) -> int:
        sql = f"DELETE FROM {self._table}"
        cursor = await self._storage.run(lambda conn: conn.execute(sql))
        return cursor.rowcount


class SQLiteStorage(LedgerStorageInterface):
    """
    SQLite implementation of ledger storage.
    
    Tables and indices are created on ``open()`` if missing, so opening an
    existing file is safe and keeps its data.
    """
    
    def __init__(self, database_path: str, busy_timeout_seconds: float = 5.0):
        self._database_path = database_path
        self._busy_timeout = busy_timeout_seconds
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._collections = {
            name: SQLiteCollection(spec, self) for name, spec in COLLECTION_SPECS.items()
        }
    
    @property
    def database_path(self) -> str:
        return self._database_path
    
    def _open_sync(self) -> sqlite3.Connection:
        in_memory = self._database_path == ":memory:"
        try:
            if not in_memory:
                Path(self._database_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                self._database_path,
                timeout=self._busy_timeout,
                check_same_thread=False,
            )
            if not in_memory:
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("PRAGMA synchronous=NORMAL")
            conn.executescript(
                "\n".join(build_schema_sql(spec) for spec in COLLECTION_SPECS.values())
            )
            conn.commit()
            return conn
        except (sqlite3.Error, OSError) as e:
            raise ConnectionError(f"Failed to open SQLite database {self._database_path}: {e}")
    
    async def open(self) -> None:
        if self._conn is not None:
            return
        self._conn = await asyncio.to_thread(self._open_sync)
        logger.info("storage_opened", backend="sqlite", path=self._database_path)
    
    async def close(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None:
            return
        
        def _close() -> None:
            with self._lock:
                conn.commit()
                conn.close()
        
        await asyncio.to_thread(_close)
        logger.info("storage_closed", backend="sqlite", path=self._database_path)
    
    def _run_sync(self, operation: Callable[[sqlite3.Connection], T]) -> T:
        conn = self._conn
        if conn is None:
            raise PersistenceError("SQLite storage is not open")
        with self._lock:
            try:
                result = operation(conn)
                conn.commit()
                return result
            except sqlite3.IntegrityError as e:
                conn.rollback()
                raise DuplicateError(f"Duplicate record: {e}") from e
            except sqlite3.Error as e:
                conn.rollback()
                raise PersistenceError(f"SQLite operation failed: {e}") from e
    
    async def run(self, operation: Callable[[sqlite3.Connection], T]) -> T:
        """Run a blocking operation on the connection in a worker thread."""
        return await asyncio.to_thread(self._run_sync, operation)
    
    def collection(self, name: Collection) -> SQLiteCollection:
        return self._collections[name]
