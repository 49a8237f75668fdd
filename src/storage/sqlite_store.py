# src/storage/sqlite_store.py — v1
"""SQLite-based record store (RECORD_STORE_BACKEND=sqlite).

Uses stdlib sqlite3, no external dependency. One table per record type;
each row stores the pydantic JSON plus an indexed parent key so runs can
be inspected from another process while they execute.

sqlite3 calls run synchronously on the event loop thread, so the
concurrent step writes of a run are serialized there.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from pydantic import BaseModel

from stratrun.storage.base_record_store import TABLES, BaseRecordStore

logger = logging.getLogger(__name__)

_TABLE_SCHEMA = """
CREATE TABLE IF NOT EXISTS {table} (
    id TEXT PRIMARY KEY,
    parent_id TEXT,
    data TEXT NOT NULL,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_{table}_parent ON {table}(parent_id);
"""


class SqliteRecordStore(BaseRecordStore):
    """SQLite-backed record store."""

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = Path(db_path).expanduser()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path))
        self._conn.execute("PRAGMA journal_mode=WAL")
        for table in TABLES:
            self._conn.executescript(_TABLE_SCHEMA.format(table=table))
        logger.debug("Opened record store at %s", self._db_path)

    async def _upsert(self, table: str, record: BaseModel) -> None:
        _, parent_field = TABLES[table]
        parent_id = getattr(record, parent_field) if parent_field else None
        self._conn.execute(
            f"""INSERT OR REPLACE INTO {table} (id, parent_id, data, updated_at)
                VALUES (?, ?, ?, CURRENT_TIMESTAMP)""",  # noqa: S608
            (record.id, parent_id, record.model_dump_json()),  # type: ignore[attr-defined]
        )
        self._conn.commit()

    async def _fetch(self, table: str, record_id: str) -> BaseModel | None:
        model_cls, _ = TABLES[table]
        row = self._conn.execute(
            f"SELECT data FROM {table} WHERE id = ?", (record_id,)  # noqa: S608
        ).fetchone()
        if row is None:
            return None
        return model_cls.model_validate_json(row[0])

    async def _select(self, table: str, parent_id: str | None = None) -> list[BaseModel]:
        model_cls, _ = TABLES[table]
        if parent_id is None:
            cursor = self._conn.execute(f"SELECT data FROM {table}")  # noqa: S608
        else:
            cursor = self._conn.execute(
                f"SELECT data FROM {table} WHERE parent_id = ?", (parent_id,)  # noqa: S608
            )
        return [model_cls.model_validate_json(row[0]) for row in cursor.fetchall()]

    async def _count(self, table: str) -> int:
        row = self._conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()  # noqa: S608
        return int(row[0])

    async def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
