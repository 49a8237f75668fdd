# src/storage/memory_store.py — v1
"""In-memory record store (RECORD_STORE_BACKEND=memory).

Default backend for tests and one-shot CLI runs. Records are copied on
the way in and out so callers never hold a reference to stored state.
"""

from __future__ import annotations

from pydantic import BaseModel

from stratrun.storage.base_record_store import TABLES, BaseRecordStore


class MemoryRecordStore(BaseRecordStore):
    """Dict-backed record store."""

    def __init__(self) -> None:
        self._tables: dict[str, dict[str, BaseModel]] = {name: {} for name in TABLES}

    async def _upsert(self, table: str, record: BaseModel) -> None:
        self._tables[table][record.id] = record.model_copy(deep=True)  # type: ignore[attr-defined]

    async def _fetch(self, table: str, record_id: str) -> BaseModel | None:
        record = self._tables[table].get(record_id)
        return record.model_copy(deep=True) if record is not None else None

    async def _select(self, table: str, parent_id: str | None = None) -> list[BaseModel]:
        _, parent_field = TABLES[table]
        rows = self._tables[table].values()
        if parent_id is not None and parent_field is not None:
            rows = [r for r in rows if getattr(r, parent_field) == parent_id]
        return [r.model_copy(deep=True) for r in rows]

    async def _count(self, table: str) -> int:
        return len(self._tables[table])
