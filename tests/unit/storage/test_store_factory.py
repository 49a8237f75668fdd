# tests/unit/storage/test_store_factory.py — v1
"""Tests for storage/store_factory.py — backend selection."""

from __future__ import annotations

import pytest

from stratrun.config.settings import Settings
from stratrun.storage.memory_store import MemoryRecordStore
from stratrun.storage.sqlite_store import SqliteRecordStore
from stratrun.storage.store_factory import UnsupportedStoreError, create_record_store


class TestCreateRecordStore:
    def test_default_memory(self):
        assert isinstance(create_record_store(), MemoryRecordStore)

    def test_memory_from_settings(self):
        assert isinstance(create_record_store(Settings(_env_file=None)), MemoryRecordStore)

    @pytest.mark.asyncio
    async def test_sqlite(self, tmp_path):
        settings = Settings(
            _env_file=None,
            record_store_backend="sqlite",
            record_store_path=tmp_path / "r.db",
        )
        store = create_record_store(settings)
        assert isinstance(store, SqliteRecordStore)
        assert (tmp_path / "r.db").exists()
        await store.close()

    def test_unknown_backend(self):
        settings = Settings(_env_file=None).model_copy(update={"record_store_backend": "redis"})
        with pytest.raises(UnsupportedStoreError, match="redis"):
            create_record_store(settings)
