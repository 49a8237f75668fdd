# src/storage/store_factory.py — v1
"""Factory for record store instantiation."""

from __future__ import annotations

from stratrun.config.settings import Settings
from stratrun.storage.base_record_store import BaseRecordStore


class UnsupportedStoreError(ValueError):
    """Raised when the configured record store backend is unknown."""


def create_record_store(settings: Settings | None = None) -> BaseRecordStore:
    """Instantiate the configured record store backend.

    Args:
        settings: Application settings. Defaults to the in-memory backend.

    Returns:
        Configured BaseRecordStore implementation.
    """
    backend = "memory" if settings is None else settings.record_store_backend

    if backend == "memory":
        from stratrun.storage.memory_store import MemoryRecordStore
        return MemoryRecordStore()

    if backend == "sqlite":
        from stratrun.storage.sqlite_store import SqliteRecordStore
        return SqliteRecordStore(db_path=settings.record_store_path)  # type: ignore[union-attr]

    raise UnsupportedStoreError(f"Unsupported record store backend: {backend!r}")
