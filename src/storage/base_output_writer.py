# src/storage/base_output_writer.py — v1
"""Abstract writer for generated image bytes.

Providers that receive raw image data (rather than hosted URLs) persist
it through a writer and hand the returned URL back to the executor.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseOutputWriter(ABC):
    """Unified interface for generated-image storage backends."""

    @abstractmethod
    async def write(self, path: str, content: bytes | str) -> str:
        """Write content to the given relative path and return its URL."""

    @abstractmethod
    async def read(self, path: str) -> bytes:
        """Read content from the given relative path."""

    @abstractmethod
    async def exists(self, path: str) -> bool:
        """Check if path exists."""
