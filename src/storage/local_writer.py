# src/storage/local_writer.py — v1
"""Local filesystem image writer (default backend)."""

from __future__ import annotations

from pathlib import Path

from stratrun.storage.base_output_writer import BaseOutputWriter


class LocalWriter(BaseOutputWriter):
    """Write generated images under a root directory.

    Args:
        base_path: Root directory for all writes (``~`` is expanded).
        public_base_url: When set, returned URLs are
            ``{public_base_url}/{path}`` instead of ``file://`` URIs.
    """

    def __init__(self, base_path: str | Path, public_base_url: str = "") -> None:
        self._base = Path(base_path).expanduser()
        self._public_base_url = public_base_url.rstrip("/")

    def _resolve(self, path: str) -> Path:
        return self._base / path

    def url_for(self, path: str) -> str:
        """Return the URL under which a written path is served."""
        if self._public_base_url:
            return f"{self._public_base_url}/{path.lstrip('/')}"
        return self._resolve(path).resolve().as_uri()

    async def write(self, path: str, content: bytes | str) -> str:
        p = self._resolve(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            p.write_bytes(content)
        else:
            p.write_text(content, encoding="utf-8")
        return self.url_for(path)

    async def read(self, path: str) -> bytes:
        return self._resolve(path).read_bytes()

    async def exists(self, path: str) -> bool:
        return self._resolve(path).exists()
