import asyncio
from pathlib import Path

from docsync.documents.base import BaseDocumentStore
from docsync.processor.exceptions import DocumentStoreError


class LocalDocumentStore(BaseDocumentStore):
    """Reads and writes objects below a root directory on the local disk."""

    FILES_ROOT = Path("/app/files")

    def __init__(self, files_root: Path | None = None) -> None:
        self._files_root = files_root if files_root is not None else self.FILES_ROOT

    async def download(self, path: str) -> bytes:
        resolved = self._resolve_path(path)
        if not resolved.exists():
            raise DocumentStoreError(f"File not found: {resolved}")
        try:
            return await asyncio.to_thread(resolved.read_bytes)
        except OSError as exc:
            raise DocumentStoreError(f"Failed to read {resolved}: {exc}") from exc

    async def upload(self, path: str, data: bytes, content_type: str) -> None:
        resolved = self._resolve_path(path)
        try:
            await asyncio.to_thread(self._write, resolved, data)
        except OSError as exc:
            raise DocumentStoreError(f"Failed to write {resolved}: {exc}") from exc

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    def _resolve_path(self, path: str) -> Path:
        root = self._files_root.resolve()
        resolved = (root / path.lstrip("/")).resolve()
        if not resolved.is_relative_to(root):
            raise DocumentStoreError(f"Path escapes the files root: {path}")
        return resolved
