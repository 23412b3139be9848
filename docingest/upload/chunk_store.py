import os
import uuid
from collections.abc import Iterable
from pathlib import Path

from docingest.logging.logger import Log
from docingest.upload.exceptions import ChunkStorageError
from docingest.upload.layout import UploadLayout


class ChunkStore:
    """Staging area for uploaded byte ranges, keyed by (document, chunk index)."""

    def __init__(self, layout: UploadLayout) -> None:
        self._layout = layout

    def stage(self, document_id: str, chunk_number: int, data: bytes) -> Path:
        """Durably write chunk bytes and return the staged path.

        The bytes land in a sibling temp file first and are renamed into place,
        so a reader never sees a half-written chunk.

        Raises:
            ChunkStorageError: if the bytes could not be written.
        """
        path = self._layout.chunk_path(document_id, chunk_number)
        tmp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, path)
        except OSError as exc:
            tmp_path.unlink(missing_ok=True)
            raise ChunkStorageError(
                f"Failed to stage chunk {chunk_number} of document {document_id}: {exc}"
            ) from exc
        return path

    def read(self, path: str | Path) -> bytes:
        return Path(path).read_bytes()

    def discard(self, paths: Iterable[str | Path | None]) -> int:
        """Best-effort removal of staged files. Returns how many were removed."""
        removed = 0
        for path in paths:
            if not path:
                continue
            try:
                Path(path).unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as exc:
                Log.warning(f"Failed to remove staged chunk {path}: {exc}")
        return removed
