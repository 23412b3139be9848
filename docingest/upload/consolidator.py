import hashlib
import os
from pathlib import Path
from typing import Protocol

from docingest.database.models import (
    ChunkRecord,
    DocumentRecord,
    JobRecord,
    JobType,
    UploadStatus,
)
from docingest.database.repositories.chunk_repository import ChunkRepository
from docingest.database.repositories.document_repository import DocumentRepository
from docingest.logging.logger import Log
from docingest.notifications.base import CONSOLIDATED, EventBus, notify
from docingest.upload.chunk_store import ChunkStore
from docingest.upload.exceptions import ConsolidationError
from docingest.upload.layout import UploadLayout
from docingest.upload.models import ConsolidationResult
from docingest.upload.naming import sha256_hex


class JobEnqueuer(Protocol):
    def enqueue(
        self, job_type: str, entity_id: str, job_config: dict | None = None
    ) -> JobRecord: ...


class Consolidator:
    """Reassembles the staged chunks of a claimed document into its final file."""

    def __init__(
        self,
        layout: UploadLayout,
        documents: DocumentRepository,
        chunks: ChunkRepository,
        chunk_store: ChunkStore,
        job_queue: JobEnqueuer,
        event_bus: EventBus,
    ) -> None:
        self._layout = layout
        self._documents = documents
        self._chunks = chunks
        self._chunk_store = chunk_store
        self._job_queue = job_queue
        self._event_bus = event_bus

    def consolidate(self, document_id: str) -> ConsolidationResult:
        """Concatenate chunks 0..N-1 into the final file and enqueue text extraction.

        Only the caller that moved the document into COMPLETING may call this.
        On any failure the upload is marked FAILED, the partial output removed
        and staged chunks kept for inspection.

        Raises:
            ConsolidationError: if the chunk set is incomplete or corrupt, or
                the final file could not be written.
        """
        document = self._documents.find_by_id(document_id)
        if document.upload_status != UploadStatus.COMPLETING:
            raise ConsolidationError(
                f"Document {document_id} is {document.upload_status}, not COMPLETING"
            )

        final_path = self._layout.document_path(document.file_name)
        partial_path = final_path.with_name(f"{final_path.name}.partial")
        staged: list[str | None] = []
        try:
            chunks = self._chunks.list_for_document(document_id)
            self._check_complete(document, chunks)
            staged = [chunk.temp_file_path for chunk in chunks]
            file_hash = self._assemble(document, chunks, partial_path)
            os.replace(partial_path, final_path)
            self._documents.finish_consolidation(document_id, str(final_path), file_hash)
        except Exception as exc:
            partial_path.unlink(missing_ok=True)
            final_path.unlink(missing_ok=True)
            message = f"Consolidation failed: {exc}"
            Log.error(f"Document {document_id}: {message}")
            self._documents.mark_upload_failed(document_id, message)
            if isinstance(exc, ConsolidationError):
                raise
            raise ConsolidationError(message) from exc

        removed = self._chunk_store.discard(staged)
        Log.info(
            f"Document {document_id} consolidated into {final_path} "
            f"({document.file_size} bytes, {removed} staged chunks removed)"
        )
        notify(
            self._event_bus,
            CONSOLIDATED,
            {
                "documentId": document_id,
                "documentTitle": document.title,
                "contractId": document.contract_id,
                "filePath": str(final_path),
                "fileSize": document.file_size,
                "userId": document.uploaded_by,
            },
        )

        job_id = self._enqueue_extraction(document)
        return ConsolidationResult(
            document_id=document_id,
            file_path=str(final_path),
            file_hash=file_hash,
            job_id=job_id,
        )

    def _check_complete(
        self, document: DocumentRecord, chunks: list[ChunkRecord]
    ) -> None:
        numbers = [chunk.chunk_number for chunk in chunks]
        if numbers != list(range(document.total_chunks)):
            raise ConsolidationError(
                f"Expected chunks 0..{document.total_chunks - 1}, found {numbers}"
            )
        missing = [
            chunk.chunk_number
            for chunk in chunks
            if chunk.upload_status != UploadStatus.COMPLETED or not chunk.temp_file_path
        ]
        if missing:
            raise ConsolidationError(f"Chunks not uploaded: {missing}")

    def _assemble(
        self, document: DocumentRecord, chunks: list[ChunkRecord], partial_path: Path
    ) -> str:
        """Write chunks in order to partial_path, verifying each. Returns the file SHA-256."""
        digest = hashlib.sha256()
        written = 0
        partial_path.parent.mkdir(parents=True, exist_ok=True)
        with open(partial_path, "wb") as out:
            for chunk in chunks:
                if chunk.temp_file_path is None:
                    raise ConsolidationError(f"Chunk {chunk.chunk_number} has no stored file")
                try:
                    data = self._chunk_store.read(chunk.temp_file_path)
                except OSError as exc:
                    raise ConsolidationError(
                        f"Chunk {chunk.chunk_number} is unreadable: {exc}"
                    ) from exc
                if len(data) != chunk.chunk_size:
                    raise ConsolidationError(
                        f"Chunk {chunk.chunk_number} has {len(data)} bytes, "
                        f"expected {chunk.chunk_size}"
                    )
                if chunk.chunk_hash and sha256_hex(data) != chunk.chunk_hash:
                    raise ConsolidationError(
                        f"Chunk {chunk.chunk_number} failed its integrity check"
                    )
                out.write(data)
                digest.update(data)
                written += len(data)
            out.flush()
            os.fsync(out.fileno())

        if written != document.file_size:
            raise ConsolidationError(
                f"Assembled {written} bytes, declared size is {document.file_size}"
            )
        return digest.hexdigest()

    def _enqueue_extraction(self, document: DocumentRecord) -> int | None:
        try:
            job = self._job_queue.enqueue(
                JobType.TEXT_EXTRACTION,
                document.id,
                {"mimeType": document.mime_type, "fileName": document.file_name},
            )
        except Exception as exc:
            Log.error(f"Could not enqueue text extraction for {document.id}: {exc}")
            self._documents.mark_processing_failed(
                document.id, f"Could not enqueue text extraction: {exc}"
            )
            return None
        return job.id
