import uuid

from docingest.config.settings import Settings
from docingest.database.models import ChunkRecord, DocumentRecord, UploadStatus
from docingest.database.repositories.chunk_repository import ChunkRepository
from docingest.database.repositories.document_repository import DocumentRepository
from docingest.logging.logger import Log
from docingest.notifications.base import CHUNK_UPLOADED, UPLOAD_STARTED, EventBus, notify
from docingest.upload.chunk_store import ChunkStore
from docingest.upload.consolidator import Consolidator
from docingest.upload.exceptions import (
    InvalidChunkError,
    UploadClosedError,
    UploadValidationError,
)
from docingest.upload.models import ChunkSubmission, FileMeta, UploadSession
from docingest.upload.naming import (
    expected_chunk_sizes,
    generate_document_filename,
    sha256_hex,
)
from docingest.upload.validation import validate_upload


class UploadCoordinator:
    """Creates documents, accepts chunk submissions and triggers consolidation."""

    def __init__(
        self,
        settings: Settings,
        documents: DocumentRepository,
        chunks: ChunkRepository,
        chunk_store: ChunkStore,
        consolidator: Consolidator,
        event_bus: EventBus,
    ) -> None:
        self._settings = settings
        self._documents = documents
        self._chunks = chunks
        self._chunk_store = chunk_store
        self._consolidator = consolidator
        self._event_bus = event_bus

    def initiate_upload(self, contract_id: str, meta: FileMeta) -> UploadSession:
        """Persist a document and its chunk placeholders, then announce the upload.

        Raises:
            UploadValidationError: if the declared file violates the upload policy.
            DocumentNotFoundError: if the declared parent document does not exist.
        """
        errors = validate_upload(
            self._settings, meta, self._documents.count_for_contract(contract_id)
        )
        if meta.parent_document_id is not None:
            parent = self._documents.find_by_id(meta.parent_document_id)
            if parent.contract_id != contract_id:
                errors.append("Parent document belongs to a different contract")
        if errors:
            raise UploadValidationError(errors)

        chunk_size = self._settings.chunk_size_bytes
        sizes = expected_chunk_sizes(meta.file_size, chunk_size)
        document_id = str(uuid.uuid4())
        document = DocumentRecord(
            id=document_id,
            contract_id=contract_id,
            title=meta.title or meta.original_name,
            original_name=meta.original_name,
            file_name=generate_document_filename(
                meta.original_name, contract_id, meta.document_type
            ),
            file_size=meta.file_size,
            mime_type=meta.mime_type,
            total_chunks=len(sizes),
            document_type=meta.document_type,
            sequence_order=meta.sequence_order,
            parent_document_id=meta.parent_document_id,
            uploaded_by=meta.uploaded_by,
        )
        chunks = [
            ChunkRecord(document_id=document_id, chunk_number=index, chunk_size=size)
            for index, size in enumerate(sizes)
        ]
        self._documents.create_with_chunks(document, chunks)
        Log.info(
            f"Upload initiated for document {document_id}: "
            f"{meta.file_size} bytes in {len(sizes)} chunks"
        )

        notify(
            self._event_bus,
            UPLOAD_STARTED,
            {
                "documentId": document_id,
                "documentTitle": document.title,
                "contractId": contract_id,
                "fileSize": meta.file_size,
                "totalChunks": len(sizes),
                "userId": meta.uploaded_by,
            },
        )
        return UploadSession(
            document_id=document_id, total_chunks=len(sizes), chunk_size=chunk_size
        )

    def submit_chunk(
        self, document_id: str, chunk_number: int, data: bytes
    ) -> ChunkSubmission:
        """Stage one chunk and record it; consolidate if this call completed the set.

        Raises:
            DocumentNotFoundError: unknown document.
            InvalidChunkError: chunk number out of range or byte length mismatch.
            UploadClosedError: the upload has already failed.
            ChunkStorageError: staging failed; the chunk stays retryable.
            ConsolidationError: this call completed the set and reassembly failed.
        """
        document = self._documents.find_by_id(document_id)
        if not 0 <= chunk_number < document.total_chunks:
            raise InvalidChunkError(
                f"Chunk {chunk_number} out of range [0, {document.total_chunks})"
            )
        if document.upload_status == UploadStatus.FAILED:
            raise UploadClosedError(
                f"Upload of document {document_id} has failed: {document.error_message}"
            )
        if document.upload_status != UploadStatus.UPLOADING:
            return self._report(document, chunk_number, document.chunks_uploaded)

        chunk = self._chunks.find(document_id, chunk_number)
        if chunk is None:
            raise InvalidChunkError(
                f"Chunk {chunk_number} of document {document_id} does not exist"
            )
        if chunk.upload_status == UploadStatus.COMPLETED:
            Log.debug(f"Chunk {chunk_number} of {document_id} already recorded")
            return self._report(document, chunk_number, document.chunks_uploaded)
        if len(data) != chunk.chunk_size:
            raise InvalidChunkError(
                f"Chunk {chunk_number} has {len(data)} bytes, expected {chunk.chunk_size}"
            )

        path = self._chunk_store.stage(document_id, chunk_number, data)
        progress = self._chunks.complete_chunk(
            document_id, chunk_number, sha256_hex(data), str(path)
        )
        if not progress.newly_recorded and progress.upload_status == UploadStatus.COMPLETED:
            self._chunk_store.discard([path])
        Log.info(
            f"Chunk {chunk_number} of document {document_id} staged "
            f"({progress.chunks_uploaded}/{progress.total_chunks})"
        )

        if progress.claimed_consolidation:
            self._consolidator.consolidate(document_id)

        return self._report(document, chunk_number, progress.chunks_uploaded)

    def _report(
        self, document: DocumentRecord, chunk_number: int, chunks_uploaded: int
    ) -> ChunkSubmission:
        notify(
            self._event_bus,
            CHUNK_UPLOADED,
            {
                "documentId": document.id,
                "documentTitle": document.title,
                "chunkNumber": chunk_number,
                "chunksUploaded": chunks_uploaded,
                "totalChunks": document.total_chunks,
                "userId": document.uploaded_by,
            },
        )
        return ChunkSubmission(
            document_id=document.id,
            chunk_number=chunk_number,
            chunks_uploaded=chunks_uploaded,
            total_chunks=document.total_chunks,
            is_complete=chunks_uploaded >= document.total_chunks,
        )
