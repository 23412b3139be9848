from dataclasses import dataclass


@dataclass(frozen=True)
class FileMeta:
    """Caller-declared description of a file about to be uploaded in chunks."""

    original_name: str
    file_size: int
    mime_type: str
    document_type: str = "PRIMARY"
    sequence_order: int = 0
    parent_document_id: str | None = None
    title: str | None = None
    uploaded_by: str | None = None


@dataclass(frozen=True)
class UploadSession:
    document_id: str
    total_chunks: int
    chunk_size: int


@dataclass(frozen=True)
class ChunkSubmission:
    document_id: str
    chunk_number: int
    chunks_uploaded: int
    total_chunks: int
    is_complete: bool


@dataclass(frozen=True)
class ConsolidationResult:
    document_id: str
    file_path: str
    file_hash: str
    job_id: int | None
