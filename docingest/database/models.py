from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any


class UploadStatus(StrEnum):
    UPLOADING = "UPLOADING"
    COMPLETING = "COMPLETING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ProcessingStatus(StrEnum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class JobStatus(StrEnum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class JobType(StrEnum):
    TEXT_EXTRACTION = "TEXT_EXTRACTION"
    PAGE_ANALYSIS = "PAGE_ANALYSIS"


class ExtractionMethod(StrEnum):
    NATIVE = "native"
    PDFTOTEXT = "pdftotext"
    OCR = "ocr"
    DIRECT = "direct"


TERMINAL_JOB_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})


@dataclass
class DocumentRecord:
    """Represents a row from the contract_documents table."""

    id: str
    contract_id: str
    title: str
    original_name: str
    file_name: str
    file_size: int
    mime_type: str
    total_chunks: int
    document_type: str = "PRIMARY"
    sequence_order: int = 0
    parent_document_id: str | None = None
    uploaded_by: str | None = None
    upload_status: str = UploadStatus.UPLOADING
    processing_status: str = ProcessingStatus.PENDING
    chunks_uploaded: int = 0
    upload_progress: int = 0
    file_path: str | None = None
    file_hash: str | None = None
    page_count: int | None = None
    word_count: int | None = None
    extraction_method: str | None = None
    extraction_started: datetime | None = None
    extraction_completed: datetime | None = None
    error_message: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class ChunkRecord:
    """Represents a row from the document_chunks table."""

    document_id: str
    chunk_number: int
    chunk_size: int
    upload_status: str = ProcessingStatus.PENDING
    chunk_hash: str | None = None
    temp_file_path: str | None = None
    uploaded_at: datetime | None = None


@dataclass
class JobRecord:
    """Represents a row from the processing_jobs table."""

    id: int
    job_type: str
    entity_id: str
    status: str
    attempts: int
    entity_type: str = "contract_document"
    priority: int = 5
    job_config: dict[str, Any] = field(default_factory=dict)
    result: dict[str, Any] | None = None
    error_message: str | None = None
    error_details: dict[str, Any] | None = None
    locked_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class PageRecord:
    """Represents a row from the document_pages table."""

    document_id: str
    page_number: int
    extracted_text: str
    extraction_method: str
    word_count: int = 0
    character_count: int = 0
    confidence_score: float | None = None
    ocr_provider: str | None = None
    processing_time_ms: int | None = None
    has_table: bool = False
    has_image: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)
    processing_status: str = ProcessingStatus.COMPLETED
    error_message: str | None = None
    processed_at: datetime | None = None


@dataclass(frozen=True)
class ChunkProgress:
    """Outcome of recording one chunk: the counters plus the consolidation claim."""

    chunks_uploaded: int
    total_chunks: int
    upload_status: str
    newly_recorded: bool
    claimed_consolidation: bool = False

    @property
    def is_complete(self) -> bool:
        return self.chunks_uploaded >= self.total_chunks


@dataclass(frozen=True)
class StaleRecovery:
    """Outcome of one stale-lock sweep: jobs sent back to PENDING and jobs given up on."""

    requeued: int = 0
    failed: int = 0
