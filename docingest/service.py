from dataclasses import dataclass
from pathlib import Path
from typing import Any

from docingest.config.settings import Settings
from docingest.database.models import (
    JobRecord,
    JobType,
    ProcessingStatus,
    UploadStatus,
)
from docingest.database.repositories.chunk_repository import ChunkRepository
from docingest.database.repositories.document_repository import DocumentRepository
from docingest.database.repositories.job_repository import JobRepository
from docingest.database.repositories.page_repository import PageRepository
from docingest.extraction.dispatcher import ExtractionDispatcher
from docingest.extraction.exceptions import ExtractionNotRetryableError
from docingest.extraction.factory import build_strategies
from docingest.logging.logger import Log
from docingest.notifications.base import EventBus
from docingest.notifications.buses import LoggingEventBus
from docingest.ocr.factory import OcrProviderFactory
from docingest.pages.page_store import PageStore
from docingest.upload.chunk_store import ChunkStore
from docingest.upload.consolidator import Consolidator
from docingest.upload.coordinator import UploadCoordinator
from docingest.upload.exceptions import DocumentNotFoundError
from docingest.upload.layout import UploadLayout
from docingest.upload.models import ChunkSubmission, FileMeta, UploadSession
from docingest.worker.job_queue import JobQueue
from docingest.worker.job_runner import JobRunner

PAGE_SEPARATOR = "\n\n"


@dataclass(frozen=True)
class DocumentStatus:
    document_id: str
    upload_status: str
    processing_status: str
    progress: int
    chunks_uploaded: int
    total_chunks: int
    pages_processed: int
    total_pages: int | None
    error_message: str | None


@dataclass(frozen=True)
class DocumentSummary:
    id: str
    title: str
    original_name: str
    document_type: str
    sequence_order: int
    parent_document_id: str | None
    has_children: bool
    child_count: int
    mime_type: str
    file_size: int
    upload_status: str
    processing_status: str
    page_count: int | None
    word_count: int | None
    pages_processed: int


@dataclass(frozen=True)
class DocumentContent:
    document_id: str
    title: str
    consolidated_text: str
    pages_included: int
    total_pages: int
    is_complete: bool


@dataclass(frozen=True)
class PageContent:
    page_number: int
    extracted_text: str
    word_count: int
    confidence_score: float | None
    processing_status: str
    error_message: str | None
    metadata: dict[str, Any]


class DocumentIngestionService:
    """Operations the surrounding application calls: upload, status and content queries."""

    def __init__(
        self,
        coordinator: UploadCoordinator,
        documents: DocumentRepository,
        page_store: PageStore,
        job_repo: JobRepository,
        job_queue: JobQueue,
    ) -> None:
        self._coordinator = coordinator
        self._documents = documents
        self._page_store = page_store
        self._job_repo = job_repo
        self._job_queue = job_queue

    def initiate_upload(self, contract_id: str, meta: FileMeta) -> UploadSession:
        return self._coordinator.initiate_upload(contract_id, meta)

    def submit_chunk(
        self, document_id: str, chunk_number: int, data: bytes
    ) -> ChunkSubmission:
        return self._coordinator.submit_chunk(document_id, chunk_number, data)

    def get_document_status(self, document_id: str) -> DocumentStatus:
        document = self._documents.find_by_id(document_id)
        processed = self._page_store.completed_counts([document_id]).get(document_id, 0)
        return DocumentStatus(
            document_id=document.id,
            upload_status=document.upload_status,
            processing_status=document.processing_status,
            progress=document.upload_progress,
            chunks_uploaded=document.chunks_uploaded,
            total_chunks=document.total_chunks,
            pages_processed=processed,
            total_pages=document.page_count,
            error_message=document.error_message,
        )

    def get_contract_documents(self, contract_id: str) -> list[DocumentSummary]:
        """Documents of a contract ordered by type and sequence, with hierarchy links."""
        documents = self._documents.list_for_contract(contract_id)
        processed = self._page_store.completed_counts([d.id for d in documents])
        children: dict[str, int] = {}
        for document in documents:
            if document.parent_document_id:
                parent_id = document.parent_document_id
                children[parent_id] = children.get(parent_id, 0) + 1

        return [
            DocumentSummary(
                id=document.id,
                title=document.title,
                original_name=document.original_name,
                document_type=document.document_type,
                sequence_order=document.sequence_order,
                parent_document_id=document.parent_document_id,
                has_children=children.get(document.id, 0) > 0,
                child_count=children.get(document.id, 0),
                mime_type=document.mime_type,
                file_size=document.file_size,
                upload_status=document.upload_status,
                processing_status=document.processing_status,
                page_count=document.page_count,
                word_count=document.word_count,
                pages_processed=processed.get(document.id, 0),
            )
            for document in documents
        ]

    def get_document_content(self, document_id: str) -> DocumentContent:
        """All COMPLETED pages joined into one text with page markers."""
        document = self._documents.find_by_id(document_id)
        pages = self._page_store.list_pages(document_id)
        completed = [p for p in pages if p.processing_status == ProcessingStatus.COMPLETED]
        text = PAGE_SEPARATOR.join(
            f"--- Page {page.page_number} ---\n{page.extracted_text}" for page in completed
        )
        return DocumentContent(
            document_id=document.id,
            title=document.title,
            consolidated_text=text,
            pages_included=len(completed),
            total_pages=len(pages),
            is_complete=len(completed) == len(pages),
        )

    def get_page_content(self, document_id: str, page_number: int) -> PageContent:
        page = self._page_store.get_page(document_id, page_number)
        if page is None:
            raise DocumentNotFoundError(
                f"Page {page_number} of document {document_id} not found"
            )
        return PageContent(
            page_number=page.page_number,
            extracted_text=page.extracted_text,
            word_count=page.word_count,
            confidence_score=page.confidence_score,
            processing_status=page.processing_status,
            error_message=page.error_message,
            metadata={
                **page.metadata,
                "extractionMethod": page.extraction_method,
                "ocrProvider": page.ocr_provider,
                "processingTimeMs": page.processing_time_ms,
                "hasTable": page.has_table,
                "hasImage": page.has_image,
            },
        )

    def list_jobs(self, entity_id: str) -> list[JobRecord]:
        return self._job_repo.list_for_entity(entity_id)

    def retry_processing(self, document_id: str) -> JobRecord:
        """Re-run text extraction for a document whose processing FAILED.

        Raises:
            DocumentNotFoundError: unknown document.
            ExtractionNotRetryableError: processing has not failed, or the upload never completed.
            ActiveJobExistsError: a job for the document is still pending or running;
                the document stays FAILED.
        """
        document = self._documents.find_by_id(document_id)
        if document.processing_status != ProcessingStatus.FAILED:
            raise ExtractionNotRetryableError(
                f"Document {document_id} is {document.processing_status}, not FAILED"
            )
        if document.upload_status != UploadStatus.COMPLETED:
            raise ExtractionNotRetryableError(
                f"Document {document_id} upload is {document.upload_status}"
            )
        job = self._job_repo.create(
            JobType.TEXT_EXTRACTION,
            document_id,
            {"mimeType": document.mime_type, "retry": True},
        )
        self._documents.reset_processing(document_id)
        Log.info(f"Retrying text extraction for {document_id} as job {job.id}")
        self._job_queue.submit(job.id)
        return job


@dataclass
class Components:
    service: DocumentIngestionService
    job_repo: JobRepository
    job_queue: JobQueue


def build_components(
    settings: Settings, event_bus: EventBus | None = None
) -> Components:
    """Wire repositories, storage, extraction and the job queue from settings."""
    event_bus = event_bus or LoggingEventBus()
    layout = UploadLayout(Path(settings.upload_root)).ensure()

    documents = DocumentRepository()
    chunks = ChunkRepository()
    job_repo = JobRepository(settings.max_job_attempts)
    page_store = PageStore(PageRepository(), OcrProviderFactory.create(settings))

    dispatcher = ExtractionDispatcher(
        documents,
        page_store,
        build_strategies(settings, page_store, layout),
        event_bus,
    )
    runner = JobRunner(
        {JobType.TEXT_EXTRACTION: dispatcher.handle_job},
        job_repo,
        documents,
        settings,
    )
    job_queue = JobQueue(
        job_repo, runner, settings.job_workers, settings.job_heartbeat_seconds
    )

    chunk_store = ChunkStore(layout)
    consolidator = Consolidator(
        layout, documents, chunks, chunk_store, job_queue, event_bus
    )
    coordinator = UploadCoordinator(
        settings, documents, chunks, chunk_store, consolidator, event_bus
    )
    service = DocumentIngestionService(
        coordinator, documents, page_store, job_repo, job_queue
    )
    return Components(service=service, job_repo=job_repo, job_queue=job_queue)
