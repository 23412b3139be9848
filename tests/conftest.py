import dataclasses
import io
import threading
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest
from docx import Document as DocxDocument
from PIL import Image, ImageDraw
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

from docingest.config.settings import Settings
from docingest.database.models import (
    ChunkProgress,
    ChunkRecord,
    DocumentRecord,
    JobRecord,
    JobStatus,
    PageRecord,
    ProcessingStatus,
    StaleRecovery,
    UploadStatus,
)
from docingest.database.repositories.job_repository import STALE_LOCK_ERROR
from docingest.notifications.buses import InMemoryEventBus
from docingest.ocr.base import BaseOcrProvider, OcrResult
from docingest.ocr.exceptions import OcrError
from docingest.pages.page_store import PageStore
from docingest.upload.chunk_store import ChunkStore
from docingest.upload.consolidator import Consolidator
from docingest.upload.coordinator import UploadCoordinator
from docingest.upload.exceptions import DocumentNotFoundError
from docingest.upload.layout import UploadLayout
from docingest.worker.exceptions import ActiveJobExistsError


@pytest.fixture()
def sample_pdf_bytes() -> bytes:
    """Generate a minimal single-page PDF with known text content."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.drawString(72, 720, "Hello PDF World")
    c.save()
    return buf.getvalue()


@pytest.fixture()
def multi_page_pdf_bytes() -> bytes:
    """Generate a two-page PDF with known text on each page."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.drawString(72, 720, "Page one content")
    c.showPage()
    c.drawString(72, 720, "Page two content")
    c.save()
    return buf.getvalue()


@pytest.fixture()
def empty_pdf_bytes() -> bytes:
    """Generate a valid PDF with no text content (blank page)."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.showPage()
    c.save()
    return buf.getvalue()


@pytest.fixture()
def blank_five_page_pdf_bytes() -> bytes:
    """Five blank pages: no text layer anywhere, like a scanned contract."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    for _ in range(5):
        c.showPage()
    c.save()
    return buf.getvalue()


@pytest.fixture()
def sample_docx_bytes() -> bytes:
    doc = DocxDocument()
    doc.add_heading("Master Services Agreement", level=1)
    doc.add_paragraph("This agreement is made between Acme and Globex.")
    table = doc.add_table(rows=2, cols=3)
    for row, values in zip(table.rows, [("Item", "Qty", "Price"), ("Widget", "2", "10")]):
        for cell, value in zip(row.cells, values):
            cell.text = value
    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()


@pytest.fixture()
def sample_png_bytes() -> bytes:
    image = Image.new("RGB", (200, 60), "white")
    ImageDraw.Draw(image).text((10, 20), "INVOICE 42", fill="black")
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


EPOCH = datetime(2026, 1, 1, tzinfo=timezone.utc)


class InMemoryDatabase:
    """Shared state for the repository doubles; one lock stands in for row locks."""

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.documents: dict[str, DocumentRecord] = {}
        self.chunks: dict[tuple[str, int], ChunkRecord] = {}
        self.jobs: dict[int, JobRecord] = {}
        self.pages: dict[tuple[str, int], PageRecord] = {}
        self.next_job_id = 1
        self.clock = 0

    def tick(self) -> datetime:
        self.clock += 1
        return EPOCH + timedelta(seconds=self.clock)


class FakeDocumentRepository:
    def __init__(self, db: InMemoryDatabase) -> None:
        self._db = db

    def create_with_chunks(self, document: DocumentRecord, chunks: list[ChunkRecord]) -> None:
        with self._db.lock:
            self._db.documents[document.id] = dataclasses.replace(
                document,
                upload_status=UploadStatus.UPLOADING,
                processing_status=ProcessingStatus.PENDING,
                chunks_uploaded=0,
            )
            for chunk in chunks:
                self._db.chunks[(chunk.document_id, chunk.chunk_number)] = dataclasses.replace(chunk)

    def find_by_id(self, document_id: str) -> DocumentRecord:
        with self._db.lock:
            document = self._db.documents.get(document_id)
            if document is None:
                raise DocumentNotFoundError(f"Document {document_id} not found")
            return dataclasses.replace(document)

    def list_for_contract(self, contract_id: str) -> list[DocumentRecord]:
        with self._db.lock:
            documents = [
                dataclasses.replace(d)
                for d in self._db.documents.values()
                if d.contract_id == contract_id
            ]
        return sorted(documents, key=lambda d: (d.document_type, d.sequence_order))

    def count_for_contract(self, contract_id: str) -> int:
        return len(self.list_for_contract(contract_id))

    def finish_consolidation(self, document_id: str, file_path: str, file_hash: str) -> None:
        with self._db.lock:
            document = self._db.documents.get(document_id)
            if document is None or document.upload_status != UploadStatus.COMPLETING:
                raise DocumentNotFoundError(
                    f"Document {document_id} is not awaiting consolidation"
                )
            self._update(
                document_id,
                upload_status=UploadStatus.COMPLETED,
                processing_status=ProcessingStatus.PENDING,
                file_path=file_path,
                file_hash=file_hash,
                upload_progress=100,
            )
            for key in [k for k in self._db.chunks if k[0] == document_id]:
                del self._db.chunks[key]

    def mark_upload_failed(self, document_id: str, error: str) -> None:
        self._update(
            document_id,
            upload_status=UploadStatus.FAILED,
            processing_status=ProcessingStatus.FAILED,
            error_message=error,
        )

    def mark_processing_started(self, document_id: str) -> None:
        self._update(
            document_id, processing_status=ProcessingStatus.PROCESSING, error_message=None
        )

    def mark_processing_completed(
        self, document_id: str, page_count: int, word_count: int, extraction_method: str
    ) -> None:
        self._update(
            document_id,
            processing_status=ProcessingStatus.COMPLETED,
            page_count=page_count,
            word_count=word_count,
            extraction_method=extraction_method,
            error_message=None,
        )

    def mark_processing_failed(self, document_id: str, error: str) -> None:
        self._update(
            document_id, processing_status=ProcessingStatus.FAILED, error_message=error
        )

    def fail_active_processing(self, document_id: str, error: str) -> bool:
        with self._db.lock:
            document = self._db.documents.get(document_id)
            if document is None:
                raise DocumentNotFoundError(f"Document {document_id} not found")
            if document.processing_status not in (
                ProcessingStatus.PENDING,
                ProcessingStatus.PROCESSING,
            ):
                return False
            self._update(
                document_id, processing_status=ProcessingStatus.FAILED, error_message=error
            )
            return True

    def reset_processing(self, document_id: str) -> None:
        self._update(
            document_id, processing_status=ProcessingStatus.PENDING, error_message=None
        )

    def _update(self, document_id: str, **changes: Any) -> None:
        with self._db.lock:
            document = self._db.documents.get(document_id)
            if document is None:
                raise DocumentNotFoundError(f"Document {document_id} not found")
            self._db.documents[document_id] = dataclasses.replace(document, **changes)


class FakeChunkRepository:
    def __init__(self, db: InMemoryDatabase) -> None:
        self._db = db

    def find(self, document_id: str, chunk_number: int) -> ChunkRecord | None:
        with self._db.lock:
            chunk = self._db.chunks.get((document_id, chunk_number))
            return dataclasses.replace(chunk) if chunk else None

    def list_for_document(self, document_id: str) -> list[ChunkRecord]:
        with self._db.lock:
            chunks = [
                dataclasses.replace(c)
                for (doc_id, _), c in self._db.chunks.items()
                if doc_id == document_id
            ]
        return sorted(chunks, key=lambda c: c.chunk_number)

    def complete_chunk(
        self, document_id: str, chunk_number: int, chunk_hash: str, temp_file_path: str
    ) -> ChunkProgress:
        with self._db.lock:
            document = self._db.documents.get(document_id)
            if document is None:
                raise DocumentNotFoundError(f"Document {document_id} not found")
            chunk = self._db.chunks.get((document_id, chunk_number))
            if (
                document.upload_status != UploadStatus.UPLOADING
                or chunk is None
                or chunk.upload_status == UploadStatus.COMPLETED
            ):
                return ChunkProgress(
                    chunks_uploaded=document.chunks_uploaded,
                    total_chunks=document.total_chunks,
                    upload_status=document.upload_status,
                    newly_recorded=False,
                )
            self._db.chunks[(document_id, chunk_number)] = dataclasses.replace(
                chunk,
                upload_status=UploadStatus.COMPLETED,
                chunk_hash=chunk_hash,
                temp_file_path=temp_file_path,
            )
            uploaded = document.chunks_uploaded + 1
            claimed = uploaded == document.total_chunks
            self._db.documents[document_id] = dataclasses.replace(
                document,
                chunks_uploaded=uploaded,
                upload_status=UploadStatus.COMPLETING if claimed else UploadStatus.UPLOADING,
            )
            return ChunkProgress(
                chunks_uploaded=uploaded,
                total_chunks=document.total_chunks,
                upload_status=UploadStatus.COMPLETING if claimed else UploadStatus.UPLOADING,
                newly_recorded=True,
                claimed_consolidation=claimed,
            )


class FakeJobRepository:
    def __init__(self, db: InMemoryDatabase, max_attempts: int = 3) -> None:
        self._db = db
        self._max_attempts = max_attempts

    def create(
        self,
        job_type: str,
        entity_id: str,
        job_config: dict[str, Any] | None = None,
        entity_type: str = "contract_document",
        priority: int = 5,
    ) -> JobRecord:
        with self._db.lock:
            for job in self._db.jobs.values():
                if (
                    job.entity_id == entity_id
                    and job.job_type == job_type
                    and job.status in (JobStatus.PENDING, JobStatus.PROCESSING)
                ):
                    raise ActiveJobExistsError(f"{entity_id} already has an active job")
            job = JobRecord(
                id=self._db.next_job_id,
                job_type=job_type,
                entity_id=entity_id,
                status=JobStatus.PENDING,
                attempts=0,
                entity_type=entity_type,
                priority=priority,
                job_config=dict(job_config or {}),
                created_at=self._db.tick(),
            )
            self._db.jobs[job.id] = job
            self._db.next_job_id += 1
            return dataclasses.replace(job)

    def claim(self, job_id: int) -> JobRecord | None:
        with self._db.lock:
            job = self._db.jobs.get(job_id)
            if job is None or job.status != JobStatus.PENDING:
                return None
            return self._set(job_id, status=JobStatus.PROCESSING, locked_at=self._db.tick())

    def claim_next_job(self, conn: Any = None) -> JobRecord | None:
        with self._db.lock:
            pending = sorted(
                (
                    j
                    for j in self._db.jobs.values()
                    if j.status == JobStatus.PENDING and j.attempts < self._max_attempts
                ),
                key=lambda j: (j.priority, j.created_at),
            )
            if not pending:
                return None
            return self._set(pending[0].id, status=JobStatus.PROCESSING, locked_at=self._db.tick())

    def mark_completed(self, job_id: int, result: dict[str, Any]) -> None:
        self._set_if_processing(job_id, status=JobStatus.COMPLETED, result=result)

    def mark_failed(self, job_id: int, error: str, details: dict[str, Any] | None = None) -> None:
        self._set_if_processing(
            job_id, status=JobStatus.FAILED, error_message=error, error_details=details
        )

    def increment_attempts(self, job_id: int, error: str) -> None:
        with self._db.lock:
            job = self._db.jobs[job_id]
            if job.status == JobStatus.PROCESSING:
                self._set(
                    job_id,
                    status=JobStatus.PENDING,
                    attempts=job.attempts + 1,
                    error_message=error,
                )

    def release(self, job_id: int) -> None:
        self._set_if_processing(job_id, status=JobStatus.PENDING)

    def requeue_stale(self, lock_timeout_seconds: int) -> StaleRecovery:
        with self._db.lock:
            cutoff = EPOCH + timedelta(seconds=self._db.clock - lock_timeout_seconds)
            stale = [
                j
                for j in self._db.jobs.values()
                if j.status == JobStatus.PROCESSING and j.locked_at and j.locked_at < cutoff
            ]
            requeued = failed = 0
            for job in stale:
                exhausted = job.attempts + 1 >= self._max_attempts
                status = JobStatus.FAILED if exhausted else JobStatus.PENDING
                self._set(
                    job.id,
                    status=status,
                    attempts=job.attempts + 1,
                    error_message=STALE_LOCK_ERROR,
                    locked_at=None,
                )
                document = self._db.documents.get(job.entity_id)
                if document is not None and document.processing_status in (
                    ProcessingStatus.PENDING,
                    ProcessingStatus.PROCESSING,
                ):
                    self._db.documents[job.entity_id] = dataclasses.replace(
                        document,
                        processing_status=ProcessingStatus(status),
                        error_message=STALE_LOCK_ERROR if exhausted else None,
                    )
                if exhausted:
                    failed += 1
                else:
                    requeued += 1
            return StaleRecovery(requeued=requeued, failed=failed)

    def touch(self, job_id: int) -> None:
        with self._db.lock:
            if self._db.jobs[job_id].status == JobStatus.PROCESSING:
                self._set(job_id, locked_at=self._db.tick())

    def find_by_id(self, job_id: int) -> JobRecord | None:
        with self._db.lock:
            job = self._db.jobs.get(job_id)
            return dataclasses.replace(job) if job else None

    def list_for_entity(self, entity_id: str) -> list[JobRecord]:
        with self._db.lock:
            jobs = [dataclasses.replace(j) for j in self._db.jobs.values() if j.entity_id == entity_id]
        return sorted(jobs, key=lambda j: j.id, reverse=True)

    def _set_if_processing(self, job_id: int, **changes: Any) -> None:
        with self._db.lock:
            if self._db.jobs[job_id].status == JobStatus.PROCESSING:
                self._set(job_id, **changes)

    def _set(self, job_id: int, **changes: Any) -> JobRecord:
        job = dataclasses.replace(self._db.jobs[job_id], **changes)
        self._db.jobs[job_id] = job
        return dataclasses.replace(job)


class FakePageRepository:
    def __init__(self, db: InMemoryDatabase) -> None:
        self._db = db

    def insert(self, page: PageRecord) -> None:
        with self._db.lock:
            key = (page.document_id, page.page_number)
            if key in self._db.pages:
                raise ValueError(f"Duplicate page {key}")
            self._db.pages[key] = dataclasses.replace(page)

    def delete_for_document(self, document_id: str) -> int:
        with self._db.lock:
            keys = [k for k in self._db.pages if k[0] == document_id]
            for key in keys:
                del self._db.pages[key]
            return len(keys)

    def list_for_document(self, document_id: str) -> list[PageRecord]:
        with self._db.lock:
            pages = [p for (doc_id, _), p in self._db.pages.items() if doc_id == document_id]
        return sorted(pages, key=lambda p: p.page_number)

    def find(self, document_id: str, page_number: int) -> PageRecord | None:
        with self._db.lock:
            return self._db.pages.get((document_id, page_number))

    def completed_counts(self, document_ids: list[str]) -> dict[str, int]:
        counts: dict[str, int] = {}
        with self._db.lock:
            for (doc_id, _), page in self._db.pages.items():
                if doc_id in document_ids and page.processing_status == ProcessingStatus.COMPLETED:
                    counts[doc_id] = counts.get(doc_id, 0) + 1
        return counts


class RecordingJobQueue:
    """Persists jobs like JobQueue.enqueue but never executes them."""

    def __init__(self, jobs: FakeJobRepository) -> None:
        self._jobs = jobs
        self.enqueued: list[JobRecord] = []
        self.submitted: list[int] = []
        self._lock = threading.Lock()

    def enqueue(
        self, job_type: str, entity_id: str, job_config: dict[str, Any] | None = None
    ) -> JobRecord:
        job = self._jobs.create(job_type, entity_id, job_config)
        with self._lock:
            self.enqueued.append(job)
        return job

    def submit(self, job_id: int) -> None:
        with self._lock:
            self.submitted.append(job_id)


@pytest.fixture()
def db() -> InMemoryDatabase:
    return InMemoryDatabase()


@pytest.fixture()
def documents(db: InMemoryDatabase) -> FakeDocumentRepository:
    return FakeDocumentRepository(db)


@pytest.fixture()
def chunks(db: InMemoryDatabase) -> FakeChunkRepository:
    return FakeChunkRepository(db)


@pytest.fixture()
def jobs(db: InMemoryDatabase) -> FakeJobRepository:
    return FakeJobRepository(db)


@pytest.fixture()
def pages(db: InMemoryDatabase) -> FakePageRepository:
    return FakePageRepository(db)


@pytest.fixture()
def job_queue(jobs: FakeJobRepository) -> RecordingJobQueue:
    return RecordingJobQueue(jobs)


@pytest.fixture()
def event_bus() -> InMemoryEventBus:
    return InMemoryEventBus()


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(upload_root=str(tmp_path / "uploads"), chunk_size_bytes=4)


@pytest.fixture()
def layout(settings: Settings) -> UploadLayout:
    return UploadLayout(Path(settings.upload_root)).ensure()


@pytest.fixture()
def chunk_store(layout: UploadLayout) -> ChunkStore:
    return ChunkStore(layout)


@pytest.fixture()
def consolidator(
    layout: UploadLayout,
    documents: FakeDocumentRepository,
    chunks: FakeChunkRepository,
    chunk_store: ChunkStore,
    job_queue: RecordingJobQueue,
    event_bus: InMemoryEventBus,
) -> Consolidator:
    return Consolidator(layout, documents, chunks, chunk_store, job_queue, event_bus)  # type: ignore[arg-type]


@pytest.fixture()
def coordinator(
    settings: Settings,
    documents: FakeDocumentRepository,
    chunks: FakeChunkRepository,
    chunk_store: ChunkStore,
    consolidator: Consolidator,
    event_bus: InMemoryEventBus,
) -> UploadCoordinator:
    return UploadCoordinator(settings, documents, chunks, chunk_store, consolidator, event_bus)  # type: ignore[arg-type]


@pytest.fixture()
def make_document(documents: FakeDocumentRepository) -> Callable[..., DocumentRecord]:
    """Insert a document straight into the fake store, bypassing the upload flow."""

    def _make(**overrides: Any) -> DocumentRecord:
        fields: dict[str, Any] = {
            "id": f"doc-{len(documents._db.documents) + 1}",
            "contract_id": "contract-1",
            "title": "Agreement",
            "original_name": "agreement.pdf",
            "file_name": "contract-1-PRIMARY-1-abc123-agreement.pdf",
            "file_size": 10,
            "mime_type": "application/pdf",
            "total_chunks": 1,
        }
        fields.update(overrides)
        document = DocumentRecord(**fields)
        with documents._db.lock:
            documents._db.documents[document.id] = document
        return document

    return _make


class ScriptedOcrProvider(BaseOcrProvider):
    """Returns canned text per call; call numbers listed in `failing_calls` raise OcrError."""

    name = "scripted"

    def __init__(self) -> None:
        self.calls = 0
        self.failing_calls: set[int] = set()
        self.text = "Scanned clause text"

    def recognize(self, image_bytes: bytes, mime_type: str = "image/png") -> OcrResult:
        self.calls += 1
        if self.calls in self.failing_calls:
            raise OcrError(f"provider rejected call {self.calls}")
        return OcrResult(text=f"{self.text} {self.calls}", confidence=88.5, blocks=1)


@pytest.fixture()
def ocr_provider() -> ScriptedOcrProvider:
    return ScriptedOcrProvider()


@pytest.fixture()
def page_store(pages: FakePageRepository, ocr_provider: ScriptedOcrProvider) -> PageStore:
    return PageStore(pages, ocr_provider)  # type: ignore[arg-type]
