import traceback
from collections.abc import Callable, Mapping
from typing import Any

from docingest.config.settings import Settings
from docingest.database.models import JobRecord
from docingest.database.repositories.document_repository import DocumentRepository
from docingest.database.repositories.job_repository import DOCUMENT_ENTITY, JobRepository
from docingest.extraction.cancellation import CancellationToken
from docingest.extraction.exceptions import ExtractionCancelledError, ExtractionError
from docingest.logging.logger import Log
from docingest.ocr.exceptions import OcrError
from docingest.pdf.exceptions import PdfExtractionError
from docingest.upload.exceptions import DocumentNotFoundError, UploadError
from docingest.worker.exceptions import JobError, UnknownJobTypeError

JobHandler = Callable[[JobRecord, CancellationToken], dict[str, Any]]

# Errors that describe the input, not the environment; retrying cannot help.
FATAL_ERRORS: tuple[type[Exception], ...] = (
    JobError,
    UploadError,
    ExtractionError,
    PdfExtractionError,
    OcrError,
)


class JobRunner:
    """Run one claimed job, record its terminal state, and apply retry logic."""

    def __init__(
        self,
        handlers: Mapping[str, JobHandler],
        job_repo: JobRepository,
        documents: DocumentRepository,
        settings: Settings,
    ) -> None:
        self._handlers = dict(handlers)
        self._job_repo = job_repo
        self._documents = documents
        self._settings = settings

    def run(self, job: JobRecord, token: CancellationToken) -> None:
        """Execute a PROCESSING job with error handling."""
        Log.info(
            f"Running job {job.id} ({job.job_type} for {job.entity_id}, "
            f"attempt {job.attempts + 1})"
        )
        try:
            handler = self._handlers.get(job.job_type)
            if handler is None:
                raise UnknownJobTypeError(f"No handler for job type {job.job_type}")
            result = handler(job, token)
        except ExtractionCancelledError:
            self._release(job)
        except FATAL_ERRORS as exc:
            self._fail(job, exc)
        except Exception as exc:
            self._handle_failure(job, exc)
        else:
            self._job_repo.mark_completed(job.id, result)
            Log.info(f"Job {job.id} completed successfully")

    def _release(self, job: JobRecord) -> None:
        Log.warning(f"Job {job.id} cancelled, returning it to the queue")
        self._job_repo.release(job.id)
        self._reset_document(job)

    def _fail(self, job: JobRecord, exc: Exception) -> None:
        Log.error(f"Job {job.id} failed: {exc}")
        self._job_repo.mark_failed(job.id, str(exc), _error_details(exc))
        self._fail_document(job, exc)

    def _handle_failure(self, job: JobRecord, exc: Exception) -> None:
        """Increment attempts; mark failed if at max, otherwise back to pending."""
        Log.exception(f"Job {job.id} failed unexpectedly: {exc}")
        if job.attempts + 1 >= self._settings.max_job_attempts:
            self._job_repo.mark_failed(job.id, str(exc), _error_details(exc))
            self._fail_document(job, exc)
            Log.error(f"Job {job.id} permanently failed after {job.attempts + 1} attempts")
        else:
            self._job_repo.increment_attempts(job.id, str(exc))
            self._reset_document(job)
            Log.warning(f"Job {job.id} will be retried (attempt {job.attempts + 2})")

    def _fail_document(self, job: JobRecord, exc: Exception) -> None:
        """A terminal job failure leaves its document FAILED, never PENDING or PROCESSING."""
        if job.entity_type != DOCUMENT_ENTITY:
            return
        try:
            changed = self._documents.fail_active_processing(
                job.entity_id, f"Processing job {job.id} failed: {exc}"
            )
        except DocumentNotFoundError:
            Log.warning(f"Job {job.id} targets missing document {job.entity_id}")
            return
        if changed:
            Log.warning(f"Document {job.entity_id} marked FAILED after job {job.id}")

    def _reset_document(self, job: JobRecord) -> None:
        if job.entity_type != DOCUMENT_ENTITY:
            return
        try:
            self._documents.reset_processing(job.entity_id)
        except DocumentNotFoundError:
            Log.warning(f"Job {job.id} targets missing document {job.entity_id}")


def _error_details(exc: Exception) -> dict[str, Any]:
    return {
        "type": type(exc).__name__,
        "traceback": "".join(traceback.format_exception(exc)),
    }
