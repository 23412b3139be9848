from collections.abc import Mapping
from typing import Any

from docingest.database.models import JobRecord
from docingest.database.repositories.document_repository import DocumentRepository
from docingest.extraction.base import ExtractionContext, ExtractionOutcome, ExtractionStrategy
from docingest.extraction.cancellation import CancellationToken
from docingest.extraction.exceptions import (
    ExtractionCancelledError,
    UnsupportedFileTypeError,
)
from docingest.extraction.file_loader import FileLoader
from docingest.logging.logger import Log
from docingest.notifications.base import (
    PROCESSING_STARTED,
    TEXT_EXTRACTED,
    EventBus,
    notify,
)
from docingest.pages.page_store import PageStore

PDF = "application/pdf"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
LEGACY_DOC = "application/msword"
PLAIN_TEXT = "text/plain"
JSON = "application/json"
IMAGE_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")


class ExtractionDispatcher:
    """Selects the extraction strategy by MIME type and drives the document's processing state."""

    def __init__(
        self,
        documents: DocumentRepository,
        page_store: PageStore,
        strategies: Mapping[str, ExtractionStrategy],
        event_bus: EventBus,
        file_loader: FileLoader | None = None,
    ) -> None:
        self._documents = documents
        self._page_store = page_store
        self._strategies = dict(strategies)
        self._event_bus = event_bus
        self._file_loader = file_loader or FileLoader()

    def handle_job(self, job: JobRecord, token: CancellationToken) -> dict[str, Any]:
        """Job handler for TEXT_EXTRACTION; the return value becomes the job result."""
        outcome = self.extract_document_text(job.entity_id, token)
        return {
            "documentId": job.entity_id,
            "extractionMethod": outcome.method,
            "pageCount": outcome.page_count,
            "wordCount": outcome.word_count,
        }

    def extract_document_text(
        self, document_id: str, token: CancellationToken | None = None
    ) -> ExtractionOutcome:
        """Run one extraction pass and leave the document COMPLETED or FAILED.

        Cancellation leaves the document state to the caller, which re-queues it.

        Raises:
            DocumentNotFoundError: unknown document.
            ExtractionError: the pass failed; the document is already FAILED.
        """
        token = token or CancellationToken()
        document = self._documents.find_by_id(document_id)
        self._documents.mark_processing_started(document_id)
        notify(
            self._event_bus,
            PROCESSING_STARTED,
            {
                "documentId": document_id,
                "documentTitle": document.title,
                "processingType": "text_extraction",
                "userId": document.uploaded_by,
            },
        )

        try:
            cleared = self._page_store.clear(document_id)
            if cleared:
                Log.info(f"Discarded {cleared} pages of a previous pass for {document_id}")
            strategy = self.strategy_for(document.mime_type)
            content = self._file_loader.load(document)
            outcome = strategy.extract(ExtractionContext(document, content, token))
        except ExtractionCancelledError:
            Log.warning(f"Extraction of {document_id} cancelled")
            raise
        except Exception as exc:
            message = f"Text extraction failed: {exc}"
            Log.error(f"Document {document_id}: {message}")
            self._documents.mark_processing_failed(document_id, message)
            raise

        self._documents.mark_processing_completed(
            document_id, outcome.page_count, outcome.word_count, outcome.method
        )
        Log.info(
            f"Text extraction completed for {document_id} via {outcome.method}: "
            f"{outcome.page_count} pages, {outcome.word_count} words"
        )
        notify(
            self._event_bus,
            TEXT_EXTRACTED,
            {
                "documentId": document_id,
                "documentTitle": document.title,
                "pageCount": outcome.page_count,
                "wordCount": outcome.word_count,
                "extractionMethod": outcome.method,
                "userId": document.uploaded_by,
            },
        )
        return outcome

    def strategy_for(self, mime_type: str) -> ExtractionStrategy:
        """Raises UnsupportedFileTypeError if no strategy handles the MIME type."""
        if mime_type == LEGACY_DOC:
            raise UnsupportedFileTypeError(
                "Legacy .doc files are not supported, convert the document to DOCX"
            )
        strategy = self._strategies.get(mime_type)
        if strategy is None:
            raise UnsupportedFileTypeError(f"Unsupported file type: {mime_type}")
        return strategy
