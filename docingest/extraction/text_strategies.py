import json

from docingest.database.models import ExtractionMethod, ProcessingStatus
from docingest.extraction.base import ExtractionContext, ExtractionOutcome, ExtractionStrategy
from docingest.extraction.exceptions import ExtractionError
from docingest.logging.logger import Log
from docingest.pages.page_store import PageStore


class PlainTextStrategy(ExtractionStrategy):
    """Stores the file content verbatim as a single page."""

    def __init__(self, page_store: PageStore) -> None:
        self._page_store = page_store

    def extract(self, context: ExtractionContext) -> ExtractionOutcome:
        text = context.content.decode("utf-8", errors="replace")
        page = self._page_store.record_page(
            context.document.id, 1, text, ExtractionMethod.DIRECT
        )
        return ExtractionOutcome(ExtractionMethod.DIRECT, 1, page.word_count)


class JsonStrategy(ExtractionStrategy):
    """Stores JSON pretty-printed; malformed JSON is kept verbatim with a warning."""

    def __init__(self, page_store: PageStore) -> None:
        self._page_store = page_store

    def extract(self, context: ExtractionContext) -> ExtractionOutcome:
        raw = context.content.decode("utf-8", errors="replace")
        metadata: dict[str, object] = {}
        try:
            text = json.dumps(json.loads(raw), indent=2, ensure_ascii=False)
        except json.JSONDecodeError as exc:
            Log.warning(f"Document {context.document.id} is not valid JSON: {exc}")
            text = raw
            metadata["warnings"] = [f"Invalid JSON stored verbatim: {exc}"]

        page = self._page_store.record_page(
            context.document.id, 1, text, ExtractionMethod.DIRECT, metadata=metadata
        )
        return ExtractionOutcome(ExtractionMethod.DIRECT, 1, page.word_count)


class ImageOcrStrategy(ExtractionStrategy):
    """Runs a single image through OCR as page 1."""

    def __init__(self, page_store: PageStore) -> None:
        self._page_store = page_store

    def extract(self, context: ExtractionContext) -> ExtractionOutcome:
        context.token.checkpoint()
        page = self._page_store.ocr_page(
            context.document.id, 1, context.content, context.document.mime_type
        )
        if page.processing_status == ProcessingStatus.FAILED:
            raise ExtractionError(f"OCR failed: {page.error_message}")
        return ExtractionOutcome(ExtractionMethod.OCR, 1, page.word_count)
