import re
import time
from typing import Any

from docingest.database.models import ExtractionMethod, PageRecord, ProcessingStatus
from docingest.database.repositories.page_repository import PageRepository
from docingest.logging.logger import Log
from docingest.ocr.base import BaseOcrProvider
from docingest.ocr.exceptions import OcrError

TABLE_PATTERNS = (
    re.compile(r"\t.*\t"),
    re.compile(r"\|.*\|"),
    re.compile(r"^\s*\d+\.\s+.*\s+\d+", re.MULTILINE),
)


def count_words(text: str) -> int:
    return len(text.split())


def detect_tables(text: str) -> bool:
    """Heuristic: tab-separated, pipe-delimited or numbered rows ending in a figure."""
    return any(pattern.search(text) for pattern in TABLE_PATTERNS)


def elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class PageStore:
    """Writes per-page extraction results and runs OCR with per-page isolation."""

    def __init__(self, pages: PageRepository, ocr: BaseOcrProvider) -> None:
        self._pages = pages
        self._ocr = ocr

    @property
    def ocr_provider_name(self) -> str:
        return self._ocr.name

    def record_page(
        self,
        document_id: str,
        page_number: int,
        text: str,
        method: str,
        *,
        confidence: float | None = None,
        ocr_provider: str | None = None,
        processing_time_ms: int | None = None,
        metadata: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> PageRecord:
        """Persist one page. A page carrying an error is stored as FAILED."""
        page = PageRecord(
            document_id=document_id,
            page_number=page_number,
            extracted_text=text,
            extraction_method=method,
            word_count=count_words(text),
            character_count=len(text),
            confidence_score=confidence,
            ocr_provider=ocr_provider,
            processing_time_ms=processing_time_ms,
            has_table=detect_tables(text),
            has_image=method == ExtractionMethod.OCR,
            metadata=metadata or {},
            processing_status=(
                ProcessingStatus.FAILED if error else ProcessingStatus.COMPLETED
            ),
            error_message=error,
        )
        self._pages.insert(page)
        return page

    def ocr_page(
        self,
        document_id: str,
        page_number: int,
        image_bytes: bytes,
        mime_type: str = "image/png",
        metadata: dict[str, Any] | None = None,
    ) -> PageRecord:
        """OCR one image into a page record.

        A provider failure yields an empty FAILED page instead of an exception,
        so the remaining pages of the document still get processed.
        """
        started = time.monotonic()
        try:
            result = self._ocr.recognize(image_bytes, mime_type)
        except OcrError as exc:
            Log.warning(f"OCR failed for page {page_number} of {document_id}: {exc}")
            return self.record_page(
                document_id,
                page_number,
                "",
                ExtractionMethod.OCR,
                ocr_provider=self._ocr.name,
                processing_time_ms=elapsed_ms(started),
                metadata=metadata,
                error=str(exc),
            )

        return self.record_page(
            document_id,
            page_number,
            result.text,
            ExtractionMethod.OCR,
            confidence=result.confidence,
            ocr_provider=self._ocr.name,
            processing_time_ms=elapsed_ms(started),
            metadata={**(metadata or {}), "blocks": result.blocks},
        )

    def clear(self, document_id: str) -> int:
        return self._pages.delete_for_document(document_id)

    def list_pages(self, document_id: str) -> list[PageRecord]:
        return self._pages.list_for_document(document_id)

    def get_page(self, document_id: str, page_number: int) -> PageRecord | None:
        return self._pages.find(document_id, page_number)

    def completed_counts(self, document_ids: list[str]) -> dict[str, int]:
        return self._pages.completed_counts(document_ids)
