from collections.abc import Callable
from pathlib import Path

from docingest.database.models import ExtractionMethod, ProcessingStatus
from docingest.extraction.base import ExtractionContext, ExtractionOutcome, ExtractionStrategy
from docingest.extraction.exceptions import (
    ExtractionCancelledError,
    ExtractionError,
    ExtractionExhaustedError,
)
from docingest.extraction.workspace import working_directory
from docingest.logging.logger import Log
from docingest.pages.page_store import PageStore
from docingest.pdf.base import BasePdfExtractor
from docingest.pdf.pdftotext_adapter import PdfToTextAdapter
from docingest.pdf.rasterizer import PdfRasterizer
from docingest.upload.layout import UploadLayout

Tier = Callable[[ExtractionContext, Path, Path], ExtractionOutcome]


class PdfFallbackStrategy(ExtractionStrategy):
    """Native text layer -> pdftotext -> rasterize + OCR, first success wins."""

    def __init__(
        self,
        page_store: PageStore,
        layout: UploadLayout,
        native: BasePdfExtractor,
        command: PdfToTextAdapter,
        rasterizer: PdfRasterizer,
    ) -> None:
        self._page_store = page_store
        self._layout = layout
        self._native = native
        self._command = command
        self._rasterizer = rasterizer

    def tiers(self) -> list[tuple[str, Tier]]:
        return [
            (ExtractionMethod.NATIVE, self._native_tier),
            (ExtractionMethod.PDFTOTEXT, self._command_tier),
            (ExtractionMethod.OCR, self._ocr_tier),
        ]

    def extract(self, context: ExtractionContext) -> ExtractionOutcome:
        document = context.document
        failures: list[str] = []
        with working_directory(self._layout.working_dir(document.id)) as workdir:
            pdf_path = workdir / f"{document.id}.pdf"
            pdf_path.write_bytes(context.content)

            for name, tier in self.tiers():
                context.token.checkpoint()
                if failures:
                    self._page_store.clear(document.id)
                Log.info(f"Document {document.id}: trying {name} extraction")
                try:
                    outcome = tier(context, pdf_path, workdir)
                except ExtractionCancelledError:
                    raise
                except Exception as exc:
                    Log.warning(f"Document {document.id}: {name} extraction failed: {exc}")
                    failures.append(f"{name}: {exc}")
                    continue
                Log.info(
                    f"Document {document.id}: {name} extraction produced "
                    f"{outcome.page_count} pages, {outcome.word_count} words"
                )
                return outcome

        raise ExtractionExhaustedError(
            "All PDF extraction methods failed (" + "; ".join(failures) + ")"
        )

    def _native_tier(
        self, context: ExtractionContext, pdf_path: Path, workdir: Path
    ) -> ExtractionOutcome:
        result = self._native.extract(context.content)
        # The text layer is not reliably split per page, so it lands in page 1.
        page = self._page_store.record_page(
            context.document.id,
            1,
            result.text,
            ExtractionMethod.NATIVE,
            metadata={"engine": self._native.name, "pageCount": result.page_count},
        )
        return ExtractionOutcome(ExtractionMethod.NATIVE, result.page_count, page.word_count)

    def _command_tier(
        self, context: ExtractionContext, pdf_path: Path, workdir: Path
    ) -> ExtractionOutcome:
        result = self._command.extract_pages(pdf_path, context.token)
        words = 0
        for page_number, source in enumerate(result.pages, start=1):
            page = self._page_store.record_page(
                context.document.id,
                page_number,
                source.text,
                ExtractionMethod.PDFTOTEXT,
                metadata={"sourcePage": source.source_page},
            )
            words += page.word_count
        return ExtractionOutcome(ExtractionMethod.PDFTOTEXT, result.page_count, words)

    def _ocr_tier(
        self, context: ExtractionContext, pdf_path: Path, workdir: Path
    ) -> ExtractionOutcome:
        total = self._rasterizer.page_count(pdf_path)
        if total == 0:
            raise ExtractionError("PDF has no pages to rasterize")
        Log.info(f"Rasterizing {total} pages of {context.document.id} for OCR")

        words = 0
        pages = 0
        succeeded = 0
        metadata = {"dpi": self._rasterizer.dpi}
        for rendered in self._rasterizer.render(pdf_path, workdir):
            context.token.checkpoint()
            pages += 1
            if rendered.image_path is None:
                Log.warning(f"Document {context.document.id}: {rendered.error}")
                self._page_store.record_page(
                    context.document.id,
                    rendered.page_number,
                    "",
                    ExtractionMethod.OCR,
                    ocr_provider=self._page_store.ocr_provider_name,
                    metadata=metadata,
                    error=rendered.error,
                )
                continue
            try:
                page = self._page_store.ocr_page(
                    context.document.id,
                    rendered.page_number,
                    rendered.image_path.read_bytes(),
                    metadata=metadata,
                )
            finally:
                rendered.image_path.unlink(missing_ok=True)
            if page.processing_status == ProcessingStatus.COMPLETED:
                succeeded += 1
                words += page.word_count

        if succeeded == 0:
            raise ExtractionError(f"OCR failed on all {pages} pages")
        return ExtractionOutcome(ExtractionMethod.OCR, pages, words)
