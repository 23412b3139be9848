from docingest.config.settings import Settings
from docingest.extraction.base import ExtractionStrategy
from docingest.extraction.dispatcher import DOCX, IMAGE_TYPES, JSON, PDF, PLAIN_TEXT
from docingest.extraction.docx_strategy import DocxStrategy
from docingest.extraction.pdf_strategy import PdfFallbackStrategy
from docingest.extraction.text_strategies import (
    ImageOcrStrategy,
    JsonStrategy,
    PlainTextStrategy,
)
from docingest.pages.page_store import PageStore
from docingest.pdf.base import BasePdfExtractor
from docingest.pdf.pdfplumber_adapter import PdfPlumberAdapter
from docingest.pdf.pdftotext_adapter import PdfToTextAdapter
from docingest.pdf.pymupdf_adapter import PyMuPdfAdapter
from docingest.pdf.rasterizer import PdfRasterizer
from docingest.upload.layout import UploadLayout

NATIVE_ENGINES: dict[str, type[BasePdfExtractor]] = {
    "pdfplumber": PdfPlumberAdapter,
    "pymupdf": PyMuPdfAdapter,
}


def native_extractor(settings: Settings) -> BasePdfExtractor:
    """Text-layer reader for the first PDF tier, chosen by `pdf_engine`."""
    engine = settings.pdf_engine.lower()
    adapter_cls = NATIVE_ENGINES.get(engine)
    if adapter_cls is None:
        raise ValueError(
            f"Unknown PDF engine '{engine}'. Choose from: {list(NATIVE_ENGINES)}"
        )
    return adapter_cls()


def build_strategies(
    settings: Settings, page_store: PageStore, layout: UploadLayout
) -> dict[str, ExtractionStrategy]:
    """Map every supported MIME type to its configured extraction strategy."""
    image = ImageOcrStrategy(page_store)
    strategies: dict[str, ExtractionStrategy] = {
        PDF: PdfFallbackStrategy(
            page_store,
            layout,
            native=native_extractor(settings),
            command=PdfToTextAdapter(
                binary=settings.pdftotext_path,
                timeout_seconds=settings.pdftotext_timeout_seconds,
            ),
            rasterizer=PdfRasterizer(dpi=settings.ocr_dpi),
        ),
        DOCX: DocxStrategy(page_store),
        PLAIN_TEXT: PlainTextStrategy(page_store),
        JSON: JsonStrategy(page_store),
    }
    for mime_type in IMAGE_TYPES:
        strategies[mime_type] = image
    return strategies
