import pymupdf

from docingest.pdf.base import BasePdfExtractor, NativePdfText, join_pages
from docingest.pdf.exceptions import EmptyTextLayerError, PdfExtractionError


class PyMuPdfAdapter(BasePdfExtractor):
    """Reads the PDF text layer using PyMuPDF."""

    name = "pymupdf"

    def extract(self, pdf_bytes: bytes) -> NativePdfText:
        try:
            with pymupdf.open(stream=pdf_bytes, filetype="pdf") as doc:  # type: ignore[no-untyped-call]
                pages = [page.get_text() for page in doc]
        except Exception as exc:
            raise PdfExtractionError(f"pymupdf extraction failed: {exc}") from exc

        text = join_pages(pages)
        if not text:
            raise EmptyTextLayerError(f"pymupdf found no text in {len(pages)} pages")
        return NativePdfText(page_count=len(pages), text=text)
