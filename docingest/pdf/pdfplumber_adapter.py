import io

import pdfplumber

from docingest.pdf.base import BasePdfExtractor, NativePdfText, join_pages
from docingest.pdf.exceptions import EmptyTextLayerError, PdfExtractionError


class PdfPlumberAdapter(BasePdfExtractor):
    """Reads the PDF text layer using pdfplumber."""

    name = "pdfplumber"

    def extract(self, pdf_bytes: bytes) -> NativePdfText:
        try:
            with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
                pages = [page.extract_text() or "" for page in pdf.pages]
        except Exception as exc:
            raise PdfExtractionError(f"pdfplumber extraction failed: {exc}") from exc

        text = join_pages(pages)
        if not text:
            raise EmptyTextLayerError(f"pdfplumber found no text in {len(pages)} pages")
        return NativePdfText(page_count=len(pages), text=text)
