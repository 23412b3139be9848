import pytest

from docingest.pdf.exceptions import EmptyTextLayerError, PdfExtractionError
from docingest.pdf.pdfplumber_adapter import PdfPlumberAdapter


class TestPdfPlumberAdapter:
    def test_extract_returns_text_and_page_count(self, sample_pdf_bytes: bytes) -> None:
        result = PdfPlumberAdapter().extract(sample_pdf_bytes)
        assert "Hello PDF World" in result.text
        assert result.page_count == 1

    def test_extract_multi_page(self, multi_page_pdf_bytes: bytes) -> None:
        result = PdfPlumberAdapter().extract(multi_page_pdf_bytes)
        assert "Page one content" in result.text
        assert "Page two content" in result.text
        assert result.page_count == 2

    def test_empty_text_layer_raises(self, empty_pdf_bytes: bytes) -> None:
        with pytest.raises(EmptyTextLayerError):
            PdfPlumberAdapter().extract(empty_pdf_bytes)

    def test_extract_raises_on_invalid_bytes(self) -> None:
        with pytest.raises(PdfExtractionError):
            PdfPlumberAdapter().extract(b"not a pdf")

    def test_extract_result_is_stripped(self, sample_pdf_bytes: bytes) -> None:
        result = PdfPlumberAdapter().extract(sample_pdf_bytes)
        assert result.text == result.text.strip()
