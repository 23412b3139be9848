from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class NativePdfText:
    """Text layer of a PDF as one blob, plus the true page count."""

    page_count: int
    text: str


class BasePdfExtractor(ABC):
    """Contract for native text-layer extraction adapters."""

    name: str = "native"

    @abstractmethod
    def extract(self, pdf_bytes: bytes) -> NativePdfText:
        """Read the embedded text layer of a PDF.

        Args:
            pdf_bytes: Raw PDF file content.

        Returns:
            The page count and all page texts joined into one string.

        Raises:
            EmptyTextLayerError: if the PDF opens but carries no text.
            PdfExtractionError: if extraction fails for any other reason.
        """


def join_pages(pages: list[str]) -> str:
    return "\n".join(page.strip() for page in pages if page and page.strip())
