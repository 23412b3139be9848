from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

import pymupdf

from docingest.pdf.exceptions import PdfExtractionError


@dataclass(frozen=True)
class RenderedPage:
    """One rasterized page. Exactly one of image_path and error is set."""

    page_number: int
    image_path: Path | None = None
    error: str | None = None


class PdfRasterizer:
    """Renders PDF pages to PNG files one at a time."""

    def __init__(self, dpi: int = 200) -> None:
        self._dpi = dpi

    @property
    def dpi(self) -> int:
        return self._dpi

    def page_count(self, pdf_path: Path) -> int:
        try:
            with pymupdf.open(pdf_path) as doc:  # type: ignore[no-untyped-call]
                return doc.page_count
        except Exception as exc:
            raise PdfExtractionError(f"Could not open {pdf_path.name}: {exc}") from exc

    def render(self, pdf_path: Path, output_dir: Path) -> Iterator[RenderedPage]:
        """Yield a RenderedPage for each page, 1-based.

        A page that cannot be rendered is yielded with its error and the
        remaining pages still render. The caller owns each PNG and is expected
        to delete it once processed.

        Raises:
            PdfExtractionError: the file cannot be opened as a PDF.
        """
        matrix = pymupdf.Matrix(self._dpi / 72, self._dpi / 72)
        try:
            doc = pymupdf.open(pdf_path)  # type: ignore[no-untyped-call]
        except Exception as exc:
            raise PdfExtractionError(f"Could not open {pdf_path.name}: {exc}") from exc
        with doc:
            for index, page in enumerate(doc, start=1):
                image_path = output_dir / f"page-{index}.png"
                try:
                    pixmap = page.get_pixmap(matrix=matrix, alpha=False)
                    pixmap.save(str(image_path))
                except Exception as exc:
                    image_path.unlink(missing_ok=True)
                    yield RenderedPage(index, error=f"Could not render page {index}: {exc}")
                    continue
                yield RenderedPage(index, image_path=image_path)
