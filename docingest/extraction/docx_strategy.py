import io
import zipfile

from docx import Document as DocxDocument
from docx.opc.exceptions import PackageNotFoundError
from docx.table import Table

from docingest.database.models import ExtractionMethod
from docingest.extraction.base import ExtractionContext, ExtractionOutcome, ExtractionStrategy
from docingest.extraction.exceptions import ExtractionError
from docingest.pages.page_store import PageStore


def table_text(table: Table) -> str:
    """Rows on separate lines, cells separated by tabs."""
    rows = []
    for row in table.rows:
        cells = [cell.text.strip() for cell in row.cells]
        if any(cells):
            rows.append("\t".join(cells))
    return "\n".join(rows)


class DocxStrategy(ExtractionStrategy):
    """Maps a Word document to one text blob of paragraphs followed by tables.

    DOCX has no fixed pagination, so the whole document becomes page 1.
    Things the text cannot carry (embedded images, empty bodies) are reported
    as warnings in the page metadata.
    """

    def __init__(self, page_store: PageStore) -> None:
        self._page_store = page_store

    def extract(self, context: ExtractionContext) -> ExtractionOutcome:
        try:
            doc = DocxDocument(io.BytesIO(context.content))
        except (PackageNotFoundError, zipfile.BadZipFile, KeyError) as exc:
            raise ExtractionError(f"Not a readable DOCX file: {exc}") from exc

        parts = [para.text.strip() for para in doc.paragraphs if para.text.strip()]
        for table in doc.tables:
            rendered = table_text(table)
            if rendered:
                parts.append(rendered)
        text = "\n".join(parts)

        warnings = []
        if doc.inline_shapes:
            warnings.append(
                f"{len(doc.inline_shapes)} embedded images were skipped"
            )
        if not text:
            warnings.append("Document contains no text")

        page = self._page_store.record_page(
            context.document.id,
            1,
            text,
            ExtractionMethod.DIRECT,
            metadata={"warnings": warnings} if warnings else None,
        )
        return ExtractionOutcome(ExtractionMethod.DIRECT, 1, page.word_count)
