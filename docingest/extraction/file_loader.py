from pathlib import Path

from docingest.database.models import DocumentRecord
from docingest.extraction.exceptions import ExtractionError


class FileReadError(ExtractionError):
    """Raised when a consolidated document file cannot be read from disk."""


class FileLoader:
    """Resolves the consolidated file of a document and reads its bytes."""

    def path_for(self, document: DocumentRecord) -> Path:
        if not document.file_path:
            raise FileReadError(f"Document {document.id} has no consolidated file")
        return Path(document.file_path)

    def load(self, document: DocumentRecord) -> bytes:
        """Read document bytes from disk.

        Raises:
            FileReadError: if the document was never consolidated or the file is gone.
        """
        path = self.path_for(document)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise FileReadError(f"Cannot read {path}: {exc}") from exc
