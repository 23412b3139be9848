from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class UploadLayout:
    """Filesystem layout under the uploads root.

    {root}/                 finalized documents
    {root}/chunks/          staged chunk bytes, one file per {documentId}-chunk-{n}
    {root}/temp/            per-job working directories
    """

    root: Path

    @property
    def chunks_dir(self) -> Path:
        return self.root / "chunks"

    @property
    def temp_dir(self) -> Path:
        return self.root / "temp"

    def ensure(self) -> "UploadLayout":
        for directory in (self.root, self.chunks_dir, self.temp_dir):
            directory.mkdir(parents=True, exist_ok=True)
        return self

    def chunk_path(self, document_id: str, chunk_number: int) -> Path:
        return self.chunks_dir / f"{document_id}-chunk-{chunk_number}"

    def document_path(self, file_name: str) -> Path:
        return self.root / file_name

    def working_dir(self, document_id: str) -> Path:
        return self.temp_dir / f"pdf-{document_id}"
