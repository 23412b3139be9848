class UploadError(Exception):
    """Base exception for all upload-related errors."""


class DocumentNotFoundError(UploadError):
    """Raised when a document cannot be found in the database."""


class InvalidChunkError(UploadError):
    """Raised when a chunk submission is out of range or malformed."""


class UploadValidationError(UploadError):
    """Raised when upload metadata violates the configured upload policy."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = errors


class ChunkStorageError(UploadError):
    """Raised when chunk bytes cannot be written to the staging area."""


class ConsolidationError(UploadError):
    """Raised when staged chunks cannot be reassembled into the final file."""


class UploadClosedError(UploadError):
    """Raised when a chunk arrives for an upload that has already failed."""
