class ExtractionError(Exception):
    """Base exception for document text extraction errors."""


class UnsupportedFileTypeError(ExtractionError):
    """Raised when no extraction strategy handles the document's MIME type."""


class ExtractionExhaustedError(ExtractionError):
    """Raised when every tier of the PDF fallback chain has failed."""


class ExtractionCancelledError(ExtractionError):
    """Raised when an extraction pass observes its cancellation token."""


class ExtractionNotRetryableError(ExtractionError):
    """Raised when a retry is requested for a document whose processing has not failed."""
