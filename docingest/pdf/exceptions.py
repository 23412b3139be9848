class PdfExtractionError(Exception):
    """Base exception for PDF text-layer and rasterization errors."""


class EmptyTextLayerError(PdfExtractionError):
    """Raised when a tier reads the PDF but finds no text."""


class CommandTimeoutError(PdfExtractionError):
    """Raised when the command-line extractor exceeds its timeout."""
