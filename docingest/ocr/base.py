from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class OcrResult:
    """Recognized text of one image with its mean confidence (0-100)."""

    text: str
    confidence: float | None
    blocks: int = 0


class BaseOcrProvider(ABC):
    """Contract for OCR provider adapters."""

    name: str = "ocr"

    @abstractmethod
    def recognize(self, image_bytes: bytes, mime_type: str = "image/png") -> OcrResult:
        """Recognize the text in one image.

        Raises:
            OcrError: if the provider fails, times out or returns garbage.
        """


def mean_confidence(scores: list[float]) -> float | None:
    if not scores:
        return None
    return round(sum(scores) / len(scores), 2)
