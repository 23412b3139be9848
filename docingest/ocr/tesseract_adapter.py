import io

import pytesseract
from PIL import Image, UnidentifiedImageError

from docingest.ocr.base import BaseOcrProvider, OcrResult, mean_confidence
from docingest.ocr.exceptions import OcrError


class TesseractAdapter(BaseOcrProvider):
    """Local OCR through the tesseract binary via pytesseract."""

    name = "tesseract"

    def __init__(self, language: str = "eng", timeout_seconds: float = 60) -> None:
        self._language = language
        self._timeout_seconds = timeout_seconds

    def recognize(self, image_bytes: bytes, mime_type: str = "image/png") -> OcrResult:
        try:
            with Image.open(io.BytesIO(image_bytes)) as image:
                data = pytesseract.image_to_data(
                    image.convert("RGB"),
                    lang=self._language,
                    output_type=pytesseract.Output.DICT,
                    timeout=self._timeout_seconds,
                )
        except UnidentifiedImageError as exc:
            raise OcrError(f"Unreadable image: {exc}") from exc
        except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError) as exc:
            raise OcrError(f"Tesseract failed: {exc}") from exc
        except RuntimeError as exc:
            # pytesseract signals its own timeout as a bare RuntimeError
            raise OcrError(f"Tesseract timed out: {exc}") from exc

        lines: dict[tuple[int, int, int], list[str]] = {}
        scores: list[float] = []
        for index, word in enumerate(data["text"]):
            word = word.strip()
            if not word:
                continue
            key = (data["block_num"][index], data["par_num"][index], data["line_num"][index])
            lines.setdefault(key, []).append(word)
            confidence = float(data["conf"][index])
            if confidence >= 0:
                scores.append(confidence)

        text = "\n".join(" ".join(words) for _, words in sorted(lines.items()))
        blocks = len({key[0] for key in lines})
        return OcrResult(text=text, confidence=mean_confidence(scores), blocks=blocks)
