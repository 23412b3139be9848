import base64

import httpx
import openai
from pydantic import BaseModel, Field, ValidationError

from docingest.ocr.base import BaseOcrProvider, OcrResult, mean_confidence
from docingest.ocr.exceptions import OcrError

SYSTEM_PROMPT = (
    "You transcribe scanned contract pages. Return every line of text in "
    "reading order, preserving table rows as single lines with cells separated "
    "by ' | '. Give each line a confidence from 0 to 100."
)

OCR_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "lines": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "text": {"type": "string"},
                    "confidence": {"type": "number"},
                },
                "required": ["text", "confidence"],
                "additionalProperties": False,
            },
        }
    },
    "required": ["lines"],
    "additionalProperties": False,
}


class OcrLine(BaseModel):
    text: str
    confidence: float = Field(ge=0, le=100)


class OcrResponse(BaseModel):
    lines: list[OcrLine]


class OpenAIOcrAdapter(BaseOcrProvider):
    """OCR through an OpenAI vision-capable chat model."""

    name = "openai"

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        timeout_seconds: int,
        base_url: str | None = None,
    ) -> None:
        self._model = model
        self._client = openai.OpenAI(
            api_key=api_key,
            timeout=timeout_seconds,
            base_url=base_url,
        )

    def recognize(self, image_bytes: bytes, mime_type: str = "image/png") -> OcrResult:
        encoded = base64.b64encode(image_bytes).decode("ascii")
        try:
            response = self._client.chat.completions.create(
                model=self._model,
                temperature=0.0,
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": "ocr_result",
                        "strict": True,
                        "schema": OCR_SCHEMA,
                    },
                },
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "image_url",
                                "image_url": {"url": f"data:{mime_type};base64,{encoded}"},
                            }
                        ],
                    },
                ],
            )
        except (openai.APIConnectionError, httpx.ConnectError, httpx.TimeoutException) as exc:
            raise OcrError(f"OCR provider network error: {exc}") from exc
        except openai.APIError as exc:
            raise OcrError(f"OCR provider API error: {exc}") from exc

        if not response.choices:
            raise OcrError("OCR provider returned no choices")
        content = response.choices[0].message.content
        if content is None:
            raise OcrError("OCR provider returned empty response")

        try:
            parsed = OcrResponse.model_validate_json(content)
        except ValidationError as exc:
            raise OcrError(f"OCR provider returned malformed JSON: {exc}") from exc

        lines = [line for line in parsed.lines if line.text.strip()]
        return OcrResult(
            text="\n".join(line.text.strip() for line in lines),
            confidence=mean_confidence([line.confidence for line in lines]),
            blocks=len(lines),
        )
