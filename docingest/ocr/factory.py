from docingest.config.settings import Settings
from docingest.ocr.base import BaseOcrProvider
from docingest.ocr.openai_adapter import OpenAIOcrAdapter
from docingest.ocr.tesseract_adapter import TesseractAdapter


class OcrProviderFactory:
    """Creates the OCR provider named by settings."""

    PROVIDERS = ("tesseract", "openai")

    @classmethod
    def create(cls, settings: Settings) -> BaseOcrProvider:
        provider = settings.ocr_provider.lower()
        if provider == "tesseract":
            return TesseractAdapter(
                language=settings.ocr_language,
                timeout_seconds=settings.ocr_timeout_seconds,
            )
        if provider == "openai":
            if not settings.openai_api_key or not settings.openai_model_name:
                raise ValueError(
                    "openai_api_key and openai_model_name are required for ocr_provider=openai"
                )
            return OpenAIOcrAdapter(
                api_key=settings.openai_api_key,
                model=settings.openai_model_name,
                timeout_seconds=settings.openai_timeout_seconds,
            )
        raise ValueError(
            f"Unknown OCR provider '{provider}'. Choose from: {list(cls.PROVIDERS)}"
        )
