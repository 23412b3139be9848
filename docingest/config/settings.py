from pydantic_settings import BaseSettings, SettingsConfigDict

MIB = 1024 * 1024

DEFAULT_ALLOWED_MIME_TYPES: tuple[str, ...] = (
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
    "application/json",
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
)


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "localhost"
    db_port: int = 5432
    db_database: str = "docingest"
    db_username: str = "docingest"
    db_password: str = "secret"
    db_pool_max_size: int = 10

    upload_root: str = "./uploads"
    chunk_size_bytes: int = 5 * MIB
    max_file_size_bytes: int = 100 * MIB
    max_files_per_contract: int = 50
    allowed_mime_types: list[str] = list(DEFAULT_ALLOWED_MIME_TYPES)

    max_job_attempts: int = 3
    job_poll_interval_seconds: int = 5
    job_workers: int = 4
    job_lock_timeout_seconds: int = 900
    job_heartbeat_seconds: int = 30

    pdf_engine: str = "pdfplumber"
    pdftotext_path: str = "pdftotext"
    pdftotext_timeout_seconds: int = 120

    ocr_provider: str = "tesseract"
    ocr_language: str = "eng"
    ocr_dpi: int = 200
    ocr_timeout_seconds: int = 60

    openai_api_key: str = ""
    openai_model_name: str = ""
    openai_timeout_seconds: int = 30
