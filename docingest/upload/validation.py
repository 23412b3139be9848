from docingest.config.settings import Settings
from docingest.upload.models import FileMeta

MAX_FILENAME_LENGTH = 255


def validate_upload(settings: Settings, meta: FileMeta, existing_count: int) -> list[str]:
    """Check declared file metadata against the upload policy.

    Returns:
        Human-readable violations; empty when the upload may proceed.
    """
    errors: list[str] = []
    if meta.file_size <= 0:
        errors.append("File is empty")
    elif meta.file_size > settings.max_file_size_bytes:
        limit_mb = settings.max_file_size_bytes // (1024 * 1024)
        errors.append(f"File size exceeds maximum of {limit_mb}MB")

    if meta.mime_type not in settings.allowed_mime_types:
        errors.append(f"File type {meta.mime_type} is not supported")

    if not meta.original_name or len(meta.original_name) > MAX_FILENAME_LENGTH:
        errors.append("Invalid filename")

    if existing_count >= settings.max_files_per_contract:
        errors.append(
            f"Contract already has the maximum of {settings.max_files_per_contract} files"
        )
    return errors
