import hashlib
import re
import secrets
import time
from pathlib import PurePath

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9\-_]")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def sha256_hex(data: bytes) -> str:
    """Hex SHA-256 digest used for chunk and file integrity checks."""
    return hashlib.sha256(data).hexdigest()


def sanitize_base_name(original_name: str) -> str:
    """Strip the extension and every character outside [a-zA-Z0-9-_]."""
    return _UNSAFE_CHARS.sub("", PurePath(original_name).stem)


def random_token(length: int = 6) -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def generate_document_filename(
    original_name: str,
    contract_id: str,
    document_type: str = "PRIMARY",
    timestamp_ms: int | None = None,
    token: str | None = None,
) -> str:
    """Build `{contractId}-{documentType}-{timestamp}-{random}-{safeBaseName}{ext}`."""
    if timestamp_ms is None:
        timestamp_ms = time.time_ns() // 1_000_000
    if token is None:
        token = random_token()
    suffix = PurePath(original_name).suffix
    base = sanitize_base_name(original_name)
    return f"{contract_id}-{document_type}-{timestamp_ms}-{token}-{base}{suffix}"


def expected_chunk_sizes(file_size: int, chunk_size: int) -> list[int]:
    """Byte length of each chunk: min(chunk_size, remaining bytes)."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    total_chunks = -(-file_size // chunk_size)
    return [
        min(chunk_size, file_size - index * chunk_size) for index in range(total_chunks)
    ]
