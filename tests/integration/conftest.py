import os
import uuid
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import psycopg
import pytest

from docingest.config.settings import Settings
from docingest.database.connection import close_pool, get_connection, init_pool
from docingest.database.models import ChunkRecord, DocumentRecord
from docingest.database.repositories.chunk_repository import ChunkRepository
from docingest.database.repositories.document_repository import DocumentRepository
from docingest.database.repositories.job_repository import JobRepository
from docingest.database.repositories.page_repository import PageRepository
from docingest.upload.naming import expected_chunk_sizes

MIGRATIONS_DIR = Path(__file__).resolve().parents[2] / "migrations"


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "docingest_test")
    return Settings()


def _apply_migrations() -> None:
    with get_connection() as conn:
        for migration in sorted(MIGRATIONS_DIR.glob("*.sql")):
            conn.execute(migration.read_text())
        conn.commit()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        _apply_migrations()
    except Exception as e:
        close_pool()
        pytest.skip(
            f"PostgreSQL test DB not available: {e}. "
            "Set DB_* env to point at a disposable database"
        )
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def db_conn(integration_pool: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        yield conn


@pytest.fixture
def integration_cleanup(integration_pool: None) -> Generator[list[str], None, None]:
    """Document IDs to delete after the test; chunks and pages cascade."""
    cleanup: list[str] = []
    yield cleanup
    if not cleanup:
        return
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "DELETE FROM processing_jobs WHERE entity_id = ANY(%s)", (cleanup,)
            )
            cur.execute(
                "DELETE FROM contract_documents WHERE id = ANY(%s)", (cleanup,)
            )
        conn.commit()


@pytest.fixture
def document_repo(integration_pool: None) -> DocumentRepository:
    return DocumentRepository()


@pytest.fixture
def chunk_repo(integration_pool: None) -> ChunkRepository:
    return ChunkRepository()


@pytest.fixture
def job_repo(integration_pool: None, test_settings: Settings) -> JobRepository:
    return JobRepository(max_attempts=test_settings.max_job_attempts)


@pytest.fixture
def page_repo(integration_pool: None) -> PageRepository:
    return PageRepository()


@pytest.fixture
def contract_id() -> str:
    return f"contract-{uuid.uuid4().hex[:8]}"


@pytest.fixture
def seed_document(
    document_repo: DocumentRepository,
    integration_cleanup: list[str],
    contract_id: str,
) -> Callable[..., DocumentRecord]:
    """Create an UPLOADING document with its chunk placeholders."""

    def _seed(file_size: int = 10, chunk_size: int = 4, **overrides: Any) -> DocumentRecord:
        document_id = str(uuid.uuid4())
        sizes = expected_chunk_sizes(file_size, chunk_size)
        fields: dict[str, Any] = {
            "id": document_id,
            "contract_id": contract_id,
            "title": "Agreement",
            "original_name": "agreement.pdf",
            "file_name": f"{contract_id}-PRIMARY-1-{document_id[:8]}-agreement.pdf",
            "file_size": file_size,
            "mime_type": "application/pdf",
            "total_chunks": len(sizes),
        }
        fields.update(overrides)
        document = DocumentRecord(**fields)
        document_repo.create_with_chunks(
            document,
            [
                ChunkRecord(document_id=document_id, chunk_number=n, chunk_size=size)
                for n, size in enumerate(sizes)
            ],
        )
        integration_cleanup.append(document_id)
        return document_repo.find_by_id(document_id)

    return _seed
