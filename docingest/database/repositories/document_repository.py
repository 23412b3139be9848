from typing import Any

import psycopg
from psycopg.rows import dict_row

from docingest.database.connection import get_connection
from docingest.database.models import (
    ChunkRecord,
    DocumentRecord,
    ProcessingStatus,
    UploadStatus,
)
from docingest.upload.exceptions import DocumentNotFoundError

DOCUMENT_COLUMNS = """
    id, contract_id, title, original_name, file_name, file_size, mime_type,
    total_chunks, document_type, sequence_order, parent_document_id, uploaded_by,
    upload_status, processing_status, chunks_uploaded, upload_progress,
    file_path, file_hash, page_count, word_count, extraction_method,
    extraction_started, extraction_completed, error_message, created_at, updated_at
"""


class DocumentRepository:
    """Database operations for the contract_documents table."""

    def create_with_chunks(
        self, document: DocumentRecord, chunks: list[ChunkRecord]
    ) -> None:
        """Insert the document row and all of its chunk placeholders atomically."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO contract_documents
                    (id, contract_id, document_type, sequence_order, parent_document_id,
                     title, file_name, original_name, file_size, mime_type,
                     upload_status, processing_status, total_chunks, chunks_uploaded,
                     uploaded_by)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, 0, %s)
                    """,
                    (
                        document.id,
                        document.contract_id,
                        document.document_type,
                        document.sequence_order,
                        document.parent_document_id,
                        document.title,
                        document.file_name,
                        document.original_name,
                        document.file_size,
                        document.mime_type,
                        UploadStatus.UPLOADING.value,
                        ProcessingStatus.PENDING.value,
                        document.total_chunks,
                        document.uploaded_by,
                    ),
                )
                cur.executemany(
                    """
                    INSERT INTO document_chunks
                    (document_id, chunk_number, chunk_size, upload_status)
                    VALUES (%s, %s, %s, %s)
                    """,
                    [
                        (c.document_id, c.chunk_number, c.chunk_size, c.upload_status)
                        for c in chunks
                    ],
                )
            conn.commit()

    def find_by_id(self, document_id: str) -> DocumentRecord:
        """Find a document by ID.

        Raises:
            DocumentNotFoundError: if no document with this ID exists.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {DOCUMENT_COLUMNS} FROM contract_documents WHERE id = %s",
                    (document_id,),
                )
                row = cur.fetchone()

        if row is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        return DocumentRecord(**row)

    def list_for_contract(self, contract_id: str) -> list[DocumentRecord]:
        """All documents of a contract ordered by document type then sequence."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {DOCUMENT_COLUMNS}
                    FROM contract_documents
                    WHERE contract_id = %s
                    ORDER BY document_type, sequence_order, created_at
                    """,
                    (contract_id,),
                )
                rows = cur.fetchall()
        return [DocumentRecord(**row) for row in rows]

    def count_for_contract(self, contract_id: str) -> int:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT COUNT(*) FROM contract_documents WHERE contract_id = %s",
                    (contract_id,),
                )
                row = cur.fetchone()
        return int(row[0]) if row else 0

    def finish_consolidation(
        self, document_id: str, file_path: str, file_hash: str
    ) -> None:
        """Move COMPLETING -> COMPLETED and drop the chunk placeholders.

        Raises:
            DocumentNotFoundError: if the document is not in the COMPLETING state.
        """
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE contract_documents
                    SET upload_status = %s, processing_status = %s,
                        file_path = %s, file_hash = %s, upload_progress = 100,
                        updated_at = NOW()
                    WHERE id = %s AND upload_status = %s
                    """,
                    (
                        UploadStatus.COMPLETED.value,
                        ProcessingStatus.PENDING.value,
                        file_path,
                        file_hash,
                        document_id,
                        UploadStatus.COMPLETING.value,
                    ),
                )
                if cur.rowcount == 0:
                    raise DocumentNotFoundError(
                        f"Document {document_id} is not awaiting consolidation"
                    )
                cur.execute(
                    "DELETE FROM document_chunks WHERE document_id = %s",
                    (document_id,),
                )
            conn.commit()

    def mark_upload_failed(self, document_id: str, error: str) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE contract_documents
                SET upload_status = %s, processing_status = %s,
                    error_message = %s, updated_at = NOW()
                WHERE id = %s
                """,
                (
                    UploadStatus.FAILED.value,
                    ProcessingStatus.FAILED.value,
                    error,
                    document_id,
                ),
            )
            conn.commit()

    def mark_processing_started(self, document_id: str) -> None:
        self._update_processing(
            document_id,
            """
            SET processing_status = %s, extraction_started = NOW(),
                extraction_completed = NULL, error_message = NULL, updated_at = NOW()
            """,
            (ProcessingStatus.PROCESSING.value,),
        )

    def mark_processing_completed(
        self,
        document_id: str,
        page_count: int,
        word_count: int,
        extraction_method: str,
    ) -> None:
        self._update_processing(
            document_id,
            """
            SET processing_status = %s, page_count = %s, word_count = %s,
                extraction_method = %s, extraction_completed = NOW(),
                error_message = NULL, updated_at = NOW()
            """,
            (ProcessingStatus.COMPLETED.value, page_count, word_count, extraction_method),
        )

    def mark_processing_failed(self, document_id: str, error: str) -> None:
        self._update_processing(
            document_id,
            """
            SET processing_status = %s, error_message = %s,
                extraction_completed = NOW(), updated_at = NOW()
            """,
            (ProcessingStatus.FAILED.value, error),
        )

    def fail_active_processing(self, document_id: str, error: str) -> bool:
        """Mark processing FAILED unless it already reached COMPLETED or FAILED.

        Returns True when the row changed.

        Raises:
            DocumentNotFoundError: unknown document.
        """
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE contract_documents
                    SET processing_status = %s, error_message = %s,
                        extraction_completed = NOW(), updated_at = NOW()
                    WHERE id = %s AND processing_status IN (%s, %s)
                    """,
                    (
                        ProcessingStatus.FAILED.value,
                        error,
                        document_id,
                        ProcessingStatus.PENDING.value,
                        ProcessingStatus.PROCESSING.value,
                    ),
                )
                changed = cur.rowcount > 0
                if not changed:
                    cur.execute(
                        "SELECT 1 FROM contract_documents WHERE id = %s", (document_id,)
                    )
                    if cur.fetchone() is None:
                        raise DocumentNotFoundError(f"Document {document_id} not found")
            conn.commit()
        return changed

    def reset_processing(self, document_id: str) -> None:
        """Return processing to PENDING so a new extraction pass can run."""
        self._update_processing(
            document_id,
            "SET processing_status = %s, error_message = NULL, updated_at = NOW()",
            (ProcessingStatus.PENDING.value,),
        )

    def _update_processing(
        self, document_id: str, set_clause: str, params: tuple[Any, ...]
    ) -> None:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"UPDATE contract_documents {set_clause} WHERE id = %s",
                    (*params, document_id),
                )
                if cur.rowcount == 0:
                    raise DocumentNotFoundError(f"Document {document_id} not found")
            conn.commit()


def lock_document(
    conn: psycopg.Connection[Any], document_id: str
) -> dict[str, Any] | None:
    """Row-lock a document for the rest of the caller's transaction."""
    with conn.cursor(row_factory=dict_row) as cur:
        cur.execute(
            """
            SELECT upload_status, chunks_uploaded, total_chunks
            FROM contract_documents
            WHERE id = %s
            FOR UPDATE
            """,
            (document_id,),
        )
        return cur.fetchone()
