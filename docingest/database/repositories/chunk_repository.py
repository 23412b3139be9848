from psycopg.rows import dict_row

from docingest.database.connection import get_connection
from docingest.database.models import (
    ChunkProgress,
    ChunkRecord,
    UploadStatus,
)
from docingest.database.repositories.document_repository import lock_document
from docingest.upload.exceptions import DocumentNotFoundError

CHUNK_COLUMNS = """
    document_id, chunk_number, chunk_size, upload_status,
    chunk_hash, temp_file_path, uploaded_at
"""


class ChunkRepository:
    """Database operations for the document_chunks table."""

    def find(self, document_id: str, chunk_number: int) -> ChunkRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {CHUNK_COLUMNS}
                    FROM document_chunks
                    WHERE document_id = %s AND chunk_number = %s
                    """,
                    (document_id, chunk_number),
                )
                row = cur.fetchone()
        return ChunkRecord(**row) if row else None

    def list_for_document(self, document_id: str) -> list[ChunkRecord]:
        """Chunks of a document in ascending chunk_number order."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {CHUNK_COLUMNS}
                    FROM document_chunks
                    WHERE document_id = %s
                    ORDER BY chunk_number ASC
                    """,
                    (document_id,),
                )
                rows = cur.fetchall()
        return [ChunkRecord(**row) for row in rows]

    def complete_chunk(
        self,
        document_id: str,
        chunk_number: int,
        chunk_hash: str,
        temp_file_path: str,
    ) -> ChunkProgress:
        """Mark a chunk COMPLETED, bump the document counter and try to claim consolidation.

        All three writes share one transaction under a row lock on the document,
        so exactly one caller observes the last increment and wins the
        UPLOADING -> COMPLETING swap. Re-submitting a COMPLETED chunk changes nothing.

        Raises:
            DocumentNotFoundError: if no document with this ID exists.
        """
        with get_connection() as conn:
            locked = lock_document(conn, document_id)
            if locked is None:
                raise DocumentNotFoundError(f"Document {document_id} not found")

            if locked["upload_status"] != UploadStatus.UPLOADING:
                conn.commit()
                return ChunkProgress(
                    chunks_uploaded=locked["chunks_uploaded"],
                    total_chunks=locked["total_chunks"],
                    upload_status=locked["upload_status"],
                    newly_recorded=False,
                )

            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    UPDATE document_chunks
                    SET upload_status = %s, chunk_hash = %s,
                        temp_file_path = %s, uploaded_at = NOW()
                    WHERE document_id = %s AND chunk_number = %s
                      AND upload_status <> %s
                    """,
                    (
                        UploadStatus.COMPLETED.value,
                        chunk_hash,
                        temp_file_path,
                        document_id,
                        chunk_number,
                        UploadStatus.COMPLETED.value,
                    ),
                )
                newly_recorded = cur.rowcount == 1
                if not newly_recorded:
                    conn.commit()
                    return ChunkProgress(
                        chunks_uploaded=locked["chunks_uploaded"],
                        total_chunks=locked["total_chunks"],
                        upload_status=locked["upload_status"],
                        newly_recorded=False,
                    )

                cur.execute(
                    """
                    UPDATE contract_documents d
                    SET chunks_uploaded = d.chunks_uploaded + 1,
                        upload_progress = LEAST(99, (
                            SELECT COALESCE(SUM(c.chunk_size), 0) * 100
                                   / GREATEST(d.file_size, 1)
                            FROM document_chunks c
                            WHERE c.document_id = d.id AND c.upload_status = %s
                        )),
                        updated_at = NOW()
                    WHERE d.id = %s
                    RETURNING d.chunks_uploaded, d.total_chunks
                    """,
                    (UploadStatus.COMPLETED.value, document_id),
                )
                counters = cur.fetchone()
                if counters is None:
                    raise DocumentNotFoundError(
                        f"Document {document_id} vanished while recording chunk {chunk_number}"
                    )

                cur.execute(
                    """
                    UPDATE contract_documents
                    SET upload_status = %s, updated_at = NOW()
                    WHERE id = %s AND upload_status = %s
                      AND chunks_uploaded = total_chunks
                    RETURNING upload_status
                    """,
                    (
                        UploadStatus.COMPLETING.value,
                        document_id,
                        UploadStatus.UPLOADING.value,
                    ),
                )
                claimed = cur.fetchone() is not None
            conn.commit()

        return ChunkProgress(
            chunks_uploaded=counters["chunks_uploaded"],
            total_chunks=counters["total_chunks"],
            upload_status=UploadStatus.COMPLETING if claimed else UploadStatus.UPLOADING,
            newly_recorded=True,
            claimed_consolidation=claimed,
        )
