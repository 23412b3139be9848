from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from docingest.database.connection import get_connection
from docingest.database.models import PageRecord, ProcessingStatus

PAGE_COLUMNS = """
    document_id, page_number, extracted_text, extraction_method, word_count,
    character_count, confidence_score, ocr_provider, processing_time_ms,
    has_table, has_image, metadata, processing_status, error_message, processed_at
"""


class PageRepository:
    """Database operations for the document_pages table."""

    def insert(self, page: PageRecord) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                INSERT INTO document_pages
                (document_id, page_number, extracted_text, extraction_method,
                 word_count, character_count, confidence_score, ocr_provider,
                 processing_time_ms, has_table, has_image, metadata,
                 processing_status, error_message)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    page.document_id,
                    page.page_number,
                    page.extracted_text,
                    page.extraction_method,
                    page.word_count,
                    page.character_count,
                    page.confidence_score,
                    page.ocr_provider,
                    page.processing_time_ms,
                    page.has_table,
                    page.has_image,
                    Jsonb(page.metadata),
                    page.processing_status,
                    page.error_message,
                ),
            )
            conn.commit()

    def delete_for_document(self, document_id: str) -> int:
        """Remove every page of a document. Returns the number of rows deleted."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "DELETE FROM document_pages WHERE document_id = %s",
                    (document_id,),
                )
                deleted = cur.rowcount
            conn.commit()
        return deleted

    def list_for_document(self, document_id: str) -> list[PageRecord]:
        """Pages of a document in ascending page_number order."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {PAGE_COLUMNS}
                    FROM document_pages
                    WHERE document_id = %s
                    ORDER BY page_number ASC
                    """,
                    (document_id,),
                )
                rows = cur.fetchall()
        return [PageRecord(**row) for row in rows]

    def find(self, document_id: str, page_number: int) -> PageRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {PAGE_COLUMNS}
                    FROM document_pages
                    WHERE document_id = %s AND page_number = %s
                    """,
                    (document_id, page_number),
                )
                row = cur.fetchone()
        return PageRecord(**row) if row else None

    def completed_counts(self, document_ids: list[str]) -> dict[str, int]:
        """Number of COMPLETED pages per document, for the given documents."""
        if not document_ids:
            return {}
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT document_id, COUNT(*)
                    FROM document_pages
                    WHERE document_id = ANY(%s) AND processing_status = %s
                    GROUP BY document_id
                    """,
                    (document_ids, ProcessingStatus.COMPLETED.value),
                )
                rows = cur.fetchall()
        return {row[0]: int(row[1]) for row in rows}
