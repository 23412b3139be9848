from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from docingest.database.connection import get_connection
from docingest.database.models import (
    JobRecord,
    JobStatus,
    StaleRecovery,
)
from docingest.worker.exceptions import ActiveJobExistsError, JobError

STALE_LOCK_ERROR = "Job lock expired: the worker running it stopped responding"
DOCUMENT_ENTITY = "contract_document"

JOB_COLUMNS = """
    id, job_type, entity_id, status, attempts, entity_type, priority, job_config,
    result, error_message, error_details, locked_at, started_at, completed_at,
    created_at, updated_at
"""


class JobRepository:
    """Database operations for the processing_jobs table."""

    def __init__(self, max_attempts: int) -> None:
        self._max_attempts = max_attempts

    def create(
        self,
        job_type: str,
        entity_id: str,
        job_config: dict[str, Any] | None = None,
        entity_type: str = DOCUMENT_ENTITY,
        priority: int = 5,
    ) -> JobRecord:
        """Insert a PENDING job.

        Raises:
            ActiveJobExistsError: if the entity already has an active job of this type.
        """
        try:
            with get_connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        f"""
                        INSERT INTO processing_jobs
                        (job_type, status, priority, entity_type, entity_id, job_config)
                        VALUES (%s, %s, %s, %s, %s, %s)
                        RETURNING {JOB_COLUMNS}
                        """,
                        (
                            job_type,
                            JobStatus.PENDING.value,
                            priority,
                            entity_type,
                            entity_id,
                            Jsonb(job_config or {}),
                        ),
                    )
                    row = cur.fetchone()
                conn.commit()
        except psycopg.errors.UniqueViolation as exc:
            raise ActiveJobExistsError(
                f"Entity {entity_id} already has an active {job_type} job"
            ) from exc
        if row is None:
            raise JobError(f"Insert of {job_type} job for {entity_id} returned no row")
        return JobRecord(**row)

    def claim(self, job_id: int) -> JobRecord | None:
        """Atomically move one job PENDING -> PROCESSING. None if it was not PENDING."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    UPDATE processing_jobs
                    SET status = %s, locked_at = NOW(), started_at = NOW(),
                        updated_at = NOW()
                    WHERE id = %s AND status = %s
                    RETURNING {JOB_COLUMNS}
                    """,
                    (JobStatus.PROCESSING.value, job_id, JobStatus.PENDING.value),
                )
                row = cur.fetchone()
            conn.commit()
        return JobRecord(**row) if row else None

    def claim_next_job(self, conn: psycopg.Connection[Any]) -> JobRecord | None:
        """Claim the oldest pending job using SELECT FOR UPDATE SKIP LOCKED."""
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                """
                SELECT id
                FROM processing_jobs
                WHERE status = %s
                  AND attempts < %s
                ORDER BY priority, created_at
                LIMIT 1
                FOR UPDATE SKIP LOCKED
                """,
                (JobStatus.PENDING.value, self._max_attempts),
            )
            row = cur.fetchone()

            if row is None:
                conn.commit()
                return None

            cur.execute(
                f"""
                UPDATE processing_jobs
                SET status = %s, locked_at = NOW(), started_at = NOW(),
                    updated_at = NOW()
                WHERE id = %s
                RETURNING {JOB_COLUMNS}
                """,
                (JobStatus.PROCESSING.value, row["id"]),
            )
            claimed = cur.fetchone()
        conn.commit()
        return JobRecord(**claimed) if claimed else None

    def mark_completed(self, job_id: int, result: dict[str, Any]) -> None:
        """Mark a PROCESSING job as completed with its result payload."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE processing_jobs
                SET status = %s, result = %s, completed_at = NOW(),
                    locked_at = NULL, updated_at = NOW()
                WHERE id = %s AND status = %s
                """,
                (
                    JobStatus.COMPLETED.value,
                    Jsonb(result),
                    job_id,
                    JobStatus.PROCESSING.value,
                ),
            )
            conn.commit()

    def mark_failed(
        self, job_id: int, error: str, details: dict[str, Any] | None = None
    ) -> None:
        """Mark a PROCESSING job as permanently failed."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE processing_jobs
                SET status = %s, error_message = %s, error_details = %s,
                    completed_at = NOW(), locked_at = NULL, updated_at = NOW()
                WHERE id = %s AND status = %s
                """,
                (
                    JobStatus.FAILED.value,
                    error,
                    Jsonb(details) if details is not None else None,
                    job_id,
                    JobStatus.PROCESSING.value,
                ),
            )
            conn.commit()

    def increment_attempts(self, job_id: int, error: str) -> None:
        """Increment attempt count and return job to pending."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE processing_jobs
                SET attempts = attempts + 1, status = %s, error_message = %s,
                    locked_at = NULL, updated_at = NOW()
                WHERE id = %s AND status = %s
                """,
                (
                    JobStatus.PENDING.value,
                    error,
                    job_id,
                    JobStatus.PROCESSING.value,
                ),
            )
            conn.commit()

    def requeue_stale(self, lock_timeout_seconds: int) -> StaleRecovery:
        """Recover PROCESSING jobs whose lock outlived the timeout.

        Each recovered job spends an attempt. Jobs with attempts left go back to
        PENDING and their document back to PENDING; jobs out of attempts become
        FAILED and their document FAILED, all in one statement.
        """
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    WITH stale AS (
                        SELECT id
                        FROM processing_jobs
                        WHERE status = %(processing)s
                          AND locked_at < NOW() - %(timeout)s * INTERVAL '1 second'
                        FOR UPDATE SKIP LOCKED
                    ),
                    moved AS (
                        UPDATE processing_jobs j
                        SET attempts = j.attempts + 1,
                            status = CASE WHEN j.attempts + 1 >= %(max_attempts)s
                                          THEN %(failed)s ELSE %(pending)s END,
                            error_message = %(error)s,
                            completed_at = CASE WHEN j.attempts + 1 >= %(max_attempts)s
                                                THEN NOW() ELSE NULL END,
                            locked_at = NULL,
                            updated_at = NOW()
                        FROM stale
                        WHERE j.id = stale.id
                        RETURNING j.entity_type, j.entity_id, j.status
                    ),
                    documents AS (
                        UPDATE contract_documents d
                        SET processing_status = moved.status,
                            error_message = CASE WHEN moved.status = %(failed)s
                                                 THEN %(error)s ELSE NULL END,
                            updated_at = NOW()
                        FROM moved
                        WHERE moved.entity_type = %(entity_type)s
                          AND d.id = moved.entity_id
                          AND d.processing_status IN (%(pending)s, %(processing)s)
                    )
                    SELECT
                        COUNT(*) FILTER (WHERE status = %(pending)s),
                        COUNT(*) FILTER (WHERE status = %(failed)s)
                    FROM moved
                    """,
                    {
                        "processing": JobStatus.PROCESSING.value,
                        "pending": JobStatus.PENDING.value,
                        "failed": JobStatus.FAILED.value,
                        "timeout": lock_timeout_seconds,
                        "max_attempts": self._max_attempts,
                        "error": STALE_LOCK_ERROR,
                        "entity_type": DOCUMENT_ENTITY,
                    },
                )
                row = cur.fetchone()
            conn.commit()
        if row is None:
            return StaleRecovery()
        return StaleRecovery(requeued=int(row[0]), failed=int(row[1]))

    def touch(self, job_id: int) -> None:
        """Refresh the lock of a running job so the stale sweep leaves it alone."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE processing_jobs
                SET locked_at = NOW(), updated_at = NOW()
                WHERE id = %s AND status = %s
                """,
                (job_id, JobStatus.PROCESSING.value),
            )
            conn.commit()

    def find_by_id(self, job_id: int) -> JobRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {JOB_COLUMNS} FROM processing_jobs WHERE id = %s",
                    (job_id,),
                )
                row = cur.fetchone()
        return JobRecord(**row) if row else None

    def list_for_entity(self, entity_id: str) -> list[JobRecord]:
        """Jobs targeting an entity, newest first."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {JOB_COLUMNS}
                    FROM processing_jobs
                    WHERE entity_id = %s
                    ORDER BY created_at DESC, id DESC
                    """,
                    (entity_id,),
                )
                rows = cur.fetchall()
        return [JobRecord(**row) for row in rows]

    def release(self, job_id: int) -> None:
        """Return a PROCESSING job to PENDING without spending an attempt."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE processing_jobs
                SET status = %s, locked_at = NULL, updated_at = NOW()
                WHERE id = %s AND status = %s
                """,
                (JobStatus.PENDING.value, job_id, JobStatus.PROCESSING.value),
            )
            conn.commit()
