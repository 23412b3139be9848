import time

from docingest.config.settings import Settings
from docingest.database.connection import get_connection
from docingest.database.models import JobRecord
from docingest.database.repositories.job_repository import JobRepository
from docingest.logging.logger import Log
from docingest.worker.job_queue import JobQueue


class Worker:
    """Poll loop: recover stale jobs -> claim -> run, sleeping when idle."""

    def __init__(
        self,
        job_repo: JobRepository,
        job_queue: JobQueue,
        settings: Settings,
    ) -> None:
        self._job_repo = job_repo
        self._job_queue = job_queue
        self._settings = settings

    def run(self, max_jobs: int | None = None) -> None:
        """Main poll loop. Runs forever until interrupted.

        If max_jobs is set, stop after processing that many jobs (for testing).
        """
        Log.info("Worker started, polling for jobs")
        jobs_done = 0
        try:
            while max_jobs is None or jobs_done < max_jobs:
                self._requeue_stale()
                job = self._try_claim_job()
                if job:
                    self._job_queue.execute(job)
                    jobs_done += 1
                else:
                    Log.debug("No jobs available, sleeping")
                    time.sleep(self._settings.job_poll_interval_seconds)
        except KeyboardInterrupt:
            Log.info("Worker shutting down gracefully")

    def _requeue_stale(self) -> None:
        try:
            recovery = self._job_repo.requeue_stale(
                self._settings.job_lock_timeout_seconds
            )
        except Exception as exc:
            Log.warning(f"Database error while re-queuing stale jobs: {exc}")
            return
        if recovery.requeued:
            Log.warning(f"Re-queued {recovery.requeued} stale PROCESSING jobs")
        if recovery.failed:
            Log.error(f"Failed {recovery.failed} stale jobs that ran out of attempts")

    def _try_claim_job(self) -> JobRecord | None:
        """Attempt to claim the next pending job. Gracefully handle DB errors."""
        try:
            with get_connection() as conn:
                return self._job_repo.claim_next_job(conn)
        except Exception as exc:
            Log.warning(f"Database error, will retry: {exc}")
            return None
