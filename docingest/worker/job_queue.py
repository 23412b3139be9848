import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

from docingest.database.models import JobRecord
from docingest.database.repositories.job_repository import JobRepository
from docingest.extraction.cancellation import CancellationToken
from docingest.logging.logger import Log
from docingest.worker.job_runner import JobRunner


class JobQueue:
    """Durable job queue with a bounded in-process pool for near-immediate execution.

    Jobs are persisted first and then handed to the pool. A job the pool never
    reaches (process exit, shutdown) stays PENDING in the database and is picked
    up by the poll loop.
    """

    def __init__(
        self,
        job_repo: JobRepository,
        runner: JobRunner,
        max_workers: int,
        heartbeat_seconds: float = 30.0,
    ) -> None:
        self._job_repo = job_repo
        self._runner = runner
        self._heartbeat_seconds = heartbeat_seconds
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="docingest-job"
        )
        self._tokens: dict[int, CancellationToken] = {}
        self._lock = threading.Lock()
        self._closed = False

    def enqueue(
        self,
        job_type: str,
        entity_id: str,
        job_config: dict[str, Any] | None = None,
    ) -> JobRecord:
        """Persist a PENDING job and schedule it on the pool."""
        job = self._job_repo.create(job_type, entity_id, job_config)
        Log.info(f"Enqueued job {job.id} ({job_type} for {entity_id})")
        self.submit(job.id)
        return job

    def submit(self, job_id: int) -> Future | None:
        with self._lock:
            if self._closed:
                Log.debug(f"Queue closed, job {job_id} left for the poll loop")
                return None
            return self._executor.submit(self.run_job, job_id)

    def run_job(self, job_id: int) -> JobRecord | None:
        """Claim a job by id and execute it. No-op unless the job is still PENDING."""
        job = self._job_repo.claim(job_id)
        if job is None:
            Log.debug(f"Job {job_id} is no longer pending, skipping")
            return None
        self.execute(job)
        return job

    def execute(self, job: JobRecord) -> None:
        """Run an already-claimed job under a cancellation token owned by this queue.

        The token refreshes the job lock as extraction progresses, so a long pass
        is not mistaken for an abandoned one.
        """
        token = CancellationToken(
            heartbeat=lambda: self._job_repo.touch(job.id),
            heartbeat_interval=self._heartbeat_seconds,
        )
        with self._lock:
            self._tokens[job.id] = token
            if self._closed:
                token.cancel()
        try:
            self._runner.run(job, token)
        finally:
            with self._lock:
                self._tokens.pop(job.id, None)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work and cancel every in-flight job."""
        with self._lock:
            self._closed = True
            tokens = list(self._tokens.values())
        for token in tokens:
            token.cancel()
        Log.info(f"Job queue shutting down, {len(tokens)} in-flight jobs cancelled")
        self._executor.shutdown(wait=wait, cancel_futures=True)
