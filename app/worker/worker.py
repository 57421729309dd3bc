import time

import redis

from app.config.settings import Settings
from app.logging.logger import Log
from app.queue.upload_queue import UploadQueue
from app.worker.job_runner import JobRunner


class Worker:
    """Queue loop: pop upload id -> dispatch."""

    def __init__(
        self,
        queue: UploadQueue,
        job_runner: JobRunner,
        settings: Settings,
    ) -> None:
        self._queue = queue
        self._job_runner = job_runner
        self._settings = settings

    def run(self, max_jobs: int | None = None) -> None:
        """Main loop. Runs forever until interrupted.

        If max_jobs is set, stop after processing that many uploads (for testing).
        """
        Log.info(f"Worker started, listening on {self._queue.key}")
        jobs_done = 0
        try:
            while max_jobs is None or jobs_done < max_jobs:
                upload_id = self._try_pop()
                if upload_id is None:
                    continue
                self._job_runner.run(upload_id)
                jobs_done += 1
        except KeyboardInterrupt:
            Log.info("Worker shutting down gracefully")

    def _try_pop(self) -> str | None:
        """Wait for the next upload id. Back off on Redis errors."""
        try:
            return self._queue.pop()
        except redis.RedisError as exc:
            Log.warning(f"Queue error, will retry: {exc}")
            time.sleep(self._settings.queue_poll_interval_seconds)
            return None
