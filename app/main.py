import redis

from app.config.settings import Settings
from app.database.connection import create_pool
from app.logging.logger import Log
from app.processor.processor import build_processor
from app.queue.upload_queue import UploadQueue
from app.worker.job_runner import JobRunner
from app.worker.worker import Worker


def main() -> None:
    """Entry point: settings -> pool and redis -> build dependencies -> worker loop."""
    settings = Settings()
    Log.configure(settings.log_level)
    settings.temp_root.mkdir(parents=True, exist_ok=True)

    pool = create_pool(settings)
    client = redis.Redis.from_url(settings.redis_url)
    try:
        queue = UploadQueue(client, settings.queue_key, settings.queue_pop_timeout_seconds)
        processor = build_processor(settings, pool)
        job_runner = JobRunner(processor)
        worker = Worker(queue, job_runner, settings)
        worker.run()
    finally:
        client.close()
        pool.close()


if __name__ == "__main__":
    main()
