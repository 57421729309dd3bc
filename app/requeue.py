import argparse

import redis

from app.config.settings import Settings
from app.logging.logger import Log
from app.queue.upload_queue import UploadQueue


def main(argv: list[str] | None = None) -> None:
    """Push upload ids back onto the processing queue."""
    parser = argparse.ArgumentParser(description="Re-enqueue uploads for processing.")
    parser.add_argument("upload_ids", nargs="+", metavar="UPLOAD_ID")
    args = parser.parse_args(argv)

    settings = Settings()
    Log.configure(settings.log_level)
    client = redis.Redis.from_url(settings.redis_url)
    try:
        queue = UploadQueue(client, settings.queue_key)
        for upload_id in args.upload_ids:
            queue.push(upload_id)
            Log.info(f"Re-enqueued upload {upload_id} on {queue.key}")
    finally:
        client.close()


if __name__ == "__main__":
    main()
