from app.logging.logger import Log
from app.processor.exceptions import NotFoundError
from app.processor.processor import Processor


class JobRunner:
    """Run one dequeued upload and log its outcome.

    Each dequeue is a single attempt: nothing is re-enqueued here. Retrying
    means pushing the upload id onto the queue again.
    """

    def __init__(self, processor: Processor) -> None:
        self._processor = processor

    def run(self, upload_id: str) -> None:
        """Process an upload, never letting an error escape to the worker loop."""
        Log.info(f"Running upload {upload_id}")
        try:
            report = self._processor.process(upload_id)
        except NotFoundError as exc:
            Log.error(f"Upload {upload_id} skipped: {exc}")
            return
        except Exception as exc:
            Log.exception(f"Upload {upload_id} failed: {exc}")
            return

        Log.info(
            f"Upload {upload_id} finished with status {report.status}",
            committed=len(report.committed),
            rejected=len(report.rejected),
        )
        for outcome in report.rejected:
            Log.warning(
                f"Upload {upload_id} rejected {outcome.folder.name}: {outcome.reason}",
                outcome=outcome.status,
            )
