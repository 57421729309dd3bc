from psycopg_pool import ConnectionPool

from app.archive.extractor import NestedArchiveExtractor, ZipExtractor
from app.config.settings import Settings
from app.database.repositories.document_repository import DocumentRepository
from app.database.repositories.fiche_repository import FicheRepository
from app.database.repositories.source_repository import SourceRepository
from app.database.repositories.upload_repository import UploadRepository
from app.logging.logger import Log
from app.processor.archive_locator import ArchiveLocator
from app.processor.models import UploadReport
from app.processor.pipeline import Deadline, PipelineContext, PipelineStep
from app.processor.steps import (
    CleanupWorkdirStep,
    DiscoverRecordsStep,
    ExtractArchiveStep,
    LoadUploadStep,
    MarkUploadFailedStep,
    MarkUploadStatusStep,
    PrepareWorkdirStep,
    ProcessRecordsStep,
)
from app.records.committer import FicheCommitter
from app.records.validator import RecordValidator


class Processor:
    """Orchestrates the processing of one dequeued upload.

    Pipeline: load -> prepare work dir -> extract -> discover -> records ->
    mark status. The cleanup step always runs last; the failed step runs when
    any step raises, and the error is re-raised afterwards.
    """

    def __init__(
        self,
        steps: list[PipelineStep],
        failed_step: PipelineStep,
        cleanup_step: PipelineStep,
        deadline_seconds: float = 0,
    ) -> None:
        self._steps = steps
        self._failed_step = failed_step
        self._cleanup_step = cleanup_step
        self._deadline_seconds = deadline_seconds

    def process(self, upload_id: str) -> UploadReport:
        """Run the full pipeline for an upload and return its per-record report."""
        Log.info(f"Processing upload {upload_id}")
        context = PipelineContext(
            upload_id=upload_id,
            report=UploadReport(upload_id=upload_id),
            deadline=Deadline(self._deadline_seconds),
        )
        try:
            for step in self._steps:
                context = step.run(context)
        except Exception as exc:
            context.error_message = str(exc) or type(exc).__name__
            self._mark_failed(context)
            raise
        finally:
            self._cleanup_step.run(context)
        return context.report

    def _mark_failed(self, context: PipelineContext) -> None:
        try:
            self._failed_step.run(context)
        except Exception as exc:
            Log.error(f"Could not mark upload {context.upload_id} as failed: {exc}")


def build_processor(settings: Settings, pool: ConnectionPool) -> Processor:
    """Build a Processor with all required collaborators."""
    upload_repo = UploadRepository(pool)
    fiche_repo = FicheRepository(pool)
    document_repo = DocumentRepository(pool)
    source_repo = SourceRepository(pool)

    locator = ArchiveLocator(settings.storage_root, verify_hash=settings.verify_upload_hash)
    extractor = NestedArchiveExtractor(
        ZipExtractor(batch_size=settings.extraction_batch_size),
        max_depth=settings.max_archive_depth,
        max_total_bytes=settings.extraction_max_bytes,
    )
    validator = RecordValidator(fiche_repo, document_repo, source_repo)
    committer = FicheCommitter(pool, fiche_repo, document_repo, settings.storage_root)

    steps: list[PipelineStep] = [
        LoadUploadStep(upload_repo, locator),
        PrepareWorkdirStep(settings.temp_root),
        ExtractArchiveStep(extractor),
        DiscoverRecordsStep(),
        ProcessRecordsStep(validator, committer),
        MarkUploadStatusStep(upload_repo),
    ]
    return Processor(
        steps=steps,
        failed_step=MarkUploadFailedStep(upload_repo),
        cleanup_step=CleanupWorkdirStep(),
        deadline_seconds=settings.upload_deadline_seconds,
    )
