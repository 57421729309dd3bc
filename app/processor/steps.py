import shutil
import uuid
from pathlib import Path

from app.archive.extractor import NestedArchiveExtractor
from app.archive.walker import list_files
from app.database.repositories.upload_repository import UploadRepository
from app.logging.logger import Log
from app.processor.archive_locator import ArchiveLocator
from app.processor.exceptions import (
    DuplicateError,
    RecordError,
    StorageDivergenceError,
    ValidationError,
)
from app.processor.models import RecordOutcome
from app.processor.pipeline import PipelineContext, PipelineStep
from app.records.committer import FicheCommitter
from app.records.discovery import ORIGIN_DIR_NAME, classify, discover_folders
from app.records.validator import RecordValidator


class LoadUploadStep(PipelineStep):
    def __init__(self, upload_repo: UploadRepository, locator: ArchiveLocator) -> None:
        self._upload_repo = upload_repo
        self._locator = locator

    def run(self, context: PipelineContext) -> PipelineContext:
        upload = self._upload_repo.find_by_id(context.upload_id)
        if upload.status != "processing":
            Log.warning(
                f"Upload {upload.id} has status {upload.status!r}, processing anyway"
            )
        context.upload = upload
        context.archive_path = self._locator.resolve(upload)
        Log.info(f"Loaded upload {upload.id}", name=upload.display_name, type=upload.type)
        return context


class PrepareWorkdirStep(PipelineStep):
    def __init__(self, temp_root: Path) -> None:
        self._temp_root = temp_root

    def run(self, context: PipelineContext) -> PipelineContext:
        work_dir = self._temp_root / f"{context.upload_id}-{uuid.uuid4().hex[:8]}"
        work_dir.mkdir(parents=True)
        context.work_dir = work_dir
        return context


class ExtractArchiveStep(PipelineStep):
    def __init__(self, extractor: NestedArchiveExtractor) -> None:
        self._extractor = extractor

    def run(self, context: PipelineContext) -> PipelineContext:
        if context.archive_path is None or context.work_dir is None:
            raise ValueError("PipelineContext.archive_path and work_dir must be set before extraction")
        context.extracted_dirs = self._extractor.extract_all(
            context.archive_path,
            context.work_dir,
            check_deadline=context.deadline.check,
        )
        Log.info(
            f"Extracted {len(context.extracted_dirs)} archive(s) for upload {context.upload_id}"
        )
        return context


class DiscoverRecordsStep(PipelineStep):
    def run(self, context: PipelineContext) -> PipelineContext:
        if context.work_dir is None:
            raise ValueError("PipelineContext.work_dir must be set before discovery")
        file_paths = list(list_files(context.work_dir))
        for path in file_paths:
            context.files_by_dir.setdefault(path.parent, []).append(path)
        context.record_folders = discover_folders(file_paths)
        Log.info(
            f"Found {len(context.record_folders)} record folder(s) among "
            f"{len(file_paths)} file(s) for upload {context.upload_id}"
        )
        return context


class ProcessRecordsStep(PipelineStep):
    """Classify, validate and commit each record folder, one at a time.

    A record-level failure becomes a RecordOutcome; the next folder still runs.
    """

    def __init__(self, validator: RecordValidator, committer: FicheCommitter) -> None:
        self._validator = validator
        self._committer = committer

    def run(self, context: PipelineContext) -> PipelineContext:
        for folder in context.record_folders:
            context.deadline.check()
            outcome = self._process_folder(context, folder)
            context.report.outcomes.append(outcome)
        return context

    def _process_folder(self, context: PipelineContext, folder: Path) -> RecordOutcome:
        if context.upload is None:
            raise ValueError("PipelineContext.upload must be set before record processing")
        children = context.files_by_dir.get(folder, []) + context.files_by_dir.get(
            folder / ORIGIN_DIR_NAME, []
        )
        label = _relative(folder, context.work_dir)
        try:
            classified = classify(folder, children)
            record = self._validator.validate(context.upload, classified)
            fiche_id = self._committer.commit(record)
        except StorageDivergenceError as exc:
            Log.error(
                f"Record {label} committed with missing files: {exc}",
                upload=context.upload_id,
                fiche_id=exc.fiche_id,
                pending=", ".join(str(p) for p in exc.pending_files),
            )
            return RecordOutcome(folder, "diverged", str(exc), fiche_id=exc.fiche_id)
        except (ValidationError, DuplicateError) as exc:
            Log.warning(
                f"Skipping record {label}: {exc}",
                upload=context.upload_id,
                outcome=exc.outcome,
            )
            return RecordOutcome(folder, exc.outcome, str(exc))
        except RecordError as exc:
            Log.error(f"Record {label} failed: {exc}", upload=context.upload_id)
            return RecordOutcome(folder, exc.outcome, str(exc))

        Log.info(f"Record {label} committed as fiche {fiche_id}", upload=context.upload_id)
        return RecordOutcome(folder, "committed", fiche_id=fiche_id)


class MarkUploadStatusStep(PipelineStep):
    def __init__(self, upload_repo: UploadRepository) -> None:
        self._upload_repo = upload_repo

    def run(self, context: PipelineContext) -> PipelineContext:
        report = context.report
        self._upload_repo.update_status(context.upload_id, report.status)
        Log.info(
            f"Upload {context.upload_id} marked as {report.status}",
            committed=len(report.committed),
            rejected=len(report.rejected),
        )
        return context


class MarkUploadFailedStep(PipelineStep):
    def __init__(self, upload_repo: UploadRepository) -> None:
        self._upload_repo = upload_repo

    def run(self, context: PipelineContext) -> PipelineContext:
        if context.upload is None:
            Log.warning(f"Upload {context.upload_id} was never loaded, status left untouched")
            return context
        self._upload_repo.update_status(context.upload_id, "failed")
        Log.error(f"Upload {context.upload_id} marked as failed: {context.error_message}")
        return context


class CleanupWorkdirStep(PipelineStep):
    def run(self, context: PipelineContext) -> PipelineContext:
        if context.work_dir is None:
            return context
        try:
            shutil.rmtree(context.work_dir)
        except FileNotFoundError:
            pass
        except OSError as exc:
            Log.error(f"Failed to remove work dir {context.work_dir}: {exc}")
        else:
            Log.debug(f"Removed work dir {context.work_dir}")
        return context


def _relative(folder: Path, root: Path | None) -> str:
    if root is not None and folder.is_relative_to(root):
        return str(folder.relative_to(root))
    return str(folder)
