from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from app.processor.exceptions import (
    DeadlineExceededError,
    StorageDivergenceError,
    TransactionError,
)
from app.processor.models import UploadReport
from app.processor.pipeline import Deadline, PipelineContext
from app.processor.steps import (
    CleanupWorkdirStep,
    DiscoverRecordsStep,
    LoadUploadStep,
    MarkUploadFailedStep,
    MarkUploadStatusStep,
    PrepareWorkdirStep,
    ProcessRecordsStep,
)


def _context(**overrides) -> PipelineContext:
    context = PipelineContext(
        upload_id="u1",
        report=UploadReport(upload_id="u1"),
        deadline=Deadline(0),
    )
    for key, value in overrides.items():
        setattr(context, key, value)
    return context


@pytest.fixture()
def record_tree(tmp_path: Path, write_tree, record_entries) -> Path:
    work_dir = tmp_path / "work"
    write_tree(work_dir / "extracted", record_entries("fiche-1"))
    return work_dir


class TestLoadUploadStep:
    def test_loads_upload_and_archive(self, upload_factory) -> None:
        repo, locator = MagicMock(), MagicMock()
        repo.find_by_id.return_value = upload_factory()
        locator.resolve.return_value = Path("/files/archive.zip")

        context = LoadUploadStep(repo, locator).run(_context())

        assert context.upload == upload_factory()
        assert context.archive_path == Path("/files/archive.zip")

    @patch("app.processor.steps.Log")
    def test_warns_on_unexpected_status(self, mock_log: MagicMock, upload_factory) -> None:
        repo, locator = MagicMock(), MagicMock()
        repo.find_by_id.return_value = upload_factory(status="done")

        LoadUploadStep(repo, locator).run(_context())

        mock_log.warning.assert_called_once()


class TestPrepareWorkdirStep:
    def test_creates_unique_dir_per_run(self, tmp_path: Path) -> None:
        step = PrepareWorkdirStep(tmp_path)

        first = step.run(_context()).work_dir
        second = step.run(_context()).work_dir

        assert first.is_dir() and second.is_dir()
        assert first != second
        assert first.name.startswith("u1-")


class TestDiscoverRecordsStep:
    def test_indexes_files_and_folders(self, record_tree: Path) -> None:
        context = DiscoverRecordsStep().run(_context(work_dir=record_tree))

        folder = record_tree / "extracted" / "fiche-1"
        assert context.record_folders == [folder]
        assert len(context.files_by_dir[folder]) == 3
        assert len(context.files_by_dir[folder / "Source"]) == 1


class TestProcessRecordsStep:
    def _discovered(self, record_tree: Path, upload_factory) -> PipelineContext:
        context = DiscoverRecordsStep().run(_context(work_dir=record_tree))
        context.upload = upload_factory()
        return context

    def test_records_committed_outcome(self, record_tree: Path, upload_factory) -> None:
        validator, committer = MagicMock(), MagicMock()
        committer.commit.return_value = 12
        context = self._discovered(record_tree, upload_factory)

        ProcessRecordsStep(validator, committer).run(context)

        [outcome] = context.report.outcomes
        assert outcome.status == "committed"
        assert outcome.fiche_id == 12
        classified = validator.validate.call_args.args[1]
        assert classified.primary_document.name == "fiche.docx"

    def test_transaction_error_is_failed_outcome(self, record_tree: Path, upload_factory) -> None:
        validator, committer = MagicMock(), MagicMock()
        committer.commit.side_effect = TransactionError("rolled back")
        context = self._discovered(record_tree, upload_factory)

        ProcessRecordsStep(validator, committer).run(context)

        assert [o.status for o in context.report.outcomes] == ["failed"]

    def test_divergence_is_reported(self, record_tree: Path, upload_factory) -> None:
        validator, committer = MagicMock(), MagicMock()
        committer.commit.side_effect = StorageDivergenceError(
            "files stuck", fiche_id=5, pending_files=[Path("/s/a.pdf")]
        )
        context = self._discovered(record_tree, upload_factory)

        ProcessRecordsStep(validator, committer).run(context)

        [outcome] = context.report.outcomes
        assert outcome.status == "diverged"
        assert outcome.fiche_id == 5
        assert context.report.status == "failed"

    def test_deadline_stops_processing(self, record_tree: Path, upload_factory) -> None:
        validator, committer = MagicMock(), MagicMock()
        context = self._discovered(record_tree, upload_factory)
        context.deadline = MagicMock()
        context.deadline.check.side_effect = DeadlineExceededError("too slow")

        with pytest.raises(DeadlineExceededError):
            ProcessRecordsStep(validator, committer).run(context)

        validator.validate.assert_not_called()


class TestMarkUploadSteps:
    def test_marks_report_status(self) -> None:
        repo = MagicMock()

        MarkUploadStatusStep(repo).run(_context())

        repo.update_status.assert_called_once_with("u1", "failed")

    def test_marks_failed(self, upload_factory) -> None:
        repo = MagicMock()

        MarkUploadFailedStep(repo).run(_context(upload=upload_factory(), error_message="boom"))

        repo.update_status.assert_called_once_with("u1", "failed")

    def test_skips_unknown_upload(self) -> None:
        repo = MagicMock()

        MarkUploadFailedStep(repo).run(_context())

        repo.update_status.assert_not_called()


class TestCleanupWorkdirStep:
    def test_removes_work_dir(self, record_tree: Path) -> None:
        CleanupWorkdirStep().run(_context(work_dir=record_tree))

        assert not record_tree.exists()

    def test_noop_without_work_dir(self) -> None:
        CleanupWorkdirStep().run(_context())

    @patch("app.processor.steps.Log")
    def test_logs_removal_failure(self, mock_log: MagicMock, tmp_path: Path) -> None:
        with patch("app.processor.steps.shutil.rmtree", side_effect=PermissionError("denied")):
            CleanupWorkdirStep().run(_context(work_dir=tmp_path))

        mock_log.error.assert_called_once()
