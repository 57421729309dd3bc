import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from app.processor.exceptions import DeadlineExceededError
from app.processor.models import Upload, UploadReport


class Deadline:
    """Wall-clock budget for one upload; zero or negative seconds disables it."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._seconds = seconds
        self._clock = clock
        self._expires_at = clock() + seconds if seconds > 0 else None

    def check(self) -> None:
        if self._expires_at is not None and self._clock() > self._expires_at:
            raise DeadlineExceededError(f"Upload processing exceeded {self._seconds}s")


@dataclass(slots=True)
class PipelineContext:
    upload_id: str
    report: UploadReport
    deadline: Deadline
    upload: Upload | None = None
    archive_path: Path | None = None
    work_dir: Path | None = None
    extracted_dirs: list[Path] = field(default_factory=list)
    files_by_dir: dict[Path, list[Path]] = field(default_factory=dict)
    record_folders: list[Path] = field(default_factory=list)
    error_message: str = ""


class PipelineStep(ABC):
    @abstractmethod
    def run(self, context: PipelineContext) -> PipelineContext:
        raise NotImplementedError
