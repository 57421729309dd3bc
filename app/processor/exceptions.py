from pathlib import Path


class ProcessorError(Exception):
    """Base exception for all upload processing errors."""


class NotFoundError(ProcessorError):
    """Raised when a referenced upload, source or file does not exist."""


class UploadNotFoundError(NotFoundError):
    """Raised when the dequeued upload id has no row in the upload table."""


class ArchiveNotFoundError(NotFoundError):
    """Raised when the stored archive of an upload is missing on disk."""


class ExtractionError(ProcessorError):
    """Raised when an archive cannot be read or unpacked."""


class ArchiveIntegrityError(ExtractionError):
    """Raised when a stored archive no longer matches the upload hash."""


class DeadlineExceededError(ProcessorError):
    """Raised when an upload runs past its processing deadline."""


class RecordError(ProcessorError):
    """Base exception for failures scoped to a single record folder."""

    outcome = "failed"

    def __init__(self, message: str, *, folder: Path | None = None) -> None:
        self.folder = folder
        super().__init__(message)


class ValidationError(RecordError):
    """Raised when a record folder or its descriptor is malformed."""

    outcome = "invalid"


class IncompleteRecordError(ValidationError):
    """Raised when a record folder lacks one of its required files."""

    outcome = "incomplete"


class DuplicateError(RecordError):
    """Raised when a fiche or document hash has already been committed."""

    outcome = "duplicate"


class TransactionError(RecordError):
    """Raised when a fiche commit fails and has been rolled back."""


class StorageDivergenceError(TransactionError):
    """Raised when rows committed but files could not be put in place."""

    def __init__(
        self,
        message: str,
        *,
        fiche_id: int,
        pending_files: list[Path],
        folder: Path | None = None,
    ) -> None:
        self.fiche_id = fiche_id
        self.pending_files = pending_files
        super().__init__(message, folder=folder)
