from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class Upload:
    """Domain model for a submitted upload (subset of upload columns)."""

    id: str
    user_id: str
    display_name: str
    type: str
    date: datetime | None
    file_name: str | None
    path: str
    hash: str | None
    status: str


@dataclass(frozen=True)
class DocumentPair:
    """Source-side and origin-side files sharing a numeric prefix."""

    index: int
    source: Path | None = None
    origin: Path | None = None

    @property
    def is_complete(self) -> bool:
        return self.source is not None and self.origin is not None


@dataclass(frozen=True)
class ClassifiedFolder:
    """Immediate children of a record folder, sorted by role."""

    folder: Path
    descriptor: Path
    primary_document: Path
    pairs: list[DocumentPair] = field(default_factory=list)

    @property
    def source_documents(self) -> list[Path]:
        return [pair.source for pair in self.pairs if pair.source is not None]

    @property
    def origin_documents(self) -> list[Path]:
        return [pair.origin for pair in self.pairs if pair.origin is not None]


@dataclass(frozen=True)
class FileMove:
    """One relocation from the extraction tree into permanent storage."""

    source: Path
    destination: str


@dataclass(frozen=True)
class FicheDraft:
    reference: str
    source_id: int
    object: str
    summary: str
    date: date
    hash: str
    path: str
    upload_id: str
    dump: str


@dataclass(frozen=True)
class DocumentDraft:
    type: str
    name: str
    path: str
    hash: str
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)
    original_name: str | None = None
    original_path: str | None = None
    original_hash: str | None = None


@dataclass(frozen=True)
class NormalizedRecord:
    """Everything needed to commit one fiche, computed without side effects."""

    folder: Path
    fiche: FicheDraft
    documents: list[DocumentDraft]
    moves: list[FileMove]


@dataclass(frozen=True)
class RecordOutcome:
    folder: Path
    status: str
    reason: str = ""
    fiche_id: int | None = None


@dataclass
class UploadReport:
    """Per-record outcomes accumulated while an upload is processed."""

    upload_id: str
    outcomes: list[RecordOutcome] = field(default_factory=list)

    @property
    def committed(self) -> list[RecordOutcome]:
        return [o for o in self.outcomes if o.status == "committed"]

    @property
    def rejected(self) -> list[RecordOutcome]:
        return [o for o in self.outcomes if o.status != "committed"]

    @property
    def status(self) -> str:
        """Terminal upload status: done, partial or failed."""
        if not self.committed:
            return "failed"
        if self.rejected:
            return "partial"
        return "done"
