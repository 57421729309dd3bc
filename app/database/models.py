import datetime as dt
from dataclasses import dataclass


@dataclass
class SourceRecord:
    """Represents a row from the source table."""

    id: int
    name: str


@dataclass
class FicheRecord:
    """Represents a row from the fiche table."""

    id: int
    reference: str
    source_id: int
    hash: str
    path: str
    upload_id: str
    date: dt.date | None = None
    object: str | None = None
    summary: str | None = None
    dump: str | None = None
    created_at: dt.datetime | None = None


@dataclass
class DocumentRecord:
    """Represents a row from the document table."""

    id: int
    fiche_id: int
    type: str
    name: str
    path: str
    hash: str
    original_hash: str | None = None
