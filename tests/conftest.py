import io
import json
import zipfile
from collections.abc import Callable, Generator, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import pytest

from app.database.models import DocumentRecord, FicheRecord, SourceRecord
from app.processor.exceptions import UploadNotFoundError
from app.processor.models import DocumentDraft, FicheDraft, Upload

ZipFactory = Callable[[Path, dict[str, bytes]], Path]


def _zip_bytes(entries: dict[str, bytes]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, content in entries.items():
            archive.writestr(name, content)
    return buf.getvalue()


@pytest.fixture()
def make_zip() -> ZipFactory:
    """Write a zip archive with the given entries and return its path."""

    def _make(path: Path, entries: dict[str, bytes]) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(_zip_bytes(entries))
        return path

    return _make


@pytest.fixture()
def zip_bytes() -> Callable[[dict[str, bytes]], bytes]:
    return _zip_bytes


def _descriptor(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "dump": "dump-2022-12",
        "source": "Outlook",
        "object": "Demande de subvention",
        "summary": "Courrier de la mairie",
        "date": "2022-12-14",
        "files": [
            {
                "type": "File",
                "name": "courrier.pdf",
                "original_name": "courrier.msg",
                "content": "Texte du courrier",
            }
        ],
    }
    data.update(overrides)
    return data


@pytest.fixture()
def descriptor() -> Callable[..., dict[str, Any]]:
    """Build a valid descriptor dict; keyword arguments replace top-level keys."""
    return _descriptor


@pytest.fixture()
def record_entries() -> Callable[..., dict[str, bytes]]:
    """Zip entries of one record folder: descriptor, primary, one document pair."""

    def _entries(
        folder: str = "fiche-1",
        *,
        data: dict[str, Any] | None = None,
        primary: bytes | None = None,
        source: bytes | None = None,
        origin: bytes | None = b"origin-bytes",
        descriptor_raw: bytes | None = None,
    ) -> dict[str, bytes]:
        raw = descriptor_raw if descriptor_raw is not None else json.dumps(
            data if data is not None else _descriptor()
        ).encode("utf-8")
        entries = {
            f"{folder}/data.json": raw,
            f"{folder}/fiche.docx": primary if primary is not None else f"docx {folder}".encode(),
            f"{folder}/1 - courrier.pdf": source if source is not None else f"pdf {folder}".encode(),
        }
        if origin is not None:
            entries[f"{folder}/Source/1 - courrier.msg"] = origin + folder.encode()
        return entries

    return _entries


@pytest.fixture()
def write_tree() -> Callable[[Path, dict[str, bytes]], list[Path]]:
    """Write entries as plain files below a root and return their sorted paths."""

    def _write(root: Path, entries: dict[str, bytes]) -> list[Path]:
        paths = []
        for name, content in entries.items():
            path = root / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
            paths.append(path)
        return sorted(paths)

    return _write


def make_upload(upload_id: str = "0113b4c0-7f97-452a-9985-b1f7eecfeaa7", **overrides: Any) -> Upload:
    values: dict[str, Any] = {
        "id": upload_id,
        "user_id": "5a1d2c3e-0000-4000-8000-000000000001",
        "display_name": "14décembre2022-file-1",
        "type": "file",
        "date": None,
        "file_name": "archive.zip",
        "path": "data/uploads/20221214/1 - file - archive.zip",
        "hash": None,
        "status": "processing",
    }
    values.update(overrides)
    return Upload(**values)


@pytest.fixture()
def upload_factory() -> Callable[..., Upload]:
    return make_upload


class FakeConnection:
    """Buffers inserts until commit, like a transaction."""

    def __init__(self, db: "FakeDatabase") -> None:
        self._db = db
        self.fiches: list[FicheRecord] = []
        self.documents: list[DocumentRecord] = []
        self.committed = False
        self.rolled_back = False

    def commit(self) -> None:
        self._db.fiches.extend(self.fiches)
        self._db.documents.extend(self.documents)
        self.fiches, self.documents = [], []
        self.committed = True

    def rollback(self) -> None:
        self.fiches, self.documents = [], []
        self.rolled_back = True


class FakeFicheRepository:
    def __init__(self, db: "FakeDatabase") -> None:
        self._db = db

    def find_by_hash(self, content_hash: str) -> FicheRecord | None:
        return next((f for f in self._db.fiches if f.hash == content_hash), None)

    def insert(self, conn: FakeConnection, fiche: FicheDraft) -> int:
        fiche_id = self._db.next_id()
        conn.fiches.append(
            FicheRecord(
                id=fiche_id,
                reference=fiche.reference,
                source_id=fiche.source_id,
                hash=fiche.hash,
                path=fiche.path,
                upload_id=fiche.upload_id,
                date=fiche.date,
                object=fiche.object,
                summary=fiche.summary,
                dump=fiche.dump,
            )
        )
        return fiche_id


class FakeDocumentRepository:
    def __init__(self, db: "FakeDatabase") -> None:
        self._db = db
        self.fail_on_insert: Exception | None = None

    def find_by_hash(self, content_hash: str) -> DocumentRecord | None:
        return next((d for d in self._db.documents if d.hash == content_hash), None)

    def insert(self, conn: FakeConnection, fiche_id: int, document: DocumentDraft) -> int:
        if self.fail_on_insert is not None:
            raise self.fail_on_insert
        document_id = self._db.next_id()
        conn.documents.append(
            DocumentRecord(
                id=document_id,
                fiche_id=fiche_id,
                type=document.type,
                name=document.name,
                path=document.path,
                hash=document.hash,
                original_hash=document.original_hash,
            )
        )
        return document_id


class FakeSourceRepository:
    def __init__(self, db: "FakeDatabase") -> None:
        self._db = db

    def find_by_name(self, name: str) -> SourceRecord | None:
        return self._db.sources.get(name)


class FakeUploadRepository:
    def __init__(self, db: "FakeDatabase") -> None:
        self._db = db

    def find_by_id(self, upload_id: str) -> Upload:
        try:
            return self._db.uploads[upload_id]
        except KeyError:
            raise UploadNotFoundError(f"Upload {upload_id} not found") from None

    def update_status(self, upload_id: str, status: str) -> None:
        self._db.statuses[upload_id] = status


class FakeDatabase:
    """In-memory stand-in for the connection pool and the repositories."""

    def __init__(self) -> None:
        self.fiches: list[FicheRecord] = []
        self.documents: list[DocumentRecord] = []
        self.sources = {"Outlook": SourceRecord(id=1, name="Outlook")}
        self.uploads: dict[str, Upload] = {}
        self.statuses: dict[str, str] = {}
        self.connections: list[FakeConnection] = []
        self._ids = 0
        self.fiche_repo = FakeFicheRepository(self)
        self.document_repo = FakeDocumentRepository(self)
        self.source_repo = FakeSourceRepository(self)
        self.upload_repo = FakeUploadRepository(self)

    def next_id(self) -> int:
        self._ids += 1
        return self._ids

    @contextmanager
    def connection(self) -> Iterator[FakeConnection]:
        conn = FakeConnection(self)
        self.connections.append(conn)
        try:
            yield conn
        except Exception:
            conn.rollback()
            raise


@pytest.fixture()
def fake_db() -> Generator[FakeDatabase, None, None]:
    yield FakeDatabase()
