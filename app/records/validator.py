from pathlib import PurePosixPath

from app.archive.hasher import compute_file_hash
from app.database.repositories.document_repository import DocumentRepository
from app.database.repositories.fiche_repository import FicheRepository
from app.database.repositories.source_repository import SourceRepository
from app.processor.exceptions import (
    DuplicateError,
    IncompleteRecordError,
    RecordError,
    ValidationError,
)
from app.processor.models import (
    ClassifiedFolder,
    DocumentDraft,
    DocumentPair,
    FicheDraft,
    FileMove,
    NormalizedRecord,
    Upload,
)
from app.records.descriptor import (
    DescriptorHeader,
    FileEntry,
    build_file_entry,
    build_header,
    declared_files,
    load_descriptor,
)
from app.records.discovery import DESCRIPTOR_NAME, ORIGIN_DIR_NAME

FICHES_DIR = "fiches"


def fiche_reference(header: DescriptorHeader, content_hash: str) -> str:
    """Reference code of a fiche, e.g. ``FICHE-20221214-3FA9C0D21B``."""
    return f"FICHE-{header.date:%Y%m%d}-{content_hash[:10].upper()}"


def fiche_storage_dir(
    source_name: str,
    header: DescriptorHeader,
    folder_name: str,
    content_hash: str,
) -> PurePosixPath:
    """Storage-relative directory of a fiche.

    Layout is ``fiches/<source>/<YYYYMMDD>/<folder>-<hash[:10]>``. The hash
    suffix keeps same-named folders of different records apart.
    """
    safe_source = source_name.replace("/", "_").replace("\\", "_")
    return PurePosixPath(
        FICHES_DIR,
        safe_source,
        f"{header.date:%Y%m%d}",
        f"{folder_name}-{content_hash[:10]}",
    )


class RecordValidator:
    """Turns a classified record folder into a NormalizedRecord.

    Checks run in a fixed order and stop at the first failure. Nothing is
    written anywhere, so validating the same folder twice fails the same way.
    """

    def __init__(
        self,
        fiche_repo: FicheRepository,
        document_repo: DocumentRepository,
        source_repo: SourceRepository,
    ) -> None:
        self._fiche_repo = fiche_repo
        self._document_repo = document_repo
        self._source_repo = source_repo

    def validate(self, upload: Upload, classified: ClassifiedFolder) -> NormalizedRecord:
        """Validate one record folder of ``upload``.

        Raises:
            ValidationError: malformed descriptor or mismatching file list.
            IncompleteRecordError: a declared document lacks a file.
            DuplicateError: the fiche or one of its documents already exists.
            OSError: a file of the folder cannot be read.
        """
        try:
            return self._validate(upload, classified)
        except RecordError as exc:
            if exc.folder is None:
                exc.folder = classified.folder
            raise

    def _validate(self, upload: Upload, classified: ClassifiedFolder) -> NormalizedRecord:
        data = load_descriptor(classified.descriptor.read_bytes())

        fiche_hash = compute_file_hash(classified.primary_document)
        existing = self._fiche_repo.find_by_hash(fiche_hash)
        if existing is not None:
            raise DuplicateError(
                f"{classified.primary_document.name} was already committed as {existing.reference}"
            )

        header = build_header(data)
        source = self._source_repo.find_by_name(header.source)
        if source is None:
            raise ValidationError(f"Unknown source {header.source!r}")

        files = declared_files(data)
        if len(files) != len(classified.pairs):
            raise ValidationError(
                f"data.json declares {len(files)} file(s) but "
                f"{len(classified.pairs)} document(s) were found"
            )
        entries = [build_file_entry(raw, index) for index, raw in enumerate(files)]
        self._require_unique_names(entries)

        base = fiche_storage_dir(source.name, header, classified.folder.name, fiche_hash)
        primary_path = str(base / classified.primary_document.name)
        moves = [
            FileMove(classified.descriptor, str(base / DESCRIPTOR_NAME)),
            FileMove(classified.primary_document, primary_path),
        ]

        pairs = {pair.index: pair for pair in classified.pairs}
        seen_hashes: set[str] = set()
        documents: list[DocumentDraft] = []
        for index, entry in enumerate(entries):
            position = index + 1
            pair = self._require_pair(pairs.get(position), position, entry)

            doc_hash = compute_file_hash(pair.source)
            self._require_new_document(doc_hash, entry, seen_hashes)
            doc_path = str(base / f"{position}-{entry.name}")
            moves.append(FileMove(pair.source, doc_path))

            original_name = original_path = original_hash = None
            if entry.type == "File":
                original_name = entry.original_name
                original_path = str(base / ORIGIN_DIR_NAME / f"{position}-{entry.original_name}")
                original_hash = compute_file_hash(pair.origin)
                moves.append(FileMove(pair.origin, original_path))

            metadata = dict(entry.metadata)
            if entry.path:
                metadata["path"] = entry.path
            documents.append(
                DocumentDraft(
                    type=entry.type,
                    name=entry.name,
                    path=doc_path,
                    hash=doc_hash,
                    content=entry.content,
                    metadata=metadata,
                    original_name=original_name,
                    original_path=original_path,
                    original_hash=original_hash,
                )
            )

        self._require_distinct_destinations(moves)

        fiche = FicheDraft(
            reference=fiche_reference(header, fiche_hash),
            source_id=source.id,
            object=header.object,
            summary=header.summary,
            date=header.date,
            hash=fiche_hash,
            path=primary_path,
            upload_id=upload.id,
            dump=header.dump,
        )
        return NormalizedRecord(
            folder=classified.folder,
            fiche=fiche,
            documents=documents,
            moves=moves,
        )

    @staticmethod
    def _require_unique_names(entries: list[FileEntry]) -> None:
        seen: set[str] = set()
        for entry in entries:
            if entry.name in seen:
                raise ValidationError(f"File name {entry.name!r} is declared twice")
            seen.add(entry.name)

    @staticmethod
    def _require_distinct_destinations(moves: list[FileMove]) -> None:
        seen: set[str] = set()
        for move in moves:
            if move.destination in seen:
                raise ValidationError(
                    f"{move.source.name} would overwrite another file stored as {move.destination}"
                )
            seen.add(move.destination)

    @staticmethod
    def _require_pair(pair: DocumentPair | None, position: int, entry: FileEntry) -> DocumentPair:
        if pair is None or pair.source is None:
            raise IncompleteRecordError(f"Document {position} ({entry.name}) has no source file")
        if pair.origin is None:
            raise IncompleteRecordError(
                f"Document {position} ({entry.name}) has no original in {ORIGIN_DIR_NAME}/"
            )
        return pair

    def _require_new_document(self, doc_hash: str, entry: FileEntry, seen: set[str]) -> None:
        if doc_hash in seen:
            raise DuplicateError(f"Document {entry.name} repeats another document of this record")
        seen.add(doc_hash)
        existing = self._document_repo.find_by_hash(doc_hash)
        if existing is not None:
            raise DuplicateError(
                f"Document {entry.name} was already committed for fiche {existing.fiche_id}"
            )
