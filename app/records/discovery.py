"""Locates record folders in an extraction tree and sorts their files by role."""

import re
from collections.abc import Iterable
from pathlib import Path

from app.logging.logger import Log
from app.processor.exceptions import IncompleteRecordError, ValidationError
from app.processor.models import ClassifiedFolder, DocumentPair

DESCRIPTOR_NAME = "data.json"
ORIGIN_DIR_NAME = "Source"

PRIMARY_EXTENSIONS = frozenset({".docx", ".doc", ".odt", ".rtf"})
SOURCE_EXTENSIONS = frozenset({".pdf", ".eml", ".msg", ".xlsx", ".xls", ".ods", ".csv"})

_PREFIX_PATTERN = re.compile(r"^(\d+)")


def discover_folders(file_paths: Iterable[Path]) -> list[Path]:
    """Return each distinct folder holding a descriptor, in enumeration order."""
    folders: dict[Path, None] = {}
    for path in file_paths:
        if path.name == DESCRIPTOR_NAME:
            folders.setdefault(path.parent, None)
    return list(folders)


def numeric_prefix(file_name: str) -> int | None:
    """Leading integer of a file name, e.g. ``3`` for ``"3 - invoice.pdf"``."""
    match = _PREFIX_PATTERN.match(file_name)
    return int(match.group(1)) if match else None


def classify(folder: Path, file_paths: Iterable[Path]) -> ClassifiedFolder:
    """Split the files of a record folder into descriptor, primary and pairs.

    Only direct children of ``folder`` and of ``folder/Source`` are considered.

    Raises:
        IncompleteRecordError: if the descriptor or primary document is
            missing, or the folder holds no source or origin document at all.
        ValidationError: if several primary documents are present or two
            files of the same side share a numeric prefix.
    """
    origin_dir = folder / ORIGIN_DIR_NAME
    descriptor: Path | None = None
    primaries: list[Path] = []
    sources: dict[int, Path] = {}
    origins: dict[int, Path] = {}

    for path in file_paths:
        if path.parent == folder:
            suffix = path.suffix.lower()
            if path.name == DESCRIPTOR_NAME:
                descriptor = path
            elif suffix in PRIMARY_EXTENSIONS:
                primaries.append(path)
            elif suffix in SOURCE_EXTENSIONS:
                _assign(sources, path, folder)
        elif path.parent == origin_dir:
            _assign(origins, path, folder)

    if descriptor is None:
        raise IncompleteRecordError(f"Missing {DESCRIPTOR_NAME}", folder=folder)
    if not primaries:
        raise IncompleteRecordError("Missing primary document", folder=folder)
    if len(primaries) > 1:
        names = ", ".join(sorted(p.name for p in primaries))
        raise ValidationError(f"Several primary documents found: {names}", folder=folder)
    if not sources and not origins:
        raise IncompleteRecordError("No source or origin document found", folder=folder)

    pairs = [
        DocumentPair(index=index, source=sources.get(index), origin=origins.get(index))
        for index in sorted(sources.keys() | origins.keys())
    ]
    return ClassifiedFolder(
        folder=folder,
        descriptor=descriptor,
        primary_document=primaries[0],
        pairs=pairs,
    )


def _assign(slots: dict[int, Path], path: Path, folder: Path) -> None:
    prefix = numeric_prefix(path.name)
    if prefix is None:
        Log.debug(f"Ignoring unnumbered file {path.name}", folder=folder)
        return
    if prefix in slots:
        raise ValidationError(
            f"Files {slots[prefix].name} and {path.name} share prefix {prefix}",
            folder=folder,
        )
    slots[prefix] = path
