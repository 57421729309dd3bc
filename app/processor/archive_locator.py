from pathlib import Path

from app.archive.hasher import compute_file_hash
from app.processor.exceptions import ArchiveIntegrityError, ArchiveNotFoundError
from app.processor.models import Upload


class ArchiveLocator:
    """Resolves the stored archive of an upload below the storage root."""

    def __init__(self, storage_root: Path, verify_hash: bool = True) -> None:
        self._storage_root = storage_root
        self._verify_hash = verify_hash

    def resolve(self, upload: Upload) -> Path:
        """Return the absolute archive path of ``upload``.

        Raises:
            ArchiveNotFoundError: if the path is outside the storage root or
                no file exists there.
            ArchiveIntegrityError: if hash verification is enabled and the
                file no longer matches ``upload.hash``.
        """
        root = self._storage_root.resolve()
        path = (root / upload.path).resolve()
        if root not in path.parents:
            raise ArchiveNotFoundError(f"Upload {upload.id} points outside storage: {upload.path}")
        if not path.is_file():
            raise ArchiveNotFoundError(f"Archive not found: {path}")

        if self._verify_hash and upload.hash:
            actual = compute_file_hash(path)
            if actual != upload.hash.lower():
                raise ArchiveIntegrityError(
                    f"Archive of upload {upload.id} changed since submission "
                    f"(expected {upload.hash}, got {actual})"
                )
        return path
