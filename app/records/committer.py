import os
import shutil
import uuid
from pathlib import Path

import psycopg
from psycopg_pool import ConnectionPool

from app.database.repositories.document_repository import DocumentRepository
from app.database.repositories.fiche_repository import FicheRepository
from app.logging.logger import Log
from app.processor.exceptions import (
    DuplicateError,
    RecordError,
    StorageDivergenceError,
    TransactionError,
)
from app.processor.models import NormalizedRecord

STAGING_DIR_NAME = ".staging"


class FicheCommitter:
    """Writes one validated record: rows in a transaction, files into storage.

    Files are first moved into a staging directory on the storage volume while
    the transaction is open. Only after the commit are they renamed into their
    final place, so a failed commit never leaves files under ``fiches/``.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        fiche_repo: FicheRepository,
        document_repo: DocumentRepository,
        storage_root: Path,
    ) -> None:
        self._pool = pool
        self._fiche_repo = fiche_repo
        self._document_repo = document_repo
        self._storage_root = storage_root

    def commit(self, record: NormalizedRecord) -> int:
        """Persist ``record`` and return the new fiche id.

        Raises:
            DuplicateError: a unique hash constraint fired during insert.
            TransactionError: an insert or file move failed; rolled back.
            StorageDivergenceError: rows committed but some files could not be
                renamed out of staging.
        """
        staging = self._storage_root / STAGING_DIR_NAME / uuid.uuid4().hex
        staged: list[tuple[Path, Path]] = []
        reference = record.fiche.reference

        try:
            with self._pool.connection() as conn:
                try:
                    fiche_id = self._fiche_repo.insert(conn, record.fiche)
                    for document in record.documents:
                        self._document_repo.insert(conn, fiche_id, document)
                    self._stage(record, staging, staged)
                    conn.commit()
                except psycopg.errors.UniqueViolation as exc:
                    conn.rollback()
                    raise DuplicateError(
                        f"{reference} collides with an existing hash: {exc}",
                        folder=record.folder,
                    ) from exc
                except (psycopg.Error, OSError, RuntimeError) as exc:
                    conn.rollback()
                    raise TransactionError(
                        f"Commit of {reference} rolled back: {exc}",
                        folder=record.folder,
                    ) from exc
        except RecordError:
            self._unstage(staging, staged)
            raise

        Log.info(f"Committed fiche {fiche_id} ({reference})", documents=len(record.documents))
        self._publish(record, fiche_id, staging)
        return fiche_id

    def _stage(
        self,
        record: NormalizedRecord,
        staging: Path,
        staged: list[tuple[Path, Path]],
    ) -> None:
        for move in record.moves:
            if (self._storage_root / move.destination).exists():
                raise FileExistsError(f"{move.destination} already exists in storage")
            staged_path = staging / move.destination
            staged_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(move.source, staged_path)
            staged.append((move.source, staged_path))

    def _unstage(self, staging: Path, staged: list[tuple[Path, Path]]) -> None:
        """Return staged files to the extraction tree and drop the staging dir."""
        for original, staged_path in reversed(staged):
            try:
                shutil.move(staged_path, original)
            except OSError as exc:
                Log.warning(f"Could not restore {original.name} from staging: {exc}")
        shutil.rmtree(staging, ignore_errors=True)

    def _publish(self, record: NormalizedRecord, fiche_id: int, staging: Path) -> None:
        pending: list[Path] = []
        for move in record.moves:
            final = self._storage_root / move.destination
            try:
                final.parent.mkdir(parents=True, exist_ok=True)
                os.replace(staging / move.destination, final)
            except OSError as exc:
                Log.error(f"Failed to publish {move.destination}: {exc}", fiche_id=fiche_id)
                pending.append(final)

        if pending:
            # staging is kept so the missing files can be recovered by hand
            raise StorageDivergenceError(
                f"Fiche {fiche_id} committed but {len(pending)} file(s) are still in {staging}",
                fiche_id=fiche_id,
                pending_files=pending,
                folder=record.folder,
            )
        shutil.rmtree(staging, ignore_errors=True)
