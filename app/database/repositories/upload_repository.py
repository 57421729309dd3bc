import uuid

from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from app.processor.exceptions import UploadNotFoundError
from app.processor.models import Upload


class UploadRepository:
    """Database operations for the upload table."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def find_by_id(self, upload_id: str) -> Upload:
        """Find an upload by its uuid.

        Raises:
            UploadNotFoundError: if the id is not a uuid or no row matches it.
        """
        try:
            uuid.UUID(upload_id)
        except ValueError as exc:
            raise UploadNotFoundError(f"Upload {upload_id!r} is not a valid id") from exc

        with self._pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT id, user_id, display_name, type, date,
                           file_name, path, hash, status
                    FROM upload
                    WHERE id = %s
                    """,
                    (upload_id,),
                )
                row = cur.fetchone()

        if row is None:
            raise UploadNotFoundError(f"Upload {upload_id} not found")

        return Upload(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            display_name=row["display_name"],
            type=row["type"],
            date=row["date"],
            file_name=row["file_name"],
            path=row["path"],
            hash=row["hash"],
            status=row["status"],
        )

    def update_status(self, upload_id: str, status: str) -> None:
        """Persist the processing status of an upload.

        Raises:
            UploadNotFoundError: if no upload with this id exists.
        """
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "UPDATE upload SET status = %s WHERE id = %s",
                    (status, upload_id),
                )
                if cur.rowcount == 0:
                    raise UploadNotFoundError(f"Upload {upload_id} not found")
            conn.commit()
