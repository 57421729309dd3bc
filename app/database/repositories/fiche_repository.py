from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from app.database.models import FicheRecord
from app.processor.models import FicheDraft


class FicheRepository:
    """Database operations for the fiche table."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def find_by_hash(self, content_hash: str) -> FicheRecord | None:
        """Return the fiche whose primary document has this hash, if any."""
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT id, reference, source_id, hash, path, upload_id,
                           date, object, summary, dump
                    FROM fiche
                    WHERE hash = %s
                    """,
                    (content_hash,),
                )
                row = cur.fetchone()

        if row is None:
            return None

        return FicheRecord(
            id=row["id"],
            reference=row["reference"],
            source_id=row["source_id"],
            hash=row["hash"],
            path=row["path"],
            upload_id=str(row["upload_id"]),
            date=row["date"],
            object=row["object"],
            summary=row["summary"],
            dump=row["dump"],
        )

    def insert(self, conn: psycopg.Connection[Any], fiche: FicheDraft) -> int:
        """Insert a fiche row on the caller's connection. Caller commits."""
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO fiche
                (reference, source_id, object, summary, date, hash, path,
                 upload_id, dump)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING id
                """,
                (
                    fiche.reference,
                    fiche.source_id,
                    fiche.object,
                    fiche.summary,
                    fiche.date,
                    fiche.hash,
                    fiche.path,
                    fiche.upload_id,
                    fiche.dump,
                ),
            )
            row = cur.fetchone()
        if row is None:
            raise RuntimeError("INSERT INTO fiche returned no id")
        return int(row[0])
