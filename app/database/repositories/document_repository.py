from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from app.database.models import DocumentRecord
from app.processor.models import DocumentDraft


class DocumentRepository:
    """Database operations for the document table."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def find_by_hash(self, content_hash: str) -> DocumentRecord | None:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT id, fiche_id, type, name, path, hash, original_hash
                    FROM document
                    WHERE hash = %s
                    """,
                    (content_hash,),
                )
                row = cur.fetchone()

        if row is None:
            return None

        return DocumentRecord(
            id=row["id"],
            fiche_id=row["fiche_id"],
            type=row["type"],
            name=row["name"],
            path=row["path"],
            hash=row["hash"],
            original_hash=row["original_hash"],
        )

    def insert(
        self,
        conn: psycopg.Connection[Any],
        fiche_id: int,
        document: DocumentDraft,
    ) -> int:
        """Insert a document row for a fiche on the caller's connection.

        The caller owns the transaction: nothing is committed here.
        """
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO document
                (fiche_id, type, name, path, hash, content, metadata,
                 original_name, original_path, original_hash)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING id
                """,
                (
                    fiche_id,
                    document.type,
                    document.name,
                    document.path,
                    document.hash,
                    document.content,
                    Jsonb(document.metadata),
                    document.original_name,
                    document.original_path,
                    document.original_hash,
                ),
            )
            row = cur.fetchone()
        if row is None:
            raise RuntimeError("INSERT INTO document returned no id")
        return int(row[0])
