from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from app.database.models import SourceRecord


class SourceRepository:
    """Read-only lookups against the source catalog."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def find_by_name(self, name: str) -> SourceRecord | None:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    "SELECT id, name FROM source WHERE name = %s",
                    (name,),
                )
                row = cur.fetchone()

        if row is None:
            return None
        return SourceRecord(id=row["id"], name=row["name"])
