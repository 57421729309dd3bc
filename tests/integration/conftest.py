import os
import uuid
from collections.abc import Generator
from pathlib import Path
from typing import Any

import psycopg
import pytest
from psycopg_pool import ConnectionPool

from app.config.settings import Settings
from app.database.connection import create_pool
from app.database.models import SourceRecord


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "fiches_test")
    return Settings()


def _choose_existing_user_id(db_conn: psycopg.Connection[Any]) -> str:
    with db_conn.cursor() as cur:
        cur.execute("SELECT user_id FROM upload ORDER BY id LIMIT 1")
        row = cur.fetchone()
    if row is None:
        pytest.skip("No upload rows in DB to borrow a user id from")
    return str(row[0])


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[ConnectionPool, None, None]:
    try:
        pool = create_pool(test_settings)
        pool.wait(timeout=5)
    except Exception as e:
        pytest.skip(f"PostgreSQL test DB not available: {e}. Set DB_* env")
    try:
        yield pool
    finally:
        pool.close()


@pytest.fixture
def db_conn(integration_pool: ConnectionPool) -> Generator[psycopg.Connection[Any], None, None]:
    with integration_pool.connection() as conn:
        yield conn


@pytest.fixture
def existing_source(db_conn: psycopg.Connection[Any]) -> SourceRecord:
    with db_conn.cursor() as cur:
        cur.execute("SELECT id, name FROM source ORDER BY id LIMIT 1")
        row = cur.fetchone()
    if row is None:
        pytest.skip("No source rows in DB for integration test setup")
    return SourceRecord(id=row[0], name=row[1])


@pytest.fixture
def integration_cleanup(
    integration_pool: ConnectionPool,
) -> Generator[list[tuple[str, Any]], None, None]:
    cleanup: list[tuple[str, Any]] = []
    yield cleanup
    if not cleanup:
        return
    with integration_pool.connection() as conn:
        with conn.cursor() as cur:
            for table, upload_id in cleanup:
                if table == "fiche":
                    cur.execute(
                        "DELETE FROM document WHERE fiche_id IN "
                        "(SELECT id FROM fiche WHERE upload_id = %s)",
                        (upload_id,),
                    )
                    cur.execute("DELETE FROM fiche WHERE upload_id = %s", (upload_id,))
            for table, upload_id in cleanup:
                if table == "upload":
                    cur.execute("DELETE FROM upload WHERE id = %s", (upload_id,))
        conn.commit()


@pytest.fixture
def seed_upload(
    db_conn: psycopg.Connection[Any],
    integration_cleanup: list[tuple[str, Any]],
) -> str:
    upload_id = str(uuid.uuid4())
    user_id = _choose_existing_user_id(db_conn)
    with db_conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO upload
            (id, user_id, display_name, type, file_name, path, hash, status)
            VALUES (%s::uuid, %s::uuid, %s, %s, %s, %s, %s, %s)
            """,
            (
                upload_id,
                user_id,
                "integration-upload",
                "file",
                "archive.zip",
                f"data/uploads/integration/{upload_id}.zip",
                None,
                "processing",
            ),
        )
    db_conn.commit()
    integration_cleanup.append(("fiche", upload_id))
    integration_cleanup.append(("upload", upload_id))
    return upload_id


@pytest.fixture
def stored_archive(
    tmp_path: Path,
    seed_upload: str,
    existing_source: SourceRecord,
    make_zip,
    record_entries,
    descriptor,
) -> Path:
    """Store a one-record archive for the seeded upload and return the storage root."""
    storage = tmp_path / "storage"
    folder = f"fiche-{seed_upload[:8]}"
    entries = record_entries(
        folder,
        data=descriptor(source=existing_source.name),
        primary=f"primary {seed_upload}".encode(),
        source=f"source {seed_upload}".encode(),
    )
    make_zip(storage / f"data/uploads/integration/{seed_upload}.zip", entries)
    return storage
