from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "host.docker.internal"
    db_port: int = 5432
    db_database: str = "fiches"
    db_username: str = "fiches"
    db_password: str = "secret"
    db_pool_min_size: int = 1
    db_pool_max_size: int = 10

    redis_url: str = "redis://localhost:6379/0"
    queue_key: str = "uploadsToProcess"
    queue_pop_timeout_seconds: int = 5
    queue_poll_interval_seconds: int = 5

    storage_root: Path = Path("/app/files")
    temp_root: Path = Path("/tmp/fiche-worker")

    extraction_batch_size: int = 4
    max_archive_depth: int = 8
    extraction_max_bytes: int = 4 * 1024**3
    upload_deadline_seconds: int = 0
    verify_upload_hash: bool = True
