from psycopg_pool import ConnectionPool

from app.config.settings import Settings


def build_conninfo(settings: Settings) -> str:
    """Build a libpq connection string from settings."""
    return (
        f"host={settings.db_host} "
        f"port={settings.db_port} "
        f"dbname={settings.db_database} "
        f"user={settings.db_username} "
        f"password={settings.db_password}"
    )


def create_pool(settings: Settings) -> ConnectionPool:
    """Open a connection pool shared by every repository of the process.

    The pool is handed to its consumers explicitly; callers own closing it.
    Connections taken with ``pool.connection()`` are committed on clean exit
    and rolled back when the block raises.
    """
    return ConnectionPool(
        build_conninfo(settings),
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
        open=True,
    )
