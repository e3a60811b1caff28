"""
Database Adapters

This module implements the DatabaseAdapter interface for the supported
backends. All backend-specific configuration is encapsulated here.

SQLite (default) is a file-based database that's perfect for:
- Local development
- Testing
- Single-instance deployments

PostgreSQL (asyncpg) is the production backend.
"""

from typing import Any, Optional

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.pool import NullPool, Pool

from shortcut.db.interface import DatabaseAdapter


class SQLiteAdapter(DatabaseAdapter):
    """
    SQLite database adapter implementation.

    SQLite-specific configuration:
    - NullPool: file-based database doesn't benefit from connection pooling
    - check_same_thread=False: required for async SQLite operations
    - foreign_keys pragma: SQLite leaves FK enforcement off per connection
      unless asked, and link rows rely on ON DELETE CASCADE
    """

    def get_pool_class(self) -> type[NullPool]:
        return NullPool

    def get_connect_args(self) -> dict[str, Any]:
        return {
            "check_same_thread": False
        }

    def get_engine_kwargs(self) -> dict[str, Any]:
        return {
            "echo": False  # Set to True only for SQL debugging in development
        }

    def configure_engine(self, engine: AsyncEngine) -> None:
        @event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    def get_dialect_name(self) -> str:
        return "sqlite"


class PostgreSQLAdapter(DatabaseAdapter):
    """
    PostgreSQL database adapter implementation (asyncpg driver).

    Uses SQLAlchemy's default queue pool with pre-ping so connections
    dropped by the server are replaced transparently.
    """

    def get_pool_class(self) -> Optional[type[Pool]]:
        return None

    def get_connect_args(self) -> dict[str, Any]:
        return {}

    def get_engine_kwargs(self) -> dict[str, Any]:
        return {
            "echo": False,
            "pool_size": 10,
            "max_overflow": 20,
            "pool_pre_ping": True,
        }

    def configure_engine(self, engine: AsyncEngine) -> None:
        pass

    def get_dialect_name(self) -> str:
        return "postgresql"


_ADAPTERS: dict[str, type[DatabaseAdapter]] = {
    "sqlite": SQLiteAdapter,
    "postgresql": PostgreSQLAdapter,
}


def get_database_adapter(database_url: str) -> DatabaseAdapter:
    """
    Factory function to get the database adapter for a connection string.

    Args:
        database_url: SQLAlchemy URL, e.g. ``sqlite+aiosqlite:///./shortcut.db``

    Returns:
        DatabaseAdapter instance

    Raises:
        ValueError: If the URL's backend has no adapter
    """
    backend = make_url(database_url).get_backend_name()
    try:
        return _ADAPTERS[backend]()
    except KeyError:
        raise ValueError(f"Unsupported database backend: '{backend}'")
