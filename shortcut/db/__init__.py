"""
Database module with abstraction layer.

This module provides:
- DatabaseAdapter interface: Abstract base class for database implementations
- SQLiteAdapter / PostgreSQLAdapter: backend-specific implementations
- Session management: Database session creation and management

To add a new database backend:
1. Create a new adapter class inheriting from DatabaseAdapter
2. Implement all abstract methods
3. Register its dialect in get_database_adapter() in adapters.py
"""

from shortcut.db.interface import DatabaseAdapter
from shortcut.db.session import async_session_maker, create_schema, engine, get_session

__all__ = [
    "DatabaseAdapter",
    "get_session",
    "async_session_maker",
    "create_schema",
    "engine",
]
