"""
Bastion - Database Module
=========================

SQLite storage for guard policies, whitelists and lockdown snapshots.
"""

from bastion.core.database.manager import (
    DatabaseManager,
    get_db,
    DATA_DIR,
    DB_PATH,
)

__all__ = [
    "DatabaseManager",
    "get_db",
    "DATA_DIR",
    "DB_PATH",
]
