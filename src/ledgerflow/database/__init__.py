"""Database layer for ledgerflow."""

from ledgerflow.database.base import Database
from ledgerflow.database.factories import create_sqlite_database

__all__ = ["Database", "create_sqlite_database"]
