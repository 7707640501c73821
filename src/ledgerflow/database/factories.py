"""Construction of the SQLite-backed ledger database."""

from pathlib import Path
from typing import Optional

from ledgerflow.config import DEFAULT_CONFIG_PATH
from ledgerflow.database.sqlalchemy_db import SQLAlchemyDatabase

DEFAULT_DATABASE_PATH = DEFAULT_CONFIG_PATH.parent / "ledgerflow.db"


def create_sqlite_database(database_path: Optional[str | Path] = None) -> SQLAlchemyDatabase:
    """Create a database stored in a SQLite file.

    Args:
        database_path: Database file; DEFAULT_DATABASE_PATH when None. The
            configuration layer resolves LEDGERFLOW_DB_PATH before this is
            called.

    Returns:
        SQLAlchemyDatabase whose ``database_path`` names the file
    """
    path = Path(database_path).expanduser() if database_path else DEFAULT_DATABASE_PATH
    path.parent.mkdir(parents=True, exist_ok=True)

    db = SQLAlchemyDatabase(f"sqlite:///{path}")
    db.database_path = str(path)
    return db
