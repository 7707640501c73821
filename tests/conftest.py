"""Shared pytest fixtures for ledgerflow tests."""

import tempfile
import os
from pathlib import Path
import pytest

from ledgerflow.database.factories import create_sqlite_database
from ledgerflow.domain.account import AccountService
from ledgerflow.domain.category import CategoryService
from ledgerflow.domain.ingest import IngestService
from ledgerflow.domain.transaction import TransactionService
from ledgerflow.logging_setup import reset_logging


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep tests away from the user's config file and environment."""
    monkeypatch.setenv("LEDGERFLOW_CONFIG", str(tmp_path / "missing-config.yaml"))
    for name in (
        "LEDGERFLOW_DB_PATH",
        "LEDGERFLOW_LOG_LEVEL",
        "LEDGERFLOW_USER",
        "LEDGERFLOW_SCORER_ENABLED",
        "LEDGERFLOW_SCORER_MODEL",
        "LEDGERFLOW_SCORER_TIMEOUT",
        "LEDGERFLOW_SCORER_DAILY_LIMIT",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_logging()
    yield
    reset_logging()


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    db = create_sqlite_database(database_path=db_path)
    db.connect()
    db.initialize_schema()

    yield db

    db.disconnect()
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def account_service(temp_db):
    """Create an AccountService with a temporary database."""
    return AccountService(temp_db)


@pytest.fixture
def category_service(temp_db):
    """Create a CategoryService with a temporary database."""
    return CategoryService(temp_db)


@pytest.fixture
def transaction_service(temp_db):
    """Create a TransactionService with a temporary database."""
    return TransactionService(temp_db)


@pytest.fixture
def ingest_service(temp_db):
    """Create an IngestService with default configuration and no scorer."""
    return IngestService(temp_db)


@pytest.fixture
def sample_account(account_service):
    """Create a sample checking account."""
    account_id = account_service.create_account(name="Test Account", bank_name="Test Bank")
    return account_service.get_account(account_id)


@pytest.fixture
def credit_card(account_service):
    """Create a sample credit card account."""
    account_id = account_service.create_account(
        name="Test Card", bank_name="Test Bank", is_credit_card=True
    )
    return account_service.get_account(account_id)


@pytest.fixture
def sample_categories(category_service):
    """Initialize the default envelopes and return their IDs keyed by path."""
    from ledgerflow.cli.commands.init_categories import create_initial_categories

    created, errors = create_initial_categories(category_service)
    assert not errors

    return {
        category_service.format_category_path(c.id): c.id
        for c in category_service.db.list_all_categories()
    }


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()


@pytest.fixture
def fixtures_dir():
    """Return the path to the test fixtures directory."""
    return Path(__file__).parent / "fixtures"
