"""Tests for committed transactions: service reads and transaction commands."""

import pytest
from datetime import date
from decimal import Decimal

from ledgerflow.cli.main import cli
from ledgerflow.domain.errors import NotFoundError


@pytest.fixture
def committed(ingest_service, sample_account, sample_categories, fixtures_dir):
    """Commit the scenario's coffee and payroll rows to the sample account."""
    batch = ingest_service.import_file(fixtures_dir / "scenario.csv", "default", account_id=sample_account.id)
    coffee_row, payroll_row, _ = batch["row_ids"]
    ingest_service.queue.assign_category(coffee_row, sample_categories["Food > Coffee"])
    ingest_service.queue.assign_category(payroll_row, sample_categories["Income > Salary"])
    result = ingest_service.approve(batch["batch_id"])
    assert result["imported"] == 2
    return {t.description: t for t in ingest_service.db.list_transactions()}


def test_get_transaction_not_found(transaction_service):
    """Unknown IDs raise NotFoundError."""
    with pytest.raises(NotFoundError):
        transaction_service.get_transaction(999)
    with pytest.raises(NotFoundError):
        transaction_service.get_splits(999)


def test_list_transactions_filters(transaction_service, committed, sample_account):
    """Transactions filter by user, account and date."""
    assert len(transaction_service.list_transactions(user_id="default")) == 2
    assert transaction_service.list_transactions(user_id="someone-else") == []
    assert len(transaction_service.list_transactions(account_id=sample_account.id)) == 2

    january_6 = transaction_service.list_transactions(start_date=date(2024, 1, 6), end_date=date(2024, 1, 6))
    assert [t.description for t in january_6] == ["PAYROLL"]


def test_committed_transaction_fields(committed):
    """Committed rows keep their type, fingerprint and queue origin."""
    coffee = committed["COFFEE SHOP"]

    assert coffee.total_amount == Decimal("-4.50")
    assert coffee.transaction_type == "expense"
    assert committed["PAYROLL"].transaction_type == "income"
    assert coffee.fingerprint is not None
    assert coffee.queued_import_id is not None
    assert coffee.merchant_group_id is not None
    assert not coffee.is_historical


def test_get_detail(transaction_service, committed):
    """Details include the merchant name and category paths."""
    detail = transaction_service.get_detail(committed["COFFEE SHOP"].id)

    assert detail["merchant"] == "Coffee Shop"
    assert detail["splits"] == [
        {"category_id": detail["splits"][0]["category_id"], "category": "Food > Coffee", "amount": Decimal("-4.50")}
    ]


def test_transaction_list_cli(cli_runner, temp_db, committed):
    """Test listing committed transactions."""
    result = cli_runner.invoke(cli, ["--db-path", temp_db.database_path, "transaction", "list"])

    assert result.exit_code == 0
    assert "COFFEE SHOP" in result.output
    assert "PAYROLL" in result.output
    assert "2000.00" in result.output


def test_transaction_list_cli_filters(cli_runner, temp_db, committed):
    """Test date and account filters of transaction list."""
    dated = cli_runner.invoke(
        cli,
        ["--db-path", temp_db.database_path, "transaction", "list", "--start-date", "2024-01-06", "--end-date", "2024-01-06"],
    )
    assert "PAYROLL" in dated.output
    assert "COFFEE SHOP" not in dated.output

    by_account = cli_runner.invoke(
        cli, ["--db-path", temp_db.database_path, "transaction", "list", "--account", "Test Account"]
    )
    assert "COFFEE SHOP" in by_account.output

    other_user = cli_runner.invoke(
        cli, ["--db-path", temp_db.database_path, "--user", "someone-else", "transaction", "list"]
    )
    assert "No transactions found" in other_user.output


def test_transaction_list_cli_rejects_mixed_filters(cli_runner, temp_db):
    """Test that --period cannot be combined with explicit dates."""
    result = cli_runner.invoke(
        cli,
        ["--db-path", temp_db.database_path, "transaction", "list", "--period", "this-month", "--start-date", "2024-01-01"],
    )

    assert result.exit_code == 1
    assert "cannot be combined" in result.output


def test_transaction_show_cli(cli_runner, temp_db, committed):
    """Test showing one transaction with its splits."""
    txn = committed["PAYROLL"]

    result = cli_runner.invoke(cli, ["--db-path", temp_db.database_path, "transaction", "show", str(txn.id)])

    assert result.exit_code == 0
    assert f"Transaction {txn.id}: PAYROLL" in result.output
    assert "Type: income" in result.output
    assert "Income > Salary: 2000.00" in result.output
    assert f"Imported from queued row {txn.queued_import_id}" in result.output


def test_transaction_show_cli_missing(cli_runner, temp_db):
    """Test showing a transaction that does not exist."""
    result = cli_runner.invoke(cli, ["--db-path", temp_db.database_path, "transaction", "show", "42"])

    assert result.exit_code == 1
    assert "Transaction 42 not found" in result.output
