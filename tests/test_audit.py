"""Tests for the balance audit trail and its verification."""

import pytest
from decimal import Decimal

from ledgerflow.cli.main import cli
from ledgerflow.database.models import BalanceAuditEntry
from ledgerflow.domain.audit import AuditService
from ledgerflow.domain.entities import SCOPE_ACCOUNT, SCOPE_CATEGORY
from ledgerflow.domain.errors import NotFoundError


@pytest.fixture
def audit_service(temp_db):
    """Create an AuditService with a temporary database."""
    return AuditService(temp_db)


@pytest.fixture
def committed_batch(ingest_service, sample_account, sample_categories, fixtures_dir):
    """Commit the scenario rows to the sample account."""
    batch = ingest_service.import_file(fixtures_dir / "scenario.csv", "default", account_id=sample_account.id)
    coffee_row, payroll_row, _ = batch["row_ids"]
    ingest_service.queue.assign_category(coffee_row, sample_categories["Food > Coffee"])
    ingest_service.queue.assign_category(payroll_row, sample_categories["Income > Salary"])
    ingest_service.approve(batch["batch_id"])
    return batch


def test_verify_after_commits(audit_service, committed_batch, sample_account):
    """Committed imports are fully explained by the audit trail."""
    check = audit_service.verify_account(sample_account.id)

    assert check.ok
    assert check.expected_change == Decimal("1995.50")
    assert check.audited_change == Decimal("1995.50")
    assert all(c.ok for c in audit_service.verify_all())


def test_verify_detects_unaudited_change(temp_db, audit_service, committed_batch, sample_account, sample_categories):
    """A balance changed behind the audit trail's back is reported."""
    temp_db.apply_balance_change(SCOPE_ACCOUNT, sample_account.id, Decimal("10.00"))
    temp_db.apply_balance_change(SCOPE_CATEGORY, sample_categories["Food > Coffee"], Decimal("-1.00"))

    failures = [c for c in audit_service.verify_all() if not c.ok]

    assert {(c.scope, c.entity_id) for c in failures} == {
        (SCOPE_ACCOUNT, sample_account.id),
        (SCOPE_CATEGORY, sample_categories["Food > Coffee"]),
    }
    account_check = audit_service.verify_account(sample_account.id)
    assert account_check.difference == Decimal("10.00")


def test_opening_balance_is_not_a_change(audit_service, account_service):
    """An initial balance needs no audit entry."""
    account_id = account_service.create_account("Savings", "Bank", initial_balance=Decimal("500"))

    assert audit_service.verify_account(account_id).ok


def test_verify_unknown_entities(audit_service):
    """Verifying missing entities raises NotFoundError."""
    with pytest.raises(NotFoundError):
        audit_service.verify_account(999)
    with pytest.raises(NotFoundError):
        audit_service.verify_category(999)


def test_list_entries_filters(audit_service, committed_batch, sample_account, sample_categories):
    """Entries filter by scope, entity and transaction."""
    account_entries = audit_service.list_entries(scope=SCOPE_ACCOUNT, entity_id=sample_account.id)
    assert [e.change_amount for e in account_entries] == [Decimal("-4.50"), Decimal("2000.00")]
    assert all(e.change_type == "transaction_import" for e in account_entries)

    txn_id = account_entries[0].transaction_id
    by_txn = audit_service.list_entries(transaction_id=txn_id)
    assert {e.scope for e in by_txn} == {SCOPE_ACCOUNT, SCOPE_CATEGORY}


def test_audit_entries_are_append_only(temp_db, audit_service, committed_batch):
    """Stored entries can be neither changed nor deleted."""
    session = temp_db._get_session()
    entry = session.query(BalanceAuditEntry).first()

    entry.change_amount = Decimal("0")
    with pytest.raises(RuntimeError, match="append-only"):
        session.flush()
    session.rollback()

    entry = session.query(BalanceAuditEntry).first()
    session.delete(entry)
    with pytest.raises(RuntimeError, match="append-only"):
        session.flush()
    session.rollback()

    assert len(audit_service.list_entries()) == 4


def test_audit_verify_cli(cli_runner, temp_db, committed_batch, sample_account):
    """Test audit verify before and after an unaudited change."""
    ok = cli_runner.invoke(cli, ["--db-path", temp_db.database_path, "audit", "verify"])
    assert ok.exit_code == 0
    assert "All balances match" in ok.output

    temp_db.apply_balance_change(SCOPE_ACCOUNT, sample_account.id, Decimal("10.00"))

    bad = cli_runner.invoke(cli, ["--db-path", temp_db.database_path, "audit", "verify"])
    assert bad.exit_code == 1
    assert "Mismatch: account" in bad.output
    assert "Test Account" in bad.output


def test_audit_list_cli(cli_runner, temp_db, committed_batch):
    """Test listing an account's audit entries."""
    result = cli_runner.invoke(
        cli, ["--db-path", temp_db.database_path, "audit", "list", "--account", "Test Account"]
    )

    assert result.exit_code == 0
    assert "+2000.00" in result.output
    assert "-4.50" in result.output

    both = cli_runner.invoke(
        cli, ["--db-path", temp_db.database_path, "audit", "list", "--account", "1", "--category", "Food"]
    )
    assert both.exit_code == 1
