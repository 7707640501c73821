"""Tests for the commit engine: balances, audit entries, conflicts and locking."""

import threading
import pytest
from datetime import date
from decimal import Decimal

from ledgerflow.database.factories import create_sqlite_database
from ledgerflow.domain.audit import AuditService
from ledgerflow.domain.commit import CommitEngine
from ledgerflow.domain.entities import (
    SCOPE_ACCOUNT,
    SCOPE_CATEGORY,
    STATUS_APPROVED,
    STATUS_CATEGORIZED,
    STATUS_DUPLICATE,
    SplitProposal,
)
from ledgerflow.domain.errors import ValidationError
from ledgerflow.domain.locks import EntityLockRegistry


def categorize_scenario(ingest_service, batch, categories):
    """Put the coffee row into Food > Coffee and the payroll row into Income > Salary."""
    coffee_id, payroll_id = batch["row_ids"][:2]
    ingest_service.queue.assign_category(coffee_id, categories["Food > Coffee"])
    ingest_service.queue.assign_category(payroll_id, categories["Income > Salary"])
    return coffee_id, payroll_id


def test_scenario_without_account(ingest_service, sample_categories, fixtures_dir, temp_db):
    """Two rows commit with one audit entry each; a re-upload queues nothing."""
    path = fixtures_dir / "scenario.csv"
    batch = ingest_service.import_file(path, "default")
    assert (batch["queued"], batch["duplicates"]) == (2, 1)
    categorize_scenario(ingest_service, batch, sample_categories)

    result = ingest_service.approve(batch["batch_id"])

    assert result["imported"] == 2
    assert result["errors"] == []
    transactions = temp_db.list_transactions()
    assert len(transactions) == 2
    assert {t.transaction_type for t in transactions} == {"income", "expense"}
    assert len(temp_db.list_audit_entries()) == 2

    again = ingest_service.import_file(path, "default")
    assert again["queued"] == 0
    assert again["duplicates"] == 3
    assert all(
        r.duplicate_of.startswith("transaction:")
        for r in ingest_service.queue.get_rows(again["batch_id"])
    )


def test_scenario_with_account_moves_balances(
    ingest_service, sample_account, sample_categories, fixtures_dir, temp_db
):
    """Account and category balances move and every move is audited."""
    batch = ingest_service.import_file(fixtures_dir / "scenario.csv", "default", account_id=sample_account.id)
    categorize_scenario(ingest_service, batch, sample_categories)

    result = ingest_service.approve(batch["batch_id"])

    assert result["imported"] == 2
    account = temp_db.get_account(sample_account.id)
    assert account.current_balance == Decimal("1995.50")
    coffee = temp_db.get_category(sample_categories["Food > Coffee"])
    salary = temp_db.get_category(sample_categories["Income > Salary"])
    assert coffee.current_balance == Decimal("-4.50")
    assert salary.current_balance == Decimal("2000.00")

    account_entries = temp_db.list_audit_entries(scope=SCOPE_ACCOUNT, entity_id=sample_account.id)
    assert [e.change_amount for e in account_entries] == [Decimal("-4.50"), Decimal("2000.00")]
    assert account_entries[1].old_balance == Decimal("-4.50")
    assert account_entries[1].new_balance == Decimal("1995.50")
    assert all(e.change_type == "transaction_import" and e.actor == "default" for e in account_entries)
    assert all(check.ok for check in AuditService(temp_db).verify_all())


def test_rows_commit_in_date_order(ingest_service, sample_account, sample_categories, temp_db):
    """Balances are applied oldest row first."""
    from ledgerflow.adapters.csv_upload import read_csv_text

    text = "Date,Description,Amount\n2024-01-09,LATER,-1.00\n2024-01-02,EARLIER,-2.00\n"
    batch = ingest_service.ingest_batch(read_csv_text(text, "order.csv"), "default", account_id=sample_account.id)
    for row_id in batch["row_ids"]:
        ingest_service.queue.assign_category(row_id, sample_categories["Food"])

    ingest_service.approve(batch["batch_id"])

    entries = temp_db.list_audit_entries(scope=SCOPE_ACCOUNT, entity_id=sample_account.id)
    assert [e.description for e in entries] == ["EARLIER", "LATER"]


def test_credit_card_balance_tracks_amount_owed(
    ingest_service, credit_card, sample_categories, fixtures_dir, temp_db
):
    """Spending raises a card balance and a payment lowers it."""
    batch = ingest_service.import_file(fixtures_dir / "scenario.csv", "default", account_id=credit_card.id)
    categorize_scenario(ingest_service, batch, sample_categories)

    ingest_service.approve(batch["batch_id"])

    card = temp_db.get_account(credit_card.id)
    assert card.current_balance == Decimal("-1995.50")
    entries = temp_db.list_audit_entries(scope=SCOPE_ACCOUNT, entity_id=credit_card.id)
    assert [e.change_amount for e in entries] == [Decimal("4.50"), Decimal("-2000.00")]
    # Categories move with the signed amount regardless of account kind
    assert temp_db.get_category(sample_categories["Food > Coffee"]).current_balance == Decimal("-4.50")


def test_historical_rows_leave_balances_alone(
    ingest_service, sample_account, sample_categories, fixtures_dir, temp_db
):
    """Historical rows become transactions without balance changes or audit entries."""
    batch = ingest_service.import_file(
        fixtures_dir / "scenario.csv", "default", account_id=sample_account.id, is_historical=True
    )
    categorize_scenario(ingest_service, batch, sample_categories)

    result = ingest_service.approve(batch["batch_id"])

    assert result["imported"] == 2
    assert all(t.is_historical for t in temp_db.list_transactions())
    assert temp_db.get_account(sample_account.id).current_balance == Decimal("0")
    assert temp_db.list_audit_entries() == []


def test_split_row_aggregates_per_category(ingest_service, sample_account, sample_categories, fixtures_dir, temp_db):
    """Two splits into one category give one audit entry for that category."""
    batch = ingest_service.import_file(fixtures_dir / "scenario.csv", "default", account_id=sample_account.id)
    payroll_id = batch["row_ids"][1]
    salary = sample_categories["Income > Salary"]
    savings = sample_categories["Savings > Emergency Fund"]
    ingest_service.queue.set_splits(
        payroll_id,
        [
            SplitProposal(salary, Decimal("1000.00")),
            SplitProposal(savings, Decimal("500.00")),
            SplitProposal(salary, Decimal("500.00")),
        ],
    )

    result = ingest_service.approve(batch["batch_id"], row_ids=[payroll_id])

    assert result["imported"] == 1
    txn_id = result["transaction_ids"][0]
    assert len(temp_db.get_transaction_splits(txn_id)) == 3
    salary_entries = temp_db.list_audit_entries(scope=SCOPE_CATEGORY, entity_id=salary)
    assert [e.change_amount for e in salary_entries] == [Decimal("1500.00")]


def test_uncategorized_rows_are_skipped(ingest_service, sample_categories, fixtures_dir):
    """Approving a batch leaves rows without a category in the queue."""
    batch = ingest_service.import_file(fixtures_dir / "scenario.csv", "default")
    ingest_service.queue.assign_category(batch["row_ids"][0], sample_categories["Food > Coffee"])

    result = ingest_service.approve(batch["batch_id"])

    assert result["imported"] == 1
    assert result["skipped"] == 1
    assert ingest_service.queue.get_row(batch["row_ids"][1]).status == "queued"


def test_commit_row_requires_category(ingest_service, fixtures_dir):
    """Committing a queued row directly is a validation error."""
    batch = ingest_service.import_file(fixtures_dir / "scenario.csv", "default")

    with pytest.raises(ValidationError, match="no category assigned"):
        ingest_service.engine.commit_row(batch["row_ids"][0])


def test_approve_edits_are_applied_first(ingest_service, sample_categories, fixtures_dir, temp_db):
    """Split edits passed to approve categorize rows before the commit."""
    batch = ingest_service.import_file(fixtures_dir / "scenario.csv", "default")
    coffee_id = batch["row_ids"][0]
    edits = {coffee_id: [SplitProposal(sample_categories["Food > Coffee"], Decimal("-4.50"))]}

    result = ingest_service.approve(batch["batch_id"], edits=edits)

    assert result["imported"] == 1
    assert ingest_service.queue.get_row(coffee_id).status == STATUS_APPROVED


def test_deleted_category_is_a_conflict(
    ingest_service, category_service, sample_account, sample_categories, fixtures_dir, temp_db
):
    """A category deleted after categorizing fails that row only."""
    batch = ingest_service.import_file(fixtures_dir / "scenario.csv", "default", account_id=sample_account.id)
    coffee_id, payroll_id = categorize_scenario(ingest_service, batch, sample_categories)
    category_service.delete_category(sample_categories["Food > Coffee"])

    result = ingest_service.approve(batch["batch_id"])

    assert result["imported"] == 1
    assert len(result["errors"]) == 1
    assert result["errors"][0].startswith(f"Row {coffee_id}:")
    assert ingest_service.queue.get_row(coffee_id).status == STATUS_CATEGORIZED
    assert ingest_service.queue.get_row(payroll_id).status == STATUS_APPROVED
    assert len(temp_db.list_transactions()) == 1
    assert temp_db.get_account(sample_account.id).current_balance == Decimal("2000.00")
    assert all(check.ok for check in AuditService(temp_db).verify_all())


def test_commit_time_duplicate_recheck(ingest_service, sample_categories, fixtures_dir, temp_db):
    """A row whose fingerprint was committed meanwhile becomes a duplicate."""
    batch = ingest_service.import_file(fixtures_dir / "scenario.csv", "default")
    coffee_id, _ = categorize_scenario(ingest_service, batch, sample_categories)
    row = ingest_service.queue.get_row(coffee_id)
    txn_id = temp_db.create_transaction(
        user_id="default",
        date=row.date,
        total_amount=row.amount,
        description=row.description,
        transaction_type="expense",
        fingerprint=row.fingerprint,
    )

    result = ingest_service.approve(batch["batch_id"], row_ids=[coffee_id])

    assert result["imported"] == 0
    assert result["duplicates"] == 1
    row = ingest_service.queue.get_row(coffee_id)
    assert row.status == STATUS_DUPLICATE
    assert row.duplicate_of == f"transaction:{txn_id}"


def test_approving_twice_commits_once(ingest_service, sample_categories, fixtures_dir, temp_db):
    """An approved row is final."""
    batch = ingest_service.import_file(fixtures_dir / "scenario.csv", "default")
    coffee_id, _ = categorize_scenario(ingest_service, batch, sample_categories)

    ingest_service.approve(batch["batch_id"])
    second = ingest_service.engine.commit_rows([ingest_service.queue.get_row(coffee_id)])

    assert second["imported"] == 0
    assert len(second["errors"]) == 1
    assert len(temp_db.list_transactions()) == 2


def test_approval_learns_rule(ingest_service, sample_categories, fixtures_dir):
    """A user's choice becomes a rule for the next import."""
    batch = ingest_service.import_file(fixtures_dir / "scenario.csv", "default")
    categorize_scenario(ingest_service, batch, sample_categories)
    ingest_service.approve(batch["batch_id"])

    hit = ingest_service.advisor.rule_suggestion("default", "Coffee Shop")

    assert hit == (sample_categories["Food > Coffee"], 0.95)


def test_concurrent_approvals_commit_each_row_once(
    ingest_service, sample_account, sample_categories, fixtures_dir, temp_db
):
    """Two engines approving the same rows commit each row exactly once."""
    path = fixtures_dir / "simple.csv"
    batch = ingest_service.import_file(path, "default", account_id=sample_account.id)
    for row_id in batch["row_ids"]:
        ingest_service.queue.assign_category(row_id, sample_categories["Food > Groceries"])

    locks = EntityLockRegistry()
    results = []
    failures = []

    def approve():
        db = create_sqlite_database(database_path=temp_db.database_path)
        try:
            engine = CommitEngine(db, locks=locks)
            rows = db.list_queued_imports(batch_id=batch["batch_id"], statuses=(STATUS_CATEGORIZED,))
            results.append(engine.commit_rows(rows))
        except Exception as e:
            failures.append(e)
        finally:
            db.disconnect()

    threads = [threading.Thread(target=approve) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert failures == []
    assert sum(r["imported"] for r in results) == 4

    temp_db.disconnect()
    assert len(temp_db.list_transactions()) == 4
    account = temp_db.get_account(sample_account.id)
    assert account.current_balance == Decimal("1353.95")
    assert all(check.ok for check in AuditService(temp_db).verify_all())


def test_lock_registry_orders_keys():
    """Holding overlapping key sets in opposite orders does not deadlock."""
    locks = EntityLockRegistry()
    counter = {"value": 0}

    def work(keys):
        for _ in range(200):
            with locks.hold(keys):
                counter["value"] += 1

    threads = [
        threading.Thread(target=work, args=([("account", 1), ("category", 2)],)),
        threading.Thread(target=work, args=([("category", 2), ("account", 1)],)),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert not any(t.is_alive() for t in threads)
    assert counter["value"] == 400


def test_lock_registry_releases_on_error():
    """Locks are released when the block raises."""
    locks = EntityLockRegistry()

    with pytest.raises(RuntimeError):
        with locks.hold([("row", 1)]):
            raise RuntimeError("boom")

    with locks.hold([("row", 1)]):
        pass
