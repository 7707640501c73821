"""Tests for the SQLAlchemy database: domain mapping, units of work and versioning."""

import pytest
from datetime import date, datetime
from decimal import Decimal

from ledgerflow.database.factories import create_sqlite_database
from ledgerflow.domain import entities
from ledgerflow.domain.errors import CommitConflictError


class TestDatabaseInterface:
    """Tests to verify Database interface returns domain models."""

    def test_get_account_returns_domain_model(self, temp_db):
        """Test that get_account returns a domain Account entity."""
        account_id = temp_db.create_account(name="Test Account", bank_name="Test Bank")

        account = temp_db.get_account(account_id)

        assert isinstance(account, entities.Account)
        assert account.id == account_id
        assert account.name == "Test Account"
        assert isinstance(account.created_at, datetime)
        assert account.current_balance == Decimal("0")

    def test_queued_import_round_trips_splits(self, temp_db):
        """Test that queued rows keep their proposed splits and source status."""
        category_id = temp_db.create_category(name="Food", parent_id=None)
        temp_db.create_import_batch(
            batch_id="b1",
            user_id="default",
            source_type="csv",
            source_name="x.csv",
            raw_rows=[("Date", "Amount"), ("2024-01-05", "-4.50")],
            raw_payloads=[None, None],
            fingerprint="csv:2:abc",
            template_id=None,
            setup_id=None,
            account_id=None,
            is_historical=False,
        )
        row_id = temp_db.add_queued_import(
            batch_id="b1",
            user_id="default",
            row_index=1,
            date=date(2024, 1, 5),
            amount=Decimal("-4.50"),
            description="COFFEE",
            fingerprint="f" * 64,
            status="queued",
            source_status="posted",
        )
        temp_db.update_queued_import(
            row_id, status="categorized", splits=[entities.SplitProposal(category_id, Decimal("-4.50"))]
        )

        row = temp_db.get_queued_import(row_id)

        assert isinstance(row, entities.QueuedImport)
        assert row.status == "categorized"
        assert row.source_status == "posted"
        assert row.splits == (entities.SplitProposal(category_id, Decimal("-4.50")),)
        batch = temp_db.get_import_batch("b1")
        assert batch.raw_rows == (("Date", "Amount"), ("2024-01-05", "-4.50"))


class TestUnitOfWork:
    """Tests for grouping writes into one transaction."""

    def test_rollback_on_error(self, temp_db):
        """Nothing written inside a failed unit of work survives."""
        with pytest.raises(RuntimeError):
            with temp_db.unit_of_work():
                temp_db.create_account(name="Ghost", bank_name="Bank")
                raise RuntimeError("boom")

        assert temp_db.list_accounts() == []

    def test_nested_units_join_the_outer_one(self, temp_db):
        """Only the outermost unit commits or rolls back."""
        with pytest.raises(RuntimeError):
            with temp_db.unit_of_work():
                temp_db.create_account(name="Outer", bank_name="Bank")
                with temp_db.unit_of_work():
                    temp_db.create_account(name="Inner", bank_name="Bank")
                raise RuntimeError("boom")

        assert temp_db.list_accounts() == []

        with temp_db.unit_of_work():
            temp_db.create_account(name="Outer", bank_name="Bank")
            with temp_db.unit_of_work():
                temp_db.create_account(name="Inner", bank_name="Bank")

        assert sorted(a.name for a in temp_db.list_accounts()) == ["Inner", "Outer"]

    def test_writes_visible_to_other_connections_after_commit(self, temp_db):
        """A second database instance sees committed work only."""
        other = create_sqlite_database(temp_db.database_path)
        try:
            with temp_db.unit_of_work():
                temp_db.create_account(name="Pending", bank_name="Bank")
                assert other.list_accounts() == []
            assert [a.name for a in other.list_accounts()] == ["Pending"]
        finally:
            other.disconnect()


class TestVersioning:
    """Tests for optimistic concurrency on balances."""

    def test_balance_change_bumps_version(self, temp_db):
        """Every balance change increments the entity version."""
        account_id = temp_db.create_account(name="Checking", bank_name="Bank")

        old, new = temp_db.apply_balance_change("account", account_id, Decimal("12.34"))

        assert (old, new) == (Decimal("0"), Decimal("12.34"))
        assert temp_db.get_account(account_id).version == 2

    def test_expected_version_mismatch(self, temp_db):
        """A stale expected version is a commit conflict."""
        category_id = temp_db.create_category(name="Food", parent_id=None)

        with pytest.raises(CommitConflictError, match="changed concurrently"):
            temp_db.apply_balance_change("category", category_id, Decimal("1"), expected_version=5)

    def test_missing_entity_is_a_conflict(self, temp_db):
        """Balance changes on deleted entities are commit conflicts."""
        with pytest.raises(CommitConflictError):
            temp_db.apply_balance_change("account", 999, Decimal("1"))

    def test_stale_write_from_other_session(self, temp_db):
        """Writing an object another session changed meanwhile is detected."""
        account_id = temp_db.create_account(name="Checking", bank_name="Bank")
        temp_db.get_account(account_id)

        other = create_sqlite_database(temp_db.database_path)
        try:
            other.apply_balance_change("account", account_id, Decimal("5"))
        finally:
            other.disconnect()

        with pytest.raises(CommitConflictError, match="Concurrent update"):
            temp_db.update_account_name(account_id, "Renamed")
