"""Commit engine: turns approved queued rows into ledger transactions."""

from collections import defaultdict
from decimal import Decimal
from typing import Any, Optional, Sequence

from ledgerflow.config import ImportSettings
from ledgerflow.database.base import Database
from ledgerflow.domain.account import AccountService
from ledgerflow.domain.categorization import SOURCE_SCORER, CategorizationAdvisor
from ledgerflow.domain.duplicates import DuplicateDetector
from ledgerflow.domain.entities import (
    CHANGE_TRANSACTION_IMPORT,
    QueuedImport,
    SCOPE_ACCOUNT,
    SCOPE_CATEGORY,
    STATUS_APPROVED,
    STATUS_DUPLICATE,
    STATUS_QUEUED,
    SplitProposal,
)
from ledgerflow.domain.errors import (
    CommitConflictError,
    DomainError,
    NotFoundError,
    ValidationError,
    account_not_found,
    category_not_found,
    queued_import_not_found,
)
from ledgerflow.domain.import_queue import check_transition, finalize_splits
from ledgerflow.domain.locks import EntityLockRegistry
from ledgerflow.domain.merchants import MerchantNormalizer
from ledgerflow.logging_setup import get_logger

logger = get_logger("ledgerflow.domain.commit")

# Balance changes smaller than this are not audited
AUDIT_MIN_CHANGE = Decimal("0.01")

TYPE_INCOME = "income"
TYPE_EXPENSE = "expense"


class CommitEngine:
    """Commits categorized rows one at a time.

    Each row is its own unit of work: a failing row is rolled back and
    reported without affecting the rows before or after it.
    """

    def __init__(
        self,
        db: Database,
        settings: Optional[ImportSettings] = None,
        locks: Optional[EntityLockRegistry] = None,
        merchants: Optional[MerchantNormalizer] = None,
        advisor: Optional[CategorizationAdvisor] = None,
    ):
        """Initialize commit engine.

        Args:
            db: Database instance
            settings: Import settings (split tolerance)
            locks: Lock registry shared by every engine in the process
            merchants: Merchant normalizer used to tag transactions
            advisor: Advisor that learns from committed categories
        """
        self.db = db
        self.settings = settings or ImportSettings()
        self.locks = locks or EntityLockRegistry()
        self.merchants = merchants or MerchantNormalizer(db)
        self.advisor = advisor or CategorizationAdvisor(db)
        self.accounts = AccountService(db)
        self.detector = DuplicateDetector(db, self.settings, locks=self.locks)

    def commit_rows(self, rows: Sequence[QueuedImport]) -> dict[str, Any]:
        """Commit rows in date order.

        Returns:
            Dict with imported, duplicates and errors. Errors are
            ``"Row <id>: <reason>"`` strings for rows left in the queue.
        """
        imported = 0
        duplicates = 0
        errors: list[str] = []
        transaction_ids: list[int] = []

        for row in sorted(rows, key=lambda r: (r.date, r.id)):
            try:
                txn_id = self.commit_row(row.id)
            except DomainError as e:
                errors.append(f"Row {row.id}: {e}")
                logger.warning("Row %d not committed: %s", row.id, e)
                continue
            if txn_id is None:
                duplicates += 1
            else:
                imported += 1
                transaction_ids.append(txn_id)

        logger.info("Committed %d rows (%d duplicates, %d errors)", imported, duplicates, len(errors))
        return {
            "imported": imported,
            "duplicates": duplicates,
            "errors": errors,
            "transaction_ids": transaction_ids,
        }

    def commit_row(self, row_id: int) -> Optional[int]:
        """Commit one categorized row.

        The row's account and categories are locked and the row is re-read
        under the lock, so a concurrent approval of the same row finds it
        already approved. A fingerprint that reached committed history in the
        meantime turns the row into a duplicate instead.

        Returns:
            New transaction ID, or None if the row turned out to be a duplicate

        Raises:
            NotFoundError: If the row does not exist
            InvalidTransitionError: If the row is not categorized
            CommitConflictError: If an entity is gone or changed underneath
            ValidationError: If the splits do not add up
        """
        row = self.db.get_queued_import(row_id)
        if row is None:
            raise NotFoundError(queued_import_not_found(row_id))

        keys: list[tuple[str, int]] = [("row", row.id)]
        if row.account_id is not None:
            keys.append((SCOPE_ACCOUNT, row.account_id))
        keys.extend((SCOPE_CATEGORY, s.category_id) for s in row.splits)

        with self.locks.hold(keys):
            row = self.db.get_queued_import(row_id)
            if row.status == STATUS_QUEUED:
                raise ValidationError("no category assigned")
            check_transition(row, STATUS_APPROVED)
            if any((SCOPE_CATEGORY, s.category_id) not in keys for s in row.splits):
                raise CommitConflictError("categories changed while the row was being committed")

            match = self.detector.find_committed(row.fingerprint, row.account_id)
            if match is not None:
                self.db.update_queued_import(row.id, status=STATUS_DUPLICATE, duplicate_of=str(match))
                logger.info("Row %d already committed as %s", row.id, match)
                return None

            splits = finalize_splits(row.amount, row.splits, self.settings.split_tolerance)
            with self.db.unit_of_work():
                txn_id = self._write(row, splits)

        # Accepted scorer guesses are not rules; user choices and rule hits are
        if len(splits) == 1 and row.suggestion_source != SOURCE_SCORER:
            self.advisor.learn(row.user_id, row.description, splits[0].category_id)
        return txn_id

    def _write(self, row: QueuedImport, splits: Sequence[SplitProposal]) -> int:
        account = None
        if row.account_id is not None:
            account = self.db.get_account(row.account_id)
            if account is None:
                raise CommitConflictError(account_not_found(row.account_id))

        category_deltas: dict[int, Decimal] = defaultdict(Decimal)
        for split in splits:
            category_deltas[split.category_id] += split.amount
        categories = {}
        for category_id in category_deltas:
            category = self.db.get_category(category_id)
            if category is None:
                raise CommitConflictError(category_not_found(category_id))
            categories[category_id] = category

        group = self.merchants.resolve_group(row.user_id, row.description)
        txn_id = self.db.create_transaction(
            user_id=row.user_id,
            date=row.date,
            total_amount=row.amount,
            description=row.description,
            transaction_type=TYPE_INCOME if row.amount > 0 else TYPE_EXPENSE,
            account_id=row.account_id,
            is_historical=row.is_historical,
            fingerprint=row.fingerprint,
            merchant_group_id=group.id,
            queued_import_id=row.id,
        )
        for split in splits:
            self.db.add_transaction_split(txn_id, split.category_id, split.amount)

        # Historical rows are backfill only and never move balances
        if not row.is_historical:
            if account is not None:
                self._apply(
                    SCOPE_ACCOUNT,
                    account.id,
                    self.accounts.balance_change_for(account, row.amount),
                    account.version,
                    row,
                    txn_id,
                )
            for category_id, delta in category_deltas.items():
                self._apply(
                    SCOPE_CATEGORY, category_id, delta, categories[category_id].version, row, txn_id
                )

        self.db.update_queued_import(
            row.id, status=STATUS_APPROVED, splits=splits, transaction_id=txn_id
        )
        return txn_id

    def _apply(
        self,
        scope: str,
        entity_id: int,
        delta: Decimal,
        expected_version: int,
        row: QueuedImport,
        txn_id: int,
    ) -> None:
        if abs(delta) < AUDIT_MIN_CHANGE:
            return
        old_balance, new_balance = self.db.apply_balance_change(
            scope, entity_id, delta, expected_version=expected_version
        )
        self.db.add_audit_entry(
            scope=scope,
            entity_id=entity_id,
            old_balance=old_balance,
            new_balance=new_balance,
            change_amount=delta,
            change_type=CHANGE_TRANSACTION_IMPORT,
            actor=row.user_id,
            transaction_id=txn_id,
            description=row.description,
        )
