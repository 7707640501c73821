"""Duplicate detection: exact fingerprint matches and advisory near matches."""

import hashlib
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Hashable, Optional, Sequence

from ledgerflow.config import ImportSettings
from ledgerflow.database.base import Database
from ledgerflow.domain.entities import (
    CHANGE_TRANSACTION_DELETE,
    CHANGE_TRANSACTION_IMPORT,
    SCOPE_ACCOUNT,
    Transaction,
)
from ledgerflow.domain.errors import (
    CommitConflictError,
    NotFoundError,
    ValidationError,
    account_not_found,
    category_not_found,
)
from ledgerflow.domain.locks import EntityLockRegistry
from ledgerflow.logging_setup import get_logger
from ledgerflow.utils.text import normalize_description

logger = get_logger("ledgerflow.domain.duplicates")

MATCH_COMMITTED = "committed"
MATCH_QUEUED = "queued"
MATCH_BATCH = "batch"


@dataclass(frozen=True)
class DuplicateMatch:
    """Where an exact duplicate was found."""

    kind: str
    reference: str

    def __str__(self) -> str:
        return self.reference


@dataclass(frozen=True)
class NearDuplicateGroup:
    """Committed transactions that may be the same real-world payment."""

    key: str
    amount: Decimal
    transactions: tuple[Transaction, ...]
    dismissed: bool = False

    @property
    def transaction_ids(self) -> tuple[int, ...]:
        return tuple(t.id for t in self.transactions)


def group_key(transactions: Sequence[Transaction]) -> str:
    """Content key of a near-duplicate group.

    Built from amount, date and normalized description of every member, so it
    does not depend on row ids that can be deleted and reused.
    """
    items = sorted(
        f"{t.total_amount:.2f}|{t.date.isoformat()}|{normalize_description(t.description)}"
        for t in transactions
    )
    return hashlib.sha256("||".join(items).encode("utf-8")).hexdigest()


class DuplicateDetector:
    """Finds duplicates of candidate rows and committed transactions."""

    def __init__(
        self,
        db: Database,
        settings: Optional[ImportSettings] = None,
        locks: Optional[EntityLockRegistry] = None,
    ):
        """Initialize duplicate detector.

        Args:
            db: Database instance
            settings: Import settings (near-duplicate window)
            locks: Lock registry shared with the commit engine
        """
        self.db = db
        self.settings = settings or ImportSettings()
        self.locks = locks or EntityLockRegistry()

    def find_committed(self, fingerprint: str, account_id: Optional[int]) -> Optional[DuplicateMatch]:
        """Check committed history for this fingerprint in the same account."""
        txn = self.db.find_transaction_by_fingerprint(fingerprint, account_id)
        if txn is None:
            return None
        return DuplicateMatch(MATCH_COMMITTED, f"transaction:{txn.id}")

    def find_exact(
        self, fingerprint: str, account_id: Optional[int], batch_id: str
    ) -> Optional[DuplicateMatch]:
        """Check committed history, then active rows of any batch.

        Rows of the current batch are written as they are checked, so an
        earlier sibling with the same fingerprint is found here too.
        Discarded and duplicate rows never block a row.
        """
        match = self.find_committed(fingerprint, account_id)
        if match is not None:
            return match
        row = self.db.find_active_queued_import(fingerprint, account_id)
        if row is None:
            return None
        kind = MATCH_BATCH if row.batch_id == batch_id else MATCH_QUEUED
        return DuplicateMatch(kind, f"queued:{row.id}")

    def find_near_duplicates(
        self,
        user_id: str,
        account_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        include_dismissed: bool = False,
    ) -> list[NearDuplicateGroup]:
        """Sweep committed transactions for likely duplicates.

        Transactions in the same account with the same signed amount are
        clustered when each lies within the window of the cluster's first
        date. Nothing is changed; the result is for review.

        Args:
            user_id: Owner of the transactions
            account_id: Optional account filter
            start_date: Optional start of the date range
            end_date: Optional end of the date range
            include_dismissed: Also return groups the user dismissed

        Returns:
            List of groups, oldest first
        """
        window = self.settings.near_duplicate_days
        transactions = self.db.list_transactions(
            user_id=user_id, account_id=account_id, start_date=start_date, end_date=end_date
        )
        dismissed = {r.group_key for r in self.db.list_duplicate_reviews(user_id)}

        buckets: dict[tuple[Optional[int], Decimal], list[Transaction]] = defaultdict(list)
        for txn in transactions:
            buckets[(txn.account_id, txn.total_amount)].append(txn)

        groups: list[NearDuplicateGroup] = []
        for (_, amount), members in buckets.items():
            if len(members) < 2:
                continue
            members.sort(key=lambda t: (t.date, t.id))
            cluster = [members[0]]
            for txn in members[1:]:
                if (txn.date - cluster[0].date).days <= window:
                    cluster.append(txn)
                    continue
                self._emit(groups, cluster, amount, dismissed, include_dismissed)
                cluster = [txn]
            self._emit(groups, cluster, amount, dismissed, include_dismissed)

        groups.sort(key=lambda g: (g.transactions[0].date, g.transactions[0].id))
        return groups

    @staticmethod
    def _emit(groups, cluster, amount, dismissed, include_dismissed) -> None:
        if len(cluster) < 2:
            return
        key = group_key(cluster)
        is_dismissed = key in dismissed
        if is_dismissed and not include_dismissed:
            return
        groups.append(
            NearDuplicateGroup(key=key, amount=amount, transactions=tuple(cluster), dismissed=is_dismissed)
        )

    def dismiss(self, user_id: str, transaction_ids: Sequence[int]) -> str:
        """Remember that a group is not a duplicate.

        Args:
            user_id: Owner of the transactions
            transaction_ids: Members of the group

        Returns:
            The group's content key

        Raises:
            ValidationError: If fewer than two transactions are given
            NotFoundError: If a transaction does not exist
        """
        ids = sorted(set(transaction_ids))
        if len(ids) < 2:
            raise ValidationError("A duplicate group needs at least two transactions")
        transactions = [self._owned(user_id, txn_id) for txn_id in ids]

        key = group_key(transactions)
        self.db.add_duplicate_review(user_id, key, ids)
        logger.info("Dismissed near-duplicate group %s (%d transactions)", key[:12], len(ids))
        return key

    def _owned(self, user_id: str, txn_id: int) -> Transaction:
        txn = self.db.get_transaction(txn_id)
        if txn is None or txn.user_id != user_id:
            raise NotFoundError(f"Transaction {txn_id} not found")
        return txn

    def delete_duplicates(self, user_id: str, keep_id: int, remove_ids: Sequence[int]) -> list[int]:
        """Delete transactions that duplicate the one being kept.

        Every balance change the removed transactions made at commit time is
        reversed with a ``transaction_delete`` audit entry, so the audit trail
        still explains every balance afterwards. All removals happen in one
        unit of work under the locks the commit engine uses.

        Args:
            user_id: Owner of the transactions
            keep_id: Transaction that stays
            remove_ids: Transactions to delete

        Returns:
            IDs of the deleted transactions

        Raises:
            ValidationError: If nothing is removed, keep_id is among the
                removals, or a removal differs in account or amount
            NotFoundError: If a transaction does not exist
            CommitConflictError: If an account or category changes underneath
        """
        ids = sorted(set(remove_ids))
        if not ids:
            raise ValidationError("No transactions to delete")
        if keep_id in ids:
            raise ValidationError(f"Transaction {keep_id} cannot be both kept and deleted")
        keep = self._owned(user_id, keep_id)
        for txn_id in ids:
            txn = self._owned(user_id, txn_id)
            if (txn.account_id, txn.total_amount) != (keep.account_id, keep.total_amount):
                raise ValidationError(
                    f"Transaction {txn_id} differs from transaction {keep_id} in account or amount"
                )

        keys: list[Hashable] = [("transaction", txn_id) for txn_id in ids]
        for txn_id in ids:
            keys.extend((e.scope, e.entity_id) for e in self.db.list_audit_entries(transaction_id=txn_id))

        with self.locks.hold(keys):
            with self.db.unit_of_work():
                for txn_id in ids:
                    self._reverse_and_delete(user_id, self._owned(user_id, txn_id))

        logger.info("Deleted %d duplicate(s) of transaction %d", len(ids), keep_id)
        return ids

    def _reverse_and_delete(self, user_id: str, txn: Transaction) -> None:
        net: dict[tuple[str, int], Decimal] = defaultdict(Decimal)
        for entry in self.db.list_audit_entries(transaction_id=txn.id):
            if entry.change_type == CHANGE_TRANSACTION_IMPORT:
                net[(entry.scope, entry.entity_id)] += entry.change_amount

        for (scope, entity_id), change in net.items():
            if scope == SCOPE_ACCOUNT:
                entity, missing = self.db.get_account(entity_id), account_not_found(entity_id)
            else:
                entity, missing = self.db.get_category(entity_id), category_not_found(entity_id)
            if entity is None:
                raise CommitConflictError(missing)
            old_balance, new_balance = self.db.apply_balance_change(
                scope, entity_id, -change, expected_version=entity.version
            )
            self.db.add_audit_entry(
                scope=scope,
                entity_id=entity_id,
                old_balance=old_balance,
                new_balance=new_balance,
                change_amount=-change,
                change_type=CHANGE_TRANSACTION_DELETE,
                actor=user_id,
                transaction_id=txn.id,
                description=txn.description,
            )
        self.db.delete_transaction(txn.id)
