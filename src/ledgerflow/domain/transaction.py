"""Transaction domain service (read side of the committed ledger)."""

from datetime import date
from typing import Any, Optional

from ledgerflow.database.base import Database
from ledgerflow.domain.category import CategoryService
from ledgerflow.domain.entities import Transaction as TransactionEntity, TransactionSplit
from ledgerflow.domain.errors import NotFoundError
from ledgerflow.domain.merchants import MerchantNormalizer


class TransactionService:
    """Service for browsing committed transactions."""

    def __init__(self, db: Database, merchants: Optional[MerchantNormalizer] = None):
        """Initialize transaction service.

        Args:
            db: Database instance
            merchants: Normalizer used for display names
        """
        self.db = db
        self.merchants = merchants or MerchantNormalizer(db)
        self.categories = CategoryService(db)

    def get_transaction(self, transaction_id: int) -> TransactionEntity:
        """Get transaction by ID.

        Raises:
            NotFoundError: If transaction not found
        """
        txn = self.db.get_transaction(transaction_id)
        if txn is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return txn

    def list_transactions(
        self,
        user_id: Optional[str] = None,
        account_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[TransactionEntity]:
        """List transactions with optional filters."""
        return self.db.list_transactions(
            user_id=user_id, account_id=account_id, start_date=start_date, end_date=end_date
        )

    def get_splits(self, transaction_id: int) -> list[TransactionSplit]:
        """Get the category splits of a transaction."""
        self.get_transaction(transaction_id)
        return self.db.get_transaction_splits(transaction_id)

    def get_detail(self, transaction_id: int) -> dict[str, Any]:
        """Transaction with its merchant name and category paths."""
        txn = self.get_transaction(transaction_id)
        splits = self.db.get_transaction_splits(txn.id)
        return {
            "transaction": txn,
            "merchant": self.merchants.display_name(txn),
            "splits": [
                {
                    "category_id": s.category_id,
                    "category": self.categories.format_category_path(s.category_id),
                    "amount": s.amount,
                }
                for s in splits
            ],
        }
