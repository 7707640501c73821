"""Balance audit domain service."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from ledgerflow.database.base import Database
from ledgerflow.domain.entities import BalanceAuditEntry, SCOPE_ACCOUNT, SCOPE_CATEGORY
from ledgerflow.domain.errors import NotFoundError, account_not_found, category_not_found


@dataclass(frozen=True)
class AuditCheck:
    """Result of reconciling one entity's balance against its audit trail."""

    scope: str
    entity_id: int
    name: str
    initial_balance: Decimal
    current_balance: Decimal
    audited_change: Decimal

    @property
    def expected_change(self) -> Decimal:
        return self.current_balance - self.initial_balance

    @property
    def difference(self) -> Decimal:
        return self.expected_change - self.audited_change

    @property
    def ok(self) -> bool:
        return self.difference == 0


class AuditService:
    """Read side of the append-only balance audit trail."""

    def __init__(self, db: Database):
        """Initialize audit service.

        Args:
            db: Database instance
        """
        self.db = db

    def list_entries(
        self,
        scope: Optional[str] = None,
        entity_id: Optional[int] = None,
        transaction_id: Optional[int] = None,
    ) -> list[BalanceAuditEntry]:
        """List audit entries in the order they were written."""
        return self.db.list_audit_entries(scope=scope, entity_id=entity_id, transaction_id=transaction_id)

    def verify_category(self, category_id: int) -> AuditCheck:
        """Check that a category's audited changes explain its balance.

        Raises:
            NotFoundError: If category not found
        """
        category = self.db.get_category(category_id)
        if category is None:
            raise NotFoundError(category_not_found(category_id))
        return AuditCheck(
            scope=SCOPE_CATEGORY,
            entity_id=category.id,
            name=category.name,
            initial_balance=category.initial_balance,
            current_balance=category.current_balance,
            audited_change=self.db.sum_audit_changes(SCOPE_CATEGORY, category.id),
        )

    def verify_account(self, account_id: int) -> AuditCheck:
        """Check that an account's audited changes explain its balance.

        Raises:
            NotFoundError: If account not found
        """
        account = self.db.get_account(account_id)
        if account is None:
            raise NotFoundError(account_not_found(account_id))
        return AuditCheck(
            scope=SCOPE_ACCOUNT,
            entity_id=account.id,
            name=account.name,
            initial_balance=account.initial_balance,
            current_balance=account.current_balance,
            audited_change=self.db.sum_audit_changes(SCOPE_ACCOUNT, account.id),
        )

    def verify_all(self) -> list[AuditCheck]:
        """Reconcile every account and category."""
        checks = [self.verify_account(a.id) for a in self.db.list_accounts()]
        checks.extend(self.verify_category(c.id) for c in self.db.list_all_categories())
        return checks
