"""Account domain service."""

from decimal import Decimal
from typing import Optional
from ledgerflow.database.base import Database
from ledgerflow.domain.entities import Account as AccountEntity
from ledgerflow.domain.errors import ConflictError, NotFoundError, account_not_found


class AccountService:
    """Service for managing accounts and credit cards."""

    def __init__(self, db: Database):
        """Initialize account service.

        Args:
            db: Database instance
        """
        self.db = db

    def create_account(
        self,
        name: str,
        bank_name: str,
        is_credit_card: bool = False,
        initial_balance: Decimal = Decimal("0"),
    ) -> int:
        """Create a new account.

        Args:
            name: Account name
            bank_name: Bank name
            is_credit_card: Whether the balance tracks an amount owed
            initial_balance: Opening balance (amount owed for a credit card)

        Returns:
            Account ID

        Raises:
            ConflictError: If account name already exists
        """
        for acc in self.db.list_accounts():
            if acc.name == name:
                raise ConflictError(f"Account with name '{name}' already exists")

        return self.db.create_account(
            name=name,
            bank_name=bank_name,
            is_credit_card=is_credit_card,
            initial_balance=initial_balance,
        )

    def get_account(self, account_id: int) -> Optional[AccountEntity]:
        """Get account by ID.

        Args:
            account_id: Account ID

        Returns:
            Account entity or None if not found
        """
        return self.db.get_account(account_id)

    def resolve_account(self, ref: str | int) -> AccountEntity:
        """Resolve an account ID or name.

        Names are matched exactly first, then ignoring case.

        Raises:
            NotFoundError: If nothing matches
        """
        if isinstance(ref, int) or str(ref).strip().isdigit():
            account = self.db.get_account(int(ref))
            if account is None:
                raise NotFoundError(account_not_found(int(ref)))
            return account

        accounts = self.db.list_accounts()
        for match in (lambda a: a.name == ref, lambda a: a.name.lower() == ref.strip().lower()):
            found = [a for a in accounts if match(a)]
            if found:
                return found[0]
        raise NotFoundError(f"Account '{ref}' not found")

    def list_accounts(self) -> list[AccountEntity]:
        """List all accounts.

        Returns:
            List of account entities
        """
        return self.db.list_accounts()

    def rename_account(self, account_id: int, name: str, bank_name: Optional[str] = None) -> None:
        """Rename an account.

        Args:
            account_id: Account ID to rename
            name: New account name
            bank_name: Optional new bank name (if None, bank_name is not updated)

        Raises:
            NotFoundError: If account not found
            ConflictError: If the name is taken by another account
        """
        if self.db.get_account(account_id) is None:
            raise NotFoundError(account_not_found(account_id))

        for acc in self.db.list_accounts():
            if acc.id != account_id and acc.name == name:
                raise ConflictError(f"Account with name '{name}' already exists")

        self.db.update_account_name(account_id=account_id, name=name, bank_name=bank_name)

    def delete_account(self, account_id: int) -> None:
        """Delete an account.

        Args:
            account_id: Account ID to delete

        Raises:
            NotFoundError: If account not found
            DependencyError: If transactions or import setups still reference it
        """
        if self.db.get_account(account_id) is None:
            raise NotFoundError(account_not_found(account_id))
        self.db.delete_account(account_id)

    def balance_change_for(self, account: AccountEntity, amount: Decimal) -> Decimal:
        """Return how a signed transaction amount moves this account's balance.

        Income raises a bank balance. A credit card balance is the amount owed,
        so spending (a negative amount) raises it instead.
        """
        return -amount if account.is_credit_card else amount
