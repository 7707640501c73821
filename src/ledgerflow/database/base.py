"""Abstract database interface."""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Optional, Any, Iterable, Sequence
from datetime import date, datetime
from decimal import Decimal

# Import entities directly to avoid circular import through domain/__init__.py
from ledgerflow.domain.entities import (
    Account,
    Category,
    MappingTemplate,
    ImportSetup,
    ImportBatch,
    QueuedImport,
    SplitProposal,
    Transaction,
    TransactionSplit,
    BalanceAuditEntry,
    GlobalMerchant,
    GlobalMerchantPattern,
    MerchantGroup,
    MerchantPattern,
    CategoryRule,
    DuplicateReview,
    SIGN_POSITIVE_IS_INCOME,
)


class Database(ABC):
    """Abstract database interface for ledgerflow.

    Every write commits on its own unless it runs inside ``unit_of_work()``,
    in which case the outermost unit commits once or rolls everything back.
    """

    @abstractmethod
    def connect(self) -> None:
        """Connect to the database."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the database."""
        pass

    @abstractmethod
    def initialize_schema(self) -> None:
        """Initialize database schema (create tables)."""
        pass

    @abstractmethod
    def unit_of_work(self) -> AbstractContextManager[None]:
        """Group writes into one atomic transaction (nestable)."""
        pass

    # Account operations
    @abstractmethod
    def create_account(
        self,
        name: str,
        bank_name: str,
        is_credit_card: bool = False,
        initial_balance: Decimal = Decimal("0"),
    ) -> int:
        """Create a new account. Returns account ID."""
        pass

    @abstractmethod
    def get_account(self, account_id: int) -> Optional[Account]:
        """Get account by ID."""
        pass

    @abstractmethod
    def list_accounts(self) -> list[Account]:
        """List all accounts."""
        pass

    @abstractmethod
    def update_account_name(self, account_id: int, name: str, bank_name: Optional[str] = None) -> None:
        """Update account name and optionally bank name."""
        pass

    @abstractmethod
    def delete_account(self, account_id: int) -> None:
        """Delete an account."""
        pass

    @abstractmethod
    def get_account_transaction_count(self, account_id: int) -> int:
        """Get count of transactions associated with an account."""
        pass

    @abstractmethod
    def get_account_setup_count(self, account_id: int) -> int:
        """Get count of import setups targeting an account."""
        pass

    # Category operations
    @abstractmethod
    def create_category(
        self, name: str, parent_id: Optional[int] = None, initial_balance: Decimal = Decimal("0")
    ) -> int:
        """Create a category. Returns category ID."""
        pass

    @abstractmethod
    def get_category(self, category_id: int) -> Optional[Category]:
        """Get category by ID."""
        pass

    @abstractmethod
    def get_category_by_path(self, path: str) -> Optional[Category]:
        """Get category by path (e.g., 'Food & Dining > Groceries')."""
        pass

    @abstractmethod
    def list_categories(self, parent_id: Optional[int] = None) -> list[Category]:
        """List child categories of parent_id (root categories when None)."""
        pass

    @abstractmethod
    def list_all_categories(self) -> list[Category]:
        """List every category ordered by name."""
        pass

    @abstractmethod
    def get_category_tree(self) -> list[dict[str, Any]]:
        """Get full category tree with hierarchy.

        Returns a list of dictionaries with category data and nested 'children' lists.
        """
        pass

    @abstractmethod
    def delete_category(self, category_id: int) -> None:
        """Delete a category."""
        pass

    @abstractmethod
    def get_category_split_count(self, category_id: int) -> int:
        """Get count of transaction splits referencing a category."""
        pass

    # Balance operations
    @abstractmethod
    def apply_balance_change(
        self,
        scope: str,
        entity_id: int,
        delta: Decimal,
        expected_version: Optional[int] = None,
    ) -> tuple[Decimal, Decimal]:
        """Add delta to an account or category balance. Returns (old, new).

        Raises CommitConflictError when the entity is gone or its version no
        longer matches expected_version.
        """
        pass

    # Audit operations (append-only: there is no update or delete)
    @abstractmethod
    def add_audit_entry(
        self,
        scope: str,
        entity_id: int,
        old_balance: Decimal,
        new_balance: Decimal,
        change_amount: Decimal,
        change_type: str,
        actor: str,
        transaction_id: Optional[int] = None,
        transfer_reference: Optional[str] = None,
        description: Optional[str] = None,
    ) -> int:
        """Append an audit entry. Returns entry ID."""
        pass

    @abstractmethod
    def list_audit_entries(
        self,
        scope: Optional[str] = None,
        entity_id: Optional[int] = None,
        transaction_id: Optional[int] = None,
    ) -> list[BalanceAuditEntry]:
        """List audit entries in insertion order."""
        pass

    @abstractmethod
    def sum_audit_changes(self, scope: str, entity_id: int) -> Decimal:
        """Sum change_amount over all entries of one entity."""
        pass

    # Mapping template operations
    @abstractmethod
    def create_mapping_template(
        self,
        user_id: str,
        name: str,
        source_type: str,
        fingerprint: str,
        column_count: int,
        date_column: int,
        description_column: Optional[int],
        amount_column: Optional[int] = None,
        debit_column: Optional[int] = None,
        credit_column: Optional[int] = None,
        status_column: Optional[int] = None,
        type_column: Optional[int] = None,
        sign_convention: str = SIGN_POSITIVE_IS_INCOME,
        date_format: Optional[str] = None,
        has_headers: bool = True,
        skip_rows: int = 0,
    ) -> int:
        """Create a mapping template. Returns template ID."""
        pass

    @abstractmethod
    def get_mapping_template(self, template_id: int) -> Optional[MappingTemplate]:
        """Get mapping template by ID."""
        pass

    @abstractmethod
    def get_mapping_template_by_name(self, user_id: str, name: str) -> Optional[MappingTemplate]:
        """Get a user's mapping template by name."""
        pass

    @abstractmethod
    def find_mapping_template(self, user_id: str, fingerprint: str) -> Optional[MappingTemplate]:
        """Find the most used template of a user with this structural fingerprint."""
        pass

    @abstractmethod
    def list_mapping_templates(self, user_id: Optional[str] = None) -> list[MappingTemplate]:
        """List mapping templates, optionally for one user."""
        pass

    @abstractmethod
    def record_template_use(self, template_id: int, used_at: datetime) -> None:
        """Increment usage_count and set last_used_at."""
        pass

    @abstractmethod
    def delete_mapping_template(self, template_id: int) -> None:
        """Delete a mapping template."""
        pass

    # Import setup operations
    @abstractmethod
    def create_import_setup(
        self,
        user_id: str,
        name: str,
        source_type: str,
        account_id: Optional[int] = None,
        template_id: Optional[int] = None,
        email_address: Optional[str] = None,
        provider: Optional[str] = None,
        access_token: Optional[str] = None,
        account_refs: Sequence[str] = (),
        is_historical: bool = False,
    ) -> int:
        """Create an import setup. Returns setup ID."""
        pass

    @abstractmethod
    def get_import_setup(self, setup_id: int) -> Optional[ImportSetup]:
        """Get import setup by ID."""
        pass

    @abstractmethod
    def list_import_setups(
        self, user_id: Optional[str] = None, source_type: Optional[str] = None
    ) -> list[ImportSetup]:
        """List import setups, optionally filtered."""
        pass

    @abstractmethod
    def find_import_setups_by_email(self, addresses: Iterable[str]) -> list[ImportSetup]:
        """Find active email setups whose address is one of the given addresses."""
        pass

    @abstractmethod
    def update_import_setup_status(
        self,
        setup_id: int,
        last_fetch_at: datetime,
        last_successful_fetch_at: Optional[datetime],
        last_error: Optional[str],
        error_count: int,
        sync_cursors: dict[str, str],
    ) -> None:
        """Record the outcome of one fetch cycle."""
        pass

    @abstractmethod
    def set_import_setup_active(self, setup_id: int, is_active: bool) -> None:
        """Enable or disable an import setup."""
        pass

    # Import batch operations
    @abstractmethod
    def create_import_batch(
        self,
        batch_id: str,
        user_id: str,
        source_type: str,
        source_name: str,
        raw_rows: Sequence[Sequence[str]],
        raw_payloads: Sequence[Optional[dict[str, Any]]],
        fingerprint: Optional[str] = None,
        template_id: Optional[int] = None,
        setup_id: Optional[int] = None,
        account_id: Optional[int] = None,
        is_historical: bool = False,
    ) -> str:
        """Store a batch's raw rows and metadata. Returns batch ID."""
        pass

    @abstractmethod
    def get_import_batch(self, batch_id: str) -> Optional[ImportBatch]:
        """Get import batch by ID."""
        pass

    @abstractmethod
    def list_import_batches(self, user_id: Optional[str] = None) -> list[ImportBatch]:
        """List import batches, newest first."""
        pass

    @abstractmethod
    def update_import_batch_template(
        self, batch_id: str, template_id: Optional[int], fingerprint: Optional[str]
    ) -> None:
        """Point a batch at the template its current rows were mapped with."""
        pass

    # Queue operations
    @abstractmethod
    def add_queued_import(
        self,
        batch_id: str,
        user_id: str,
        row_index: int,
        date: date,
        amount: Decimal,
        description: str,
        fingerprint: str,
        status: str,
        account_id: Optional[int] = None,
        setup_id: Optional[int] = None,
        source_status: Optional[str] = None,
        is_historical: bool = False,
        duplicate_of: Optional[str] = None,
    ) -> int:
        """Stage one row. Returns queued import ID."""
        pass

    @abstractmethod
    def get_queued_import(self, row_id: int) -> Optional[QueuedImport]:
        """Get a queued import by ID."""
        pass

    @abstractmethod
    def list_queued_imports(
        self,
        batch_id: Optional[str] = None,
        statuses: Optional[Sequence[str]] = None,
        user_id: Optional[str] = None,
    ) -> list[QueuedImport]:
        """List queued imports ordered by date then ID."""
        pass

    @abstractmethod
    def update_queued_import(
        self,
        row_id: int,
        status: Optional[str] = None,
        splits: Optional[Sequence[SplitProposal]] = None,
        suggestion_source: Optional[str] = None,
        suggestion_confidence: Optional[float] = None,
        duplicate_of: Optional[str] = None,
        transaction_id: Optional[int] = None,
    ) -> None:
        """Update the given fields of a queued import (None leaves a field unchanged)."""
        pass

    @abstractmethod
    def find_active_queued_import(
        self,
        fingerprint: str,
        account_id: Optional[int],
        exclude_batch_id: Optional[str] = None,
    ) -> Optional[QueuedImport]:
        """Find a queued or categorized row with this fingerprint in the same account scope."""
        pass

    # Transaction operations
    @abstractmethod
    def create_transaction(
        self,
        user_id: str,
        date: date,
        total_amount: Decimal,
        description: str,
        transaction_type: str,
        account_id: Optional[int] = None,
        is_historical: bool = False,
        fingerprint: Optional[str] = None,
        merchant_group_id: Optional[int] = None,
        queued_import_id: Optional[int] = None,
    ) -> int:
        """Create a committed transaction. Returns transaction ID."""
        pass

    @abstractmethod
    def add_transaction_split(self, transaction_id: int, category_id: int, amount: Decimal) -> int:
        """Add a split to a transaction. Returns split ID."""
        pass

    @abstractmethod
    def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        """Get transaction by ID."""
        pass

    @abstractmethod
    def get_transaction_splits(self, transaction_id: int) -> list[TransactionSplit]:
        """Get the splits of a transaction."""
        pass

    @abstractmethod
    def delete_transaction(self, transaction_id: int) -> None:
        """Delete a transaction and its splits.

        Queued imports committed as this transaction lose their link; audit
        entries keep the ID as a historical reference.
        """
        pass

    @abstractmethod
    def list_transactions(
        self,
        user_id: Optional[str] = None,
        account_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        merchant_group_id: Optional[int] = None,
    ) -> list[Transaction]:
        """List transactions with optional filters, ordered by date then ID."""
        pass

    @abstractmethod
    def find_transaction_by_fingerprint(
        self, fingerprint: str, account_id: Optional[int]
    ) -> Optional[Transaction]:
        """Find a committed transaction with this fingerprint in the same account scope."""
        pass

    @abstractmethod
    def set_transactions_merchant_group(self, transaction_ids: Sequence[int], group_id: int) -> int:
        """Point transactions at a merchant group. Returns number updated."""
        pass

    @abstractmethod
    def reassign_transactions_merchant_group(self, from_group_id: int, to_group_id: int) -> int:
        """Move every transaction of one merchant group to another. Returns number moved."""
        pass

    # Merchant operations
    @abstractmethod
    def create_global_merchant(self, display_name: str) -> int:
        """Create a global merchant. Returns its ID."""
        pass

    @abstractmethod
    def get_global_merchant(self, merchant_id: int) -> Optional[GlobalMerchant]:
        """Get global merchant by ID."""
        pass

    @abstractmethod
    def get_global_merchant_by_name(self, display_name: str) -> Optional[GlobalMerchant]:
        """Get global merchant by display name."""
        pass

    @abstractmethod
    def list_global_merchants(self) -> list[GlobalMerchant]:
        """List global merchants."""
        pass

    @abstractmethod
    def delete_global_merchant(self, merchant_id: int) -> None:
        """Delete a global merchant."""
        pass

    @abstractmethod
    def add_global_pattern(self, global_merchant_id: int, pattern: str, normalized_pattern: str) -> int:
        """Attach a pattern to a global merchant. Returns pattern ID."""
        pass

    @abstractmethod
    def find_global_pattern(self, normalized_pattern: str) -> Optional[GlobalMerchantPattern]:
        """Find the global pattern for a normalized description."""
        pass

    @abstractmethod
    def list_global_patterns(self, global_merchant_id: int) -> list[GlobalMerchantPattern]:
        """List patterns of a global merchant."""
        pass

    @abstractmethod
    def move_global_patterns(self, from_merchant_id: int, to_merchant_id: int) -> int:
        """Reassign every pattern of one global merchant to another. Returns number moved."""
        pass

    @abstractmethod
    def create_merchant_group(
        self, user_id: str, display_name: str, global_merchant_id: Optional[int] = None
    ) -> int:
        """Create a user merchant group. Returns group ID."""
        pass

    @abstractmethod
    def get_merchant_group(self, group_id: int) -> Optional[MerchantGroup]:
        """Get merchant group by ID."""
        pass

    @abstractmethod
    def list_merchant_groups(
        self, user_id: Optional[str] = None, global_merchant_id: Optional[int] = None
    ) -> list[MerchantGroup]:
        """List merchant groups, optionally filtered."""
        pass

    @abstractmethod
    def find_merchant_group(self, user_id: str, global_merchant_id: int) -> Optional[MerchantGroup]:
        """Find a user's group linked to a global merchant."""
        pass

    @abstractmethod
    def update_merchant_group(
        self,
        group_id: int,
        display_name: Optional[str] = None,
        global_merchant_id: Optional[int] = None,
    ) -> None:
        """Update a merchant group (None leaves a field unchanged)."""
        pass

    @abstractmethod
    def delete_merchant_group(self, group_id: int) -> None:
        """Delete a merchant group."""
        pass

    @abstractmethod
    def add_merchant_pattern(
        self, user_id: str, merchant_group_id: int, pattern: str, normalized_pattern: str
    ) -> int:
        """Map a user pattern to a group. Returns pattern ID."""
        pass

    @abstractmethod
    def find_merchant_pattern(self, user_id: str, normalized_pattern: str) -> Optional[MerchantPattern]:
        """Find a user's pattern by normalized description."""
        pass

    @abstractmethod
    def list_merchant_patterns(self, merchant_group_id: int) -> list[MerchantPattern]:
        """List patterns of a merchant group."""
        pass

    @abstractmethod
    def move_merchant_patterns(self, from_group_id: int, to_group_id: int) -> int:
        """Reassign every pattern of one group to another. Returns number moved."""
        pass

    # Categorization rule operations
    @abstractmethod
    def record_category_rule(
        self, user_id: str, normalized_pattern: str, category_id: int, used_at: datetime
    ) -> None:
        """Create a rule or bump its usage count."""
        pass

    @abstractmethod
    def list_category_rules(
        self, user_id: str, normalized_pattern: Optional[str] = None
    ) -> list[CategoryRule]:
        """List a user's rules, most used first."""
        pass

    # Duplicate review operations
    @abstractmethod
    def add_duplicate_review(
        self, user_id: str, group_key: str, transaction_ids: Sequence[int]
    ) -> int:
        """Record a dismissed near-duplicate group. Returns review ID."""
        pass

    @abstractmethod
    def list_duplicate_reviews(self, user_id: str) -> list[DuplicateReview]:
        """List a user's dismissed groups."""
        pass

    # Scorer usage operations
    @abstractmethod
    def get_scorer_usage(self, user_id: str, feature: str, usage_date: date) -> int:
        """Get number of successful scorer calls on a day."""
        pass

    @abstractmethod
    def increment_scorer_usage(self, user_id: str, feature: str, usage_date: date) -> int:
        """Count one successful scorer call. Returns the new count."""
        pass
