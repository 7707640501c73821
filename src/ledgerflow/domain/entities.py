"""Domain model entities for ledgerflow.

These are pure data classes representing business concepts, independent of
database schema. Services and the CLI only ever see these; the database layer
converts its ORM rows through ``ledgerflow.database.mappers``.
"""

from dataclasses import dataclass, field
from datetime import datetime, date
from decimal import Decimal
from typing import Any, Optional


# Queue lifecycle states
STATUS_QUEUED = "queued"
STATUS_DUPLICATE = "duplicate"
STATUS_CATEGORIZED = "categorized"
STATUS_APPROVED = "approved"
STATUS_DISCARDED = "discarded"

ACTIVE_STATUSES = (STATUS_QUEUED, STATUS_CATEGORIZED)

# Amount sign conventions for mapping templates
SIGN_POSITIVE_IS_INCOME = "positive_is_income"
SIGN_POSITIVE_IS_EXPENSE = "positive_is_expense"
SIGN_SEPARATE_DEBIT_CREDIT = "separate_debit_credit"
SIGN_SEPARATE_COLUMN = "separate_column"

SIGN_CONVENTIONS = (
    SIGN_POSITIVE_IS_INCOME,
    SIGN_POSITIVE_IS_EXPENSE,
    SIGN_SEPARATE_DEBIT_CREDIT,
    SIGN_SEPARATE_COLUMN,
)

# Source types
SOURCE_CSV = "csv"
SOURCE_EMAIL = "email"
SOURCE_BANK = "bank"

SOURCE_TYPES = (SOURCE_CSV, SOURCE_EMAIL, SOURCE_BANK)

# Audit scopes and change types
SCOPE_ACCOUNT = "account"
SCOPE_CATEGORY = "category"
CHANGE_TRANSACTION_IMPORT = "transaction_import"
CHANGE_TRANSACTION_DELETE = "transaction_delete"
CHANGE_TRANSFER_FROM = "transfer_from"
CHANGE_TRANSFER_TO = "transfer_to"


@dataclass(frozen=True)
class Account:
    """Bank account or credit card domain entity.

    For a credit card the balance is the amount owed, so expenses increase it.
    """

    id: int
    name: str
    bank_name: str
    created_at: datetime
    is_credit_card: bool = False
    initial_balance: Decimal = Decimal("0")
    current_balance: Decimal = Decimal("0")
    version: int = 1


@dataclass(frozen=True)
class Category:
    """Envelope category with hierarchical structure and a running balance."""

    id: int
    name: str
    parent_id: Optional[int]
    created_at: datetime
    initial_balance: Decimal = Decimal("0")
    current_balance: Decimal = Decimal("0")
    version: int = 1


@dataclass(frozen=True)
class MappingTemplate:
    """Reusable column mapping, matched to future imports by structural fingerprint."""

    id: int
    user_id: str
    name: str
    source_type: str
    fingerprint: str
    column_count: int
    date_column: int
    description_column: Optional[int]
    amount_column: Optional[int] = None
    debit_column: Optional[int] = None
    credit_column: Optional[int] = None
    status_column: Optional[int] = None
    type_column: Optional[int] = None
    sign_convention: str = SIGN_POSITIVE_IS_INCOME
    date_format: Optional[str] = None
    has_headers: bool = True
    skip_rows: int = 0
    usage_count: int = 0
    last_used_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class ImportSetup:
    """Configuration of an automatic import source (email inbox or bank connection)."""

    id: int
    user_id: str
    name: str
    source_type: str
    account_id: Optional[int]
    template_id: Optional[int] = None
    email_address: Optional[str] = None
    provider: Optional[str] = None
    access_token: Optional[str] = None
    account_refs: tuple[str, ...] = ()
    is_historical: bool = False
    is_active: bool = True
    last_fetch_at: Optional[datetime] = None
    last_successful_fetch_at: Optional[datetime] = None
    last_error: Optional[str] = None
    error_count: int = 0
    sync_cursors: dict[str, str] = field(default_factory=dict)
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class ImportBatch:
    """One ingestion event: a file, an email attachment, or one account's fetch."""

    id: str
    user_id: str
    source_type: str
    source_name: str
    raw_rows: tuple[tuple[str, ...], ...]
    raw_payloads: tuple[Optional[dict[str, Any]], ...]
    fingerprint: Optional[str]
    template_id: Optional[int]
    setup_id: Optional[int]
    account_id: Optional[int]
    is_historical: bool
    created_at: datetime


@dataclass(frozen=True)
class SplitProposal:
    """Proposed allocation of part of a row's amount to a category."""

    category_id: int
    amount: Decimal


@dataclass(frozen=True)
class CanonicalRow:
    """A mapped row: the shape every source is reduced to before queueing."""

    row_index: int
    date: date
    amount: Decimal
    description: str
    status: Optional[str] = None
    discriminator: Optional[str] = None


@dataclass(frozen=True)
class QueuedImport:
    """A staged candidate transaction."""

    id: int
    batch_id: str
    user_id: str
    row_index: int
    date: date
    amount: Decimal
    description: str
    fingerprint: str
    status: str
    account_id: Optional[int] = None
    setup_id: Optional[int] = None
    source_status: Optional[str] = None
    is_historical: bool = False
    splits: tuple[SplitProposal, ...] = ()
    suggestion_source: Optional[str] = None
    suggestion_confidence: Optional[float] = None
    duplicate_of: Optional[str] = None
    transaction_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class Transaction:
    """Committed ledger transaction. Positive amounts are income."""

    id: int
    user_id: str
    date: date
    total_amount: Decimal
    description: str
    transaction_type: str
    account_id: Optional[int]
    is_historical: bool
    fingerprint: Optional[str]
    merchant_group_id: Optional[int] = None
    queued_import_id: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class TransactionSplit:
    """Portion of a transaction allocated to one category."""

    id: int
    transaction_id: int
    category_id: int
    amount: Decimal


@dataclass(frozen=True)
class BalanceAuditEntry:
    """Append-only record of one balance mutation."""

    id: int
    scope: str
    entity_id: int
    old_balance: Decimal
    new_balance: Decimal
    change_amount: Decimal
    change_type: str
    actor: str
    created_at: datetime
    transaction_id: Optional[int] = None
    transfer_reference: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class GlobalMerchant:
    """Shared merchant identity that users' groups may link to."""

    id: int
    display_name: str
    created_at: datetime


@dataclass(frozen=True)
class GlobalMerchantPattern:
    """Description pattern owned by a global merchant."""

    id: int
    global_merchant_id: int
    pattern: str
    normalized_pattern: str


@dataclass(frozen=True)
class MerchantGroup:
    """Per-user cluster of description patterns sharing a display identity."""

    id: int
    user_id: str
    display_name: str
    global_merchant_id: Optional[int]
    created_at: datetime


@dataclass(frozen=True)
class MerchantPattern:
    """A user's description pattern mapped to one of their merchant groups."""

    id: int
    user_id: str
    merchant_group_id: int
    pattern: str
    normalized_pattern: str


@dataclass(frozen=True)
class CategoryRule:
    """Learned description-to-category memory from user decisions."""

    id: int
    user_id: str
    normalized_pattern: str
    category_id: int
    usage_count: int
    last_used_at: Optional[datetime] = None


@dataclass(frozen=True)
class DuplicateReview:
    """A dismissed near-duplicate group, keyed by its content."""

    id: int
    user_id: str
    group_key: str
    transaction_ids: tuple[int, ...]
    created_at: datetime
