"""SQLAlchemy models for the ledgerflow database."""

from datetime import datetime, UTC
from sqlalchemy import (
    JSON,
    Column,
    Integer,
    String,
    ForeignKey,
    DateTime,
    Date,
    Numeric,
    Boolean,
    UniqueConstraint,
    Index,
    create_engine,
    event,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker, Session

Base = declarative_base()


def _now() -> datetime:
    return datetime.now(UTC)


class Account(Base):
    """Bank account or credit card model."""

    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True)
    name = Column(String, unique=True, nullable=False)
    bank_name = Column(String, nullable=False)
    is_credit_card = Column(Boolean, default=False, nullable=False)
    initial_balance = Column(Numeric(12, 2), default=0, nullable=False)
    current_balance = Column(Numeric(12, 2), default=0, nullable=False)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    transactions = relationship("Transaction", back_populates="account")


class Category(Base):
    """Envelope category model with hierarchical structure."""

    __tablename__ = "categories"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    parent_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    initial_balance = Column(Numeric(12, 2), default=0, nullable=False)
    current_balance = Column(Numeric(12, 2), default=0, nullable=False)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    parent = relationship("Category", remote_side=[id], backref="children")


class MappingTemplate(Base):
    """Saved column mapping, looked up by structural fingerprint."""

    __tablename__ = "mapping_templates"

    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False)
    name = Column(String, nullable=False)
    source_type = Column(String, nullable=False)
    fingerprint = Column(String, nullable=False)
    column_count = Column(Integer, nullable=False)
    date_column = Column(Integer, nullable=False)
    description_column = Column(Integer, nullable=True)
    amount_column = Column(Integer, nullable=True)
    debit_column = Column(Integer, nullable=True)
    credit_column = Column(Integer, nullable=True)
    status_column = Column(Integer, nullable=True)
    type_column = Column(Integer, nullable=True)
    sign_convention = Column(String, nullable=False)
    date_format = Column(String, nullable=True)
    has_headers = Column(Boolean, default=True, nullable=False)
    skip_rows = Column(Integer, default=0, nullable=False)
    usage_count = Column(Integer, default=0, nullable=False)
    last_used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_template_user_name"),
        Index("ix_template_user_fingerprint", "user_id", "fingerprint"),
    )


class ImportSetup(Base):
    """Automatic import source configuration."""

    __tablename__ = "import_setups"

    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False)
    name = Column(String, nullable=False)
    source_type = Column(String, nullable=False)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=True)
    template_id = Column(Integer, ForeignKey("mapping_templates.id"), nullable=True)
    email_address = Column(String, nullable=True, unique=True)
    provider = Column(String, nullable=True)
    access_token = Column(String, nullable=True)
    account_refs = Column(JSON, default=list, nullable=False)
    is_historical = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    last_fetch_at = Column(DateTime, nullable=True)
    last_successful_fetch_at = Column(DateTime, nullable=True)
    last_error = Column(String, nullable=True)
    error_count = Column(Integer, default=0, nullable=False)
    sync_cursors = Column(JSON, default=dict, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)


class ImportBatch(Base):
    """Raw contents and metadata of one ingestion event."""

    __tablename__ = "import_batches"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False)
    source_type = Column(String, nullable=False)
    source_name = Column(String, nullable=False)
    raw_rows = Column(JSON, nullable=False)
    raw_payloads = Column(JSON, nullable=False)
    fingerprint = Column(String, nullable=True)
    template_id = Column(Integer, ForeignKey("mapping_templates.id"), nullable=True)
    setup_id = Column(Integer, ForeignKey("import_setups.id"), nullable=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=True)
    is_historical = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)

    rows = relationship("QueuedImport", back_populates="batch")


class QueuedImport(Base):
    """Staged candidate transaction."""

    __tablename__ = "queued_imports"

    id = Column(Integer, primary_key=True)
    batch_id = Column(String, ForeignKey("import_batches.id"), nullable=False)
    user_id = Column(String, nullable=False)
    setup_id = Column(Integer, ForeignKey("import_setups.id"), nullable=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=True)
    row_index = Column(Integer, nullable=False)
    date = Column(Date, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(String, nullable=False)
    source_status = Column(String, nullable=True)
    fingerprint = Column(String, nullable=False, index=True)
    is_historical = Column(Boolean, default=False, nullable=False)
    status = Column(String, nullable=False, index=True)
    splits = Column(JSON, default=list, nullable=False)
    suggestion_source = Column(String, nullable=True)
    suggestion_confidence = Column(Numeric(4, 3), nullable=True)
    duplicate_of = Column(String, nullable=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    batch = relationship("ImportBatch", back_populates="rows")


class Transaction(Base):
    """Committed ledger transaction."""

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=True)
    date = Column(Date, nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)
    description = Column(String, nullable=False)
    transaction_type = Column(String, nullable=False)
    is_historical = Column(Boolean, default=False, nullable=False)
    fingerprint = Column(String, nullable=True, index=True)
    merchant_group_id = Column(Integer, ForeignKey("merchant_groups.id"), nullable=True)
    queued_import_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)

    account = relationship("Account", back_populates="transactions")
    splits = relationship("TransactionSplit", back_populates="transaction", cascade="all, delete-orphan")


class TransactionSplit(Base):
    """Category allocation of part of a transaction."""

    __tablename__ = "transaction_splits"

    id = Column(Integer, primary_key=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)

    transaction = relationship("Transaction", back_populates="splits")


class BalanceAuditEntry(Base):
    """Append-only balance audit trail."""

    __tablename__ = "balance_audit_entries"

    id = Column(Integer, primary_key=True)
    scope = Column(String, nullable=False)
    entity_id = Column(Integer, nullable=False)
    old_balance = Column(Numeric(12, 2), nullable=False)
    new_balance = Column(Numeric(12, 2), nullable=False)
    change_amount = Column(Numeric(12, 2), nullable=False)
    change_type = Column(String, nullable=False)
    # Kept after the transaction is deleted, so not a foreign key
    transaction_id = Column(Integer, nullable=True, index=True)
    transfer_reference = Column(String, nullable=True)
    actor = Column(String, nullable=False)
    description = Column(String, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)

    __table_args__ = (Index("ix_audit_scope_entity", "scope", "entity_id"),)


class GlobalMerchant(Base):
    """Shared merchant identity."""

    __tablename__ = "global_merchants"

    id = Column(Integer, primary_key=True)
    display_name = Column(String, unique=True, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)


class GlobalMerchantPattern(Base):
    """Pattern owned by a global merchant."""

    __tablename__ = "global_merchant_patterns"

    id = Column(Integer, primary_key=True)
    global_merchant_id = Column(Integer, ForeignKey("global_merchants.id"), nullable=False)
    pattern = Column(String, nullable=False)
    normalized_pattern = Column(String, nullable=False, unique=True)


class MerchantGroup(Base):
    """Per-user merchant group."""

    __tablename__ = "merchant_groups"

    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False)
    display_name = Column(String, nullable=False)
    global_merchant_id = Column(Integer, ForeignKey("global_merchants.id"), nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)


class MerchantPattern(Base):
    """User pattern to merchant group mapping."""

    __tablename__ = "merchant_patterns"

    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False)
    merchant_group_id = Column(Integer, ForeignKey("merchant_groups.id"), nullable=False)
    pattern = Column(String, nullable=False)
    normalized_pattern = Column(String, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "normalized_pattern", name="uq_user_normalized_pattern"),
    )


class CategoryRule(Base):
    """Learned description-to-category rule."""

    __tablename__ = "category_rules"

    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False)
    normalized_pattern = Column(String, nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False)
    usage_count = Column(Integer, default=0, nullable=False)
    last_used_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "normalized_pattern", "category_id", name="uq_rule"),
    )


class DuplicateReview(Base):
    """Dismissed near-duplicate group."""

    __tablename__ = "duplicate_reviews"

    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False)
    group_key = Column(String, nullable=False)
    transaction_ids = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)

    __table_args__ = (UniqueConstraint("user_id", "group_key", name="uq_review_key"),)


class ScorerUsage(Base):
    """Daily scorer call counter per user and feature."""

    __tablename__ = "scorer_usage"

    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False)
    feature = Column(String, nullable=False)
    usage_date = Column(Date, nullable=False)
    count = Column(Integer, default=0, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "feature", "usage_date", name="uq_usage_day"),
    )


@event.listens_for(BalanceAuditEntry, "before_update")
def _audit_is_immutable(mapper, connection, target):
    raise RuntimeError("balance audit entries are append-only")


@event.listens_for(BalanceAuditEntry, "before_delete")
def _audit_is_undeletable(mapper, connection, target):
    raise RuntimeError("balance audit entries are append-only")


def create_session_factory(database_url: str) -> sessionmaker[Session]:
    """Create a SQLAlchemy session factory."""
    engine = create_engine(database_url, echo=False)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)
