"""Mapper functions to convert SQLAlchemy models into domain entities.

This layer isolates the conversion logic so schema changes stay out of the
domain services.
"""

from decimal import Decimal
from typing import Optional

from ledgerflow.domain import entities as domain
from ledgerflow.database.models import (
    Account as ORMAccount,
    Category as ORMCategory,
    MappingTemplate as ORMMappingTemplate,
    ImportSetup as ORMImportSetup,
    ImportBatch as ORMImportBatch,
    QueuedImport as ORMQueuedImport,
    Transaction as ORMTransaction,
    TransactionSplit as ORMTransactionSplit,
    BalanceAuditEntry as ORMBalanceAuditEntry,
    GlobalMerchant as ORMGlobalMerchant,
    GlobalMerchantPattern as ORMGlobalMerchantPattern,
    MerchantGroup as ORMMerchantGroup,
    MerchantPattern as ORMMerchantPattern,
    CategoryRule as ORMCategoryRule,
    DuplicateReview as ORMDuplicateReview,
)


def _decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    return Decimal(str(value))


def splits_to_json(splits) -> list[dict]:
    """Serialize split proposals for the JSON column."""
    return [
        {"category_id": s.category_id, "amount": str(s.amount)}
        for s in splits
    ]


def splits_from_json(data: Optional[list]) -> tuple[domain.SplitProposal, ...]:
    """Deserialize split proposals from the JSON column."""
    return tuple(
        domain.SplitProposal(category_id=int(item["category_id"]), amount=Decimal(item["amount"]))
        for item in (data or [])
    )


def account_to_domain(orm_account: ORMAccount) -> domain.Account:
    """Convert SQLAlchemy Account model to domain Account entity."""
    return domain.Account(
        id=orm_account.id,
        name=orm_account.name,
        bank_name=orm_account.bank_name,
        created_at=orm_account.created_at,
        is_credit_card=bool(orm_account.is_credit_card),
        initial_balance=_decimal(orm_account.initial_balance),
        current_balance=_decimal(orm_account.current_balance),
        version=orm_account.version or 1,
    )


def category_to_domain(orm_category: ORMCategory) -> domain.Category:
    """Convert SQLAlchemy Category model to domain Category entity."""
    return domain.Category(
        id=orm_category.id,
        name=orm_category.name,
        parent_id=orm_category.parent_id,
        created_at=orm_category.created_at,
        initial_balance=_decimal(orm_category.initial_balance),
        current_balance=_decimal(orm_category.current_balance),
        version=orm_category.version or 1,
    )


def mapping_template_to_domain(orm_template: ORMMappingTemplate) -> domain.MappingTemplate:
    """Convert SQLAlchemy MappingTemplate model to domain entity."""
    return domain.MappingTemplate(
        id=orm_template.id,
        user_id=orm_template.user_id,
        name=orm_template.name,
        source_type=orm_template.source_type,
        fingerprint=orm_template.fingerprint,
        column_count=orm_template.column_count,
        date_column=orm_template.date_column,
        description_column=orm_template.description_column,
        amount_column=orm_template.amount_column,
        debit_column=orm_template.debit_column,
        credit_column=orm_template.credit_column,
        status_column=orm_template.status_column,
        type_column=orm_template.type_column,
        sign_convention=orm_template.sign_convention,
        date_format=orm_template.date_format,
        has_headers=bool(orm_template.has_headers),
        skip_rows=orm_template.skip_rows or 0,
        usage_count=orm_template.usage_count or 0,
        last_used_at=orm_template.last_used_at,
        created_at=orm_template.created_at,
    )


def import_setup_to_domain(orm_setup: ORMImportSetup) -> domain.ImportSetup:
    """Convert SQLAlchemy ImportSetup model to domain entity."""
    return domain.ImportSetup(
        id=orm_setup.id,
        user_id=orm_setup.user_id,
        name=orm_setup.name,
        source_type=orm_setup.source_type,
        account_id=orm_setup.account_id,
        template_id=orm_setup.template_id,
        email_address=orm_setup.email_address,
        provider=orm_setup.provider,
        access_token=orm_setup.access_token,
        account_refs=tuple(orm_setup.account_refs or ()),
        is_historical=bool(orm_setup.is_historical),
        is_active=bool(orm_setup.is_active),
        last_fetch_at=orm_setup.last_fetch_at,
        last_successful_fetch_at=orm_setup.last_successful_fetch_at,
        last_error=orm_setup.last_error,
        error_count=orm_setup.error_count or 0,
        sync_cursors=dict(orm_setup.sync_cursors or {}),
        created_at=orm_setup.created_at,
    )


def import_batch_to_domain(orm_batch: ORMImportBatch) -> domain.ImportBatch:
    """Convert SQLAlchemy ImportBatch model to domain entity."""
    return domain.ImportBatch(
        id=orm_batch.id,
        user_id=orm_batch.user_id,
        source_type=orm_batch.source_type,
        source_name=orm_batch.source_name,
        raw_rows=tuple(tuple(row) for row in orm_batch.raw_rows or ()),
        raw_payloads=tuple(orm_batch.raw_payloads or ()),
        fingerprint=orm_batch.fingerprint,
        template_id=orm_batch.template_id,
        setup_id=orm_batch.setup_id,
        account_id=orm_batch.account_id,
        is_historical=bool(orm_batch.is_historical),
        created_at=orm_batch.created_at,
    )


def queued_import_to_domain(orm_row: ORMQueuedImport) -> domain.QueuedImport:
    """Convert SQLAlchemy QueuedImport model to domain entity."""
    confidence = orm_row.suggestion_confidence
    return domain.QueuedImport(
        id=orm_row.id,
        batch_id=orm_row.batch_id,
        user_id=orm_row.user_id,
        row_index=orm_row.row_index,
        date=orm_row.date,
        amount=_decimal(orm_row.amount),
        description=orm_row.description,
        fingerprint=orm_row.fingerprint,
        status=orm_row.status,
        account_id=orm_row.account_id,
        setup_id=orm_row.setup_id,
        source_status=orm_row.source_status,
        is_historical=bool(orm_row.is_historical),
        splits=splits_from_json(orm_row.splits),
        suggestion_source=orm_row.suggestion_source,
        suggestion_confidence=float(confidence) if confidence is not None else None,
        duplicate_of=orm_row.duplicate_of,
        transaction_id=orm_row.transaction_id,
        created_at=orm_row.created_at,
        updated_at=orm_row.updated_at,
    )


def transaction_to_domain(orm_transaction: ORMTransaction) -> domain.Transaction:
    """Convert SQLAlchemy Transaction model to domain Transaction entity."""
    return domain.Transaction(
        id=orm_transaction.id,
        user_id=orm_transaction.user_id,
        date=orm_transaction.date,
        total_amount=_decimal(orm_transaction.total_amount),
        description=orm_transaction.description,
        transaction_type=orm_transaction.transaction_type,
        account_id=orm_transaction.account_id,
        is_historical=bool(orm_transaction.is_historical),
        fingerprint=orm_transaction.fingerprint,
        merchant_group_id=orm_transaction.merchant_group_id,
        queued_import_id=orm_transaction.queued_import_id,
        created_at=orm_transaction.created_at,
    )


def transaction_split_to_domain(orm_split: ORMTransactionSplit) -> domain.TransactionSplit:
    """Convert SQLAlchemy TransactionSplit model to domain entity."""
    return domain.TransactionSplit(
        id=orm_split.id,
        transaction_id=orm_split.transaction_id,
        category_id=orm_split.category_id,
        amount=_decimal(orm_split.amount),
    )


def audit_entry_to_domain(orm_entry: ORMBalanceAuditEntry) -> domain.BalanceAuditEntry:
    """Convert SQLAlchemy BalanceAuditEntry model to domain entity."""
    return domain.BalanceAuditEntry(
        id=orm_entry.id,
        scope=orm_entry.scope,
        entity_id=orm_entry.entity_id,
        old_balance=_decimal(orm_entry.old_balance),
        new_balance=_decimal(orm_entry.new_balance),
        change_amount=_decimal(orm_entry.change_amount),
        change_type=orm_entry.change_type,
        actor=orm_entry.actor,
        created_at=orm_entry.created_at,
        transaction_id=orm_entry.transaction_id,
        transfer_reference=orm_entry.transfer_reference,
        description=orm_entry.description,
    )


def global_merchant_to_domain(orm_merchant: ORMGlobalMerchant) -> domain.GlobalMerchant:
    """Convert SQLAlchemy GlobalMerchant model to domain entity."""
    return domain.GlobalMerchant(
        id=orm_merchant.id,
        display_name=orm_merchant.display_name,
        created_at=orm_merchant.created_at,
    )


def global_pattern_to_domain(orm_pattern: ORMGlobalMerchantPattern) -> domain.GlobalMerchantPattern:
    """Convert SQLAlchemy GlobalMerchantPattern model to domain entity."""
    return domain.GlobalMerchantPattern(
        id=orm_pattern.id,
        global_merchant_id=orm_pattern.global_merchant_id,
        pattern=orm_pattern.pattern,
        normalized_pattern=orm_pattern.normalized_pattern,
    )


def merchant_group_to_domain(orm_group: ORMMerchantGroup) -> domain.MerchantGroup:
    """Convert SQLAlchemy MerchantGroup model to domain entity."""
    return domain.MerchantGroup(
        id=orm_group.id,
        user_id=orm_group.user_id,
        display_name=orm_group.display_name,
        global_merchant_id=orm_group.global_merchant_id,
        created_at=orm_group.created_at,
    )


def merchant_pattern_to_domain(orm_pattern: ORMMerchantPattern) -> domain.MerchantPattern:
    """Convert SQLAlchemy MerchantPattern model to domain entity."""
    return domain.MerchantPattern(
        id=orm_pattern.id,
        user_id=orm_pattern.user_id,
        merchant_group_id=orm_pattern.merchant_group_id,
        pattern=orm_pattern.pattern,
        normalized_pattern=orm_pattern.normalized_pattern,
    )


def category_rule_to_domain(orm_rule: ORMCategoryRule) -> domain.CategoryRule:
    """Convert SQLAlchemy CategoryRule model to domain entity."""
    return domain.CategoryRule(
        id=orm_rule.id,
        user_id=orm_rule.user_id,
        normalized_pattern=orm_rule.normalized_pattern,
        category_id=orm_rule.category_id,
        usage_count=orm_rule.usage_count or 0,
        last_used_at=orm_rule.last_used_at,
    )


def duplicate_review_to_domain(orm_review: ORMDuplicateReview) -> domain.DuplicateReview:
    """Convert SQLAlchemy DuplicateReview model to domain entity."""
    return domain.DuplicateReview(
        id=orm_review.id,
        user_id=orm_review.user_id,
        group_key=orm_review.group_key,
        transaction_ids=tuple(orm_review.transaction_ids or ()),
        created_at=orm_review.created_at,
    )
