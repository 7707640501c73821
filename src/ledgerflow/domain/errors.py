"""Shared domain error messages and error types."""

from typing import Any, Optional


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for existing error handling.
    """


class ValidationError(DomainError):
    """Invalid input or failed validation in domain logic."""


class NotFoundError(DomainError):
    """Requested domain entity or path does not exist."""


class ConflictError(DomainError):
    """Domain conflict, such as uniqueness violations."""


class DependencyError(DomainError):
    """Operation blocked due to dependent domain data."""


class ManualMappingRequired(ValidationError):
    """Column roles could not be inferred with enough confidence.

    ``analysis`` carries the column scores so a caller can show them while the
    user picks a template. ``batch_id`` is set when the raw rows were already
    stored and can be remapped without re-uploading.
    """

    def __init__(self, message: str, analysis: Any = None, batch_id: Optional[str] = None):
        super().__init__(message)
        self.analysis = analysis
        self.batch_id = batch_id


class InvalidTransitionError(ConflictError):
    """A queued import cannot move to the requested state."""


class CommitConflictError(ConflictError):
    """A commit lost a race or references an entity that no longer exists."""


class SourceError(DomainError):
    """An adapter could not read its source (bad file, unreachable provider)."""


class WebhookRejected(ValidationError):
    """Inbound webhook payload rejected before anything was queued."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class ScorerUnavailable(DomainError):
    """External categorization scorer failed, timed out, or is not configured."""


class QuotaExceeded(ScorerUnavailable):
    """Daily scorer quota for the user is used up."""


def account_not_found(account_id: int) -> str:
    """Return message for missing account."""
    return f"Account {account_id} not found"


def category_not_found(category_id: int) -> str:
    """Return message for missing category by ID."""
    return f"Category {category_id} not found"


def category_path_not_found(path: str) -> str:
    """Return message for missing category by path."""
    return f"Category '{path}' not found"


def template_not_found(template_id: int) -> str:
    """Return message for missing mapping template."""
    return f"Mapping template {template_id} not found"


def batch_not_found(batch_id: str) -> str:
    """Return message for missing import batch."""
    return f"Import batch '{batch_id}' not found"


def queued_import_not_found(row_id: int) -> str:
    """Return message for missing queued import row."""
    return f"Queued import {row_id} not found"


def invalid_transition(row_id: int, current: str, target: str) -> str:
    """Return message for a rejected state change."""
    return f"Queued import {row_id} cannot move from '{current}' to '{target}'"


def split_sum_mismatch(total: Any, split_total: Any) -> str:
    """Return message when splits do not add up to the row amount."""
    return f"Splits sum to {split_total} but the transaction total is {total}"


def account_delete_blocked(
    account_id: int, transaction_count: int, setup_count: int
) -> str:
    """Return message when account has dependent transactions or import setups."""
    parts = []
    if transaction_count > 0:
        parts.append(
            f"{transaction_count} transaction{'s' if transaction_count != 1 else ''}"
        )
    if setup_count > 0:
        parts.append(f"{setup_count} import setup{'s' if setup_count != 1 else ''}")
    return (
        f"Cannot delete account {account_id}: it has {', '.join(parts)}. "
        "Please reassign or delete them first."
    )


def import_setup_not_found(setup_id: int) -> str:
    """Return message for missing import setup."""
    return f"Import setup {setup_id} not found"
