"""Mapping template domain service."""

import hashlib
from datetime import datetime, UTC
from typing import Optional, Sequence

from ledgerflow.database.base import Database
from ledgerflow.domain.column_analyzer import ColumnAnalysis, detect_headers
from ledgerflow.domain.entities import (
    MappingTemplate,
    SIGN_CONVENTIONS,
    SIGN_POSITIVE_IS_INCOME,
    SIGN_SEPARATE_DEBIT_CREDIT,
    SIGN_SEPARATE_COLUMN,
    SOURCE_TYPES,
)
from ledgerflow.domain.errors import ConflictError, NotFoundError, ValidationError, template_not_found


def structural_fingerprint(source_type: str, rows: Sequence[Sequence[str]]) -> str:
    """Identify the shape of a source: its type, width and header order.

    Two exports from the same bank share a fingerprint even though their rows
    differ. Files without a header row only carry their width.
    """
    column_count = len(rows[0]) if rows else 0
    if rows and detect_headers(rows):
        joined = "|".join(cell.strip().lower() for cell in rows[0])
        digest = hashlib.sha1(joined.encode("utf-8")).hexdigest()[:12]
        return f"{source_type}:{column_count}:{digest}"
    return f"{source_type}:{column_count}:noheader"


class MappingTemplateService:
    """Service for managing saved column mappings."""

    def __init__(self, db: Database):
        """Initialize mapping template service.

        Args:
            db: Database instance
        """
        self.db = db

    def create_template(
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
        sign_convention: Optional[str] = None,
        date_format: Optional[str] = None,
        has_headers: bool = True,
        skip_rows: int = 0,
    ) -> int:
        """Create a mapping template.

        Args:
            user_id: Owner
            name: Template name, unique per user
            source_type: csv, email or bank
            fingerprint: Structural fingerprint the template applies to
            column_count: Width of the source rows
            date_column: Date column index
            description_column: Description column index
            amount_column: Signed amount column (single-amount layouts)
            debit_column: Money-out column (debit/credit layouts)
            credit_column: Money-in column (debit/credit layouts)
            status_column: Optional pending/posted column
            type_column: Column whose value gives the sign (separate_column layouts)
            sign_convention: How to read amounts; inferred from the columns when None
            date_format: strptime format, or None to detect per value
            has_headers: Whether the first data row is a header row
            skip_rows: Rows to skip before the header row

        Returns:
            Template ID

        Raises:
            ValidationError: If the column layout is inconsistent
            ConflictError: If the user already has a template with this name
        """
        if sign_convention is None:
            sign_convention = (
                SIGN_SEPARATE_DEBIT_CREDIT if debit_column is not None else SIGN_POSITIVE_IS_INCOME
            )

        self._validate(
            source_type=source_type,
            column_count=column_count,
            columns={
                "date": date_column,
                "description": description_column,
                "amount": amount_column,
                "debit": debit_column,
                "credit": credit_column,
                "status": status_column,
                "type": type_column,
            },
            sign_convention=sign_convention,
            skip_rows=skip_rows,
        )

        if self.db.get_mapping_template_by_name(user_id, name) is not None:
            raise ConflictError(f"Mapping template '{name}' already exists")

        return self.db.create_mapping_template(
            user_id=user_id,
            name=name,
            source_type=source_type,
            fingerprint=fingerprint,
            column_count=column_count,
            date_column=date_column,
            description_column=description_column,
            amount_column=amount_column,
            debit_column=debit_column,
            credit_column=credit_column,
            status_column=status_column,
            type_column=type_column,
            sign_convention=sign_convention,
            date_format=date_format,
            has_headers=has_headers,
            skip_rows=skip_rows,
        )

    def create_from_analysis(
        self, user_id: str, name: str, source_type: str, fingerprint: str, analysis: ColumnAnalysis
    ) -> int:
        """Persist an inferred mapping as a template.

        Raises:
            ValidationError: If the analysis did not find a date and an amount
        """
        if not analysis.is_complete:
            raise ValidationError(
                f"Cannot save an incomplete mapping (missing: {', '.join(analysis.missing_roles())})"
            )
        return self.create_template(
            user_id=user_id,
            name=name,
            source_type=source_type,
            fingerprint=fingerprint,
            column_count=analysis.column_count,
            date_column=analysis.date_column,
            description_column=analysis.description_column,
            amount_column=analysis.amount_column,
            debit_column=analysis.debit_column,
            credit_column=analysis.credit_column,
            status_column=analysis.status_column,
            sign_convention=analysis.sign_convention,
            date_format=analysis.date_format,
            has_headers=analysis.has_headers,
        )

    def _validate(
        self,
        source_type: str,
        column_count: int,
        columns: dict[str, Optional[int]],
        sign_convention: str,
        skip_rows: int,
    ) -> None:
        if source_type not in SOURCE_TYPES:
            raise ValidationError(
                f"Unknown source type '{source_type}'. Expected one of: {', '.join(SOURCE_TYPES)}"
            )
        if sign_convention not in SIGN_CONVENTIONS:
            raise ValidationError(
                f"Unknown sign convention '{sign_convention}'. "
                f"Expected one of: {', '.join(SIGN_CONVENTIONS)}"
            )
        if column_count < 1:
            raise ValidationError("column_count must be at least 1")
        if skip_rows < 0:
            raise ValidationError("skip_rows must be >= 0")

        used: dict[int, str] = {}
        for role, index in columns.items():
            if index is None:
                continue
            if not 0 <= index < column_count:
                raise ValidationError(
                    f"{role} column {index} is out of range for {column_count} columns"
                )
            if index in used:
                raise ValidationError(f"Column {index} is mapped to both {used[index]} and {role}")
            used[index] = role

        if columns["date"] is None:
            raise ValidationError("A date column is required")

        if sign_convention == SIGN_SEPARATE_DEBIT_CREDIT:
            if columns["debit"] is None or columns["credit"] is None:
                raise ValidationError("separate_debit_credit requires both debit and credit columns")
        else:
            if columns["amount"] is None:
                raise ValidationError(f"{sign_convention} requires an amount column")
            if sign_convention == SIGN_SEPARATE_COLUMN and columns["type"] is None:
                raise ValidationError("separate_column requires a type column")

    def get_template(self, template_id: int) -> MappingTemplate:
        """Get a template by ID.

        Raises:
            NotFoundError: If template not found
        """
        template = self.db.get_mapping_template(template_id)
        if template is None:
            raise NotFoundError(template_not_found(template_id))
        return template

    def resolve_template(self, user_id: str, ref: str | int) -> MappingTemplate:
        """Resolve a template by ID or name."""
        if isinstance(ref, int) or str(ref).isdigit():
            return self.get_template(int(ref))
        template = self.db.get_mapping_template_by_name(user_id, str(ref))
        if template is None:
            raise NotFoundError(f"Mapping template '{ref}' not found")
        return template

    def find_for_fingerprint(self, user_id: str, fingerprint: str) -> Optional[MappingTemplate]:
        """Find the user's most used template for a source shape."""
        return self.db.find_mapping_template(user_id, fingerprint)

    def list_templates(self, user_id: Optional[str] = None) -> list[MappingTemplate]:
        """List templates, optionally for one user."""
        return self.db.list_mapping_templates(user_id)

    def record_use(self, template_id: int) -> None:
        """Bump a template's usage bookkeeping."""
        self.db.record_template_use(template_id, datetime.now(UTC))

    def delete_template(self, template_id: int) -> None:
        """Delete a template.

        Raises:
            NotFoundError: If template not found
            DependencyError: If an import setup still uses it
        """
        self.get_template(template_id)
        self.db.delete_mapping_template(template_id)
