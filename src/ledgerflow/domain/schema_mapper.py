"""Schema mapping: raw rows to canonical rows through a mapping template."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Sequence

from ledgerflow.config import ImportSettings
from ledgerflow.database.base import Database
from ledgerflow.domain.column_analyzer import ColumnAnalysis, ColumnAnalyzer
from ledgerflow.domain.entities import (
    CanonicalRow,
    MappingTemplate,
    SIGN_POSITIVE_IS_EXPENSE,
    SIGN_SEPARATE_COLUMN,
    SIGN_SEPARATE_DEBIT_CREDIT,
)
from ledgerflow.domain.errors import ManualMappingRequired, ValidationError
from ledgerflow.domain.mapping_template import MappingTemplateService, structural_fingerprint
from ledgerflow.logging_setup import get_logger
from ledgerflow.utils.amount_parser import parse_amount
from ledgerflow.utils.date_parser import parse_date_with_format

logger = get_logger("ledgerflow.domain.schema_mapper")

# Values of a type column that mark money going out
OUTFLOW_TYPES = frozenset({"debit", "dr", "expense", "withdrawal", "purchase", "payment", "out"})
INFLOW_TYPES = frozenset({"credit", "cr", "income", "deposit", "refund", "in"})

NO_DESCRIPTION = "(no description)"


@dataclass(frozen=True)
class MappingResult:
    """Canonical rows of a batch and the template that produced them."""

    template: MappingTemplate
    fingerprint: str
    rows: tuple[CanonicalRow, ...]
    errors: tuple[str, ...]
    template_created: bool = False
    analysis: Optional[ColumnAnalysis] = None


def ensure_rectangular(rows: Sequence[Sequence[str]]) -> None:
    """Reject batches whose rows do not all have the same width.

    Raises:
        ValidationError: On the first row of a different width
    """
    if not rows:
        raise ValidationError("Batch contains no rows")
    width = len(rows[0])
    for index, row in enumerate(rows):
        if len(row) != width:
            raise ValidationError(f"Row {index} has {len(row)} cells, expected {width}")


def check_fits(template: MappingTemplate, rows: Sequence[Sequence[str]]) -> None:
    """Reject rows that are ragged or not as wide as the template expects.

    Raises:
        ValidationError: If the rows do not fit
    """
    ensure_rectangular(rows)
    if len(rows[0]) != template.column_count:
        raise ValidationError(
            f"Template '{template.name}' expects {template.column_count} columns, "
            f"batch has {len(rows[0])}"
        )


class SchemaMapper:
    """Turns raw rows into canonical rows, inferring a template when needed."""

    def __init__(self, db: Database, settings: Optional[ImportSettings] = None):
        """Initialize schema mapper.

        Args:
            db: Database instance
            settings: Import settings for column inference
        """
        self.db = db
        self.settings = settings or ImportSettings()
        self.templates = MappingTemplateService(db)
        self.analyzer = ColumnAnalyzer(self.settings)

    def map_batch(
        self,
        user_id: str,
        source_type: str,
        rows: Sequence[Sequence[str]],
        template_id: Optional[int] = None,
        discriminators: Optional[Sequence[Optional[str]]] = None,
    ) -> MappingResult:
        """Map a batch to canonical rows.

        An explicit template wins. Otherwise the structural fingerprint picks
        a saved template. Only when neither exists are the columns inferred,
        and the inferred template is saved before it is used.

        Args:
            user_id: Owner of the batch
            source_type: csv, email or bank
            rows: Raw rows, header row included
            template_id: Optional template to use instead of matching
            discriminators: Optional per-row source ids, aligned with rows

        Returns:
            MappingResult

        Raises:
            ValidationError: If rows are not rectangular or do not fit the template
            ManualMappingRequired: If inference cannot find a date and an amount
        """
        ensure_rectangular(rows)
        fingerprint = structural_fingerprint(source_type, rows)

        analysis = None
        created = False
        if template_id is not None:
            template = self.templates.get_template(template_id)
        else:
            template = self.templates.find_for_fingerprint(user_id, fingerprint)
            if template is not None:
                logger.debug("Template %d matched fingerprint %s", template.id, fingerprint)
            else:
                logger.debug("No template for fingerprint %s; inferring columns", fingerprint)
                analysis = self.analyzer.analyze(rows)
                if not analysis.is_complete:
                    raise ManualMappingRequired(
                        "Could not identify the "
                        f"{' and '.join(analysis.missing_roles())} column(s); choose a mapping template",
                        analysis=analysis,
                    )
                new_id = self.templates.create_from_analysis(
                    user_id=user_id,
                    name=f"auto {fingerprint}",
                    source_type=source_type,
                    fingerprint=fingerprint,
                    analysis=analysis,
                )
                template = self.templates.get_template(new_id)
                created = True
                logger.info("Saved inferred template %d for %s", new_id, fingerprint)

        canonical, errors = self.apply_template(template, rows, discriminators)
        self.templates.record_use(template.id)
        return MappingResult(
            template=template,
            fingerprint=fingerprint,
            rows=tuple(canonical),
            errors=tuple(errors),
            template_created=created,
            analysis=analysis,
        )

    def apply_template(
        self,
        template: MappingTemplate,
        rows: Sequence[Sequence[str]],
        discriminators: Optional[Sequence[Optional[str]]] = None,
    ) -> tuple[list[CanonicalRow], list[str]]:
        """Apply a template to raw rows.

        Rows that fail to parse are reported, not raised, so one bad line does
        not sink the batch.

        Returns:
            Tuple of (canonical rows, per-row error messages)

        Raises:
            ValidationError: If the rows are not as wide as the template expects
        """
        check_fits(template, rows)

        start = template.skip_rows + (1 if template.has_headers else 0)
        canonical: list[CanonicalRow] = []
        errors: list[str] = []
        for index in range(start, len(rows)):
            row = rows[index]
            if not any(cell.strip() for cell in row):
                continue
            discriminator = None
            if discriminators is not None and index < len(discriminators):
                discriminator = discriminators[index]
            try:
                canonical.append(self._map_row(template, index, row, discriminator))
            except ValueError as e:
                errors.append(f"Row {index}: {e}")
        return canonical, errors

    def _map_row(
        self, template: MappingTemplate, index: int, row: Sequence[str], discriminator: Optional[str]
    ) -> CanonicalRow:
        row_date = parse_date_with_format(row[template.date_column], template.date_format)
        amount = self._read_amount(template, row)

        description = ""
        if template.description_column is not None:
            description = " ".join(row[template.description_column].split())
        status = None
        if template.status_column is not None:
            status = row[template.status_column].strip().lower() or None

        return CanonicalRow(
            row_index=index,
            date=row_date,
            amount=amount.quantize(Decimal("0.01")),
            description=description or NO_DESCRIPTION,
            status=status,
            discriminator=discriminator,
        )

    @staticmethod
    def _read_amount(template: MappingTemplate, row: Sequence[str]) -> Decimal:
        convention = template.sign_convention

        if convention == SIGN_SEPARATE_DEBIT_CREDIT:
            debit_cell = row[template.debit_column].strip()
            credit_cell = row[template.credit_column].strip()
            if not debit_cell and not credit_cell:
                raise ValueError("both debit and credit are empty")
            debit = abs(parse_amount(debit_cell)) if debit_cell else Decimal("0")
            credit = abs(parse_amount(credit_cell)) if credit_cell else Decimal("0")
            return credit - debit

        amount = parse_amount(row[template.amount_column])
        if convention == SIGN_POSITIVE_IS_EXPENSE:
            return -amount
        if convention == SIGN_SEPARATE_COLUMN:
            kind = row[template.type_column].strip().lower()
            if kind in OUTFLOW_TYPES:
                return -abs(amount)
            if kind in INFLOW_TYPES:
                return abs(amount)
            raise ValueError(f"unknown transaction type '{kind}'")
        return amount
