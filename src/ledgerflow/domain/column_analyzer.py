"""Column role inference for tabular transaction exports.

Each column is scored for every role (date, amount, description, debit,
credit, status) from two kinds of evidence: how closely its header matches
known synonyms, and how many sampled cells parse as that role. Roles are then
assigned greedily, highest confidence first.
"""

import re
from dataclasses import dataclass, field
from difflib import SequenceMatcher
from typing import Optional, Sequence

from ledgerflow.config import ImportSettings
from ledgerflow.domain.entities import SIGN_POSITIVE_IS_INCOME, SIGN_SEPARATE_DEBIT_CREDIT
from ledgerflow.logging_setup import get_logger
from ledgerflow.utils.amount_parser import is_amount
from ledgerflow.utils.date_parser import detect_date_format, match_date_format

logger = get_logger("ledgerflow.domain.column_analyzer")

ROLE_DATE = "date"
ROLE_AMOUNT = "amount"
ROLE_DESCRIPTION = "description"
ROLE_DEBIT = "debit"
ROLE_CREDIT = "credit"
ROLE_STATUS = "status"

ROLES = (ROLE_DATE, ROLE_AMOUNT, ROLE_DESCRIPTION, ROLE_DEBIT, ROLE_CREDIT, ROLE_STATUS)

HEADER_SYNONYMS: dict[str, tuple[str, ...]] = {
    ROLE_DATE: ("date", "transaction date", "trans date", "post date", "posting date", "posted date"),
    ROLE_AMOUNT: ("amount", "total", "sum", "value", "charge", "payment", "transaction amount"),
    ROLE_DESCRIPTION: ("description", "merchant", "payee", "memo", "details", "narrative", "reference"),
    ROLE_DEBIT: ("debit", "withdrawal", "expense", "charge"),
    ROLE_CREDIT: ("credit", "deposit", "income", "payment"),
    ROLE_STATUS: ("status", "state"),
}

STATUS_VALUES = frozenset({"pending", "posted", "cleared"})

HEADER_WEIGHT = 0.6
CONTENT_WEIGHT = 0.4


@dataclass(frozen=True)
class ColumnScore:
    """Scores of one column for every role."""

    index: int
    header: Optional[str]
    scores: dict[str, float]
    header_scores: dict[str, float]
    samples: tuple[str, ...]
    role: Optional[str] = None

    @property
    def confidence(self) -> float:
        return self.scores.get(self.role, 0.0) if self.role else 0.0


@dataclass(frozen=True)
class ColumnAnalysis:
    """Result of analyzing a batch's columns."""

    has_headers: bool
    headers: tuple[str, ...]
    column_count: int
    columns: tuple[ColumnScore, ...] = field(default_factory=tuple)
    date_column: Optional[int] = None
    amount_column: Optional[int] = None
    description_column: Optional[int] = None
    debit_column: Optional[int] = None
    credit_column: Optional[int] = None
    status_column: Optional[int] = None
    date_format: Optional[str] = None
    sign_convention: str = SIGN_POSITIVE_IS_INCOME

    @property
    def is_complete(self) -> bool:
        """True when a date and either an amount or a debit/credit pair were found."""
        if self.date_column is None:
            return False
        return self.amount_column is not None or (
            self.debit_column is not None and self.credit_column is not None
        )

    def missing_roles(self) -> list[str]:
        missing = []
        if self.date_column is None:
            missing.append(ROLE_DATE)
        if self.amount_column is None and (self.debit_column is None or self.credit_column is None):
            missing.append(ROLE_AMOUNT)
        return missing


def _is_typed(cell: str) -> bool:
    cell = cell.strip()
    return bool(cell) and (match_date_format(cell) is not None or is_amount(cell))


def detect_headers(rows: Sequence[Sequence[str]]) -> bool:
    """Guess whether the first row is a header row.

    A header row has fewer dates and numbers than the data row below it. A
    single row is taken to be a header.
    """
    if not rows:
        return False
    if len(rows) == 1:
        return True
    first = sum(1 for cell in rows[0] if _is_typed(cell))
    second = sum(1 for cell in rows[1] if _is_typed(cell))
    return second > first


def header_score(header: str, synonyms: Sequence[str]) -> float:
    """Score a header against a role's synonyms.

    Exact matches score 1.0 and containment either way 0.85. Anything else
    gets its best similarity ratio.
    """
    normalized = re.sub(r"[_\-]+", " ", header.lower()).strip()
    compact = normalized.replace(" ", "")
    if not normalized:
        return 0.0
    if normalized in synonyms:
        return 1.0
    for synonym in synonyms:
        bare = synonym.replace(" ", "")
        if len(compact) >= 3 and (bare in compact or compact in bare):
            return 0.85
    return max(SequenceMatcher(None, normalized, s).ratio() for s in synonyms)


def _rate(values: Sequence[str], predicate) -> float:
    if not values:
        return 0.0
    return sum(1 for v in values if predicate(v)) / len(values)


def _looks_like_text(value: str) -> bool:
    value = value.strip()
    return 2 < len(value) < 200 and re.search(r"[A-Za-z]", value) is not None and not value.isdigit()


class ColumnAnalyzer:
    """Infers which column holds which role."""

    def __init__(self, settings: Optional[ImportSettings] = None):
        self.settings = settings or ImportSettings()

    def analyze(self, rows: Sequence[Sequence[str]]) -> ColumnAnalysis:
        """Analyze raw rows and propose a column mapping.

        Args:
            rows: Rectangular raw rows, header row included if present

        Returns:
            ColumnAnalysis; check ``is_complete`` before using it
        """
        if not rows:
            return ColumnAnalysis(has_headers=False, headers=(), column_count=0)

        column_count = len(rows[0])
        has_headers = detect_headers(rows)
        headers = tuple(c.strip() for c in rows[0]) if has_headers else ()
        data = rows[1:] if has_headers else rows
        sample = data[: self.settings.sample_size]

        columns = tuple(
            self._score_column(i, headers[i] if has_headers else None, [r[i] for r in sample])
            for i in range(column_count)
        )
        analysis = self._assign(columns, has_headers, headers, column_count, sample)
        logger.debug(
            "Analyzed %d columns (headers=%s): date=%s amount=%s debit=%s credit=%s description=%s",
            column_count,
            has_headers,
            analysis.date_column,
            analysis.amount_column,
            analysis.debit_column,
            analysis.credit_column,
            analysis.description_column,
        )
        return analysis

    def _score_column(self, index: int, header: Optional[str], cells: list[str]) -> ColumnScore:
        values = [c.strip() for c in cells if c and c.strip()]
        amount_rate = _rate(values, is_amount)
        content = {
            ROLE_DATE: _rate(values, lambda v: match_date_format(v) is not None),
            ROLE_AMOUNT: amount_rate,
            ROLE_DESCRIPTION: _rate(
                values, lambda v: _looks_like_text(v) and match_date_format(v) is None
            ),
            ROLE_DEBIT: amount_rate,
            ROLE_CREDIT: amount_rate,
            ROLE_STATUS: _rate(values, lambda v: v.lower() in STATUS_VALUES),
        }

        if header:
            header_scores = {role: header_score(header, HEADER_SYNONYMS[role]) for role in ROLES}
            scores = {
                role: HEADER_WEIGHT * header_scores[role] + CONTENT_WEIGHT * content[role]
                for role in ROLES
            }
        else:
            header_scores = {role: 0.0 for role in ROLES}
            scores = dict(content)

        best_role = max(ROLES, key=lambda r: scores[r])
        role = best_role if scores[best_role] > self.settings.column_threshold else None
        return ColumnScore(
            index=index,
            header=header,
            scores=scores,
            header_scores=header_scores,
            samples=tuple(values[:3]),
            role=role,
        )

    def _best(self, columns, role: str, taken: set[int]) -> Optional[int]:
        candidates = [c for c in columns if c.index not in taken]
        if not candidates:
            return None
        best = max(candidates, key=lambda c: (c.scores[role], -c.index))
        return best.index if best.scores[role] > self.settings.field_threshold else None

    def _assign(self, columns, has_headers: bool, headers, column_count: int, sample) -> ColumnAnalysis:
        taken: set[int] = set()
        roles: dict[int, str] = {}

        date_column = self._best(columns, ROLE_DATE, taken)
        if date_column is not None:
            taken.add(date_column)
            roles[date_column] = ROLE_DATE

        # A debit/credit pair needs header evidence; content alone cannot
        # tell a debit column from a balance column.
        debit_column = credit_column = amount_column = None
        if has_headers:
            threshold = self.settings.debit_credit_header_threshold
            debit_candidates = [
                c for c in columns
                if c.index not in taken and c.header_scores[ROLE_DEBIT] > threshold
                and c.header_scores[ROLE_DEBIT] >= c.header_scores[ROLE_CREDIT]
            ]
            credit_candidates = [
                c for c in columns
                if c.index not in taken and c.header_scores[ROLE_CREDIT] > threshold
                and c.header_scores[ROLE_CREDIT] >= c.header_scores[ROLE_DEBIT]
            ]
            if debit_candidates and credit_candidates:
                debit = max(debit_candidates, key=lambda c: c.scores[ROLE_DEBIT])
                credit = max(
                    (c for c in credit_candidates if c.index != debit.index),
                    key=lambda c: c.scores[ROLE_CREDIT],
                    default=None,
                )
                if credit is not None:
                    debit_column, credit_column = debit.index, credit.index
                    taken.update((debit_column, credit_column))
                    roles[debit_column] = ROLE_DEBIT
                    roles[credit_column] = ROLE_CREDIT

        if debit_column is None:
            amount_column = self._best(columns, ROLE_AMOUNT, taken)
            if amount_column is not None:
                taken.add(amount_column)
                roles[amount_column] = ROLE_AMOUNT

        status_column = self._best(columns, ROLE_STATUS, taken)
        if status_column is not None:
            taken.add(status_column)
            roles[status_column] = ROLE_STATUS

        description_column = self._best(columns, ROLE_DESCRIPTION, taken)
        if description_column is None:
            description_column = self._fallback_description(columns, taken)
        if description_column is not None:
            taken.add(description_column)
            roles[description_column] = ROLE_DESCRIPTION

        date_format = None
        if date_column is not None:
            date_format = detect_date_format(row[date_column] for row in sample)

        assigned = tuple(
            ColumnScore(
                index=c.index,
                header=c.header,
                scores=c.scores,
                header_scores=c.header_scores,
                samples=c.samples,
                role=roles.get(c.index),
            )
            for c in columns
        )

        return ColumnAnalysis(
            has_headers=has_headers,
            headers=tuple(headers),
            column_count=column_count,
            columns=assigned,
            date_column=date_column,
            amount_column=amount_column,
            description_column=description_column,
            debit_column=debit_column,
            credit_column=credit_column,
            status_column=status_column,
            date_format=date_format,
            sign_convention=SIGN_SEPARATE_DEBIT_CREDIT if debit_column is not None else SIGN_POSITIVE_IS_INCOME,
        )

    @staticmethod
    def _fallback_description(columns, taken: set[int]) -> Optional[int]:
        remaining = [c for c in columns if c.index not in taken and c.samples]
        if not remaining:
            return None

        def key(c: ColumnScore):
            avg_len = sum(len(s) for s in c.samples) / len(c.samples)
            return (c.scores[ROLE_DESCRIPTION], avg_len)

        return max(remaining, key=key).index
