"""Import queue: persistent staging of canonical rows between mapping and commit."""

from collections import Counter
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional, Sequence

from ledgerflow.config import ImportSettings
from ledgerflow.database.base import Database
from ledgerflow.domain.entities import (
    ACTIVE_STATUSES,
    CanonicalRow,
    QueuedImport,
    SplitProposal,
    STATUS_APPROVED,
    STATUS_CATEGORIZED,
    STATUS_DISCARDED,
    STATUS_DUPLICATE,
    STATUS_QUEUED,
)
from ledgerflow.domain.errors import (
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
    batch_not_found,
    category_not_found,
    invalid_transition,
    queued_import_not_found,
    split_sum_mismatch,
)
from ledgerflow.domain.duplicates import DuplicateDetector
from ledgerflow.domain.fingerprint import fingerprint_row
from ledgerflow.domain.schema_mapper import SchemaMapper
from ledgerflow.logging_setup import get_logger

logger = get_logger("ledgerflow.domain.import_queue")

# Allowed moves of a queued row. approved and discarded are final.
TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_QUEUED: frozenset({STATUS_DUPLICATE, STATUS_CATEGORIZED, STATUS_DISCARDED}),
    # Only a remap supersedes a duplicate row
    STATUS_DUPLICATE: frozenset({STATUS_DISCARDED}),
    # duplicate: commit-time recheck found the row already committed
    STATUS_CATEGORIZED: frozenset(
        {STATUS_CATEGORIZED, STATUS_APPROVED, STATUS_DISCARDED, STATUS_DUPLICATE}
    ),
    STATUS_APPROVED: frozenset(),
    STATUS_DISCARDED: frozenset(),
}

SOURCE_USER = "user"


def check_transition(row: QueuedImport, target: str) -> None:
    """Raise InvalidTransitionError unless row may move to target."""
    if target not in TRANSITIONS.get(row.status, frozenset()):
        raise InvalidTransitionError(invalid_transition(row.id, row.status, target))


def finalize_splits(
    total: Decimal, splits: Sequence[SplitProposal], tolerance: Decimal
) -> list[SplitProposal]:
    """Round splits to cents and make them add up to the total exactly.

    A remainder within tolerance is folded into the last split.

    Raises:
        ValidationError: If there are no splits or they are off by more than tolerance
    """
    if not splits:
        raise ValidationError("No category split assigned")
    cent = Decimal("0.01")
    total = total.quantize(cent)
    rounded = [SplitProposal(s.category_id, s.amount.quantize(cent)) for s in splits]
    split_total = sum((s.amount for s in rounded), Decimal("0"))
    remainder = total - split_total
    if remainder == 0:
        return rounded
    if abs(remainder) > tolerance:
        raise ValidationError(split_sum_mismatch(total, split_total))
    last = rounded[-1]
    rounded[-1] = SplitProposal(last.category_id, last.amount + remainder)
    return rounded


@dataclass(frozen=True)
class PreviewRow:
    """A row as a remap would queue it."""

    row: CanonicalRow
    fingerprint: str
    duplicate_of: Optional[str] = None


@dataclass(frozen=True)
class RemapPreview:
    """Rows a template would produce for a stored batch."""

    batch_id: str
    template_id: int
    rows: tuple[PreviewRow, ...]
    errors: tuple[str, ...]


class ImportQueueService:
    """Service for staging, remapping, categorizing and discarding queued rows."""

    def __init__(self, db: Database, settings: Optional[ImportSettings] = None):
        """Initialize import queue service.

        Args:
            db: Database instance
            settings: Import settings
        """
        self.db = db
        self.settings = settings or ImportSettings()
        self.detector = DuplicateDetector(db, self.settings)
        self.mapper = SchemaMapper(db, self.settings)

    def _get_batch(self, batch_id: str):
        batch = self.db.get_import_batch(batch_id)
        if batch is None:
            raise NotFoundError(batch_not_found(batch_id))
        return batch

    def _get_row(self, row_id: int) -> QueuedImport:
        row = self.db.get_queued_import(row_id)
        if row is None:
            raise NotFoundError(queued_import_not_found(row_id))
        return row

    def queue(self, batch_id: str, rows: Sequence[CanonicalRow]) -> dict[str, Any]:
        """Fingerprint canonical rows and stage them.

        Rows that exactly match committed history, an active row of another
        batch, or an earlier row of this batch are stored as duplicates. All
        rows of the call are staged in one unit of work.

        Args:
            batch_id: Stored batch the rows belong to
            rows: Canonical rows from the schema mapper

        Returns:
            Dict with queued, duplicates, errors and row_ids
        """
        batch = self._get_batch(batch_id)
        queued = 0
        duplicates = 0
        row_ids: list[int] = []

        with self.db.unit_of_work():
            for row in rows:
                fingerprint = fingerprint_row(row)
                match = self.detector.find_exact(fingerprint, batch.account_id, batch_id)
                row_id = self.db.add_queued_import(
                    batch_id=batch_id,
                    user_id=batch.user_id,
                    row_index=row.row_index,
                    date=row.date,
                    amount=row.amount,
                    description=row.description,
                    fingerprint=fingerprint,
                    status=STATUS_DUPLICATE if match else STATUS_QUEUED,
                    account_id=batch.account_id,
                    setup_id=batch.setup_id,
                    source_status=row.status,
                    is_historical=batch.is_historical,
                    duplicate_of=str(match) if match else None,
                )
                row_ids.append(row_id)
                if match:
                    duplicates += 1
                else:
                    queued += 1

        logger.info("Batch %s: %d queued, %d duplicates", batch_id, queued, duplicates)
        return {"queued": queued, "duplicates": duplicates, "errors": [], "row_ids": row_ids}

    def _map_stored_batch(self, batch, template_id: int):
        template = self.mapper.templates.get_template(template_id)
        discriminators = [p.get("discriminator") if p else None for p in batch.raw_payloads]
        rows, errors = self.mapper.apply_template(template, batch.raw_rows, discriminators)
        return template, rows, errors

    def remap(self, batch_id: str, template_id: int) -> RemapPreview:
        """Preview what a different template would make of a stored batch.

        Nothing is written. Duplicate flags ignore this batch's own rows since
        applying the remap supersedes them.
        """
        batch = self._get_batch(batch_id)
        template, rows, errors = self._map_stored_batch(batch, template_id)

        seen: dict[str, int] = {}
        preview = []
        for row in rows:
            fingerprint = fingerprint_row(row)
            match = self.detector.find_committed(fingerprint, batch.account_id)
            duplicate_of = str(match) if match else None
            if duplicate_of is None:
                other = self.db.find_active_queued_import(
                    fingerprint, batch.account_id, exclude_batch_id=batch_id
                )
                if other is not None:
                    duplicate_of = f"queued:{other.id}"
            if duplicate_of is None and fingerprint in seen:
                duplicate_of = f"row:{seen[fingerprint]}"
            seen.setdefault(fingerprint, row.row_index)
            preview.append(PreviewRow(row=row, fingerprint=fingerprint, duplicate_of=duplicate_of))

        return RemapPreview(
            batch_id=batch_id, template_id=template.id, rows=tuple(preview), errors=tuple(errors)
        )

    def apply_remap(self, batch_id: str, template_id: int) -> dict[str, Any]:
        """Re-run mapping over a stored batch and replace its pending rows.

        Active and duplicate rows of the batch are discarded and the remapped
        rows are queued in their place. Approved rows are left untouched, so
        history is never rewritten.

        Returns:
            Dict with queued, duplicates, errors, row_ids and superseded
        """
        batch = self._get_batch(batch_id)
        template, rows, errors = self._map_stored_batch(batch, template_id)

        with self.db.unit_of_work():
            superseded = 0
            for row in self.db.list_queued_imports(
                batch_id=batch_id, statuses=(*ACTIVE_STATUSES, STATUS_DUPLICATE)
            ):
                self.db.update_queued_import(row.id, status=STATUS_DISCARDED)
                superseded += 1
            self.db.update_import_batch_template(batch_id, template.id, None)
            result = self.queue(batch_id, rows)
        self.mapper.templates.record_use(template.id)

        result["errors"] = list(errors) + result["errors"]
        result["superseded"] = superseded
        logger.info("Remapped batch %s with template %d (%d rows superseded)", batch_id, template.id, superseded)
        return result

    def set_splits(
        self,
        row_id: int,
        splits: Sequence[SplitProposal],
        source: str = SOURCE_USER,
        confidence: Optional[float] = None,
    ) -> QueuedImport:
        """Attach a category split proposal and mark the row categorized.

        Raises:
            InvalidTransitionError: If the row cannot be categorized
            NotFoundError: If the row or a category does not exist
            ValidationError: If the splits do not add up to the row amount
        """
        row = self._get_row(row_id)
        check_transition(row, STATUS_CATEGORIZED)
        for split in splits:
            if self.db.get_category(split.category_id) is None:
                raise NotFoundError(category_not_found(split.category_id))
        finalized = finalize_splits(row.amount, splits, self.settings.split_tolerance)

        self.db.update_queued_import(
            row_id,
            status=STATUS_CATEGORIZED,
            splits=finalized,
            suggestion_source=source,
            suggestion_confidence=confidence,
        )
        return self._get_row(row_id)

    def assign_category(self, row_id: int, category_id: int) -> QueuedImport:
        """Put a row's whole amount into one category."""
        row = self._get_row(row_id)
        return self.set_splits(row_id, [SplitProposal(category_id, row.amount)])

    def categorize(self, batch_id: str, advisor, use_scorer: bool = True) -> dict[str, int]:
        """Attach suggested categories to the batch's uncategorized rows.

        Args:
            batch_id: Batch to categorize
            advisor: CategorizationAdvisor
            use_scorer: Whether the external scorer may be used

        Returns:
            Dict with categorized, by_rule, by_scorer and uncategorized counts
        """
        batch = self._get_batch(batch_id)
        pending = self.db.list_queued_imports(batch_id=batch_id, statuses=(STATUS_QUEUED,))
        suggestions = advisor.suggest(batch.user_id, pending, use_scorer=use_scorer)

        by_source: Counter[str] = Counter()
        for row in pending:
            suggestion = suggestions.get(row.id)
            if suggestion is None:
                continue
            self.set_splits(
                row.id,
                [SplitProposal(suggestion.category_id, row.amount)],
                source=suggestion.source,
                confidence=suggestion.confidence,
            )
            by_source[suggestion.source] += 1

        categorized = sum(by_source.values())
        return {
            "categorized": categorized,
            "by_rule": by_source["rule"],
            "by_scorer": by_source["scorer"],
            "uncategorized": len(pending) - categorized,
        }

    def approve_batch(
        self,
        batch_id: str,
        engine,
        edits: Optional[Mapping[int, Sequence[SplitProposal]]] = None,
        row_ids: Optional[Iterable[int]] = None,
    ) -> dict[str, Any]:
        """Apply split edits, then commit the batch's categorized rows.

        Args:
            batch_id: Batch to approve
            engine: CommitEngine doing the writes
            edits: Optional row ID to splits overrides applied first
            row_ids: Optional subset of rows to commit

        Returns:
            Dict with imported, duplicates, errors and skipped. Rows still
            lacking a category are skipped and stay queued.
        """
        self._get_batch(batch_id)
        errors: list[str] = []
        for row_id, splits in (edits or {}).items():
            try:
                row = self._get_row(row_id)
                if row.batch_id != batch_id:
                    raise ValidationError(f"not part of batch {batch_id}")
                self.set_splits(row_id, splits)
            except (ValidationError, NotFoundError, InvalidTransitionError) as e:
                errors.append(f"Row {row_id}: {e}")

        rows = self.db.list_queued_imports(batch_id=batch_id, statuses=ACTIVE_STATUSES)
        if row_ids is not None:
            wanted = set(row_ids)
            rows = [r for r in rows if r.id in wanted]
        ready = [r for r in rows if r.status == STATUS_CATEGORIZED]
        skipped = len(rows) - len(ready)

        result = engine.commit_rows(ready)
        result["errors"] = errors + result["errors"]
        result["skipped"] = skipped
        return result

    def discard(
        self, batch_id: Optional[str] = None, row_ids: Optional[Iterable[int]] = None
    ) -> int:
        """Discard a whole batch's pending rows, or specific rows.

        Discarding a batch skips rows that are already final or duplicate.
        Explicit row IDs must be queued or categorized.

        Returns:
            Number of rows discarded

        Raises:
            ValidationError: If neither or both of batch_id and row_ids are given
            InvalidTransitionError: If an explicit row cannot be discarded
        """
        if (batch_id is None) == (row_ids is None):
            raise ValidationError("Give either a batch ID or row IDs")

        if batch_id is not None:
            self._get_batch(batch_id)
            targets = self.db.list_queued_imports(batch_id=batch_id, statuses=ACTIVE_STATUSES)
        else:
            targets = [self._get_row(row_id) for row_id in row_ids]
            for row in targets:
                check_transition(row, STATUS_DISCARDED)

        with self.db.unit_of_work():
            for row in targets:
                self.db.update_queued_import(row.id, status=STATUS_DISCARDED)
        logger.info("Discarded %d rows", len(targets))
        return len(targets)

    def get_rows(self, batch_id: str, statuses: Optional[Sequence[str]] = None) -> list[QueuedImport]:
        """List a batch's rows ordered by date."""
        self._get_batch(batch_id)
        return self.db.list_queued_imports(batch_id=batch_id, statuses=statuses)

    def get_row(self, row_id: int) -> QueuedImport:
        """Get one queued row."""
        return self._get_row(row_id)

    def list_batches(self, user_id: Optional[str] = None) -> list[dict[str, Any]]:
        """Summarize batches, newest first.

        Status is ``approved`` when every committable row was approved,
        ``partial`` when some were, and ``pending`` otherwise. Historical is
        ``all``, ``mixed`` or ``none`` over the batch's rows.
        """
        summaries = []
        for batch in self.db.list_import_batches(user_id):
            rows = self.db.list_queued_imports(batch_id=batch.id)
            counts = Counter(r.status for r in rows)
            committable = counts[STATUS_QUEUED] + counts[STATUS_CATEGORIZED] + counts[STATUS_APPROVED]
            if counts[STATUS_APPROVED] and counts[STATUS_APPROVED] == committable:
                status = "approved"
            elif counts[STATUS_APPROVED]:
                status = "partial"
            else:
                status = "pending"

            historical_rows = sum(1 for r in rows if r.is_historical)
            if rows and historical_rows == len(rows):
                historical = "all"
            elif historical_rows:
                historical = "mixed"
            else:
                historical = "none"

            dates = [r.date for r in rows]
            summaries.append(
                {
                    "batch_id": batch.id,
                    "source_type": batch.source_type,
                    "source_name": batch.source_name,
                    "template_id": batch.template_id,
                    "setup_id": batch.setup_id,
                    "account_id": batch.account_id,
                    "created_at": batch.created_at,
                    "row_count": len(rows),
                    "counts": dict(counts),
                    "start_date": min(dates) if dates else None,
                    "end_date": max(dates) if dates else None,
                    "status": status,
                    "historical": historical,
                }
            )
        return summaries
