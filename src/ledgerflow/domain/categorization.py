"""Categorization advisor: learned rules first, an external scorer second."""

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from dataclasses import dataclass
from datetime import date, datetime, UTC
from typing import Optional, Protocol, Sequence

from ledgerflow.config import ScorerSettings
from ledgerflow.database.base import Database
from ledgerflow.domain.category import CategoryService
from ledgerflow.domain.entities import QueuedImport
from ledgerflow.domain.errors import QuotaExceeded, ScorerUnavailable
from ledgerflow.logging_setup import get_logger
from ledgerflow.utils.text import normalize_description, similarity

logger = get_logger("ledgerflow.domain.categorization")

SCORER_FEATURE = "categorize"

SOURCE_RULE = "rule"
SOURCE_SCORER = "scorer"

# Fuzzy rule matches below this similarity are ignored
FUZZY_RULE_THRESHOLD = 0.7
EXACT_RULE_CONFIDENCE = 0.95


@dataclass(frozen=True)
class ScoringItem:
    """One uncategorized row as sent to a scorer."""

    idx: int
    description: str
    amount: str
    date: str


@dataclass(frozen=True)
class ScoreResult:
    """A scorer's best guess for one item."""

    idx: int
    category_id: int
    confidence: float
    rationale: str = ""


class CategoryScorer(Protocol):
    """External model that guesses categories for a batch of rows."""

    def score(
        self, items: Sequence[ScoringItem], categories: Sequence[tuple[int, str]]
    ) -> list[ScoreResult]:
        """Return guesses for some or all items. May raise on any failure."""
        ...


@dataclass(frozen=True)
class Suggestion:
    """Suggested category for a queued row."""

    row_id: int
    category_id: int
    confidence: float
    source: str
    rationale: str = ""


class CategorizationAdvisor:
    """Suggests categories for queued rows.

    Scorer problems never propagate: they are logged and the rule-based
    suggestions are returned on their own.
    """

    def __init__(
        self,
        db: Database,
        scorer: Optional[CategoryScorer] = None,
        settings: Optional[ScorerSettings] = None,
    ):
        """Initialize categorization advisor.

        Args:
            db: Database instance
            scorer: Optional external scorer
            settings: Scorer settings (timeout, daily limit, minimum confidence)
        """
        self.db = db
        self.scorer = scorer
        self.settings = settings or ScorerSettings()
        self.categories = CategoryService(db)

    def rule_suggestion(self, user_id: str, description: str) -> Optional[tuple[int, float]]:
        """Look up a learned rule for a description.

        An exact normalized match uses the most used rule. Otherwise the most
        similar rule pattern is used if it is close enough.

        Returns:
            Tuple of (category_id, confidence), or None
        """
        normalized = normalize_description(description)
        if not normalized:
            return None

        for rule in self.db.list_category_rules(user_id, normalized):
            if self.db.get_category(rule.category_id) is not None:
                return rule.category_id, EXACT_RULE_CONFIDENCE

        best: Optional[tuple[int, float]] = None
        for rule in self.db.list_category_rules(user_id):
            ratio = similarity(normalized, rule.normalized_pattern)
            if ratio < FUZZY_RULE_THRESHOLD:
                continue
            if best is not None and ratio <= best[1]:
                continue
            if self.db.get_category(rule.category_id) is None:
                continue
            best = (rule.category_id, ratio)
        if best is None:
            return None
        return best[0], round(best[1] * EXACT_RULE_CONFIDENCE, 3)

    def suggest(
        self, user_id: str, rows: Sequence[QueuedImport], use_scorer: bool = True
    ) -> dict[int, Suggestion]:
        """Suggest a category for each row.

        Args:
            user_id: Owner of the rows and rules
            rows: Queued rows to categorize
            use_scorer: Whether rows without a rule may go to the scorer

        Returns:
            Dict of row ID to Suggestion; rows without a suggestion are absent
        """
        suggestions: dict[int, Suggestion] = {}
        unmatched: list[QueuedImport] = []
        for row in rows:
            hit = self.rule_suggestion(user_id, row.description)
            if hit is None:
                unmatched.append(row)
                continue
            suggestions[row.id] = Suggestion(
                row_id=row.id, category_id=hit[0], confidence=hit[1], source=SOURCE_RULE
            )

        if unmatched and use_scorer and self.scorer is not None and self.settings.enabled:
            try:
                suggestions.update(self._score(user_id, unmatched))
            except ScorerUnavailable as e:
                logger.warning("Categorization scorer skipped for %s: %s", user_id, e)

        return suggestions

    def remaining_quota(self, user_id: str, today: Optional[date] = None) -> int:
        """Scorer calls left for the user today."""
        today = today or datetime.now(UTC).date()
        used = self.db.get_scorer_usage(user_id, SCORER_FEATURE, today)
        return max(0, self.settings.daily_limit - used)

    def _score(self, user_id: str, rows: Sequence[QueuedImport]) -> dict[int, Suggestion]:
        today = datetime.now(UTC).date()
        if self.remaining_quota(user_id, today) <= 0:
            raise QuotaExceeded(f"daily limit of {self.settings.daily_limit} scorer calls reached")

        categories = [
            (c.id, self.categories.format_category_path(c.id)) for c in self.db.list_all_categories()
        ]
        if not categories:
            return {}
        items = [
            ScoringItem(
                idx=i,
                description=row.description,
                amount=f"{row.amount:.2f}",
                date=row.date.isoformat(),
            )
            for i, row in enumerate(rows)
        ]

        executor = ThreadPoolExecutor(max_workers=1)
        future = executor.submit(self.scorer.score, items, categories)
        try:
            results = future.result(timeout=self.settings.timeout_seconds)
        except FuturesTimeout as e:
            raise ScorerUnavailable(f"timed out after {self.settings.timeout_seconds}s") from e
        except ScorerUnavailable:
            raise
        except Exception as e:
            raise ScorerUnavailable(str(e) or type(e).__name__) from e
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        self.db.increment_scorer_usage(user_id, SCORER_FEATURE, today)

        valid_ids = {cid for cid, _ in categories}
        suggestions: dict[int, Suggestion] = {}
        for result in results:
            if not 0 <= result.idx < len(rows):
                continue
            if result.category_id not in valid_ids or result.confidence < self.settings.min_confidence:
                continue
            row = rows[result.idx]
            suggestions[row.id] = Suggestion(
                row_id=row.id,
                category_id=result.category_id,
                confidence=round(float(result.confidence), 3),
                source=SOURCE_SCORER,
                rationale=result.rationale,
            )
        logger.info("Scorer suggested %d of %d rows for %s", len(suggestions), len(rows), user_id)
        return suggestions

    def learn(self, user_id: str, description: str, category_id: int) -> None:
        """Remember a user's category choice for a description."""
        normalized = normalize_description(description)
        if normalized:
            self.db.record_category_rule(user_id, normalized, category_id, datetime.now(UTC))
