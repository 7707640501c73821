"""Tests for category suggestions from learned rules and an external scorer."""

import logging
import time
import pytest
from datetime import datetime, UTC

from ledgerflow.config import Config, ScorerSettings
from ledgerflow.domain.categorization import (
    SCORER_FEATURE,
    CategorizationAdvisor,
    ScoreResult,
)
from ledgerflow.domain.errors import ScorerUnavailable
from ledgerflow.domain.ingest import IngestService


class StubScorer:
    """Scorer returning canned results and recording its calls."""

    def __init__(self, choose=None, error=None, delay=0.0):
        self.choose = choose
        self.error = error
        self.delay = delay
        self.calls = []

    def score(self, items, categories):
        self.calls.append((list(items), list(categories)))
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return [self.choose(item, dict(categories)) for item in items]


def scorer_settings(**overrides):
    """Enabled scorer settings with short timeouts for tests."""
    values = dict(enabled=True, timeout_seconds=2.0, daily_limit=5, min_confidence=0.5)
    values.update(overrides)
    return ScorerSettings(**values)


def make_ingest(temp_db, scorer, **overrides):
    """IngestService with an enabled scorer."""
    config = Config(scorer=scorer_settings(**overrides))
    return IngestService(temp_db, config=config, scorer=scorer)


def pick(path):
    """Scorer choice function that always picks the category at path."""

    def choose(item, categories):
        category_id = next(cid for cid, p in categories.items() if p == path)
        return ScoreResult(idx=item.idx, category_id=category_id, confidence=0.8, rationale="looks right")

    return choose


def used_today(db, user_id="default"):
    return db.get_scorer_usage(user_id, SCORER_FEATURE, datetime.now(UTC).date())


def test_rule_exact_and_fuzzy_match(temp_db, sample_categories):
    """Exact rules score 0.95; close descriptions get a scaled score."""
    advisor = CategorizationAdvisor(temp_db)
    coffee = sample_categories["Food > Coffee"]
    advisor.learn("default", "COFFEE SHOP #12", coffee)

    assert advisor.rule_suggestion("default", "Coffee Shop 12") == (coffee, 0.95)

    category_id, confidence = advisor.rule_suggestion("default", "COFFEE SHOP #13")
    assert category_id == coffee
    assert 0.7 * 0.95 <= confidence < 0.95

    assert advisor.rule_suggestion("default", "HARDWARE STORE") is None
    assert advisor.rule_suggestion("someone-else", "COFFEE SHOP #12") is None


def test_rule_for_deleted_category_is_ignored(temp_db, sample_categories, category_service):
    """Rules pointing at a deleted category do not suggest it."""
    advisor = CategorizationAdvisor(temp_db)
    coffee = sample_categories["Food > Coffee"]
    advisor.learn("default", "COFFEE SHOP", coffee)
    category_service.delete_category(coffee)

    assert advisor.rule_suggestion("default", "COFFEE SHOP") is None


def test_most_used_rule_wins(temp_db, sample_categories):
    """The rule chosen most often is suggested."""
    advisor = CategorizationAdvisor(temp_db)
    coffee = sample_categories["Food > Coffee"]
    restaurants = sample_categories["Food > Restaurants"]
    advisor.learn("default", "CORNER CAFE", restaurants)
    advisor.learn("default", "CORNER CAFE", coffee)
    advisor.learn("default", "CORNER CAFE", coffee)

    assert advisor.rule_suggestion("default", "CORNER CAFE")[0] == coffee


def test_categorize_with_rules_only(ingest_service, sample_categories, fixtures_dir):
    """Without a scorer only rule hits are categorized."""
    ingest_service.advisor.learn("default", "PAYROLL", sample_categories["Income > Salary"])
    batch = ingest_service.import_file(fixtures_dir / "scenario.csv", "default")

    result = ingest_service.categorize(batch["batch_id"])

    assert result == {"categorized": 1, "by_rule": 1, "by_scorer": 0, "uncategorized": 1}
    payroll = ingest_service.queue.get_row(batch["row_ids"][1])
    assert payroll.status == "categorized"
    assert payroll.suggestion_source == "rule"
    assert payroll.suggestion_confidence == 0.95


def test_scorer_fills_rule_gaps(temp_db, sample_categories, fixtures_dir):
    """Rows without a rule go to the scorer; its use is counted once per call."""
    scorer = StubScorer(choose=pick("Food > Coffee"))
    service = make_ingest(temp_db, scorer)
    service.advisor.learn("default", "PAYROLL", sample_categories["Income > Salary"])
    batch = service.import_file(fixtures_dir / "scenario.csv", "default")

    result = service.categorize(batch["batch_id"])

    assert result["by_rule"] == 1
    assert result["by_scorer"] == 1
    assert len(scorer.calls) == 1
    items, categories = scorer.calls[0]
    assert [i.description for i in items] == ["COFFEE SHOP"]
    assert items[0].amount == "-4.50"
    assert "Food > Coffee" in dict(categories).values()
    assert used_today(temp_db) == 1
    coffee_row = service.queue.get_row(batch["row_ids"][0])
    assert coffee_row.suggestion_source == "scorer"
    assert coffee_row.splits[0].category_id == sample_categories["Food > Coffee"]


def test_no_scorer_flag(temp_db, sample_categories, fixtures_dir):
    """use_scorer=False keeps the scorer out."""
    scorer = StubScorer(choose=pick("Food > Coffee"))
    service = make_ingest(temp_db, scorer)
    batch = service.import_file(fixtures_dir / "scenario.csv", "default")

    result = service.categorize(batch["batch_id"], use_scorer=False)

    assert result["categorized"] == 0
    assert scorer.calls == []


def test_disabled_scorer_is_not_called(temp_db, sample_categories, fixtures_dir):
    """A scorer is ignored while the settings disable it."""
    scorer = StubScorer(choose=pick("Food > Coffee"))
    service = make_ingest(temp_db, scorer, enabled=False)
    batch = service.import_file(fixtures_dir / "scenario.csv", "default")

    service.categorize(batch["batch_id"])

    assert scorer.calls == []


def test_scorer_failure_degrades_to_rules(temp_db, sample_categories, fixtures_dir, caplog):
    """A failing scorer is logged and rule suggestions still apply."""
    scorer = StubScorer(error=RuntimeError("upstream 500"))
    service = make_ingest(temp_db, scorer)
    service.advisor.learn("default", "PAYROLL", sample_categories["Income > Salary"])
    batch = service.import_file(fixtures_dir / "scenario.csv", "default")

    with caplog.at_level(logging.WARNING, logger="ledgerflow"):
        result = service.categorize(batch["batch_id"])

    assert result == {"categorized": 1, "by_rule": 1, "by_scorer": 0, "uncategorized": 1}
    assert used_today(temp_db) == 0
    assert "upstream 500" in caplog.text


def test_scorer_timeout(temp_db, sample_categories, fixtures_dir):
    """A slow scorer times out without counting against the quota."""
    scorer = StubScorer(choose=pick("Food > Coffee"), delay=0.5)
    service = make_ingest(temp_db, scorer, timeout_seconds=0.05)
    batch = service.import_file(fixtures_dir / "scenario.csv", "default")

    result = service.categorize(batch["batch_id"])

    assert result["by_scorer"] == 0
    assert used_today(temp_db) == 0


def test_scorer_timeout_raises_unavailable_internally(temp_db, sample_categories, fixtures_dir):
    """The private scoring step reports a timeout as ScorerUnavailable."""
    scorer = StubScorer(choose=pick("Food > Coffee"), delay=0.5)
    advisor = CategorizationAdvisor(temp_db, scorer, scorer_settings(timeout_seconds=0.05))
    service = make_ingest(temp_db, None)
    batch = service.import_file(fixtures_dir / "scenario.csv", "default")
    rows = service.queue.get_rows(batch["batch_id"], statuses=("queued",))

    with pytest.raises(ScorerUnavailable, match="timed out"):
        advisor._score("default", rows)


def test_daily_quota(temp_db, sample_categories, fixtures_dir):
    """Once the daily limit is used up the scorer is skipped."""
    scorer = StubScorer(choose=pick("Food > Coffee"))
    service = make_ingest(temp_db, scorer, daily_limit=1)

    first = service.import_file(fixtures_dir / "scenario.csv", "default")
    service.categorize(first["batch_id"])
    assert service.advisor.remaining_quota("default") == 0

    second = service.import_file(fixtures_dir / "simple.csv", "default")
    result = service.categorize(second["batch_id"])

    assert result["by_scorer"] == 0
    assert len(scorer.calls) == 1
    assert service.advisor.remaining_quota("other-user") == 1


def test_low_confidence_and_unknown_categories_dropped(temp_db, sample_categories, fixtures_dir):
    """Scorer results below the confidence floor or for unknown ids are ignored."""

    def choose(item, categories):
        if item.description == "COFFEE SHOP":
            return ScoreResult(idx=item.idx, category_id=next(iter(categories)), confidence=0.2)
        return ScoreResult(idx=item.idx, category_id=99999, confidence=0.9)

    service = make_ingest(temp_db, StubScorer(choose=choose))
    batch = service.import_file(fixtures_dir / "scenario.csv", "default")

    result = service.categorize(batch["batch_id"])

    assert result["categorized"] == 0
    assert used_today(temp_db) == 1


def test_accepted_scorer_guess_is_not_learned(temp_db, sample_categories, fixtures_dir):
    """Approving a scorer suggestion does not create a rule."""
    service = make_ingest(temp_db, StubScorer(choose=pick("Food > Coffee")))
    batch = service.import_file(fixtures_dir / "scenario.csv", "default")
    service.categorize(batch["batch_id"])

    service.approve(batch["batch_id"])

    assert service.advisor.rule_suggestion("default", "COFFEE SHOP") is None
