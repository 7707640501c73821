"""Service wiring shared by CLI commands."""

from typing import Optional

import click
from ledgerflow.adapters.openai_scorer import OpenAIScorer
from ledgerflow.config import Config
from ledgerflow.domain.categorization import CategoryScorer
from ledgerflow.domain.ingest import IngestService


def build_scorer(config: Config) -> Optional[CategoryScorer]:
    """Return the configured external scorer, or None when it is disabled."""
    if not config.scorer.enabled:
        return None
    return OpenAIScorer(model=config.scorer.model)


def get_ingest_service(ctx: click.Context) -> IngestService:
    """Return the command's IngestService, creating it on first use."""
    obj = ctx.find_root().obj
    if "ingest" not in obj:
        config = obj["config"]
        obj["ingest"] = IngestService(obj["db"], config=config, scorer=build_scorer(config))
    return obj["ingest"]
