"""Category scorer backed by the OpenAI Responses API."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import asdict
from typing import Any, Optional, Sequence

from openai import OpenAI

from ledgerflow.domain.categorization import ScoreResult, ScoringItem
from ledgerflow.domain.errors import ScorerUnavailable
from ledgerflow.logging_setup import get_logger

logger = get_logger("ledgerflow.adapters.openai_scorer")

BEGIN = "BEGIN_TRANSACTIONS_JSON\n"
END = "\nEND_TRANSACTIONS_JSON"

INSTRUCTIONS = (
    "You categorize personal bank transactions. For every transaction in the "
    "JSON block, pick the single best category_id from the category list. "
    "Positive amounts are income, negative amounts are spending. Give a "
    "confidence between 0 and 1 and a short rationale. Only use the listed "
    "category ids."
)

RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "required": ["results"],
    "properties": {
        "results": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "required": ["idx", "category_id", "confidence", "rationale"],
                "properties": {
                    "idx": {"type": "integer"},
                    "category_id": {"type": "integer"},
                    "confidence": {"type": "number"},
                    "rationale": {"type": "string"},
                },
            },
        }
    },
}


def build_user_content(items: Sequence[ScoringItem], categories: Sequence[tuple[int, str]]) -> str:
    """Render categories and the delimited transaction JSON block."""
    lines = ["Categories:"]
    lines.extend(f"- {cid}: {path}" for cid, path in categories)
    payload = json.dumps([asdict(item) for item in items], ensure_ascii=False)
    return "\n".join(lines) + "\n\n" + BEGIN + payload + END


def extract_response_json(resp: Any) -> Mapping[str, Any]:
    """Decode the JSON mapping from a Responses result.

    Prefers ``resp.output_text`` and falls back to the first content item.

    Raises:
        ValueError: If no text can be found or it is not JSON
    """
    text: Optional[str] = getattr(resp, "output_text", None)
    if not text:
        output = getattr(resp, "output", None)
        content = getattr(output[0], "content", None) if output else None
        if content:
            candidate = getattr(content[0], "text", None)
            if isinstance(candidate, str):
                text = candidate
    if not text or not isinstance(text, str):
        raise ValueError("Unexpected Responses API shape; unable to locate text output")
    try:
        decoded = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError("Model output was not valid JSON") from e
    if not isinstance(decoded, Mapping):
        raise ValueError("Model output was not a JSON object")
    return decoded


class OpenAIScorer:
    """Scores rows with one Responses call per batch.

    The client is created on first use so that constructing the scorer never
    needs an API key.
    """

    def __init__(self, model: str = "gpt-4o-mini", client: Any = None):
        self.model = model
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = OpenAI()
        return self._client

    def score(
        self, items: Sequence[ScoringItem], categories: Sequence[tuple[int, str]]
    ) -> list[ScoreResult]:
        """Ask the model for one category per item.

        Raises:
            ScorerUnavailable: If the call fails or the answer cannot be read
        """
        if not items:
            return []
        try:
            resp = self._get_client().responses.create(
                model=self.model,
                instructions=INSTRUCTIONS,
                input=build_user_content(items, categories),
                text={
                    "format": {
                        "type": "json_schema",
                        "name": "category_suggestions",
                        "schema": RESPONSE_SCHEMA,
                        "strict": True,
                    }
                },
            )
            decoded = extract_response_json(resp)
        except ValueError as e:
            raise ScorerUnavailable(str(e)) from e

        results: list[ScoreResult] = []
        for entry in decoded.get("results", []):
            try:
                results.append(
                    ScoreResult(
                        idx=int(entry["idx"]),
                        category_id=int(entry["category_id"]),
                        confidence=max(0.0, min(1.0, float(entry["confidence"]))),
                        rationale=str(entry.get("rationale", "")),
                    )
                )
            except (KeyError, TypeError, ValueError):
                logger.debug("Skipping malformed scorer entry: %r", entry)
        return results
