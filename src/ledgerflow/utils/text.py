"""Description normalization and similarity helpers."""

import re
from difflib import SequenceMatcher

# Words that say how a payment was made rather than who was paid
_NOISE_WORDS = (
    "ACH", "PMT", "PAYMENT", "TXN", "TRANSACTION",
    "DEBIT", "CREDIT", "PURCHASE", "POS",
    "ONLINE", "WEB", "MOBILE", "APP",
    "INC", "LLC", "LTD", "CORP", "CO",
)
_NOISE_RE = re.compile(r"\b(" + "|".join(_NOISE_WORDS) + r")\b")

MAX_DISPLAY_NAME_LENGTH = 50


def normalize_description(description: str) -> str:
    """Case-fold a description, drop punctuation and collapse whitespace.

    This is the form used for fingerprints, merchant patterns and rules, so
    "Coffee-Shop  #12" and "COFFEE SHOP 12" compare equal.
    """
    text = re.sub(r"[^a-z0-9\s]", " ", description.lower())
    return re.sub(r"\s+", " ", text).strip()


def merchant_display_name(description: str) -> str:
    """Derive a readable merchant name from a raw bank description.

    Dates and long reference numbers are removed along with payment noise
    words. Falls back to the stripped description when nothing is left.
    """
    text = description.upper().strip()
    text = re.sub(r"\b\d{6}\b", "", text)
    text = re.sub(r"\b\d{8,}\b", "", text)
    text = _NOISE_RE.sub("", text)
    text = re.sub(r"[^A-Z0-9\s]", " ", text)
    text = re.sub(r"\s+", " ", text).strip()
    if not text:
        text = description.strip()
    return text.title()[:MAX_DISPLAY_NAME_LENGTH].strip()


def similarity(a: str, b: str) -> float:
    """Return a 0..1 similarity ratio between two strings, ignoring case."""
    a, b = a.lower().strip(), b.lower().strip()
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    return SequenceMatcher(None, a, b).ratio()
