"""Stable identity hashes for canonical rows."""

import hashlib
from datetime import date
from decimal import Decimal
from typing import Optional

from ledgerflow.domain.entities import CanonicalRow
from ledgerflow.utils.text import normalize_description


def compute_fingerprint(
    row_date: date, amount: Decimal, description: str, discriminator: Optional[str] = None
) -> str:
    """Hash the semantic content of a transaction.

    Only normalized fields go in, never raw cell text, so the same record read
    through two different column mappings hashes the same. The amount keeps
    its sign: an income and an expense of equal size are different rows.
    """
    parts = [
        row_date.isoformat(),
        f"{amount:.2f}",
        normalize_description(description),
        discriminator or "",
    ]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


def fingerprint_row(row: CanonicalRow) -> str:
    """Fingerprint a canonical row."""
    return compute_fingerprint(row.date, row.amount, row.description, row.discriminator)
