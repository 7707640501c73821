"""Utility functions for ledgerflow."""

from ledgerflow.utils.date_parser import parse_date, parse_date_with_format, detect_date_format
from ledgerflow.utils.amount_parser import parse_amount, is_amount
from ledgerflow.utils.text import normalize_description, merchant_display_name

__all__ = [
    "parse_date",
    "parse_date_with_format",
    "detect_date_format",
    "parse_amount",
    "is_amount",
    "normalize_description",
    "merchant_display_name",
]
