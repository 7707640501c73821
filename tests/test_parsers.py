"""Tests for date, amount and description parsing utilities."""

import pytest
from datetime import date
from decimal import Decimal

from ledgerflow.utils.amount_parser import is_amount, parse_amount
from ledgerflow.utils.date_parser import (
    detect_date_format,
    get_date_range,
    match_date_format,
    parse_date,
    parse_date_with_format,
)
from ledgerflow.utils.text import merchant_display_name, normalize_description, similarity

# A Wednesday
TODAY = date(2024, 3, 13)


def test_parse_absolute_date():
    """Test parsing absolute dates."""
    assert parse_date("2024-01-15") == date(2024, 1, 15)
    assert parse_date("January 15, 2024") == date(2024, 1, 15)


def test_parse_fixed_relative_dates():
    """Test today, yesterday and tomorrow."""
    assert parse_date("today", today=TODAY) == TODAY
    assert parse_date("Yesterday", today=TODAY) == date(2024, 3, 12)
    assert parse_date("tomorrow", today=TODAY) == date(2024, 3, 14)


@pytest.mark.parametrize(
    "text,expected",
    [
        ("last month", date(2024, 2, 1)),
        ("this month", date(2024, 3, 1)),
        ("next month", date(2024, 4, 1)),
        ("last year", date(2023, 1, 1)),
        ("this year", date(2024, 1, 1)),
        ("next year", date(2025, 1, 1)),
        ("last week", date(2024, 3, 4)),
        ("this week", date(2024, 3, 11)),
        ("next week", date(2024, 3, 18)),
        ("last monday", date(2024, 3, 11)),
        ("last wednesday", date(2024, 3, 6)),
    ],
)
def test_parse_period_phrases(text, expected):
    """Period phrases resolve to the first day of the period."""
    assert parse_date(text, today=TODAY) == expected


def test_parse_invalid_date():
    """Test that garbage raises ValueError."""
    with pytest.raises(ValueError, match="Could not parse date"):
        parse_date("not a date at all")


def test_date_ranges():
    """Test named periods."""
    assert get_date_range("this-month", today=TODAY) == (date(2024, 3, 1), TODAY)
    assert get_date_range("last-month", today=TODAY) == (date(2024, 2, 1), date(2024, 2, 29))
    assert get_date_range("last-year", today=TODAY) == (date(2023, 1, 1), date(2023, 12, 31))
    assert get_date_range("last-week", today=TODAY) == (date(2024, 3, 4), date(2024, 3, 10))
    assert get_date_range("this-week", today=TODAY) == (date(2024, 3, 11), TODAY)


def test_unknown_date_range():
    """Test that an unknown period raises ValueError."""
    with pytest.raises(ValueError, match="Unknown period"):
        get_date_range("next-decade")


def test_statement_date_with_format():
    """A known format is used as is."""
    assert parse_date_with_format("05/01/2024", "%d/%m/%Y") == date(2024, 1, 5)
    with pytest.raises(ValueError, match="does not match"):
        parse_date_with_format("2024-01-05", "%d/%m/%Y")


def test_statement_date_rejects_out_of_range_year():
    """Years outside 1900..2100 are not statement dates."""
    with pytest.raises(ValueError):
        parse_date_with_format("01/01/1850")
    assert match_date_format("1850-01-01") is None


def test_detect_date_format_disambiguates():
    """A day above 12 settles US against European order."""
    assert detect_date_format(["03/04/2024", "13/04/2024", "20/04/2024"]) == "%d/%m/%Y"
    assert detect_date_format(["03/04/2024", "04/13/2024"]) == "%m/%d/%Y"
    assert detect_date_format(["PAYROLL", ""]) is None


@pytest.mark.parametrize(
    "text,expected",
    [
        ("123.45", Decimal("123.45")),
        ("$1,234.56", Decimal("1234.56")),
        ("-$10.00", Decimal("-10.00")),
        ("(42.10)", Decimal("-42.10")),
        ("17.25-", Decimal("-17.25")),
        ("€ 9", Decimal("9")),
        ("1.234,56", Decimal("1234.56")),
        ("12,50", Decimal("12.50")),
        ("12.00 DR", Decimal("-12.00")),
        ("12.00 CR", Decimal("12.00")),
        ("−3.10", Decimal("-3.10")),
    ],
)
def test_parse_amount(text, expected):
    """Test the amount formats found in bank exports."""
    assert parse_amount(text) == expected


def test_parse_amount_rejects_garbage():
    """Empty, textual and infinite values are not amounts."""
    for value in ("", "  ", "abc", "Infinity", "NaN"):
        assert not is_amount(value)
    with pytest.raises(ValueError):
        parse_amount("twelve")


def test_normalize_description():
    """Punctuation and case differences disappear."""
    assert normalize_description("Coffee-Shop  #12") == "coffee shop 12"
    assert normalize_description("COFFEE SHOP 12") == "coffee shop 12"
    assert normalize_description("***") == ""


def test_merchant_display_name():
    """Payment noise and reference numbers are stripped."""
    assert merchant_display_name("POS PURCHASE STARBUCKS 123456789") == "Starbucks"
    assert merchant_display_name("ACH PMT") == "Ach Pmt"


def test_similarity():
    """Similarity is case-insensitive and bounded."""
    assert similarity("Coffee", "COFFEE") == 1.0
    assert similarity("", "x") == 0.0
    assert 0 < similarity("coffee shop", "coffee shack") < 1
