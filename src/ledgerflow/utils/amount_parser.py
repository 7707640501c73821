"""Parsing of monetary amounts as bank exports write them."""

import re
from decimal import Decimal, InvalidOperation

CURRENCY_SYMBOLS = re.compile(r"[$€£¥\s]")
# Trailing markers that give the sign: "12.00 DR" is money out
SIGN_SUFFIXES = {"DR": -1, "CR": 1, "-": -1}
# "1.234,56" and "12,50" use a decimal comma
DECIMAL_COMMA = re.compile(r"^\d{1,3}(\.\d{3})*,\d{1,2}$|^\d+,\d{1,2}$")


def parse_amount(amount_str: str) -> Decimal:
    """Parse an amount string into a Decimal.

    Accepts currency symbols, thousands separators, a decimal comma, a
    leading or trailing minus, parentheses for negatives and DR/CR suffixes.

    Raises:
        ValueError: If the string is not a finite amount
    """
    if not amount_str or not amount_str.strip():
        raise ValueError("Empty amount string")

    text = amount_str.strip().replace("−", "-")
    sign = 1
    if text.startswith("(") and text.endswith(")"):
        sign, text = -1, text[1:-1]
    for suffix, suffix_sign in SIGN_SUFFIXES.items():
        if text.upper().endswith(suffix):
            sign, text = suffix_sign, text[: -len(suffix)]
            break

    text = CURRENCY_SYMBOLS.sub("", text)
    if text.startswith("-"):
        sign, text = -sign, text[1:]
    text = text.lstrip("+")
    text = text.replace(".", "").replace(",", ".") if DECIMAL_COMMA.match(text) else text.replace(",", "")

    try:
        amount = Decimal(text)
    except InvalidOperation as e:
        raise ValueError(f"Could not parse amount '{amount_str}'") from e
    if not amount.is_finite():
        raise ValueError(f"Could not parse amount '{amount_str}': not a number")
    return amount * sign


def is_amount(value: str) -> bool:
    """Return True if value parses as an amount."""
    try:
        parse_amount(value)
    except ValueError:
        return False
    return True
