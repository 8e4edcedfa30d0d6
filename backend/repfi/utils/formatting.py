# backend/repfi/utils/formatting.py
"""
Lenient parsers for values read from French accounting exports.

Exports write dates as DDMMYY (sometimes with separators) and amounts with
'.' as thousands separator and ',' as decimal separator ("1.234,56").
Neither helper raises: unreadable input is passed through or read as zero.
"""

import re
from typing import Any

_NON_DIGITS = re.compile(r"\D")
_WHITESPACE = re.compile(r"\s+")
_NUMERIC_PREFIX = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

# Two-digit years above this belong to the 1900s
CENTURY_PIVOT = 50


def format_date(value: Any) -> str:
    """
    Format a DDMMYY date as DD/MM/YYYY.

    Non-digit characters are ignored, so "01-01-99" is read like "010199".
    Non-string cell values are read through str(). Anything that does not
    leave exactly six digits is returned unchanged, as a string.

    Examples:
        >>> format_date("010199")
        '01/01/1999'
        >>> format_date("311224")
        '31/12/2024'
        >>> format_date("0101")
        '0101'
    """
    if not value:
        return ""

    text = str(value)
    digits = _NON_DIGITS.sub("", text)
    if len(digits) != 6:
        return text

    day, month, short_year = digits[0:2], digits[2:4], digits[4:6]
    century = "19" if int(short_year) > CENTURY_PIVOT else "20"
    return f"{day}/{month}/{century}{short_year}"


def parse_amount(value: Any) -> float:
    """
    Parse a French-formatted amount.

    "1.234,56" -> 1234.56, "-12,5" -> -12.5, "12abc" -> 12.0.
    Empty, "-", None or non-numeric input gives 0.
    """
    if not value:
        return 0.0

    text = str(value).strip()
    if text in ("", "-"):
        return 0.0

    cleaned = _WHITESPACE.sub("", text).replace(".", "").replace(",", ".", 1)

    match = _NUMERIC_PREFIX.match(cleaned)
    if match is None:
        return 0.0
    return float(match.group(0))
