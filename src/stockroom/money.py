"""Helpers for parsing and normalizing invoice money values."""

from __future__ import annotations

import math
import re
from typing import Iterable, Optional, Union

MoneyInput = Union[str, float, int, None]

_STRIP_PATTERN = re.compile(r"[\s$€£,]|USD|CAD", re.IGNORECASE)


def parse_money(value: MoneyInput) -> Optional[float]:
    """Parse a money value such as ``"$1,234.50"`` or ``"(12.00)"`` into a float.

    Returns ``None`` for blank input or anything that does not parse to a finite number.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None

    text = value.strip()
    if not text:
        return None
    negative = text.startswith("(") and text.endswith(")")
    if negative:
        text = text[1:-1]
    text = _STRIP_PATTERN.sub("", text)
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return -number if negative else number


def normalize_money(value: MoneyInput) -> Optional[str]:
    """Return the value as a two-decimal string, or ``None`` when it cannot be parsed."""

    number = parse_money(value)
    if number is None:
        return None
    formatted = f"{number:.2f}"
    if formatted == "-0.00":
        return "0.00"
    return formatted


def sum_line_totals(totals: Iterable[MoneyInput]) -> str:
    """Sum line totals, treating unparseable entries as zero."""

    total = sum((parse_money(value) or 0.0) for value in totals)
    return normalize_money(total) or "0.00"


__all__ = ["MoneyInput", "normalize_money", "parse_money", "sum_line_totals"]
