"""Formatting utilities for currency and date display."""

from __future__ import annotations

import math
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Union

from .models import parse_amount, parse_date

CURRENCY_SYMBOL = "₹"
DATE_FORMAT = "%b %d, %Y"
MONTH_FORMAT = "%b %Y"


def _group_indian(digits: str) -> str:
    """Insert separators the en-IN way: last three digits, then pairs."""
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    pairs = []
    while len(head) > 2:
        pairs.insert(0, head[-2:])
        head = head[:-2]
    if head:
        pairs.insert(0, head)
    return ",".join(pairs + [tail])


def format_currency(
    amount: Union[float, int, str, None],
    max_fraction_digits: int = 2,
    include_sign: bool = True,
) -> str:
    """Format an amount as Indian rupees.

    Non-numeric input renders as zero.  Trailing fractional zeros are
    dropped, so at most ``max_fraction_digits`` and at least none are shown.

    Example:
        >>> format_currency(123456.5)
        '₹1,23,456.5'
        >>> format_currency(1234.567, max_fraction_digits=0)
        '₹1,235'
    """
    value = parse_amount(amount) or 0.0
    if not math.isfinite(value):
        value = 0.0
    # halves round away from zero, as en-IN number formatting does
    quantum = Decimal(1).scaleb(-max_fraction_digits)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    negative = rounded < 0
    text = f"{abs(rounded):f}"
    if "." in text:
        whole, fraction = text.split(".")
        fraction = fraction.rstrip("0")
    else:
        whole, fraction = text, ""
    formatted = _group_indian(whole)
    if fraction:
        formatted = f"{formatted}.{fraction}"
    if include_sign:
        formatted = f"{CURRENCY_SYMBOL}{formatted}"
    return f"-{formatted}" if negative else formatted


def format_percent(value: float, digits: int = 1) -> str:
    return f"{value:.{digits}f}%"


def format_date(value: Any, fmt: str = DATE_FORMAT) -> str:
    """Render a date-like value; empty input gives an empty string."""
    if not value:
        return ""
    parsed = parse_date(value)
    if parsed is None:
        return ""
    return parsed.strftime(fmt)


def month_label(value: date) -> str:
    return value.strftime(MONTH_FORMAT)
