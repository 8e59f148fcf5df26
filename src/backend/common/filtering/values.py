from __future__ import annotations

import calendar
import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple

DEFAULT_SHORT_YEAR_CENTURY = 2000
_MAX_DIGITS = 28
_MAX_EXPONENT = 28

_ISO_DAY = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_ISO_MONTH = re.compile(r"^\d{4}-\d{2}$")
_SHORT_MONTH = re.compile(r"^\d{2}-\d{2}$")


def parse_number(raw: str) -> Decimal:
    text = (raw or "").strip()
    if not text:
        raise ValueError("empty number")
    try:
        value = Decimal(text)
    except InvalidOperation as exc:
        raise ValueError(f"invalid number {raw!r}") from exc
    if not value.is_finite():
        raise ValueError(f"invalid number {raw!r}")
    # Stay inside the default decimal context so normalize() cannot overflow or round.
    if abs(value.adjusted()) > _MAX_EXPONENT or len(value.as_tuple().digits) > _MAX_DIGITS:
        raise ValueError(f"number out of range {raw!r}")
    return value


def canonical_decimal(value: Decimal) -> str:
    if value == 0:
        return "0"
    text = format(value.normalize(), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def canonical_date_token(raw: str, *, short_year_century: Optional[int] = DEFAULT_SHORT_YEAR_CENTURY) -> str:
    """Normalize a date token to ``YYYY-MM-DD`` or ``YYYY-MM``.

    ``YY-MM`` expands using ``short_year_century``; ``None`` rejects two-digit years.
    """
    text = (raw or "").strip()
    if _ISO_DAY.match(text):
        date.fromisoformat(text)
        return text
    if _ISO_MONTH.match(text):
        year, month = int(text[:4]), int(text[5:])
        _validate_year_month(year, month)
        return f"{year:04d}-{month:02d}"
    if _SHORT_MONTH.match(text):
        if short_year_century is None:
            raise ValueError("two-digit years are disabled")
        year, month = short_year_century + int(text[:2]), int(text[3:])
        _validate_year_month(year, month)
        return f"{year:04d}-{month:02d}"
    raise ValueError(f"invalid date token {raw!r}")


def _validate_year_month(year: int, month: int) -> None:
    if year < 1 or not 1 <= month <= 12:
        raise ValueError("invalid month")


def date_token_bounds(token: str) -> Tuple[date, date]:
    """First and last day (inclusive) covered by a canonical date token."""
    if _ISO_DAY.match(token):
        day = date.fromisoformat(token)
        return day, day
    year, month = int(token[:4]), int(token[5:7])
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)
