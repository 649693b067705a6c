"""
Deterministic numeric and date parsing for provider payloads.

Scraped pages mix decimal conventions ("146,20", "1.234,56", "209.69").
Anything outside the accepted grammar raises ParseError; nothing is ever
coerced to zero.
"""

import re
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

from fund_ingest.core.errors import ParseError


_ALLOWED = re.compile(r"\d(?:[\d., ]*\d)?")
_SPACES = str.maketrans({"\u00a0": " ", "\u202f": " ", "\u2009": " "})
_AS_OF = re.compile(r"(\d{1,2})\s*[/.]\s*(\d{1,2})")

# Reports dated up to this many days ahead of "now" are still this year
AS_OF_FUTURE_TOLERANCE = timedelta(days=2)


def _grouped(int_part: str, sep: Optional[str]) -> Optional[str]:
    """Strip valid 3-digit grouping from an integer part, or None if malformed."""
    if int_part.isdigit():
        return int_part
    for candidate in ([sep] if sep else []) + [" "]:
        pattern = r"\d{1,3}(?:" + re.escape(candidate) + r"\d{3})+"
        if re.fullmatch(pattern, int_part):
            return int_part.replace(candidate, "")
    return None


def parse_price(text: Any) -> Decimal:
    """
    Parse a price string using comma or period decimal convention.

    Rules:
        - both "." and "," present: the last one is the decimal separator,
          the other must be 3-digit grouping ("1.234,56", "1,234.56")
        - a single lone separator is the decimal separator ("146,20")
        - a repeated separator is grouping ("1.234.567")
        - spaces (incl. NBSP) may group thousands ("1 234,56")

    Raises:
        ParseError: for anything else
    """
    if text is None:
        raise ParseError("missing price")
    s = str(text).translate(_SPACES).strip()
    if not _ALLOWED.fullmatch(s):
        raise ParseError(f"not a price: {text!r}")

    dots, commas = s.count("."), s.count(",")
    if dots and commas:
        decimal_sep = "." if s.rfind(".") > s.rfind(",") else ","
        group_sep = "," if decimal_sep == "." else "."
        if s.count(decimal_sep) != 1:
            raise ParseError(f"ambiguous separators in {text!r}")
    elif dots == 1 or commas == 1:
        decimal_sep, group_sep = ("." if dots else ","), None
    elif dots or commas:
        decimal_sep, group_sep = None, ("." if dots else ",")
    else:
        decimal_sep = group_sep = None

    if decimal_sep:
        int_part, frac = s.rsplit(decimal_sep, 1)
        if not frac.isdigit():
            raise ParseError(f"malformed decimals in {text!r}")
    else:
        int_part, frac = s, ""

    digits = _grouped(int_part, group_sep)
    if digits is None:
        raise ParseError(f"malformed digit grouping in {text!r}")

    try:
        return Decimal(f"{digits}.{frac}" if frac else digits)
    except InvalidOperation as e:
        raise ParseError(f"not a price: {text!r}") from e


def to_decimal(value: Any) -> Decimal:
    """Convert a JSON number (or numeric string) to a finite Decimal."""
    if value is None or isinstance(value, bool):
        raise ParseError(f"missing price: {value!r}")
    if isinstance(value, str):
        return parse_price(value)
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ParseError(f"not a number: {value!r}") from e
    if not result.is_finite():
        raise ParseError(f"non-finite price: {value!r}")
    return result


def resolve_as_of_date(day: int, month: int, now: Union[date, datetime]) -> date:
    """
    Resolve a year-less "as of DD/MM" report against the current date.

    A date more than two days in the future must belong to last year
    (e.g. "31/12" read on 5 January).
    """
    today = now.date() if isinstance(now, datetime) else now
    try:
        candidate = date(today.year, month, day)
        if candidate - today > AS_OF_FUTURE_TOLERANCE:
            candidate = date(today.year - 1, month, day)
    except ValueError as e:
        raise ParseError(f"invalid as-of date {day:02d}/{month:02d}") from e
    return candidate


def parse_as_of(text: str, now: Union[date, datetime]) -> date:
    """Parse "DD/MM" (or "DD.MM") into a full date relative to now."""
    match = _AS_OF.search(text or "")
    if not match:
        raise ParseError(f"no as-of date in {text!r}")
    return resolve_as_of_date(int(match.group(1)), int(match.group(2)), now)
