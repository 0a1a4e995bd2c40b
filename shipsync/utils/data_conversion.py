# shipsync/utils/data_conversion.py
from datetime import datetime, date
from typing import Any, Optional
import calendar
import re
from .logger import logger

KURASI_DATETIME_FORMAT = "%Y/%m/%d %H:%M:%S"
_NULL_MARKERS = ("", "null", "none", "undefined")
INT32_MAX = 2**31 - 1
INT64_MAX = 2**63 - 1


def clean_str(value: Any) -> Optional[str]:
    """Trims a value to a string; empty strings and the literal 'null' become None."""
    if value is None:
        return None
    text = str(value).strip()
    if text.lower() in _NULL_MARKERS:
        return None
    return text


def safe_int(value: Any, max_value: int = INT32_MAX) -> Optional[int]:
    """Converts a value to int, returning None on failure or when it does not fit an Integer column."""
    if value is None:
        return None
    number = _to_int(value)
    if number is None:
        return None
    if abs(number) > max_value:
        logger.debug(f"Value {value!r} is outside the column range, dropped.")
        return None
    return number


def _to_int(value: Any) -> Optional[int]:
    try:
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str):
            value = value.strip()
            try:
                float_val = float(value)
                if float_val.is_integer():
                    return int(float_val)
            except ValueError:
                pass
        return int(value)
    except (ValueError, TypeError, OverflowError) as e:
        logger.debug(f"Could not convert value '{value}' (type: {type(value)}) to int: {e}")
        return None


def parse_positive_int(value: Any) -> Optional[int]:
    """Parses a strictly numeric, positive integer (digits only). Used for sale record numbers."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if 0 < value <= INT64_MAX else None
    text = str(value).strip()
    if not text.isdigit():
        return None
    number = int(text)
    return number if 0 < number <= INT64_MAX else None


def parse_fee(value: Any) -> Optional[int]:
    """
    Parses a Kurasi fee string into minor units.

    "104,000" -> 104000. Thousands separators and currency symbols are dropped;
    anything without digits, or too large for a BigInteger column, returns None.
    """
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return safe_int(value, INT64_MAX)
    digits = re.sub(r"[^\d]", "", str(value))
    if not digits:
        return None
    number = int(digits)
    return number if number <= INT64_MAX else None


def fit_str(value: Optional[str], max_length: Optional[int]) -> Optional[str]:
    """Returns value unchanged when it fits a String(max_length) column, otherwise None."""
    if value is None or max_length is None or len(value) <= max_length:
        return value
    logger.debug(f"Value '{value[:40]}...' longer than {max_length} characters, dropped.")
    return None


def parse_platform_datetime(value: Any) -> Optional[datetime]:
    """Parses 'YYYY/MM/DD HH:MM:SS'. 'null', empty and malformed values return None."""
    text = clean_str(value)
    if text is None:
        return None
    try:
        return datetime.strptime(text, KURASI_DATETIME_FORMAT)
    except ValueError:
        logger.debug(f"Could not parse platform datetime '{value}'.")
        return None


def parse_optional_date(value: Optional[str]) -> Optional[date]:
    """Converts a YYYY-MM-DD string to a date, returning None on failure."""
    if not value or not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value.split('T')[0])
    except ValueError as e:
        logger.warning(f"Could not convert '{value}' to date: {e}")
        return None


def end_of_month(day: date) -> date:
    return day.replace(day=calendar.monthrange(day.year, day.month)[1])


def start_of_month(day: date) -> date:
    return day.replace(day=1)


def previous_month_end(day: date) -> date:
    """Last day of the month before the month of `day`."""
    first = start_of_month(day)
    return date.fromordinal(first.toordinal() - 1)
