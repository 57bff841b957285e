"""Normalization of a single row of the event import CSV."""
import re
from datetime import datetime, timezone, tzinfo
from typing import Any, Dict

from dateutil import parser as date_parser

from processor.schemas import CsvEventImport

DATE_ONLY_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$', re.ASCII)

# Serialized form of a date that could not be parsed
INVALID_DATE = 'Invalid Date'

# Fills components missing from the input so parsing never depends on today
PARSER_DEFAULT = datetime(1970, 1, 1)
# Second default; a date that moves with it was not fully given
ALTERNATE_DEFAULT = datetime(2000, 2, 2)


def is_date_only(value: str) -> bool:
    """Return True for strings of the exact form YYYY-MM-DD."""
    return len(value) == 10 and DATE_ONLY_PATTERN.match(value) is not None


def format_iso(value: datetime) -> str:
    """
    Serialize an aware datetime as UTC ISO 8601 with milliseconds.

    Args:
        value: Timezone-aware datetime

    Returns:
        String such as 2025-12-25T14:30:00.000Z
    """
    utc_value = value.astimezone(timezone.utc)
    return utc_value.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def parse_date_only(value: str) -> str:
    """
    Convert a YYYY-MM-DD string to midnight UTC of that date.

    Args:
        value: Date-only string

    Returns:
        ISO 8601 string, or INVALID_DATE for impossible dates like 2025-02-30
    """
    try:
        parsed = datetime.strptime(value, '%Y-%m-%d')
    except ValueError:
        return INVALID_DATE
    return format_iso(parsed.replace(tzinfo=timezone.utc))


def parse_date(value: str, default_tz: tzinfo = timezone.utc) -> str:
    """
    Parse a free-form date or date-time string.

    Date-only strings are read as UTC midnight. Strings without an explicit
    offset are interpreted in default_tz. A string lacking the year, month
    or day (such as a bare time) is not a date.

    Args:
        value: Date string from the CSV
        default_tz: Zone applied to naive date-times

    Returns:
        ISO 8601 UTC string, or INVALID_DATE if the string is not a date
    """
    if is_date_only(value):
        return parse_date_only(value)

    try:
        parsed = date_parser.parse(value, default=PARSER_DEFAULT)
        if parsed.date() != date_parser.parse(value, default=ALTERNATE_DEFAULT).date():
            return INVALID_DATE
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=default_tz)
        return format_iso(parsed)
    except (ValueError, OverflowError):
        return INVALID_DATE


def parse_event_import_row(
    row: CsvEventImport,
    default_tz: tzinfo = timezone.utc
) -> Dict[str, Any]:
    """
    Prepare a validated CSV row for the event creation schema.

    A start date of the exact form YYYY-MM-DD makes the event all-day and
    pins it to midnight UTC. Anything else is parsed as a date-time and the
    event is not all-day. The end date is only included when the row has one.
    Invalid dates are returned as INVALID_DATE instead of raising.

    Args:
        row: Row that passed the CSV shape schema
        default_tz: Zone applied to date-times without an offset

    Returns:
        Dict keyed by CreateEvent field names
    """
    data = row.model_dump(exclude_none=True)
    start_date = data.pop('start_date')
    end_date = data.pop('end_date', None)

    if is_date_only(start_date):
        normalized_start_date = parse_date_only(start_date)
        is_all_day = True
    else:
        normalized_start_date = parse_date(start_date, default_tz)
        is_all_day = False

    normalized = dict(data)
    normalized['start_date'] = normalized_start_date
    normalized['is_all_day'] = is_all_day

    if end_date:
        normalized['end_date'] = parse_date(end_date, default_tz)

    return normalized
