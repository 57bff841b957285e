"""CSV reading and template helpers for the admin event import."""
import csv
import io
import logging
from typing import Dict, List, Tuple

from processor.exceptions import CsvFormatError

logger = logging.getLogger(__name__)

EVENT_TEMPLATE_HEADERS = [
    'title',
    'description',
    'startDate',
    'endDate',
    'location',
    'isOnline',
    'price',
    'currency',
    'maxAttendees',
    'banner',
]

EVENT_TEMPLATE_ROWS = [
    ['Community Picnic', 'Bring a dish to share', '2025-06-14', '',
     'Riverside Park', 'false', '', 'USD', '100', ''],
    ['Evening Workshop', 'Hands-on session', '2025-06-20 18:00',
     '2025-06-20 20:00', 'Main Hall', 'false', '15', 'USD', '30', ''],
]


def parse_csv_records(text: str) -> List[Tuple[int, Dict[str, str]]]:
    """
    Split CSV text into records keyed by header name.

    Header names are trimmed and lines with only blank cells are skipped.
    Cells missing at the end of a short line come back as empty strings.
    Each record is paired with the file line it starts on, so quoted cells
    spanning several lines and skipped blank lines do not shift it.

    Args:
        text: Full CSV document, first non-blank line is the header

    Returns:
        List of (line number, row dict) tuples, one per data record

    Raises:
        CsvFormatError: If there is no header or a line has extra cells
    """
    reader = csv.reader(io.StringIO(text.lstrip('\ufeff')))

    headers = None
    for cells in reader:
        if any(cell.strip() for cell in cells):
            headers = [cell.strip() for cell in cells]
            break

    if not headers:
        raise CsvFormatError('CSV file has no header row')

    records = []
    last_line = reader.line_num
    for cells in reader:
        line_number = last_line + 1
        last_line = reader.line_num

        if not any(cell.strip() for cell in cells):
            continue

        if len(cells) > len(headers):
            raise CsvFormatError(
                f"Too many fields: expected {len(headers)}, found {len(cells)}",
                row=line_number
            )

        padded = cells + [''] * (len(headers) - len(cells))
        records.append((line_number, dict(zip(headers, padded))))

    logger.debug(f"Parsed {len(records)} CSV records with headers {headers}")
    return records


def generate_event_csv_template() -> str:
    """Generate the event import CSV template with example rows."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator='\r\n')
    writer.writerow(EVENT_TEMPLATE_HEADERS)
    writer.writerows(EVENT_TEMPLATE_ROWS)
    return buffer.getvalue()
