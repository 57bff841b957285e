"""Bulk import of events from CSV rows."""
import logging
from datetime import datetime, timezone, tzinfo
from typing import Any, List, Mapping, Optional, Sequence

from dateutil import parser as date_parser
from pydantic import ValidationError

from processor.exceptions import (
    DateParseError,
    DomainValidationError,
    PersistenceError,
    ShapeValidationError,
)
from processor.models import EventRecord, ImportResult
from processor.row_parser import INVALID_DATE, parse_event_import_row
from processor.schemas import CreateEvent, CsvEventImport, format_validation_errors

logger = logging.getLogger(__name__)


class EventImportProcessor:
    """
    Validates a batch of CSV rows and creates one event per row.

    The batch is all-or-nothing. Every row is validated before anything is
    written, and the writes share a single store transaction.
    """

    DEFAULT_STATUS = 'PUBLISHED'
    FIRST_DATA_LINE = 2  # line 1 of the CSV is the header

    def __init__(self, store, default_tz: tzinfo = timezone.utc):
        """
        Initialize the processor.

        Args:
            store: Persistence collaborator exposing transaction()
            default_tz: Zone applied to imported date-times without an offset
        """
        self.store = store
        self.default_tz = default_tz

    def import_events(
        self,
        rows: Sequence[Mapping[str, Any]],
        created_by_id: str,
        line_numbers: Optional[Sequence[int]] = None
    ) -> ImportResult:
        """
        Validate and create events for every row.

        Args:
            rows: Header-keyed CSV records, in file order
            created_by_id: Identity of the admin running the import
            line_numbers: CSV line each row starts on; rows are numbered
                from line 2 in order when omitted

        Returns:
            ImportResult with the number of created events

        Raises:
            ImportValidationError: A row failed validation, nothing was written
            PersistenceError: The store rejected the batch
        """
        logger.info(f"Importing {len(rows)} event rows for user {created_by_id}")

        records = self.validate_rows(rows, created_by_id, line_numbers)
        if not records:
            logger.info("No rows to import")
            return ImportResult(created_count=0)

        created = self._create_events(records)

        logger.info(f"Imported {len(created)} events")
        return ImportResult(
            created_count=len(created),
            event_ids=[record.id for record in created]
        )

    def validate_rows(
        self,
        rows: Sequence[Mapping[str, Any]],
        created_by_id: str,
        line_numbers: Optional[Sequence[int]] = None
    ) -> List[EventRecord]:
        """
        Turn every row into an EventRecord, stopping at the first bad row.

        Args:
            rows: Header-keyed CSV records
            created_by_id: Identity of the admin running the import
            line_numbers: CSV line each row starts on, reported in errors

        Returns:
            One EventRecord per row, in order
        """
        if line_numbers is None:
            line_numbers = range(self.FIRST_DATA_LINE, len(rows) + self.FIRST_DATA_LINE)
        elif len(line_numbers) != len(rows):
            raise ValueError('line_numbers must have one entry per row')

        records = []
        for line_number, row in zip(line_numbers, rows):
            try:
                records.append(
                    self._process_single_row(row, line_number, created_by_id)
                )
            except (ShapeValidationError, DomainValidationError, DateParseError) as e:
                logger.warning(
                    f"Rejecting import at line {line_number}: {e.message}",
                    extra={'row': line_number, 'field': e.field}
                )
                raise
        return records

    def _process_single_row(
        self,
        row: Mapping[str, Any],
        line_number: int,
        created_by_id: str
    ) -> EventRecord:
        try:
            csv_row = CsvEventImport.model_validate(row)
        except ValidationError as e:
            details = format_validation_errors(e)
            raise ShapeValidationError(
                'Invalid CSV row format',
                row=line_number,
                field=details[0]['field'] if details else None,
                details=details
            ) from e

        normalized = parse_event_import_row(csv_row, self.default_tz)

        try:
            event = CreateEvent.model_validate(normalized)
        except ValidationError as e:
            details = format_validation_errors(e)
            raise DomainValidationError(
                'Row failed event validation',
                row=line_number,
                field=details[0]['field'] if details else None,
                details=details
            ) from e

        start_date = self._to_datetime(event.start_date)
        if start_date is None:
            raise self._date_error('start_date', csv_row.start_date, line_number)

        end_date = None
        if event.end_date:
            end_date = self._to_datetime(event.end_date)
            if end_date is None:
                raise self._date_error('end_date', csv_row.end_date, line_number)

        return EventRecord(
            title=event.title,
            description=event.description or '',
            start_date=start_date,
            end_date=end_date,
            is_all_day=event.is_all_day,
            created_by_id=created_by_id,
            status=self.DEFAULT_STATUS,
            location=event.location,
            banner=str(event.banner) if event.banner else None,
            is_online=event.is_online,
            is_free=event.is_free,
            price=event.price,
            currency=event.currency,
            max_attendees=event.max_attendees
        )

    def _create_events(self, records: List[EventRecord]) -> List[EventRecord]:
        created = []
        try:
            with self.store.transaction() as tx:
                for record in records:
                    created.append(tx.create_event(record))
        except PersistenceError:
            logger.error("Event import transaction failed", exc_info=True)
            raise
        except Exception as e:
            logger.error(f"Unexpected error creating events: {e}", exc_info=True)
            raise PersistenceError(
                f"Failed to create events: {e}",
                committed_count=0,
                cause=e
            ) from e
        return created

    @staticmethod
    def _to_datetime(value: str) -> Optional[datetime]:
        """Parse a normalized ISO string, returning None for invalid dates."""
        if not value or value == INVALID_DATE:
            return None
        try:
            return date_parser.isoparse(value)
        except ValueError:
            return None

    @staticmethod
    def _date_error(field: str, raw_value: Optional[str], line_number: int) -> DateParseError:
        label = 'start' if field == 'start_date' else 'end'
        return DateParseError(
            f"Invalid {label} date: {raw_value}",
            row=line_number,
            field=field,
            details=[{
                'field': field,
                'message': 'Not a valid date',
                'type': 'invalid_date',
                'value': raw_value
            }]
        )
