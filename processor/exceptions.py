"""Exceptions raised by the event import pipeline."""
from typing import Any, Optional


class EventImportError(Exception):
    """Base class for import failures."""


class ImportValidationError(EventImportError):
    """
    A row failed validation and the whole batch was rejected.

    Args:
        message: Human readable summary
        row: 1-based CSV line number of the offending row (header is line 1)
        field: Name of the first failing field, if known
        details: Field-level error details
    """

    kind = 'validation'

    def __init__(
        self,
        message: str,
        row: int,
        field: Optional[str] = None,
        details: Any = None
    ):
        super().__init__(message)
        self.message = message
        self.row = row
        self.field = field
        self.details = details

    def to_dict(self) -> dict:
        return {
            'error': self.message,
            'kind': self.kind,
            'row': self.row,
            'field': self.field,
            'details': self.details
        }


class ShapeValidationError(ImportValidationError):
    """Raw row does not have the CSV import shape."""

    kind = 'shape'


class DomainValidationError(ImportValidationError):
    """Normalized row breaks an event business rule."""

    kind = 'domain'


class DateParseError(ImportValidationError):
    """A date field does not describe a real instant."""

    kind = 'date'


class PersistenceError(EventImportError):
    """
    Writing the validated batch failed.

    Args:
        message: Human readable summary
        committed_count: Records left in the store after the failure
        cause: Underlying exception
    """

    def __init__(
        self,
        message: str,
        committed_count: int = 0,
        cause: Optional[BaseException] = None
    ):
        super().__init__(message)
        self.message = message
        self.committed_count = committed_count
        self.cause = cause


class CsvFormatError(EventImportError):
    """CSV text could not be split into records."""

    def __init__(self, message: str, row: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.row = row
