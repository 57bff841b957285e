"""Validation schemas for imported event rows."""
from typing import Any, List, Optional

from pydantic import AnyUrl, BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel


class CsvEventImport(BaseModel):
    """Shape of a single row of the event import CSV."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    title: str = Field(min_length=1)
    start_date: str = Field(min_length=1)
    end_date: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    banner: Optional[str] = None
    is_online: Optional[bool] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    max_attendees: Optional[int] = None

    @field_validator(
        'end_date', 'description', 'location', 'banner', 'is_online',
        'price', 'currency', 'max_attendees',
        mode='before'
    )
    @classmethod
    def blank_cell_is_absent(cls, value: Any) -> Any:
        # Empty CSV cells arrive as '' rather than missing keys
        if isinstance(value, str) and not value.strip():
            return None
        return value


class CreateEvent(BaseModel):
    """Business rules an event must satisfy before it is created."""

    title: str = Field(min_length=1, max_length=200)
    description: str = ''
    banner: Optional[AnyUrl] = None
    start_date: str
    end_date: Optional[str] = None
    location: Optional[str] = None
    is_online: bool = False
    is_all_day: bool = False
    is_free: bool = True
    price: Optional[float] = Field(default=None, gt=0)
    currency: str = 'USD'
    max_attendees: Optional[int] = Field(default=None, gt=0)


def format_validation_errors(error: ValidationError) -> List[dict]:
    """
    Flatten a pydantic ValidationError into JSON friendly field errors.

    Args:
        error: Error raised by model validation

    Returns:
        List of dicts with field, message, type and (when printable) value
    """
    details = []
    for item in error.errors(include_url=False):
        detail = {
            'field': '.'.join(str(part) for part in item['loc']),
            'message': item['msg'],
            'type': item['type']
        }
        value = item.get('input')
        if value is None or isinstance(value, (str, int, float, bool)):
            detail['value'] = value
        details.append(detail)
    return details
