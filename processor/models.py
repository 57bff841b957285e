"""Data models for event import processing."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class EventRecord:
    """Validated event ready to be persisted."""
    title: str
    description: str
    start_date: datetime
    end_date: Optional[datetime]
    is_all_day: bool
    created_by_id: str
    status: str = 'PUBLISHED'
    location: Optional[str] = None
    banner: Optional[str] = None
    is_online: bool = False
    is_free: bool = True
    price: Optional[float] = None
    currency: str = 'USD'
    max_attendees: Optional[int] = None
    id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class ImportResult:
    """Result of a bulk import."""
    created_count: int
    event_ids: list[str] = field(default_factory=list)
