"""Unit tests for EventImportProcessor."""
import dataclasses
from contextlib import contextmanager
from datetime import timezone
from zoneinfo import ZoneInfo

import pytest

from processor.event_processor import EventImportProcessor
from processor.exceptions import (
    DateParseError,
    DomainValidationError,
    PersistenceError,
    ShapeValidationError,
)


class InMemoryEventStore:
    """Store double that commits on clean exit, like DynamoDBManager."""

    def __init__(self, fail_on_commit: bool = False):
        self.events = []
        self.transactions_opened = 0
        self.fail_on_commit = fail_on_commit

    @contextmanager
    def transaction(self):
        self.transactions_opened += 1
        pending = []
        store = self

        class Transaction:
            def create_event(self, record):
                created = dataclasses.replace(record, id=f"event-{len(pending) + 1}")
                pending.append(created)
                return created

        yield Transaction()
        if store.fail_on_commit:
            raise RuntimeError('connection reset')
        store.events.extend(pending)


@pytest.fixture
def store():
    return InMemoryEventStore()


@pytest.fixture
def processor(store):
    return EventImportProcessor(store)


class TestImportEvents:
    """Test cases for the batch import."""

    def test_imports_all_day_and_timed_rows(self, processor, store):
        """Two valid rows are both created with the per-row all-day rule."""
        rows = [
            {
                'title': 'All Day Event',
                'startDate': '2025-12-25',
                'description': 'Should be all day'
            },
            {
                'title': 'Timed Event',
                'startDate': '2025-12-26 14:00',
                'description': 'Should have specific time'
            }
        ]

        result = processor.import_events(rows, created_by_id='admin-1')

        assert result.created_count == 2
        assert result.event_ids == ['event-1', 'event-2']
        assert len(store.events) == 2

        all_day, timed = store.events
        assert all_day.is_all_day is True
        assert all_day.start_date.hour == 0
        assert all_day.start_date.tzinfo is not None
        assert timed.is_all_day is False
        assert timed.start_date.astimezone(timezone.utc).hour == 14

    def test_records_carry_creator_and_status(self, processor, store):
        """Imported events are published and owned by the importing admin."""
        processor.import_events(
            [{'title': 'Meetup', 'startDate': '2025-12-25'}],
            created_by_id='admin-42'
        )

        record = store.events[0]
        assert record.created_by_id == 'admin-42'
        assert record.status == 'PUBLISHED'
        assert record.description == ''
        assert record.currency == 'USD'
        assert record.is_free is True
        assert record.end_date is None

    def test_optional_columns_are_mapped(self, processor, store):
        """CSV strings for numbers and flags are converted."""
        processor.import_events(
            [{
                'title': 'Workshop',
                'startDate': '2025-12-26 18:00',
                'endDate': '2025-12-26 20:00',
                'location': 'Main Hall',
                'isOnline': 'false',
                'price': '15',
                'currency': 'EUR',
                'maxAttendees': '30',
                'banner': 'https://example.com/banner.png',
                'unknownColumn': 'ignored'
            }],
            created_by_id='admin-1'
        )

        record = store.events[0]
        assert record.location == 'Main Hall'
        assert record.is_online is False
        assert record.price == 15.0
        assert record.currency == 'EUR'
        assert record.max_attendees == 30
        assert record.banner == 'https://example.com/banner.png'
        assert record.end_date.astimezone(timezone.utc).hour == 20

    def test_blank_optional_cells_use_defaults(self, processor, store):
        """Empty cells from the CSV do not trip numeric validation."""
        processor.import_events(
            [{
                'title': 'Picnic',
                'startDate': '2025-06-14',
                'endDate': '',
                'price': '',
                'maxAttendees': ' ',
                'currency': ''
            }],
            created_by_id='admin-1'
        )

        record = store.events[0]
        assert record.price is None
        assert record.max_attendees is None
        assert record.currency == 'USD'
        assert record.end_date is None

    def test_duplicate_titles_are_not_merged(self, processor, store):
        rows = [{'title': 'Same', 'startDate': '2025-12-25'}] * 3

        result = processor.import_events(rows, created_by_id='admin-1')

        assert result.created_count == 3
        assert len(store.events) == 3

    def test_empty_batch(self, processor, store):
        result = processor.import_events([], created_by_id='admin-1')

        assert result.created_count == 0
        assert store.transactions_opened == 0

    def test_uses_configured_zone_for_timed_rows(self, store):
        processor = EventImportProcessor(store, default_tz=ZoneInfo('Europe/Oslo'))

        processor.import_events(
            [{'title': 'Timed', 'startDate': '2025-12-26 14:00'}],
            created_by_id='admin-1'
        )

        assert store.events[0].start_date.astimezone(timezone.utc).hour == 13


class TestImportValidation:
    """Test cases for the all-or-nothing validation policy."""

    def test_empty_title_in_last_row_rejects_batch(self, processor, store):
        """A bad second row means neither row is written."""
        rows = [
            {'title': 'Valid Event', 'startDate': '2025-12-25'},
            {'title': '', 'startDate': '2025-12-26'}
        ]

        with pytest.raises(ShapeValidationError) as exc_info:
            processor.import_events(rows, created_by_id='admin-1')

        assert exc_info.value.field == 'title'
        assert exc_info.value.row == 3
        assert store.events == []
        assert store.transactions_opened == 0

    def test_rejection_reports_failing_row_wherever_it_is(self, store):
        for bad_index in range(4):
            processor = EventImportProcessor(store)
            rows = [
                {'title': f'Event {i}', 'startDate': '2025-12-25'}
                for i in range(4)
            ]
            rows[bad_index] = {'title': f'Event {bad_index}'}

            with pytest.raises(ShapeValidationError) as exc_info:
                processor.import_events(rows, created_by_id='admin-1')

            assert exc_info.value.row == bad_index + 2
            assert exc_info.value.field == 'startDate'

        assert store.events == []

    def test_row_that_is_not_an_object(self, processor, store):
        with pytest.raises(ShapeValidationError):
            processor.import_events(['title,startDate'], created_by_id='admin-1')

        assert store.events == []

    def test_non_numeric_price_is_shape_error(self, processor):
        with pytest.raises(ShapeValidationError) as exc_info:
            processor.import_events(
                [{'title': 'Paid', 'startDate': '2025-12-25', 'price': 'ten'}],
                created_by_id='admin-1'
            )

        assert exc_info.value.field == 'price'
        assert exc_info.value.details[0]['value'] == 'ten'

    def test_long_title_is_domain_error(self, processor, store):
        with pytest.raises(DomainValidationError) as exc_info:
            processor.import_events(
                [{'title': 'A' * 201, 'startDate': '2025-12-25'}],
                created_by_id='admin-1'
            )

        assert exc_info.value.field == 'title'
        assert store.events == []

    def test_negative_price_is_domain_error(self, processor):
        with pytest.raises(DomainValidationError) as exc_info:
            processor.import_events(
                [{'title': 'Paid', 'startDate': '2025-12-25', 'price': '-5'}],
                created_by_id='admin-1'
            )

        assert exc_info.value.field == 'price'

    def test_zero_attendees_is_domain_error(self, processor):
        with pytest.raises(DomainValidationError) as exc_info:
            processor.import_events(
                [{'title': 'Tiny', 'startDate': '2025-12-25', 'maxAttendees': '0'}],
                created_by_id='admin-1'
            )

        assert exc_info.value.field == 'max_attendees'

    def test_bad_banner_url_is_domain_error(self, processor):
        with pytest.raises(DomainValidationError) as exc_info:
            processor.import_events(
                [{'title': 'Show', 'startDate': '2025-12-25', 'banner': 'not a url'}],
                created_by_id='admin-1'
            )

        assert exc_info.value.field == 'banner'

    def test_impossible_start_date_is_date_error(self, processor, store):
        rows = [
            {'title': 'Fine', 'startDate': '2025-12-25'},
            {'title': 'Leap', 'startDate': '2025-02-30'}
        ]

        with pytest.raises(DateParseError) as exc_info:
            processor.import_events(rows, created_by_id='admin-1')

        assert exc_info.value.field == 'start_date'
        assert exc_info.value.row == 3
        assert '2025-02-30' in exc_info.value.message
        assert store.events == []

    def test_unparseable_end_date_is_date_error(self, processor, store):
        with pytest.raises(DateParseError) as exc_info:
            processor.import_events(
                [{'title': 'Event', 'startDate': '2025-12-25', 'endDate': 'invalid-date'}],
                created_by_id='admin-1'
            )

        assert exc_info.value.field == 'end_date'
        assert exc_info.value.to_dict()['kind'] == 'date'
        assert store.events == []

    def test_time_without_date_is_date_error(self, processor, store):
        """A bare time must not become an event on 1970-01-01."""
        with pytest.raises(DateParseError) as exc_info:
            processor.import_events(
                [{'title': 'Standup', 'startDate': '14:00'}],
                created_by_id='admin-1'
            )

        assert exc_info.value.field == 'start_date'
        assert exc_info.value.row == 2
        assert store.events == []

    def test_explicit_line_numbers_are_reported(self, processor, store):
        """Rows read from a file report the line they were read from."""
        rows = [
            {'title': 'A', 'startDate': '2025-12-25'},
            {'title': '', 'startDate': '2025-12-26'}
        ]

        with pytest.raises(ShapeValidationError) as exc_info:
            processor.import_events(rows, created_by_id='admin-1', line_numbers=[2, 5])

        assert exc_info.value.row == 5
        assert exc_info.value.to_dict()['row'] == 5
        assert store.events == []

    def test_line_numbers_must_match_rows(self, processor):
        with pytest.raises(ValueError):
            processor.import_events(
                [{'title': 'A', 'startDate': '2025-12-25'}],
                created_by_id='admin-1',
                line_numbers=[2, 3]
            )


class TestImportPersistence:
    """Test cases for failures while writing."""

    def test_commit_failure_is_wrapped(self):
        store = InMemoryEventStore(fail_on_commit=True)
        processor = EventImportProcessor(store)

        with pytest.raises(PersistenceError) as exc_info:
            processor.import_events(
                [{'title': 'Event', 'startDate': '2025-12-25'}],
                created_by_id='admin-1'
            )

        assert exc_info.value.committed_count == 0
        assert isinstance(exc_info.value.cause, RuntimeError)
        assert store.events == []

    def test_store_persistence_error_propagates(self):
        class RefusingStore:
            @contextmanager
            def transaction(self):
                raise PersistenceError('throttled', committed_count=0)
                yield

        processor = EventImportProcessor(RefusingStore())

        with pytest.raises(PersistenceError, match='throttled'):
            processor.import_events(
                [{'title': 'Event', 'startDate': '2025-12-25'}],
                created_by_id='admin-1'
            )
