"""DynamoDB manager for event storage operations."""
import dataclasses
import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterator, List, Optional

import boto3
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import BotoCoreError, ClientError
from dateutil import parser as date_parser

from processor.exceptions import PersistenceError
from processor.models import EventRecord
from processor.row_parser import format_iso

logger = logging.getLogger(__name__)


class EventTransaction:
    """
    Collects event creations and writes them atomically on commit.

    Obtained from DynamoDBManager.transaction(); nothing reaches the table
    unless the managed block exits cleanly.
    """

    def __init__(self, manager: 'DynamoDBManager'):
        self.manager = manager
        self.pending: List[EventRecord] = []

    def create_event(self, record: EventRecord) -> EventRecord:
        """Queue an event and return it with its generated id."""
        prepared = self.manager.prepare_record(record)
        self.pending.append(prepared)
        return prepared

    def commit(self) -> int:
        count = self.manager.transact_write_events(self.pending)
        self.pending = []
        return count

    def rollback(self) -> None:
        if self.pending:
            logger.info(f"Discarding {len(self.pending)} uncommitted events")
        self.pending = []


class DynamoDBManager:
    """Manager for DynamoDB operations."""

    BATCH_SIZE = 25  # DynamoDB batch operation limit
    TRANSACTION_SIZE = 100  # DynamoDB TransactWriteItems limit

    def __init__(self, table_name: str):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        self.client = self.dynamodb.meta.client
        self.serializer = TypeSerializer()
        logger.info(f"Initialized DynamoDBManager for table: {table_name}")

    def get_all_events(self) -> Dict[str, EventRecord]:
        """
        Retrieve all events from DynamoDB using Scan operation.

        Returns:
            Dictionary mapping event id to EventRecord objects
        """
        events = {
            event.id: event
            for event in map(self._item_to_event_record, self._scan_items())
            if event
        }
        logger.info(f"Retrieved {len(events)} events from DynamoDB")
        return events

    def _scan_items(self) -> Iterator[dict]:
        """Yield every item in the table, following scan pages."""
        scan_kwargs = {}
        while True:
            try:
                page = self.table.scan(**scan_kwargs)
            except (ClientError, BotoCoreError) as e:
                logger.error(f"Error scanning table {self.table_name}: {e}")
                raise

            yield from page.get('Items', [])

            if 'LastEvaluatedKey' not in page:
                return
            scan_kwargs['ExclusiveStartKey'] = page['LastEvaluatedKey']

    def create_event(self, record: EventRecord) -> EventRecord:
        """
        Create a single event outside of any transaction.

        Args:
            record: Event to create

        Returns:
            The stored EventRecord including id and created_at
        """
        prepared = self.prepare_record(record)
        try:
            self.table.put_item(
                Item=self._event_record_to_item(prepared),
                ConditionExpression='attribute_not_exists(event_id)'
            )
        except ClientError as e:
            logger.error(f"Error creating event '{record.title}': {e}")
            raise
        return prepared

    @contextmanager
    def transaction(self) -> Iterator[EventTransaction]:
        """
        Scope in which event creations are committed together.

        Commits when the block exits normally and discards every queued
        event when it raises.

        Yields:
            EventTransaction to queue creations on
        """
        tx = EventTransaction(self)
        try:
            yield tx
        except BaseException:
            tx.rollback()
            raise
        tx.commit()

    def transact_write_events(self, records: List[EventRecord]) -> int:
        """
        Write events with TransactWriteItems in chunks of 100.

        A batch larger than one transaction is written chunk by chunk. When a
        chunk fails, chunks already written are deleted again before the
        error is raised.

        Args:
            records: Prepared EventRecords (ids assigned)

        Returns:
            Count of written events

        Raises:
            PersistenceError: If any chunk fails
        """
        if not records:
            return 0

        logger.info(f"Writing {len(records)} events in a transaction")
        written: List[EventRecord] = []

        for i in range(0, len(records), self.TRANSACTION_SIZE):
            chunk = records[i:i + self.TRANSACTION_SIZE]

            try:
                self.client.transact_write_items(
                    TransactItems=[
                        {
                            'Put': {
                                'TableName': self.table_name,
                                'Item': self._serialize_item(
                                    self._event_record_to_item(record)
                                ),
                                'ConditionExpression': 'attribute_not_exists(event_id)'
                            }
                        }
                        for record in chunk
                    ]
                )
            except (ClientError, BotoCoreError) as e:
                logger.error(
                    f"Error writing transaction chunk "
                    f"{i // self.TRANSACTION_SIZE + 1}: {e}"
                )
                remaining = self._undo_writes(written)
                raise PersistenceError(
                    f"Failed to write events: {e}",
                    committed_count=remaining,
                    cause=e
                ) from e

            written.extend(chunk)

        logger.info(f"Successfully wrote {len(written)} events")
        return len(written)

    def batch_delete_events(self, event_ids: List[str]) -> int:
        """
        Delete events from DynamoDB in batches of 25 items.

        Args:
            event_ids: List of event IDs to delete

        Returns:
            Count of successfully deleted events
        """
        if not event_ids:
            return 0

        logger.info(f"Deleting {len(event_ids)} events from DynamoDB")
        success_count = 0

        for i in range(0, len(event_ids), self.BATCH_SIZE):
            batch = event_ids[i:i + self.BATCH_SIZE]

            try:
                with self.table.batch_writer() as writer:
                    for event_id in batch:
                        writer.delete_item(Key={'event_id': event_id})
                success_count += len(batch)

            except (ClientError, BotoCoreError) as e:
                logger.error(
                    f"Error deleting batch {i // self.BATCH_SIZE + 1}: {e}"
                )
                continue

        logger.info(f"Successfully deleted {success_count} events")
        return success_count

    def prepare_record(self, record: EventRecord) -> EventRecord:
        """Return a copy of record with a fresh id and creation time."""
        return dataclasses.replace(
            record,
            id=str(uuid.uuid4()),
            created_at=datetime.now(timezone.utc)
        )

    def _undo_writes(self, written: List[EventRecord]) -> int:
        """Delete already committed events, returning how many remain."""
        if not written:
            return 0
        logger.warning(f"Rolling back {len(written)} committed events")
        deleted = self.batch_delete_events([record.id for record in written])
        return len(written) - deleted

    def _serialize_item(self, item: dict) -> dict:
        return {key: self.serializer.serialize(value) for key, value in item.items()}

    def _item_to_event_record(self, item: dict) -> Optional[EventRecord]:
        """
        Convert DynamoDB item to EventRecord object.

        Args:
            item: DynamoDB item dictionary

        Returns:
            EventRecord object or None if conversion fails
        """
        try:
            return EventRecord(
                id=item['event_id'],
                title=item['title'],
                description=item.get('description', ''),
                start_date=date_parser.isoparse(item['start_date']),
                end_date=(
                    date_parser.isoparse(item['end_date'])
                    if item.get('end_date') else None
                ),
                is_all_day=bool(item['is_all_day']),
                created_by_id=item['created_by_id'],
                status=item['status'],
                location=item.get('location'),
                banner=item.get('banner'),
                is_online=bool(item.get('is_online', False)),
                is_free=bool(item.get('is_free', True)),
                price=float(item['price']) if 'price' in item else None,
                currency=item.get('currency', 'USD'),
                max_attendees=(
                    int(item['max_attendees']) if 'max_attendees' in item else None
                ),
                created_at=(
                    date_parser.isoparse(item['created_at'])
                    if item.get('created_at') else None
                )
            )
        except (KeyError, ValueError) as e:
            logger.warning(f"Failed to convert item to EventRecord: {e}")
            return None

    def _event_record_to_item(self, event: EventRecord) -> dict:
        """
        Convert EventRecord object to DynamoDB item.

        Args:
            event: EventRecord object with id assigned

        Returns:
            DynamoDB item dictionary
        """
        item = {
            'event_id': event.id,
            'title': event.title,
            'description': event.description,
            'start_date': format_iso(event.start_date),
            'is_all_day': event.is_all_day,
            'is_online': event.is_online,
            'is_free': event.is_free,
            'currency': event.currency,
            'status': event.status,
            'created_by_id': event.created_by_id
        }

        # Add optional fields if present
        if event.end_date:
            item['end_date'] = format_iso(event.end_date)
        if event.location:
            item['location'] = event.location
        if event.banner:
            item['banner'] = event.banner
        if event.price is not None:
            item['price'] = Decimal(str(event.price))
        if event.max_attendees is not None:
            item['max_attendees'] = event.max_attendees
        if event.created_at:
            item['created_at'] = format_iso(event.created_at)

        return item
