"""AWS Lambda handler for the admin bulk event import."""
import base64
import binascii
import json
import logging
import os
import time
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from processor.event_processor import EventImportProcessor
from processor.exceptions import CsvFormatError, ImportValidationError, PersistenceError
from reader.csv_reader import generate_event_csv_template, parse_csv_records
from storage.dynamodb_manager import DynamoDBManager


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    RESERVED_ATTRS = set(vars(logging.makeLogRecord({}))) | {'message', 'asctime'}

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        # Fields passed through extra=
        for key, value in vars(record).items():
            if key not in self.RESERVED_ATTRS and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # boto is noisy at DEBUG
    logging.getLogger('botocore').setLevel(logging.WARNING)
    logging.getLogger('boto3').setLevel(logging.WARNING)


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'statusCode': status_code,
        'headers': {'Content-Type': 'application/json'},
        'body': json.dumps(body, default=str)
    }


def get_caller(event: Dict[str, Any]) -> Tuple[Optional[str], List[str]]:
    """
    Read the caller identity placed on the request by the authorizer.

    Args:
        event: API Gateway proxy event

    Returns:
        Tuple of (user id or None, list of role names)
    """
    authorizer = (event.get('requestContext') or {}).get('authorizer') or {}
    # REST API authorizers with a JWT put the claims one level down
    claims = authorizer.get('claims') or authorizer

    user_id = claims.get('userId') or claims.get('sub')
    roles = claims.get('roles') or []
    if isinstance(roles, str):
        roles = [role.strip() for role in roles.split(',') if role.strip()]

    return user_id, list(roles)


def read_rows(
    event: Dict[str, Any]
) -> Tuple[List[Dict[str, Any]], Optional[List[int]]]:
    """
    Extract import rows from the request body.

    The body is either a JSON array of header-keyed objects or raw CSV text.

    Args:
        event: API Gateway proxy event

    Returns:
        Tuple of (row dicts, CSV line number of each row or None for JSON)

    Raises:
        CsvFormatError: If the body is missing or cannot be read as rows
    """
    body = event.get('body')
    if not body:
        raise CsvFormatError('Request body is empty')

    if event.get('isBase64Encoded'):
        try:
            body = base64.b64decode(body).decode('utf-8')
        except (binascii.Error, UnicodeDecodeError) as e:
            raise CsvFormatError(f'Body is not valid base64 UTF-8: {e}') from e

    headers = {key.lower(): value for key, value in (event.get('headers') or {}).items()}
    content_type = headers.get('content-type', '')

    if 'csv' not in content_type and body.lstrip().startswith(('[', '{')):
        try:
            payload = json.loads(body)
        except json.JSONDecodeError as e:
            raise CsvFormatError(f'Body is not valid JSON: {e.msg}') from e
        if not isinstance(payload, list):
            raise CsvFormatError('Invalid input: expected an array of events')
        return payload, None

    records = parse_csv_records(body)
    return [row for _, row in records], [line for line, _ in records]


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler for the admin event import.

    POST /admin/events/import imports the body; GET returns the CSV template.

    Args:
        event: API Gateway proxy event
        context: Lambda context object

    Returns:
        API Gateway proxy response
    """
    # Read configuration from environment variables
    table_name = os.environ.get('TABLE_NAME', 'fire-events')
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    import_timezone = os.environ.get('IMPORT_TIMEZONE', 'UTC')
    admin_role = os.environ.get('ADMIN_ROLE', 'admin')

    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    logger.info(
        "Lambda execution started",
        extra={
            'table_name': table_name,
            'import_timezone': import_timezone
        }
    )

    user_id, roles = get_caller(event)
    if not user_id or admin_role not in roles:
        logger.warning(
            "Rejected import from non-admin caller",
            extra={'user_id': user_id, 'roles': roles}
        )
        return _response(403, {'error': 'Unauthorized'})

    if event.get('httpMethod') == 'GET':
        logger.info("Serving event import CSV template")
        return {
            'statusCode': 200,
            'headers': {
                'Content-Type': 'text/csv',
                'Content-Disposition': 'attachment; filename="event-import-template.csv"'
            },
            'body': generate_event_csv_template()
        }

    try:
        try:
            rows, line_numbers = read_rows(event)
        except CsvFormatError as e:
            logger.warning(f"Unreadable import body: {e.message}")
            return _response(400, {
                'error': 'CSV Parsing error',
                'message': e.message,
                'row': e.row
            })

        logger.info(f"Read {len(rows)} rows from request")

        store = DynamoDBManager(table_name=table_name)
        processor = EventImportProcessor(store, default_tz=ZoneInfo(import_timezone))

        try:
            result = processor.import_events(
                rows, created_by_id=user_id, line_numbers=line_numbers
            )
        except ImportValidationError as e:
            duration = time.time() - start_time
            logger.info(
                "Import rejected by validation",
                extra={
                    'row': e.row,
                    'field': e.field,
                    'duration_seconds': round(duration, 2)
                }
            )
            return _response(400, e.to_dict())
        except PersistenceError as e:
            duration = time.time() - start_time
            error_type = type(e.cause).__name__ if e.cause else type(e).__name__
            logger.error(
                f"Error writing imported events: {e.message}",
                extra={
                    'committed_count': e.committed_count,
                    'error_type': error_type
                },
                exc_info=True
            )
            return _response(500, {
                'error': 'Failed to create events',
                'message': e.message,
                'error_type': error_type,
                'committed_count': e.committed_count,
                'duration_seconds': round(duration, 2)
            })

        duration = time.time() - start_time
        logger.info(
            "Lambda execution completed successfully",
            extra={
                'duration_seconds': round(duration, 2),
                'events_created': result.created_count
            }
        )

        return _response(201, {
            'success': True,
            'count': result.created_count,
            'duration_seconds': round(duration, 2)
        })

    except Exception as e:
        duration = time.time() - start_time

        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )

        return _response(500, {
            'error': 'Internal server error',
            'message': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })
