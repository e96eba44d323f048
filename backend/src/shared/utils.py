"""
Common utility functions for Lambda handlers.
"""
import functools
import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from shared.config import config
from shared.errors import MarketplaceError, ValidationError
from shared.logging import logger, log_event


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal and set types from DynamoDB."""

    def default(self, o):
        if isinstance(o, Decimal):
            # Convert to int if it's a whole number, otherwise float
            if o % 1 == 0:
                return int(o)
            return float(o)
        if isinstance(o, set):
            return sorted(o)
        return super().default(o)


def format_response(
    status_code: int,
    body: Any,
    headers: Dict[str, str] = None
) -> Dict[str, Any]:
    """
    Format a standard API Gateway response with CORS headers.

    Args:
        status_code: HTTP status code
        body: Response body (will be JSON serialized)
        headers: Additional headers to include

    Returns:
        API Gateway response dict
    """
    default_headers = {
        'Access-Control-Allow-Origin': '*',
        'Access-Control-Allow-Credentials': True,
        'Content-Type': 'application/json'
    }

    if headers:
        default_headers.update(headers)

    return {
        'statusCode': status_code,
        'headers': default_headers,
        'body': json.dumps(body, cls=DecimalEncoder)
    }


def error_response(status_code: int, message: str) -> Dict[str, Any]:
    return format_response(status_code, {'error': message})


def api_handler(func: Callable) -> Callable:
    """
    Request boundary for API Gateway handlers.

    The wrapped function returns (status_code, body). Business-rule errors
    become their mapped status with {"error": message}; anything else is
    logged and returned as a generic 500.
    """
    @functools.wraps(func)
    def wrapper(event, context):
        log_event(event)
        try:
            status_code, body = func(event, context)
            return format_response(status_code, body)
        except MarketplaceError as e:
            logger.info(f"{func.__module__} rejected request: {e.status_code} {e.message}")
            return error_response(e.status_code, e.message)
        except Exception as e:
            logger.exception(f"Unhandled error in {func.__module__}: {e}")
            body = {'error': 'Internal Server Error'}
            if config.DEBUG:
                body['detail'] = str(e)
            return format_response(500, body)

    return wrapper


def parse_body(event: dict) -> dict:
    """
    Parse the JSON body from an API Gateway event.
    Numbers with a fractional part are parsed as Decimal for DynamoDB.

    Raises:
        ValidationError: body is not a JSON object
    """
    body = event.get('body')
    if body is None or body == '':
        return {}
    if isinstance(body, dict):
        return body
    try:
        parsed = json.loads(body, parse_float=Decimal)
    except (json.JSONDecodeError, TypeError):
        raise ValidationError('Invalid JSON')
    if not isinstance(parsed, dict):
        raise ValidationError('Request body must be a JSON object')
    return parsed


def get_path_param(event: dict, param_name: str) -> Optional[str]:
    """Extract path parameter from event."""
    try:
        return event['pathParameters'][param_name]
    except (KeyError, TypeError):
        return None


def get_query_param(event: dict, param_name: str, default: str = None) -> Optional[str]:
    """Extract query string parameter from event."""
    params = event.get('queryStringParameters') or {}
    return params.get(param_name, default)


def format_timestamp(moment: datetime) -> str:
    """
    Render a datetime as fixed-width ISO-8601 UTC (millisecond precision).
    Fixed width keeps string comparison chronological inside DynamoDB.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec='milliseconds')


def now_iso() -> str:
    """Current time as a stored timestamp string."""
    return format_timestamp(datetime.now(timezone.utc))
