"""
Logging utilities for Lambda handlers.
"""
import logging
import json

from .config import config

logger = logging.getLogger('marketplace')
logger.setLevel(config.LOG_LEVEL)

# Lambda reuses the interpreter between invocations
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))
    logger.addHandler(handler)


def _summarize(event: dict) -> dict:
    if 'Records' in event:
        return {'records': len(event['Records'])}

    claims = (event.get('requestContext') or {}).get('authorizer', {}).get('claims') or {}
    return {
        'method': event.get('httpMethod'),
        'path': event.get('path') or event.get('resource'),
        'pathParameters': event.get('pathParameters'),
        'query': event.get('queryStringParameters'),
        'caller': claims.get('sub'),
    }


def log_event(event: dict) -> None:
    """Log the route and caller of an incoming event; bodies and headers are never logged."""
    try:
        logger.info(f"Lambda event: {json.dumps(_summarize(event), default=str)}")
    except (AttributeError, TypeError, ValueError) as e:
        logger.warning(f"Could not log event: {e}")
