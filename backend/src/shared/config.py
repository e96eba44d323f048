"""
Configuration module for Lambda handlers.
Loads all environment variables needed by the marketplace backend.
"""
import os


def _flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Centralized configuration from environment variables."""

    # AWS Region
    AWS_REGION = os.environ.get('AWS_REGION', 'us-east-1')

    # DynamoDB Tables
    JOBS_TABLE = os.environ.get('JOBS_TABLE', '')
    BIDS_TABLE = os.environ.get('BIDS_TABLE', '')
    CONTRACTS_TABLE = os.environ.get('CONTRACTS_TABLE', '')
    MILESTONES_TABLE = os.environ.get('MILESTONES_TABLE', '')
    DELIVERABLES_TABLE = os.environ.get('DELIVERABLES_TABLE', '')
    REVIEWS_TABLE = os.environ.get('REVIEWS_TABLE', '')
    PROFILES_TABLE = os.environ.get('PROFILES_TABLE', '')

    # S3 media storage
    MEDIA_BUCKET = os.environ.get('MEDIA_BUCKET', '')
    MEDIA_URL_EXPIRATION = int(os.environ.get('MEDIA_URL_EXPIRATION', '3600'))

    # Business defaults
    DEFAULT_CURRENCY = os.environ.get('DEFAULT_CURRENCY', 'INR')

    # Disable when the Reviews table stream drives rating recomputation
    RATING_RECOMPUTE_INLINE = _flag('RATING_RECOMPUTE_INLINE', 'true')

    # Development flag: expose exception text in 500 responses
    DEBUG = _flag('DEBUG', 'false')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


config = Config()
