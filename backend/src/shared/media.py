"""
S3 media resolver.

Turns client-supplied file payloads into stored URLs, deletes managed objects
when their owning record goes away, and generates presigned URLs for reads
from the private bucket.
"""
import base64
import binascii
import re
import uuid
from typing import Optional, Tuple

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError
from .config import config
from .errors import ValidationError
from .logging import logger

# S3 client with custom signature version for presigned URLs
s3_client = boto3.client(
    's3',
    region_name=config.AWS_REGION,
    config=BotoConfig(signature_version='s3v4')
)

_DATA_URI = re.compile(r'^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[\w-]+=[^;,]*)*;base64,(?P<data>.*)$', re.DOTALL)

_EXTENSIONS = {
    'image/jpeg': 'jpg',
    'image/png': 'png',
    'image/gif': 'gif',
    'image/webp': 'webp',
    'image/tiff': 'tif',
    'image/x-exr': 'exr',
    'video/mp4': 'mp4',
    'video/quicktime': 'mov',
    'application/pdf': 'pdf',
    'application/zip': 'zip',
}


def bucket_url() -> str:
    return f"https://{config.MEDIA_BUCKET}.s3.amazonaws.com/"


def _decode(payload: str) -> Tuple[bytes, str]:
    """Split a data URI or raw base64 string into (bytes, content type)."""
    content_type = 'application/octet-stream'
    match = _DATA_URI.match(payload)
    if match:
        content_type = match.group('mime') or content_type
        payload = match.group('data')
    try:
        return base64.b64decode(payload, validate=True), content_type
    except (binascii.Error, ValueError):
        raise ValidationError('File must be a URL or base64-encoded data')


def ingest(payload: str, category: str) -> str:
    """
    Resolve a file payload into a stored URL.

    Args:
        payload: http(s) URL (stored as-is) or data URI / raw base64
        category: key prefix under media/ (e.g. 'deliverables', 'posters')

    Returns:
        URL of the stored object

    Raises:
        ValidationError: payload is empty or not decodable
    """
    if not isinstance(payload, str) or not payload.strip():
        raise ValidationError('File is required')
    payload = payload.strip()
    if payload.startswith('http://') or payload.startswith('https://'):
        return payload

    body, content_type = _decode(payload)
    if not body:
        raise ValidationError('File is empty')

    extension = _EXTENSIONS.get(content_type, 'bin')
    s3_key = f"media/{category}/{uuid.uuid4()}.{extension}"
    s3_client.put_object(
        Bucket=config.MEDIA_BUCKET,
        Key=s3_key,
        Body=body,
        ContentType=content_type
    )
    logger.info(f"Stored {len(body)} bytes at {s3_key}")
    return bucket_url() + s3_key


def managed_key(url: Optional[str]) -> Optional[str]:
    """S3 key of a URL that points into the media bucket, else None."""
    if not url or not config.MEDIA_BUCKET:
        return None
    if url.startswith('media/'):
        return url
    prefix = bucket_url()
    if url.startswith(prefix):
        return url[len(prefix):]
    return None


def is_managed_url(url: Optional[str]) -> bool:
    """
    Check if a URL points to media in our S3 bucket.

    Pre-hosted external URLs are never managed, so they are never deleted.
    """
    return managed_key(url) is not None


def release(url: Optional[str]) -> None:
    """
    Delete the object behind a managed URL.

    Runs after the owning write has committed, so failures are logged and
    dropped rather than surfaced to the caller.
    """
    s3_key = managed_key(url)
    if not s3_key:
        return
    try:
        s3_client.delete_object(Bucket=config.MEDIA_BUCKET, Key=s3_key)
        logger.info(f"Released media object {s3_key}")
    except ClientError as e:
        logger.error(f"Error releasing media object {s3_key}: {e}")


def presign(url: Optional[str], expiration: Optional[int] = None) -> Optional[str]:
    """
    Generate a presigned GET URL for a managed object.

    Returns:
        Presigned URL, or the original value if it is external or signing fails
    """
    s3_key = managed_key(url)
    if not s3_key:
        return url
    try:
        return s3_client.generate_presigned_url(
            'get_object',
            Params={'Bucket': config.MEDIA_BUCKET, 'Key': s3_key},
            ExpiresIn=expiration or config.MEDIA_URL_EXPIRATION
        )
    except ClientError as e:
        logger.error(f"Error generating presigned URL for {s3_key}: {e}")
        return url
