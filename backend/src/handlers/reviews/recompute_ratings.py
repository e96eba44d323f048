"""
Recompute Ratings Handler.
Triggered by DynamoDB Streams on the Reviews table.
Recomputes the reviewed user's profile rating whenever a review is created,
changed or deleted.
"""
from typing import Optional, Set

from boto3.dynamodb.types import TypeDeserializer
from shared.logging import logger
from shared.reviews import recompute_rating

_deserializer = TypeDeserializer()

# Review fields that feed the aggregate rating
_RATING_FIELDS = ('rating', 'isPublic', 'targetUserId')


def handler(event, context):
    """
    Handler triggered by DynamoDB Stream on the Reviews table.
    Each record is processed on its own; one bad record does not stop the batch.
    """
    if 'Records' not in event:
        return {'message': 'No records to process'}

    processed = 0
    for record in event['Records']:
        try:
            processed += len(process_record(record))
        except Exception as e:
            logger.exception(f"Error processing record {record.get('eventID')}: {e}")

    return {'message': f'Processed {processed} records'}


def _image(record: dict, name: str) -> dict:
    raw = record.get('dynamodb', {}).get(name) or {}
    return {key: _deserializer.deserialize(value) for key, value in raw.items()}


def _target(image: dict) -> Optional[str]:
    return image.get('targetUserId')


def process_record(record: dict) -> Set[str]:
    """
    Recompute ratings touched by one stream record.
    Returns the user ids whose rating was recomputed.
    """
    event_name = record.get('eventName')
    new_image = _image(record, 'NewImage')
    old_image = _image(record, 'OldImage')

    if event_name == 'MODIFY':
        if all(new_image.get(f) == old_image.get(f) for f in _RATING_FIELDS):
            return set()
        users = {_target(new_image), _target(old_image)}
    elif event_name == 'INSERT':
        users = {_target(new_image)}
    elif event_name == 'REMOVE':
        users = {_target(old_image)}
    else:
        return set()

    users.discard(None)
    for user_id in users:
        recompute_rating(user_id)
    return users
