"""
Delete Review Handler.
DELETE /reviews/{reviewId}
"""
from shared.auth import authenticate
from shared.reviews import delete_review
from shared.utils import api_handler, get_path_param
from shared.validation import require_id


@api_handler
def handler(event, context):
    caller = authenticate(event)
    review_id = require_id(get_path_param(event, 'reviewId'), 'reviewId')
    delete_review(caller, review_id)
    return 200, {'message': 'Review deleted successfully'}
