"""
Update Review Handler.
PUT /reviews/{reviewId}
"""
from shared.auth import authenticate
from shared.reviews import update_review
from shared.utils import api_handler, get_path_param, parse_body
from shared.validation import require_id


@api_handler
def handler(event, context):
    caller = authenticate(event)
    review_id = require_id(get_path_param(event, 'reviewId'), 'reviewId')
    review = update_review(caller, review_id, parse_body(event))
    return 200, {'message': 'Review updated successfully', 'review': review}
