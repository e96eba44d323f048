"""
Get Review Handler.
GET /reviews/{reviewId}

Public reviews are readable anonymously; private ones only by their reviewer.
"""
from shared.auth import optional_caller
from shared.reviews import get_review
from shared.utils import api_handler, get_path_param
from shared.validation import require_id


@api_handler
def handler(event, context):
    review_id = require_id(get_path_param(event, 'reviewId'), 'reviewId')
    return 200, get_review(optional_caller(event), review_id)
