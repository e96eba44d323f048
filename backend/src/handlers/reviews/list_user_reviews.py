"""
List User Reviews Handler.
GET /reviews/user/{userId}

Public route: no credential required.
"""
from shared.reviews import list_user_reviews
from shared.utils import api_handler, get_path_param
from shared.validation import require_id


@api_handler
def handler(event, context):
    """Public reviews of a user plus totals, mean and star distribution."""
    user_id = require_id(get_path_param(event, 'userId'), 'userId')
    return 200, list_user_reviews(user_id)
