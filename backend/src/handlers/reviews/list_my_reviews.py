"""
List My Reviews Handler.
GET /reviews/my
"""
from shared.auth import authenticate
from shared.reviews import list_my_reviews
from shared.utils import api_handler


@api_handler
def handler(event, context):
    return 200, list_my_reviews(authenticate(event))
