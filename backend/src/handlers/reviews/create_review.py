"""
Create Review Handler.
POST /reviews

Body: {"contractId", "rating" (1-5), "reviewText"?, "aspects"?, "isPublic"?}
"""
from shared.auth import authenticate
from shared.reviews import create_review
from shared.utils import api_handler, parse_body


@api_handler
def handler(event, context):
    caller = authenticate(event)
    review = create_review(caller, parse_body(event))
    return 201, {'message': 'Review created successfully', 'review': review}
