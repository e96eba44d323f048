"""
List My Bids Handler.
GET /bids/my
"""
from shared.auth import authenticate
from shared.bids import list_my_bids
from shared.utils import api_handler


@api_handler
def handler(event, context):
    return 200, list_my_bids(authenticate(event))
