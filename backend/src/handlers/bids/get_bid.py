"""
Get Bid Handler.
GET /bids/{bidId}
"""
from shared.auth import authenticate
from shared.bids import get_bid
from shared.utils import api_handler, get_path_param
from shared.validation import require_id


@api_handler
def handler(event, context):
    caller = authenticate(event)
    bid_id = require_id(get_path_param(event, 'bidId'), 'bidId')
    return 200, get_bid(caller, bid_id)
