"""
Update Bid Handler.
PUT /bids/{bidId}
"""
from shared.auth import authenticate
from shared.bids import update_bid
from shared.utils import api_handler, get_path_param, parse_body
from shared.validation import require_id


@api_handler
def handler(event, context):
    """Bidder edits a pending bid before the job's deadline."""
    caller = authenticate(event)
    bid_id = require_id(get_path_param(event, 'bidId'), 'bidId')
    bid = update_bid(caller, bid_id, parse_body(event))
    return 200, {'message': 'Bid updated successfully', 'bid': bid}
