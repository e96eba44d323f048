"""
Withdraw Bid Handler.
DELETE /bids/{bidId}
"""
from shared.auth import authenticate
from shared.bids import withdraw_bid
from shared.utils import api_handler, get_path_param
from shared.validation import require_id


@api_handler
def handler(event, context):
    caller = authenticate(event)
    bid_id = require_id(get_path_param(event, 'bidId'), 'bidId')
    withdraw_bid(caller, bid_id)
    return 200, {'message': 'Bid withdrawn successfully'}
