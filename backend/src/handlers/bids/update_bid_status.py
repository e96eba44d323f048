"""
Update Bid Status Handler.
PUT /bids/{bidId}/status

Body: {"status": "pending" | "shortlisted" | "rejected" | "accepted", "notes"?}
Accepting a bid awards the job and returns the new contract and milestone.
"""
from shared.auth import authenticate
from shared.bids import update_bid_status
from shared.utils import api_handler, get_path_param, parse_body
from shared.validation import require_id


@api_handler
def handler(event, context):
    caller = authenticate(event)
    bid_id = require_id(get_path_param(event, 'bidId'), 'bidId')
    result = update_bid_status(caller, bid_id, parse_body(event))
    return 200, {'message': f"Bid {result['bid']['status']} successfully", **result}
