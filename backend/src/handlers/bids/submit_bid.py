"""
Submit Bid Handler.
POST /bids

Body: {"jobId", "amountTotal", "currency"?, "breakdown"?, "estimatedDurationDays"?,
       "startAvailableFrom"?, "notes"?, "includedServices"?}
"""
from shared.auth import authenticate
from shared.bids import submit_bid
from shared.utils import api_handler, parse_body


@api_handler
def handler(event, context):
    caller = authenticate(event)
    bid = submit_bid(caller, parse_body(event))
    return 201, {'message': 'Bid submitted successfully', 'bid': bid}
