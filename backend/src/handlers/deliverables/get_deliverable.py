"""
Get Deliverable Handler.
GET /deliverables/{deliverableId}
"""
from shared.auth import authenticate
from shared.deliverables import get_deliverable
from shared.utils import api_handler, get_path_param
from shared.validation import require_id


@api_handler
def handler(event, context):
    caller = authenticate(event)
    deliverable_id = require_id(get_path_param(event, 'deliverableId'), 'deliverableId')
    return 200, get_deliverable(caller, deliverable_id)
