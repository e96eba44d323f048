"""
Update Deliverable Handler.
PUT /deliverables/{deliverableId}
"""
from shared.auth import authenticate
from shared.deliverables import update_deliverable
from shared.utils import api_handler, get_path_param, parse_body
from shared.validation import require_id


@api_handler
def handler(event, context):
    """Uploader edits a deliverable that has not been reviewed yet."""
    caller = authenticate(event)
    deliverable_id = require_id(get_path_param(event, 'deliverableId'), 'deliverableId')
    deliverable = update_deliverable(caller, deliverable_id, parse_body(event))
    return 200, {'message': 'Deliverable updated successfully', 'deliverable': deliverable}
