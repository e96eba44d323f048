"""
Review Deliverable Handler.
PUT /deliverables/{deliverableId}/review

Body: {"status": "in_review" | "approved" | "changes_requested" | "submitted", "reviewNotes"?}
"""
from shared.auth import authenticate
from shared.deliverables import review_deliverable
from shared.utils import api_handler, get_path_param, parse_body
from shared.validation import require_id


@api_handler
def handler(event, context):
    caller = authenticate(event)
    deliverable_id = require_id(get_path_param(event, 'deliverableId'), 'deliverableId')
    result = review_deliverable(caller, deliverable_id, parse_body(event))
    return 200, {'message': 'Deliverable reviewed successfully', **result}
