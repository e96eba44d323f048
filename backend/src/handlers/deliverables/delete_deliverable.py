"""
Delete Deliverable Handler.
DELETE /deliverables/{deliverableId}
"""
from shared.auth import authenticate
from shared.deliverables import delete_deliverable
from shared.utils import api_handler, get_path_param
from shared.validation import require_id


@api_handler
def handler(event, context):
    caller = authenticate(event)
    deliverable_id = require_id(get_path_param(event, 'deliverableId'), 'deliverableId')
    delete_deliverable(caller, deliverable_id)
    return 200, {'message': 'Deliverable deleted successfully'}
