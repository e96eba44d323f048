"""
Update Milestone Handler.
PUT /contracts/{contractId}/milestones/{milestoneId}

Body: {"status"?, "reviewNotes"?}
"""
from shared.auth import authenticate
from shared.contracts import update_milestone
from shared.utils import api_handler, get_path_param, parse_body
from shared.validation import require_id


@api_handler
def handler(event, context):
    caller = authenticate(event)
    contract_id = require_id(get_path_param(event, 'contractId'), 'contractId')
    milestone_id = require_id(get_path_param(event, 'milestoneId'), 'milestoneId')
    milestone = update_milestone(caller, contract_id, milestone_id, parse_body(event))
    return 200, {'message': 'Milestone updated successfully', 'milestone': milestone}
