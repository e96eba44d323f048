"""
Add Milestone Handler.
POST /contracts/{contractId}/milestones
"""
from shared.auth import authenticate
from shared.contracts import add_milestone
from shared.utils import api_handler, get_path_param, parse_body
from shared.validation import require_id


@api_handler
def handler(event, context):
    caller = authenticate(event)
    contract_id = require_id(get_path_param(event, 'contractId'), 'contractId')
    milestone = add_milestone(caller, contract_id, parse_body(event))
    return 201, {'message': 'Milestone added successfully', 'milestone': milestone}
