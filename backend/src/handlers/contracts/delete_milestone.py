"""
Delete Milestone Handler.
DELETE /contracts/{contractId}/milestones/{milestoneId}
"""
from shared.auth import authenticate
from shared.contracts import delete_milestone
from shared.utils import api_handler, get_path_param
from shared.validation import require_id


@api_handler
def handler(event, context):
    caller = authenticate(event)
    contract_id = require_id(get_path_param(event, 'contractId'), 'contractId')
    milestone_id = require_id(get_path_param(event, 'milestoneId'), 'milestoneId')
    delete_milestone(caller, contract_id, milestone_id)
    return 200, {'message': 'Milestone deleted successfully'}
