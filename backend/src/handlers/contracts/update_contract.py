"""
Update Contract Handler.
PUT /contracts/{contractId}

Body: {"termsNotes"?, "endDate"?, "deliverablesStatus"?}
"""
from shared.auth import authenticate
from shared.contracts import update_contract
from shared.utils import api_handler, get_path_param, parse_body
from shared.validation import require_id


@api_handler
def handler(event, context):
    caller = authenticate(event)
    contract_id = require_id(get_path_param(event, 'contractId'), 'contractId')
    contract = update_contract(caller, contract_id, parse_body(event))
    return 200, {'message': 'Contract updated successfully', 'contract': contract}
