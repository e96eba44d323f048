"""
Update Contract Status Handler.
PUT /contracts/{contractId}/status
"""
from shared.auth import authenticate
from shared.contracts import update_contract_status
from shared.utils import api_handler, get_path_param, parse_body
from shared.validation import require_id


@api_handler
def handler(event, context):
    """Client or vendor changes the contract status; completion also completes the job."""
    caller = authenticate(event)
    contract_id = require_id(get_path_param(event, 'contractId'), 'contractId')
    contract = update_contract_status(caller, contract_id, parse_body(event))
    return 200, {'message': f"Contract {contract['status']} successfully", 'contract': contract}
