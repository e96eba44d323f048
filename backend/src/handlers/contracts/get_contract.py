"""
Get Contract Handler.
GET /contracts/{contractId}
"""
from shared.auth import authenticate
from shared.contracts import get_contract
from shared.utils import api_handler, get_path_param
from shared.validation import require_id


@api_handler
def handler(event, context):
    caller = authenticate(event)
    contract_id = require_id(get_path_param(event, 'contractId'), 'contractId')
    return 200, get_contract(caller, contract_id)
