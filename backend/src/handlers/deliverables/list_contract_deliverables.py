"""
List Contract Deliverables Handler.
GET /deliverables/contract/{contractId}
"""
from shared.auth import authenticate
from shared.deliverables import list_contract_deliverables
from shared.utils import api_handler, get_path_param
from shared.validation import require_id


@api_handler
def handler(event, context):
    caller = authenticate(event)
    contract_id = require_id(get_path_param(event, 'contractId'), 'contractId')
    return 200, list_contract_deliverables(caller, contract_id)
