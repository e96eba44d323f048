"""
List Contracts Handler.
GET /contracts?status=
"""
from shared.auth import authenticate
from shared.contracts import list_contracts
from shared.utils import api_handler


@api_handler
def handler(event, context):
    """Contracts where the caller is the client or the vendor."""
    caller = authenticate(event)
    return 200, list_contracts(caller, event.get('queryStringParameters') or {})
