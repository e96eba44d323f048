"""
List Jobs Handler.
GET /jobs?status=&assignmentMode=&jobType=&paymentType=&minBudget=&maxBudget=&skills=&software=&movieId=&createdByMe=&assignedToMe=
"""
from shared.auth import authenticate
from shared.jobs import list_jobs
from shared.utils import api_handler


@api_handler
def handler(event, context):
    caller = authenticate(event)
    return 200, list_jobs(caller, event.get('queryStringParameters') or {})
