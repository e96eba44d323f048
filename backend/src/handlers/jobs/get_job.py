"""
Get Job Handler.
GET /jobs/{jobId}
"""
from shared.auth import authenticate
from shared.jobs import get_job
from shared.utils import api_handler, get_path_param
from shared.validation import require_id


@api_handler
def handler(event, context):
    caller = authenticate(event)
    job_id = require_id(get_path_param(event, 'jobId'), 'jobId')
    return 200, get_job(caller, job_id)
