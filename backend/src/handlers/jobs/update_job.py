"""
Update Job Handler.
PUT /jobs/{jobId}
"""
from shared.auth import authenticate
from shared.jobs import update_job
from shared.utils import api_handler, get_path_param, parse_body
from shared.validation import require_id


@api_handler
def handler(event, context):
    """Edit job fields or move its status (creator only)."""
    caller = authenticate(event)
    job_id = require_id(get_path_param(event, 'jobId'), 'jobId')
    job = update_job(caller, job_id, parse_body(event))
    return 200, {'message': 'Job updated successfully', 'job': job}
