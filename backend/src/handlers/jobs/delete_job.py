"""
Delete Job Handler.
DELETE /jobs/{jobId}
"""
from shared.auth import authenticate
from shared.jobs import delete_job
from shared.utils import api_handler, get_path_param
from shared.validation import require_id


@api_handler
def handler(event, context):
    """Delete a job and its bids (creator or admin)."""
    caller = authenticate(event)
    job_id = require_id(get_path_param(event, 'jobId'), 'jobId')
    delete_job(caller, job_id)
    return 200, {'message': 'Job deleted successfully'}
