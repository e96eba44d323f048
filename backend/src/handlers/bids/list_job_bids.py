"""
List Job Bids Handler.
GET /bids/job/{jobId}
"""
from shared.auth import authenticate
from shared.bids import list_job_bids
from shared.utils import api_handler, get_path_param
from shared.validation import require_id


@api_handler
def handler(event, context):
    """All bids on a job, for its creator or an admin."""
    caller = authenticate(event)
    job_id = require_id(get_path_param(event, 'jobId'), 'jobId')
    return 200, list_job_bids(caller, job_id)
