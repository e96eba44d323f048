"""
List Job Deliverables Handler.
GET /deliverables/job/{jobId}
"""
from shared.auth import authenticate
from shared.deliverables import list_job_deliverables
from shared.utils import api_handler, get_path_param
from shared.validation import require_id


@api_handler
def handler(event, context):
    """Deliverables of a job for its creator, assignees or contracted vendor."""
    caller = authenticate(event)
    job_id = require_id(get_path_param(event, 'jobId'), 'jobId')
    return 200, list_job_deliverables(caller, job_id)
