"""
Publish Job Handler.
PUT /jobs/{jobId}/publish

Body (optional): {"bidDeadline": "<ISO date>"}
"""
from shared.auth import authenticate
from shared.jobs import publish_job
from shared.utils import api_handler, get_path_param, parse_body
from shared.validation import require_id


@api_handler
def handler(event, context):
    caller = authenticate(event)
    job_id = require_id(get_path_param(event, 'jobId'), 'jobId')
    job = publish_job(caller, job_id, parse_body(event))
    return 200, {'message': 'Job published successfully', 'job': job}
