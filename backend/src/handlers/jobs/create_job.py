"""
Create Job Handler.
POST /jobs
"""
from shared.auth import authenticate
from shared.jobs import create_job
from shared.utils import api_handler, parse_body


@api_handler
def handler(event, context):
    """Create a draft job (studio or admin)."""
    caller = authenticate(event)
    job = create_job(caller, parse_body(event))
    return 201, {'message': 'Job created successfully', 'job': job}
