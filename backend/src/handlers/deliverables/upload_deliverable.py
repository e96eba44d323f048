"""
Upload Deliverable Handler.
POST /deliverables

Body: {"contractId", "label", "fileType", "file" (URL or base64 data URI),
       "description"?, "fileFormat"?, "shotCode"?, "frameRange"?: {"start", "end"}}
"""
from shared.auth import authenticate
from shared.deliverables import upload_deliverable
from shared.utils import api_handler, parse_body


@api_handler
def handler(event, context):
    caller = authenticate(event)
    deliverable = upload_deliverable(caller, parse_body(event))
    return 201, {'message': 'Deliverable uploaded successfully', 'deliverable': deliverable}
