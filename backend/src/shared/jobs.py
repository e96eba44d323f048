"""
Job lifecycle: creation, visibility, edits, publishing and deletion.

Every function takes the resolved Caller as its first argument and returns
plain dicts ready for the response body.
"""
import uuid
from typing import Any, Dict, List, Optional

from shared import dynamo, media, validation
from shared.auth import Caller, require_role
from shared.config import config
from shared.errors import Conflict, Forbidden, ImmutableState, NotFound, ValidationError
from shared.filters import Contains, Eq, Exists, Filter, Gte, In, Lte, NotExists, all_of, any_of
from shared.logging import logger
from shared.models import (
    LOCKED_JOB_STATUSES,
    AssignmentMode,
    JobStatus,
    JobType,
    PaymentType,
    Role,
    ShotComplexity,
    bid_id_for,
    values,
)
from shared.state_machine import JOB_MACHINE, transition
from shared.utils import now_iso

_TEXT_FIELDS = ('title', 'description', 'movieId', 'currency', 'resolution', 'notesForBidders')
_LIST_FIELDS = ('requiredSkills', 'softwarePreferences', 'deliverables', 'assignedTo')
_DATE_FIELDS = ('bidDeadline', 'expectedStartDate', 'finalDeliveryDate')
_COUNT_FIELDS = ('totalShots', 'totalFrames')

EDITABLE_FIELDS = (
    _TEXT_FIELDS + _LIST_FIELDS + _DATE_FIELDS + _COUNT_FIELDS
    + ('paymentType', 'minBudget', 'maxBudget', 'frameRate', 'shotBreakdown', 'assignmentMode', 'poster')
)

_DELETABLE_STATUSES = tuple(sorted(values(JobStatus) - set(LOCKED_JOB_STATUSES)))


# =============================================================================
# Field parsing
# =============================================================================

def _shot_breakdown(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        raise ValidationError('shotBreakdown must be a list')
    shots = []
    for shot in value:
        if not isinstance(shot, dict) or not shot.get('name'):
            raise ValidationError('Each shot in shotBreakdown needs a name')
        entry = {
            'name': validation.text(shot['name'], 'shot name'),
            'complexity': validation.choice(
                shot.get('complexity', ShotComplexity.MEDIUM), values(ShotComplexity), 'complexity'
            ),
        }
        if shot.get('shotCode'):
            entry['shotCode'] = validation.text(shot['shotCode'], 'shotCode')
        for frame in ('frameIn', 'frameOut'):
            if shot.get(frame) is not None:
                entry[frame] = validation.integer(shot[frame], frame, minimum=0)
        if 'frameIn' in entry and 'frameOut' in entry and entry['frameIn'] > entry['frameOut']:
            raise ValidationError('frameIn cannot be after frameOut')
        shots.append(entry)
    return shots


def _parse_fields(body: dict) -> Dict[str, Any]:
    """Validate the editable job fields present in a request body."""
    fields = {}
    for name in _TEXT_FIELDS:
        if body.get(name) is not None:
            fields[name] = validation.text(body[name], name)
    for name in _LIST_FIELDS:
        if body.get(name) is not None:
            fields[name] = validation.string_list(body[name], name)
    for name in _DATE_FIELDS:
        if body.get(name) is not None:
            fields[name] = validation.timestamp(body[name], name)
    for name in _COUNT_FIELDS:
        if body.get(name) is not None:
            fields[name] = validation.integer(body[name], name, minimum=0)
    for name in ('minBudget', 'maxBudget'):
        if body.get(name) is not None:
            fields[name] = validation.amount(body[name], name)
    if body.get('frameRate') is not None:
        fields['frameRate'] = validation.amount(body['frameRate'], 'frameRate')
        if fields['frameRate'] == 0:
            raise ValidationError('frameRate must be greater than zero')
    if body.get('paymentType') is not None:
        fields['paymentType'] = validation.choice(body['paymentType'], values(PaymentType), 'paymentType')
    if body.get('shotBreakdown') is not None:
        fields['shotBreakdown'] = _shot_breakdown(body['shotBreakdown'])
    return fields


def _check_invariants(job: Dict[str, Any]) -> None:
    if job.get('assignmentMode') == AssignmentMode.DIRECT and not job.get('assignedTo'):
        raise ValidationError('assignedTo is required for direct assignment')
    if job.get('minBudget') is not None and job.get('maxBudget') is not None:
        if job['minBudget'] > job['maxBudget']:
            raise ValidationError('minBudget cannot exceed maxBudget')


def _requires_bid_deadline(job: Dict[str, Any]) -> bool:
    return job.get('jobType') == JobType.FREELANCE and job.get('assignmentMode') == AssignmentMode.OPEN


# =============================================================================
# Visibility
# =============================================================================

def open_listing() -> Filter:
    """Jobs anyone may see: open salaried jobs and open-bid freelance jobs."""
    return Eq('status', JobStatus.OPEN) & any_of(
        Eq('jobType', JobType.STUDIO_SALARIED),
        Eq('assignmentMode', AssignmentMode.OPEN),
    )


def visibility_filter(caller: Caller) -> Optional[Filter]:
    """None for admins (everything visible)."""
    if caller.is_admin:
        return None
    return any_of(
        Eq('createdBy', caller.user_id),
        Contains('assignedTo', caller.user_id),
        open_listing(),
    )


def can_view(caller: Caller, job: Dict[str, Any]) -> bool:
    visible = visibility_filter(caller)
    if visible is None or visible.matches(job):
        return True
    # The winning bidder keeps access after the job leaves the open listing
    return job.get('acceptedBidId') == bid_id_for(job['jobId'], caller.user_id)


def load_job(job_id: str) -> Dict[str, Any]:
    job = dynamo.get_item(config.JOBS_TABLE, {'jobId': job_id})
    if not job:
        raise NotFound('Job not found')
    return job


def present(job: Dict[str, Any]) -> Dict[str, Any]:
    if not job.get('posterUrl'):
        return job
    return {**job, 'posterUrl': media.presign(job['posterUrl'])}


# =============================================================================
# Operations
# =============================================================================

def create_job(caller: Caller, body: dict) -> Dict[str, Any]:
    """Create a job in draft status."""
    require_role(caller, Role.STUDIO, Role.ADMIN, message='Only studios and admins can create jobs')
    validation.require_fields(body, 'title', 'description')

    job_type = validation.choice(body.get('jobType') or JobType.FREELANCE, values(JobType), 'jobType')
    fields = _parse_fields(body)
    timestamp = now_iso()

    job = {
        'jobId': str(uuid.uuid4()),
        **fields,
        'jobType': job_type,
        'currency': fields.get('currency') or config.DEFAULT_CURRENCY,
        'status': JobStatus.DRAFT,
        'createdBy': caller.user_id,
        'viewCount': 0,
        'bidCount': 0,
        'createdAt': timestamp,
        'updatedAt': timestamp,
    }

    if job_type == JobType.FREELANCE:
        validation.require_fields(body, 'assignmentMode', 'paymentType', 'finalDeliveryDate')
        job['assignmentMode'] = validation.choice(
            body['assignmentMode'], values(AssignmentMode), 'assignmentMode'
        )
    elif body.get('assignmentMode'):
        raise ValidationError('Salaried jobs do not take an assignment mode')

    if job.get('assignmentMode') != AssignmentMode.DIRECT:
        job.pop('assignedTo', None)
    _check_invariants(job)

    if body.get('poster'):
        job['posterUrl'] = media.ingest(body['poster'], 'posters')

    dynamo.put_item(config.JOBS_TABLE, job, condition=NotExists('jobId'))
    logger.info(f"Job {job['jobId']} created by {caller.user_id}")
    return present(job)


def get_job(caller: Caller, job_id: str) -> Dict[str, Any]:
    """Return a visible job, counting the view."""
    job = load_job(job_id)
    if not can_view(caller, job):
        raise Forbidden()
    try:
        job = dynamo.update_item(
            config.JOBS_TABLE, {'jobId': job_id}, add={'viewCount': 1}, condition=Exists('jobId')
        )
    except dynamo.ConditionFailed:
        raise NotFound('Job not found')
    return present(job)


def _budget_filter(params: dict) -> Optional[Filter]:
    low = params.get('minBudget')
    high = params.get('maxBudget')
    low = validation.amount(low, 'minBudget') if low not in (None, '') else None
    high = validation.amount(high, 'maxBudget') if high not in (None, '') else None

    if low is not None and high is not None:
        return any_of(
            Lte('minBudget', high) & Gte('maxBudget', low),
            Gte('minBudget', low) & Lte('minBudget', high),
        )
    if low is not None:
        return Gte('maxBudget', low)
    if high is not None:
        return Lte('minBudget', high)
    return None


def _any_listed(attr: str, raw: Optional[str]) -> Optional[Filter]:
    if not raw:
        return None
    wanted = [part.strip() for part in raw.split(',') if part.strip()]
    return any_of(*(Contains(attr, value) for value in wanted))


def list_jobs(caller: Caller, params: Optional[dict] = None) -> List[Dict[str, Any]]:
    """
    List visible jobs, newest first.

    Args:
        caller: requesting user
        params: query string parameters (status, assignmentMode, jobType,
            paymentType, minBudget, maxBudget, skills, software, movieId,
            createdByMe, assignedToMe)
    """
    params = params or {}
    created_by_me = params.get('createdByMe') == 'true'
    assigned_to_me = params.get('assignedToMe') == 'true'

    if params.get('status'):
        validation.choice(params['status'], values(JobStatus), 'status')

    requested = all_of(
        Eq('status', params['status']) if params.get('status') else None,
        Eq('assignmentMode', params['assignmentMode']) if params.get('assignmentMode') else None,
        Eq('jobType', params['jobType']) if params.get('jobType') else None,
        Eq('paymentType', params['paymentType']) if params.get('paymentType') else None,
        Eq('movieId', params['movieId']) if params.get('movieId') else None,
        _budget_filter(params),
        _any_listed('requiredSkills', params.get('skills')),
        _any_listed('softwarePreferences', params.get('software')),
        Eq('createdBy', caller.user_id) if created_by_me else None,
        Contains('assignedTo', caller.user_id) & Eq('assignmentMode', AssignmentMode.DIRECT)
        if assigned_to_me else None,
    )
    combined = all_of(visibility_filter(caller), requested)

    if created_by_me:
        jobs = dynamo.query(config.JOBS_TABLE, 'CreatedByIndex', 'createdBy', caller.user_id, combined)
    elif params.get('status'):
        jobs = dynamo.query(config.JOBS_TABLE, 'StatusIndex', 'status', params['status'], combined)
    else:
        jobs = dynamo.scan(config.JOBS_TABLE, combined)

    jobs.sort(key=lambda job: job.get('createdAt', ''), reverse=True)
    return [present(job) for job in jobs]


def _require_creator(caller: Caller, job: Dict[str, Any], action: str) -> None:
    if job['createdBy'] != caller.user_id:
        raise Forbidden(f"Only the job creator can {action} this job")


def _check_publishable(job: Dict[str, Any]) -> None:
    if _requires_bid_deadline(job) and not job.get('bidDeadline'):
        raise ValidationError('Bid deadline is required for open jobs')


def update_job(caller: Caller, job_id: str, body: dict) -> Dict[str, Any]:
    """
    Edit a job's fields and/or move its status.

    Field edits are refused once the job is awarded; status moves are
    always checked against the job machine.
    """
    job = load_job(job_id)
    _require_creator(caller, job, 'edit')

    current = job['status']
    edits = [name for name in EDITABLE_FIELDS if name in body]
    if edits and current in LOCKED_JOB_STATUSES:
        raise ImmutableState('Cannot edit job in current status')

    updates = _parse_fields(body)
    remove = []

    mode = body.get('assignmentMode')
    if mode is not None and mode != job.get('assignmentMode'):
        if job.get('jobType') != JobType.FREELANCE:
            raise ValidationError('Salaried jobs do not take an assignment mode')
        if current != JobStatus.DRAFT:
            raise ValidationError('Cannot change assignment mode after publishing')
        updates['assignmentMode'] = validation.choice(mode, values(AssignmentMode), 'assignmentMode')
        if mode == AssignmentMode.OPEN:
            updates.pop('assignedTo', None)
            remove.append('assignedTo')

    merged = {**job, **updates}
    if merged.get('assignmentMode') != AssignmentMode.DIRECT and 'assignedTo' in updates:
        raise ValidationError('assignedTo only applies to direct assignment')

    target = body.get('status')
    if target is not None and target != current:
        updates['status'] = transition(JOB_MACHINE, current, target)
        if current == JobStatus.DRAFT and target == JobStatus.OPEN:
            _check_publishable(merged)

    _check_invariants({k: v for k, v in merged.items() if k not in remove})

    old_poster = job.get('posterUrl')
    if 'poster' in body:
        if body['poster']:
            updates['posterUrl'] = media.ingest(body['poster'], 'posters')
        elif old_poster:
            remove.append('posterUrl')

    updates['updatedAt'] = now_iso()
    try:
        updated = dynamo.update_item(
            config.JOBS_TABLE,
            {'jobId': job_id},
            set_values=updates,
            remove=[name for name in remove if name in job],
            condition=Eq('status', current),
        )
    except dynamo.ConditionFailed:
        raise Conflict('Job was changed by another request, please retry')

    if old_poster and updated.get('posterUrl') != old_poster:
        media.release(old_poster)

    logger.info(f"Job {job_id} updated by {caller.user_id}: {sorted(updates)}")
    return present(updated)


def publish_job(caller: Caller, job_id: str, body: Optional[dict] = None) -> Dict[str, Any]:
    """
    Move a draft job to open.

    A bid deadline supplied in the body is validated and stored with the
    status change.
    """
    body = body or {}
    job = load_job(job_id)
    _require_creator(caller, job, 'publish')

    status = transition(JOB_MACHINE, job['status'], JobStatus.OPEN)
    updates = {'status': status, 'updatedAt': now_iso()}
    if body.get('bidDeadline') is not None:
        updates['bidDeadline'] = validation.timestamp(body['bidDeadline'], 'bidDeadline')
    _check_publishable({**job, **updates})

    try:
        updated = dynamo.update_item(
            config.JOBS_TABLE,
            {'jobId': job_id},
            set_values=updates,
            condition=Eq('status', JobStatus.DRAFT),
        )
    except dynamo.ConditionFailed:
        raise Conflict('Job was changed by another request, please retry')

    logger.info(f"Job {job_id} published")
    return present(updated)


def delete_job(caller: Caller, job_id: str) -> None:
    """Delete a job and every bid placed on it."""
    job = load_job(job_id)
    if not caller.is_admin:
        _require_creator(caller, job, 'delete')
    if job['status'] in LOCKED_JOB_STATUSES:
        raise ImmutableState('Cannot delete job in current status')

    try:
        dynamo.delete_item(
            config.JOBS_TABLE,
            {'jobId': job_id},
            condition=In('status', _DELETABLE_STATUSES),
        )
    except dynamo.ConditionFailed:
        raise ImmutableState('Cannot delete job in current status')

    bids = dynamo.query(config.BIDS_TABLE, 'JobIndex', 'jobId', job_id)
    dynamo.batch_delete(config.BIDS_TABLE, [{'bidId': bid['bidId']} for bid in bids])
    media.release(job.get('posterUrl'))
    logger.info(f"Job {job_id} deleted with {len(bids)} bids")
