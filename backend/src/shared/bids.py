"""
Bidding engine: submission, edits, withdrawal, review and the accept
protocol that turns a bid into a contract.

Writes that depend on the job's state are sent as DynamoDB transactions
with a conditional update of the job, so a bid can never land on a job that
closed between the read and the write. The same update keeps the job's
bidCount, which lets an acceptance prove it saw every bid.
"""
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError

from shared import dynamo, validation
from shared.auth import Caller, require_role
from shared.config import config
from shared.errors import Conflict, DuplicateBid, Forbidden, ImmutableState, NotFound, ValidationError
from shared.filters import Eq, Exists, Filter, Gt, In, NotExists, any_of
from shared.jobs import load_job
from shared.logging import logger
from shared.models import (
    AssignmentMode,
    BidStatus,
    ContractStatus,
    DeliverablesStatus,
    JobStatus,
    MilestoneStatus,
    Role,
    bid_id_for,
    contract_id_for,
)
from shared.state_machine import BID_MACHINE, JOB_MACHINE, transition, transition_path
from shared.utils import now_iso

DEFAULT_MILESTONE_TITLE = 'Project Delivery'
DEFAULT_MILESTONE_DESCRIPTION = 'Complete delivery of all project deliverables'

# Job update, contract put, milestone put, accepted bid update
_ACCEPT_CORE_OPERATIONS = 4


# =============================================================================
# Helpers
# =============================================================================

def load_bid(bid_id: str) -> Dict[str, Any]:
    bid = dynamo.get_item(config.BIDS_TABLE, {'bidId': bid_id})
    if not bid:
        raise NotFound('Bid not found')
    return bid


def _before_deadline(job: Dict[str, Any], now: str) -> bool:
    """The deadline itself is already too late."""
    deadline = job.get('bidDeadline')
    return not deadline or now < deadline


def _deadline_condition(now: str) -> Filter:
    return any_of(NotExists('bidDeadline'), Gt('bidDeadline', now))


def _accepting_bids(now: str) -> Filter:
    return (
        Eq('status', JobStatus.OPEN)
        & Eq('assignmentMode', AssignmentMode.OPEN)
        & _deadline_condition(now)
    )


def _breakdown(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        raise ValidationError('breakdown must be a list')
    items = []
    for entry in value:
        if not isinstance(entry, dict) or not entry.get('label'):
            raise ValidationError('Each breakdown item needs a label and an amount')
        items.append({
            'label': validation.text(entry['label'], 'breakdown label'),
            'amount': validation.amount(entry.get('amount'), 'breakdown amount'),
        })
    return items


def _parse_terms(body: dict) -> Dict[str, Any]:
    """Validate the bidder-editable terms present in a request body."""
    terms = {}
    if body.get('amountTotal') is not None:
        terms['amountTotal'] = validation.amount(body['amountTotal'], 'amountTotal')
    if body.get('currency') is not None:
        terms['currency'] = validation.text(body['currency'], 'currency')
    if body.get('breakdown') is not None:
        terms['breakdown'] = _breakdown(body['breakdown'])
    if body.get('estimatedDurationDays') is not None:
        terms['estimatedDurationDays'] = validation.integer(
            body['estimatedDurationDays'], 'estimatedDurationDays', minimum=1
        )
    if body.get('startAvailableFrom') is not None:
        terms['startAvailableFrom'] = validation.timestamp(body['startAvailableFrom'], 'startAvailableFrom')
    if body.get('notes') is not None:
        terms['notes'] = validation.text(body['notes'], 'notes')
    if body.get('includedServices') is not None:
        terms['includedServices'] = validation.string_list(body['includedServices'], 'includedServices')
    return terms


def _can_manage(caller: Caller, job: Dict[str, Any]) -> bool:
    return caller.is_admin or job['createdBy'] == caller.user_id


def _job_summary(job: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not job:
        return None
    return {
        'jobId': job['jobId'],
        'title': job.get('title'),
        'status': job.get('status'),
        'bidDeadline': job.get('bidDeadline'),
        'finalDeliveryDate': job.get('finalDeliveryDate'),
        'createdBy': job.get('createdBy'),
    }


# =============================================================================
# Submission and bidder-side operations
# =============================================================================

def submit_bid(caller: Caller, body: dict) -> Dict[str, Any]:
    """
    Place a bid on an open-bid job.

    Raises:
        DuplicateBid: the caller already bid on this job
        ValidationError: job not open for bidding or deadline passed
    """
    require_role(caller, Role.ARTIST, Role.STUDIO, message='Only artists and studios can submit bids')
    validation.require_fields(body, 'jobId', 'amountTotal')

    job = load_job(body['jobId'])
    if job.get('status') != JobStatus.OPEN or job.get('assignmentMode') != AssignmentMode.OPEN:
        raise ValidationError('Job is not open for bidding')

    now = now_iso()
    if not _before_deadline(job, now):
        raise ValidationError('Bid deadline has passed')

    bid = {
        'bidId': bid_id_for(job['jobId'], caller.user_id),
        'jobId': job['jobId'],
        'bidderId': caller.user_id,
        'bidderType': Role.STUDIO if caller.has_role(Role.STUDIO) else Role.ARTIST,
        'breakdown': [],
        'includedServices': [],
        **_parse_terms(body),
        'status': BidStatus.PENDING,
        'submittedAt': now,
        'updatedAt': now,
    }
    bid.setdefault('currency', job.get('currency') or config.DEFAULT_CURRENCY)

    try:
        dynamo.transact_write([
            dynamo.Update(
                config.JOBS_TABLE, {'jobId': job['jobId']},
                add={'bidCount': 1},
                condition=_accepting_bids(now),
            ),
            dynamo.Put(config.BIDS_TABLE, bid, condition=NotExists('bidId')),
        ])
    except dynamo.TransactionConflict as e:
        if e.failed_at(1):
            raise DuplicateBid()
        if e.failed_at(0):
            raise ValidationError('Job is no longer open for bidding')
        raise Conflict('Bid could not be submitted, please retry')

    logger.info(f"Bid {bid['bidId']} submitted on job {job['jobId']} by {caller.user_id}")
    return bid


def _load_own_pending_bid(caller: Caller, bid_id: str, action: str):
    bid = load_bid(bid_id)
    if bid['bidderId'] != caller.user_id:
        raise Forbidden(f"Only the bidder can {action} this bid")
    if bid['status'] == BidStatus.ACCEPTED:
        raise ImmutableState('Cannot change an accepted bid')
    if bid['status'] != BidStatus.PENDING:
        raise ValidationError("Only pending bids can be changed")

    job = load_job(bid['jobId'])
    now = now_iso()
    if not _before_deadline(job, now):
        raise ValidationError('Bid deadline has passed')
    return bid, job, now


def update_bid(caller: Caller, bid_id: str, body: dict) -> Dict[str, Any]:
    """Edit a pending bid's terms before the deadline."""
    bid, job, now = _load_own_pending_bid(caller, bid_id, 'edit')
    terms = _parse_terms(body)
    if not terms:
        raise ValidationError('No bid fields to update')
    terms['updatedAt'] = now

    try:
        dynamo.transact_write([
            dynamo.ConditionCheck(config.JOBS_TABLE, {'jobId': job['jobId']}, _deadline_condition(now)),
            dynamo.Update(
                config.BIDS_TABLE, {'bidId': bid_id},
                set_values=terms,
                condition=Eq('status', BidStatus.PENDING),
            ),
        ])
    except dynamo.TransactionConflict as e:
        if e.failed_at(0):
            raise ValidationError('Bid deadline has passed')
        raise Conflict('Bid is no longer pending')

    logger.info(f"Bid {bid_id} updated: {sorted(terms)}")
    return {**bid, **terms}


def withdraw_bid(caller: Caller, bid_id: str) -> None:
    """Withdraw (delete) a pending bid before the deadline."""
    bid, job, now = _load_own_pending_bid(caller, bid_id, 'withdraw')
    try:
        dynamo.transact_write([
            dynamo.Update(
                config.JOBS_TABLE, {'jobId': job['jobId']},
                add={'bidCount': -1},
                condition=Exists('jobId') & _deadline_condition(now),
            ),
            dynamo.Delete(config.BIDS_TABLE, {'bidId': bid_id}, condition=Eq('status', BidStatus.PENDING)),
        ])
    except dynamo.TransactionConflict as e:
        if e.failed_at(0):
            raise ValidationError('Bid deadline has passed')
        raise Conflict('Bid is no longer pending')
    logger.info(f"Bid {bid_id} withdrawn from job {bid['jobId']}")


# =============================================================================
# Reads
# =============================================================================

def list_job_bids(caller: Caller, job_id: str) -> List[Dict[str, Any]]:
    job = load_job(job_id)
    if not _can_manage(caller, job):
        raise Forbidden('Only the job creator can view its bids')
    bids = dynamo.query(config.BIDS_TABLE, 'JobIndex', 'jobId', job_id)
    bids.sort(key=lambda bid: bid.get('submittedAt', ''), reverse=True)
    return bids


def list_my_bids(caller: Caller) -> List[Dict[str, Any]]:
    """The caller's bids, newest first, each with a summary of its job."""
    bids = dynamo.query(config.BIDS_TABLE, 'BidderIndex', 'bidderId', caller.user_id)
    jobs = {}
    for bid in bids:
        if bid['jobId'] not in jobs:
            jobs[bid['jobId']] = dynamo.get_item(config.JOBS_TABLE, {'jobId': bid['jobId']})
    bids.sort(key=lambda bid: bid.get('submittedAt', ''), reverse=True)
    return [{**bid, 'job': _job_summary(jobs[bid['jobId']])} for bid in bids]


def get_bid(caller: Caller, bid_id: str) -> Dict[str, Any]:
    bid = load_bid(bid_id)
    if bid['bidderId'] == caller.user_id or caller.is_admin:
        return bid
    if not _can_manage(caller, load_job(bid['jobId'])):
        raise Forbidden()
    return bid


# =============================================================================
# Owner-side status changes
# =============================================================================

def update_bid_status(caller: Caller, bid_id: str, body: dict) -> Dict[str, Any]:
    """
    Move a bid through the bid machine on behalf of the job owner.

    Returns:
        {'bid': ...} plus 'contract' and 'milestone' when the bid was accepted
    """
    validation.require_fields(body, 'status')
    target = validation.choice(body['status'], BID_MACHINE.states, 'status')

    bid = load_bid(bid_id)
    job = load_job(bid['jobId'])
    if not _can_manage(caller, job):
        raise Forbidden()

    transition(BID_MACHINE, bid['status'], target)
    if job.get('acceptedBidId'):
        raise ImmutableState('Another bid has already been accepted for this job')

    if target == BidStatus.ACCEPTED:
        return accept_bid(job, bid)

    updates = {'status': target, 'updatedAt': now_iso()}
    if body.get('notes') is not None:
        updates['statusNotes'] = validation.text(body['notes'], 'notes')
    try:
        updated = dynamo.update_item(
            config.BIDS_TABLE, {'bidId': bid_id},
            set_values=updates,
            condition=Eq('status', bid['status']),
        )
    except dynamo.ConditionFailed:
        raise Conflict('Bid was changed by another request, please retry')

    logger.info(f"Bid {bid_id} moved {bid['status']} -> {target}")
    return {'bid': updated}


def accept_bid(job: Dict[str, Any], bid: Dict[str, Any]) -> Dict[str, Any]:
    """
    Award the job to a bid.

    Contract, default milestone, job award, target acceptance and sibling
    rejections commit in one transaction. The job update only succeeds while
    the job has no accepted bid, so concurrent acceptances on the same job
    leave exactly one winner. It also requires the job's bidCount to match
    the bids read here, so a bid submitted mid-accept is never left pending.

    Raises:
        ImmutableState: another bid won the job first
        Conflict: a bid changed underneath the transaction
    """
    if job['status'] == JobStatus.OPEN:
        job_status = transition_path(JOB_MACHINE, job['status'], JobStatus.UNDER_REVIEW, JobStatus.AWARDED)
    else:
        job_status = transition(JOB_MACHINE, job['status'], JobStatus.AWARDED)

    now = now_iso()
    job_id = job['jobId']
    contract_id = contract_id_for(job_id)
    amount = bid.get('amountTotal', Decimal('0'))

    contract = {
        'contractId': contract_id,
        'jobId': job_id,
        'bidId': bid['bidId'],
        'clientId': job['createdBy'],
        'vendorId': bid['bidderId'],
        'totalAmount': amount,
        'currency': bid.get('currency') or config.DEFAULT_CURRENCY,
        'startDate': bid.get('startAvailableFrom') or now,
        'deliverablesStatus': DeliverablesStatus.NOT_STARTED,
        'status': ContractStatus.ACTIVE,
        'createdAt': now,
        'updatedAt': now,
    }
    if job.get('finalDeliveryDate'):
        contract['endDate'] = job['finalDeliveryDate']

    milestone = {
        'milestoneId': str(uuid.uuid4()),
        'contractId': contract_id,
        'title': DEFAULT_MILESTONE_TITLE,
        'description': DEFAULT_MILESTONE_DESCRIPTION,
        'amount': amount,
        'deliverables': list(job.get('deliverables') or []),
        'status': MilestoneStatus.PENDING,
        'createdAt': now,
        'updatedAt': now,
    }
    if job.get('finalDeliveryDate'):
        milestone['dueDate'] = job['finalDeliveryDate']

    all_bids = {other['bidId']: other for other in dynamo.query(config.BIDS_TABLE, 'JobIndex', 'jobId', job_id)}
    all_bids[bid['bidId']] = bid
    siblings = [
        other for other in all_bids.values()
        if other['bidId'] != bid['bidId'] and other.get('status') != BidStatus.REJECTED
    ]
    room = dynamo.MAX_TRANSACTION_ITEMS - _ACCEPT_CORE_OPERATIONS
    batched, overflow = siblings[:room], siblings[room:]

    # bidCount pins the set of bids this acceptance rejects
    operations = [
        dynamo.Update(
            config.JOBS_TABLE, {'jobId': job_id},
            set_values={'status': job_status, 'acceptedBidId': bid['bidId'], 'updatedAt': now},
            condition=(
                In('status', (JobStatus.OPEN, JobStatus.UNDER_REVIEW))
                & NotExists('acceptedBidId')
                & Eq('bidCount', len(all_bids))
            ),
        ),
        dynamo.Put(config.CONTRACTS_TABLE, contract, condition=NotExists('contractId')),
        dynamo.Put(config.MILESTONES_TABLE, milestone, condition=NotExists('milestoneId')),
        dynamo.Update(
            config.BIDS_TABLE, {'bidId': bid['bidId']},
            set_values={'status': BidStatus.ACCEPTED, 'updatedAt': now},
            condition=Eq('status', bid['status']),
        ),
    ]
    operations.extend(_reject_operation(other['bidId'], now) for other in batched)

    try:
        dynamo.transact_write(operations)
    except dynamo.TransactionConflict as e:
        if e.failed_at(1) or (e.failed_at(0) and _already_awarded(job_id)):
            raise ImmutableState('Another bid has already been accepted for this job')
        raise Conflict('Bids on this job changed while accepting, please retry')

    _reject_overflow(job_id, overflow, now)

    logger.info(
        f"Bid {bid['bidId']} accepted for job {job_id}: contract {contract_id}, "
        f"{len(siblings)} sibling bids rejected"
    )
    return {
        'bid': {**bid, 'status': BidStatus.ACCEPTED, 'updatedAt': now},
        'contract': contract,
        'milestone': milestone,
    }


def _already_awarded(job_id: str) -> bool:
    current = dynamo.get_item(config.JOBS_TABLE, {'jobId': job_id}) or {}
    return bool(current.get('acceptedBidId')) or current.get('status') not in (
        JobStatus.OPEN, JobStatus.UNDER_REVIEW
    )


def _reject_overflow(job_id: str, overflow: List[Dict[str, Any]], now: str) -> None:
    """Rejections beyond one transaction's capacity; the award is already final."""
    for index, other in enumerate(overflow):
        try:
            dynamo.update_item(
                config.BIDS_TABLE, {'bidId': other['bidId']},
                set_values={'status': BidStatus.REJECTED, 'updatedAt': now},
                condition=Exists('bidId'),
            )
        except dynamo.ConditionFailed:
            logger.info(f"Bid {other['bidId']} was withdrawn before it could be rejected")
        except ClientError as e:
            remaining = [b['bidId'] for b in overflow[index:]]
            logger.error(f"Job {job_id} awarded but {len(remaining)} bids left pending: {remaining}: {e}")
            return


def _reject_operation(bid_id: str, now: str) -> dynamo.Update:
    return dynamo.Update(
        config.BIDS_TABLE, {'bidId': bid_id},
        set_values={'status': BidStatus.REJECTED, 'updatedAt': now},
        condition=Exists('bidId'),
    )
