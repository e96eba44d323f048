"""
Contract and milestone engine.

Contracts are created only by the bid accept protocol; this module covers
everything after that: reads, terms edits, status changes (including the
completion that closes the job) and the milestone workflow.
"""
import uuid
from typing import Any, Dict, List, Optional

from shared import dynamo, validation
from shared.auth import Caller
from shared.config import config
from shared.errors import Conflict, Forbidden, ImmutableState, NotFound, ValidationError
from shared.filters import Eq, NotExists
from shared.jobs import load_job
from shared.logging import logger
from shared.models import ContractStatus, DeliverablesStatus, JobStatus, MilestoneStatus, values
from shared.state_machine import (
    CONTRACT_MACHINE,
    JOB_MACHINE,
    MILESTONE_MACHINE,
    transition,
    transition_path,
)
from shared.utils import now_iso


def load_contract(contract_id: str) -> Dict[str, Any]:
    contract = dynamo.get_item(config.CONTRACTS_TABLE, {'contractId': contract_id})
    if not contract:
        raise NotFound('Contract not found')
    return contract


def is_member(caller: Caller, contract: Dict[str, Any]) -> bool:
    return caller.user_id in (contract['clientId'], contract['vendorId'])


def _require_member(caller: Caller, contract: Dict[str, Any], allow_admin: bool = False) -> None:
    if is_member(caller, contract) or (allow_admin and caller.is_admin):
        return
    raise Forbidden()


def _require_client(caller: Caller, contract: Dict[str, Any]) -> None:
    if contract['clientId'] != caller.user_id:
        raise Forbidden('Only the client can perform this action')


def _require_active(contract: Dict[str, Any], message: str) -> None:
    if contract['status'] != ContractStatus.ACTIVE:
        raise ImmutableState(message)


def _load_milestone(contract_id: str, milestone_id: str) -> Dict[str, Any]:
    milestone = dynamo.get_item(config.MILESTONES_TABLE, {'milestoneId': milestone_id})
    if not milestone or milestone.get('contractId') != contract_id:
        raise NotFound('Milestone not found')
    return milestone


# =============================================================================
# Contracts
# =============================================================================

def list_contracts(caller: Caller, params: Optional[dict] = None) -> List[Dict[str, Any]]:
    """Contracts where the caller is client or vendor, newest first."""
    params = params or {}
    status_filter = None
    if params.get('status'):
        status_filter = Eq('status', validation.choice(params['status'], CONTRACT_MACHINE.states, 'status'))

    found = {}
    for index, attr in (('ClientIndex', 'clientId'), ('VendorIndex', 'vendorId')):
        for contract in dynamo.query(config.CONTRACTS_TABLE, index, attr, caller.user_id, status_filter):
            found[contract['contractId']] = contract

    return sorted(found.values(), key=lambda c: c.get('createdAt', ''), reverse=True)


def list_milestones(contract_id: str) -> List[Dict[str, Any]]:
    milestones = dynamo.query(config.MILESTONES_TABLE, 'ContractIndex', 'contractId', contract_id)
    milestones.sort(key=lambda m: m.get('dueDate', ''))
    return milestones


def get_contract(caller: Caller, contract_id: str) -> Dict[str, Any]:
    contract = load_contract(contract_id)
    _require_member(caller, contract, allow_admin=True)
    return {'contract': contract, 'milestones': list_milestones(contract_id)}


def update_contract(caller: Caller, contract_id: str, body: dict) -> Dict[str, Any]:
    """Client edits the terms of an active contract."""
    contract = load_contract(contract_id)
    _require_client(caller, contract)
    _require_active(contract, 'Only active contracts can be edited')

    updates = {}
    if body.get('termsNotes') is not None:
        updates['termsNotes'] = validation.text(body['termsNotes'], 'termsNotes')
    if body.get('endDate') is not None:
        updates['endDate'] = validation.timestamp(body['endDate'], 'endDate')
    if body.get('deliverablesStatus') is not None:
        updates['deliverablesStatus'] = validation.choice(
            body['deliverablesStatus'], values(DeliverablesStatus), 'deliverablesStatus'
        )
    if not updates:
        raise ValidationError('No contract fields to update')
    updates['updatedAt'] = now_iso()

    try:
        return dynamo.update_item(
            config.CONTRACTS_TABLE, {'contractId': contract_id},
            set_values=updates,
            condition=Eq('status', ContractStatus.ACTIVE),
        )
    except dynamo.ConditionFailed:
        raise ImmutableState('Only active contracts can be edited')


def _job_completion_path(job: Dict[str, Any]) -> List[str]:
    if job['status'] == JobStatus.AWARDED:
        return [JobStatus.IN_PROGRESS, JobStatus.COMPLETED]
    return [JobStatus.COMPLETED]


def update_contract_status(caller: Caller, contract_id: str, body: dict) -> Dict[str, Any]:
    """
    Either party moves the contract through the contract machine.

    Completing the contract completes its job in the same transaction.
    """
    validation.require_fields(body, 'status')
    target = validation.choice(body['status'], CONTRACT_MACHINE.states, 'status')

    contract = load_contract(contract_id)
    _require_member(caller, contract)
    current = contract['status']
    transition(CONTRACT_MACHINE, current, target)

    now = now_iso()
    updates = {'status': target, 'updatedAt': now}
    if target == ContractStatus.COMPLETED:
        updates['completedAt'] = now

    if target != ContractStatus.COMPLETED:
        try:
            updated = dynamo.update_item(
                config.CONTRACTS_TABLE, {'contractId': contract_id},
                set_values=updates,
                condition=Eq('status', current),
            )
        except dynamo.ConditionFailed:
            raise Conflict('Contract was changed by another request, please retry')
        logger.info(f"Contract {contract_id} moved {current} -> {target}")
        return updated

    job = load_job(contract['jobId'])
    operations = [
        dynamo.Update(
            config.CONTRACTS_TABLE, {'contractId': contract_id},
            set_values=updates,
            condition=Eq('status', current),
        ),
    ]
    # A completed or cancelled job keeps its status
    job_status = job['status']
    if not JOB_MACHINE.is_terminal(job_status):
        job_status = transition_path(JOB_MACHINE, job['status'], *_job_completion_path(job))
        operations.append(dynamo.Update(
            config.JOBS_TABLE, {'jobId': job['jobId']},
            set_values={'status': job_status, 'updatedAt': now},
            condition=Eq('status', job['status']),
        ))
    try:
        dynamo.transact_write(operations)
    except dynamo.TransactionConflict:
        raise Conflict('Contract or job was changed by another request, please retry')

    logger.info(f"Contract {contract_id} completed; job {job['jobId']} is {job_status}")
    return {**contract, **updates}


# =============================================================================
# Milestones
# =============================================================================

def add_milestone(caller: Caller, contract_id: str, body: dict) -> Dict[str, Any]:
    contract = load_contract(contract_id)
    _require_client(caller, contract)
    _require_active(contract, 'Milestones can only be added to active contracts')
    validation.require_fields(body, 'title', 'dueDate', 'amount')

    now = now_iso()
    milestone = {
        'milestoneId': str(uuid.uuid4()),
        'contractId': contract_id,
        'title': validation.text(body['title'], 'title'),
        'dueDate': validation.timestamp(body['dueDate'], 'dueDate'),
        'amount': validation.amount(body['amount'], 'amount'),
        'deliverables': validation.string_list(body.get('deliverables') or [], 'deliverables'),
        'status': MilestoneStatus.PENDING,
        'createdAt': now,
        'updatedAt': now,
    }
    if body.get('description') is not None:
        milestone['description'] = validation.text(body['description'], 'description')

    try:
        dynamo.transact_write([
            dynamo.ConditionCheck(
                config.CONTRACTS_TABLE, {'contractId': contract_id}, Eq('status', ContractStatus.ACTIVE)
            ),
            dynamo.Put(config.MILESTONES_TABLE, milestone, condition=NotExists('milestoneId')),
        ])
    except dynamo.TransactionConflict:
        raise ImmutableState('Milestones can only be added to active contracts')

    logger.info(f"Milestone {milestone['milestoneId']} added to contract {contract_id}")
    return milestone


def update_milestone(caller: Caller, contract_id: str, milestone_id: str, body: dict) -> Dict[str, Any]:
    """Either party moves a milestone through review or adds review notes."""
    contract = load_contract(contract_id)
    _require_member(caller, contract)
    milestone = _load_milestone(contract_id, milestone_id)

    updates = {}
    if body.get('status') is not None:
        target = validation.choice(body['status'], MILESTONE_MACHINE.states, 'status')
        updates['status'] = transition(MILESTONE_MACHINE, milestone['status'], target)
    if body.get('reviewNotes') is not None:
        updates['reviewNotes'] = validation.text(body['reviewNotes'], 'reviewNotes')
    if not updates:
        raise ValidationError('No milestone fields to update')

    now = now_iso()
    updates['updatedAt'] = now
    if updates.get('status') == MilestoneStatus.APPROVED:
        updates['completedAt'] = now

    try:
        updated = dynamo.update_item(
            config.MILESTONES_TABLE, {'milestoneId': milestone_id},
            set_values=updates,
            condition=Eq('status', milestone['status']),
        )
    except dynamo.ConditionFailed:
        raise Conflict('Milestone was changed by another request, please retry')

    logger.info(f"Milestone {milestone_id} updated: {sorted(updates)}")
    return updated


def delete_milestone(caller: Caller, contract_id: str, milestone_id: str) -> None:
    contract = load_contract(contract_id)
    _require_client(caller, contract)
    _require_active(contract, 'Cannot delete milestones from contract in current status')
    milestone = _load_milestone(contract_id, milestone_id)
    if milestone['status'] != MilestoneStatus.PENDING:
        raise ImmutableState('Only pending milestones can be deleted')

    try:
        dynamo.transact_write([
            dynamo.ConditionCheck(
                config.CONTRACTS_TABLE, {'contractId': contract_id}, Eq('status', ContractStatus.ACTIVE)
            ),
            dynamo.Delete(
                config.MILESTONES_TABLE, {'milestoneId': milestone_id},
                condition=Eq('status', MilestoneStatus.PENDING),
            ),
        ])
    except dynamo.TransactionConflict as e:
        if e.failed_at(0):
            raise ImmutableState('Cannot delete milestones from contract in current status')
        raise ImmutableState('Only pending milestones can be deleted')

    logger.info(f"Milestone {milestone_id} deleted from contract {contract_id}")
