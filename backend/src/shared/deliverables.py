"""
Deliverables submitted by a contract's vendor and reviewed by its client.

After every review the contract's deliverablesStatus roll-up is recomputed
from all of the contract's deliverables.
"""
import uuid
from typing import Any, Dict, List, Optional

from shared import dynamo, media, validation
from shared.auth import Caller
from shared.config import config
from shared.contracts import is_member, load_contract
from shared.errors import Conflict, Forbidden, ImmutableState, NotFound, ValidationError
from shared.filters import Eq, In, NotExists
from shared.jobs import load_job
from shared.logging import logger
from shared.models import (
    REVIEWED_DELIVERABLE_STATUSES,
    ContractStatus,
    DeliverablesStatus,
    DeliverableStatus,
    FileType,
    contract_id_for,
    values,
)
from shared.state_machine import DELIVERABLE_MACHINE, transition
from shared.utils import now_iso

_EDITABLE_STATUSES = tuple(sorted(values(DeliverableStatus) - set(REVIEWED_DELIVERABLE_STATUSES)))


def load_deliverable(deliverable_id: str) -> Dict[str, Any]:
    deliverable = dynamo.get_item(config.DELIVERABLES_TABLE, {'deliverableId': deliverable_id})
    if not deliverable:
        raise NotFound('Deliverable not found')
    return deliverable


def present(deliverable: Dict[str, Any]) -> Dict[str, Any]:
    return {**deliverable, 'fileUrl': media.presign(deliverable.get('fileUrl'))}


def _frame_range(value: Any) -> Dict[str, int]:
    if not isinstance(value, dict) or value.get('start') is None or value.get('end') is None:
        raise ValidationError('frameRange needs a start and an end frame')
    start = validation.integer(value['start'], 'frameRange start', minimum=0)
    end = validation.integer(value['end'], 'frameRange end', minimum=0)
    if start > end:
        raise ValidationError('frameRange start cannot be after its end')
    return {'start': start, 'end': end}


def _parse_fields(body: dict) -> Dict[str, Any]:
    fields = {}
    for name in ('label', 'description', 'fileFormat', 'shotCode'):
        if body.get(name) is not None:
            fields[name] = validation.text(body[name], name)
    if body.get('fileType') is not None:
        fields['fileType'] = validation.choice(body['fileType'], values(FileType), 'fileType')
    if body.get('frameRange') is not None:
        fields['frameRange'] = _frame_range(body['frameRange'])
    return fields


def _file_payload(body: dict) -> Optional[str]:
    return body.get('file') or body.get('fileUrl')


def rollup_status(statuses: List[str]) -> Optional[str]:
    """
    Contract-level status implied by its deliverables.

    None means the current roll-up stays as it is.
    """
    if statuses and all(status == DeliverableStatus.APPROVED for status in statuses):
        return DeliverablesStatus.APPROVED
    if DeliverableStatus.CHANGES_REQUESTED in statuses:
        return DeliverablesStatus.CHANGES_REQUESTED
    return None


def _contract_deliverables(
    contract_id: str,
    written: Optional[Dict[str, Any]] = None,
    removed_id: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Deliverables of a contract as of the caller's own last write.

    ContractIndex is eventually consistent, so the item just written (or
    deleted) is merged over the query result by deliverableId.
    """
    found = {
        d['deliverableId']: d
        for d in dynamo.query(config.DELIVERABLES_TABLE, 'ContractIndex', 'contractId', contract_id)
    }
    if written is not None:
        found[written['deliverableId']] = written
    if removed_id is not None:
        found.pop(removed_id, None)
    return list(found.values())


def recompute_deliverables_status(
    contract_id: str,
    written: Optional[Dict[str, Any]] = None,
    removed_id: Optional[str] = None,
) -> Optional[str]:
    """Write the contract's deliverablesStatus from its deliverables; returns the new value."""
    deliverables = _contract_deliverables(contract_id, written, removed_id)
    rollup = rollup_status([d.get('status') for d in deliverables])
    if rollup is None:
        return None
    dynamo.update_item(
        config.CONTRACTS_TABLE, {'contractId': contract_id},
        set_values={'deliverablesStatus': rollup, 'updatedAt': now_iso()},
    )
    logger.info(f"Contract {contract_id} deliverablesStatus -> {rollup}")
    return rollup


# =============================================================================
# Vendor operations
# =============================================================================

def upload_deliverable(caller: Caller, body: dict) -> Dict[str, Any]:
    """Vendor submits a file against an active contract."""
    validation.require_fields(body, 'contractId', 'label', 'fileType')
    if not _file_payload(body):
        raise ValidationError('file is required')

    contract = load_contract(body['contractId'])
    if contract['vendorId'] != caller.user_id:
        raise Forbidden('Only the vendor can upload deliverables')
    if contract['status'] != ContractStatus.ACTIVE:
        raise ImmutableState('Cannot upload deliverables to contract in current status')

    now = now_iso()
    deliverable = {
        'deliverableId': str(uuid.uuid4()),
        'contractId': contract['contractId'],
        'jobId': contract['jobId'],
        'uploadedBy': caller.user_id,
        **_parse_fields(body),
        'status': DeliverableStatus.SUBMITTED,
        'createdAt': now,
        'updatedAt': now,
    }
    deliverable['fileUrl'] = media.ingest(_file_payload(body), 'deliverables')

    try:
        dynamo.transact_write([
            dynamo.Update(
                config.CONTRACTS_TABLE, {'contractId': contract['contractId']},
                set_values={'deliverablesStatus': DeliverablesStatus.SUBMITTED, 'updatedAt': now},
                condition=Eq('status', ContractStatus.ACTIVE),
            ),
            dynamo.Put(config.DELIVERABLES_TABLE, deliverable, condition=NotExists('deliverableId')),
        ])
    except dynamo.TransactionConflict:
        media.release(deliverable['fileUrl'])
        raise ImmutableState('Cannot upload deliverables to contract in current status')

    logger.info(f"Deliverable {deliverable['deliverableId']} uploaded to contract {contract['contractId']}")
    return present(deliverable)


def _load_own_editable(caller: Caller, deliverable_id: str) -> Dict[str, Any]:
    deliverable = load_deliverable(deliverable_id)
    if deliverable['uploadedBy'] != caller.user_id:
        raise Forbidden('Only the uploader can change this deliverable')
    if deliverable['status'] in REVIEWED_DELIVERABLE_STATUSES:
        raise ImmutableState('Cannot change a deliverable after it has been reviewed')
    return deliverable


def update_deliverable(caller: Caller, deliverable_id: str, body: dict) -> Dict[str, Any]:
    deliverable = _load_own_editable(caller, deliverable_id)
    updates = _parse_fields(body)
    new_file = None
    if _file_payload(body):
        new_file = media.ingest(_file_payload(body), 'deliverables')
        updates['fileUrl'] = new_file
    if not updates:
        raise ValidationError('No deliverable fields to update')
    updates['updatedAt'] = now_iso()

    try:
        updated = dynamo.update_item(
            config.DELIVERABLES_TABLE, {'deliverableId': deliverable_id},
            set_values=updates,
            condition=In('status', _EDITABLE_STATUSES),
        )
    except dynamo.ConditionFailed:
        media.release(new_file)
        raise ImmutableState('Cannot change a deliverable after it has been reviewed')

    if new_file and deliverable.get('fileUrl') != new_file:
        media.release(deliverable.get('fileUrl'))
    return present(updated)


def delete_deliverable(caller: Caller, deliverable_id: str) -> None:
    deliverable = _load_own_editable(caller, deliverable_id)
    try:
        dynamo.delete_item(
            config.DELIVERABLES_TABLE, {'deliverableId': deliverable_id},
            condition=In('status', _EDITABLE_STATUSES),
        )
    except dynamo.ConditionFailed:
        raise ImmutableState('Cannot change a deliverable after it has been reviewed')

    media.release(deliverable.get('fileUrl'))
    recompute_deliverables_status(deliverable['contractId'], removed_id=deliverable_id)
    logger.info(f"Deliverable {deliverable_id} deleted")


# =============================================================================
# Reads and client review
# =============================================================================

def list_contract_deliverables(caller: Caller, contract_id: str) -> List[Dict[str, Any]]:
    contract = load_contract(contract_id)
    if not (is_member(caller, contract) or caller.is_admin):
        raise Forbidden()
    deliverables = dynamo.query(config.DELIVERABLES_TABLE, 'ContractIndex', 'contractId', contract_id)
    deliverables.sort(key=lambda d: d.get('createdAt', ''), reverse=True)
    return [present(d) for d in deliverables]


def list_job_deliverables(caller: Caller, job_id: str) -> List[Dict[str, Any]]:
    job = load_job(job_id)
    allowed = (
        caller.is_admin
        or job['createdBy'] == caller.user_id
        or caller.user_id in (job.get('assignedTo') or [])
    )
    if not allowed:
        contract = dynamo.get_item(config.CONTRACTS_TABLE, {'contractId': contract_id_for(job_id)})
        allowed = bool(contract) and contract['vendorId'] == caller.user_id
    if not allowed:
        raise Forbidden()

    deliverables = dynamo.query(config.DELIVERABLES_TABLE, 'JobIndex', 'jobId', job_id)
    deliverables.sort(key=lambda d: d.get('createdAt', ''), reverse=True)
    return [present(d) for d in deliverables]


def get_deliverable(caller: Caller, deliverable_id: str) -> Dict[str, Any]:
    deliverable = load_deliverable(deliverable_id)
    contract = load_contract(deliverable['contractId'])
    if not (is_member(caller, contract) or caller.is_admin):
        raise Forbidden()
    return present(deliverable)


def review_deliverable(caller: Caller, deliverable_id: str, body: dict) -> Dict[str, Any]:
    """
    Client moves a deliverable through review.

    Returns:
        {'deliverable': ..., 'deliverablesStatus': contract roll-up after the review}
    """
    validation.require_fields(body, 'status')
    target = validation.choice(body['status'], DELIVERABLE_MACHINE.states, 'status')

    deliverable = load_deliverable(deliverable_id)
    contract = load_contract(deliverable['contractId'])
    if contract['clientId'] != caller.user_id:
        raise Forbidden('Only the client can review deliverables')

    current = deliverable['status']
    transition(DELIVERABLE_MACHINE, current, target)

    now = now_iso()
    updates = {'status': target, 'updatedAt': now}
    if body.get('reviewNotes') is not None:
        updates['reviewNotes'] = validation.text(body['reviewNotes'], 'reviewNotes')
    if target in REVIEWED_DELIVERABLE_STATUSES:
        updates['reviewedBy'] = caller.user_id
        updates['reviewedAt'] = now

    try:
        updated = dynamo.update_item(
            config.DELIVERABLES_TABLE, {'deliverableId': deliverable_id},
            set_values=updates,
            condition=Eq('status', current),
        )
    except dynamo.ConditionFailed:
        raise Conflict('Deliverable was changed by another request, please retry')

    rollup = recompute_deliverables_status(contract['contractId'], written=updated)
    logger.info(f"Deliverable {deliverable_id} reviewed: {current} -> {target}")
    return {
        'deliverable': present(updated),
        'deliverablesStatus': rollup or contract.get('deliverablesStatus'),
    }
