"""
Status transition tables for every lifecycle entity.

All status writes go through transition(); handlers never compare statuses
inline to decide whether a change is legal.
"""
from typing import Dict, FrozenSet, Iterable

from shared.errors import ImmutableState, InvalidTransition
from shared.models import (
    BidStatus,
    ContractStatus,
    DeliverableStatus,
    JobStatus,
    MilestoneStatus,
)


class StateMachine:
    """Named transition table: {current: allowed next statuses}."""

    def __init__(self, name: str, transitions: Dict[str, Iterable[str]], locked: Iterable[str] = ()):
        self.name = name
        self.transitions = {state: frozenset(targets) for state, targets in transitions.items()}
        self.locked: FrozenSet[str] = frozenset(locked)

    @property
    def states(self) -> FrozenSet[str]:
        return frozenset(self.transitions)

    def allowed(self, current: str) -> FrozenSet[str]:
        return self.transitions.get(current, frozenset())

    def can_transition(self, current: str, target: str) -> bool:
        return current not in self.locked and target in self.allowed(current)

    def is_terminal(self, state: str) -> bool:
        return not self.allowed(state)


JOB_MACHINE = StateMachine('job', {
    JobStatus.DRAFT: {JobStatus.OPEN, JobStatus.CANCELLED},
    JobStatus.OPEN: {JobStatus.UNDER_REVIEW, JobStatus.CANCELLED},
    JobStatus.UNDER_REVIEW: {JobStatus.AWARDED, JobStatus.OPEN, JobStatus.CANCELLED},
    JobStatus.AWARDED: {JobStatus.IN_PROGRESS, JobStatus.CANCELLED},
    JobStatus.IN_PROGRESS: {JobStatus.COMPLETED, JobStatus.CANCELLED},
    JobStatus.COMPLETED: set(),
    JobStatus.CANCELLED: set(),
})

BID_MACHINE = StateMachine('bid', {
    BidStatus.PENDING: {BidStatus.SHORTLISTED, BidStatus.REJECTED, BidStatus.ACCEPTED},
    BidStatus.SHORTLISTED: {BidStatus.PENDING, BidStatus.REJECTED, BidStatus.ACCEPTED},
    BidStatus.REJECTED: {BidStatus.PENDING, BidStatus.SHORTLISTED, BidStatus.ACCEPTED},
    BidStatus.ACCEPTED: set(),
}, locked={BidStatus.ACCEPTED})

CONTRACT_MACHINE = StateMachine('contract', {
    ContractStatus.ACTIVE: {ContractStatus.COMPLETED, ContractStatus.TERMINATED, ContractStatus.DISPUTED},
    ContractStatus.DISPUTED: {ContractStatus.ACTIVE, ContractStatus.COMPLETED, ContractStatus.TERMINATED},
    ContractStatus.COMPLETED: set(),
    ContractStatus.TERMINATED: set(),
}, locked={ContractStatus.COMPLETED, ContractStatus.TERMINATED})

MILESTONE_MACHINE = StateMachine('milestone', {
    MilestoneStatus.PENDING: {MilestoneStatus.IN_REVIEW, MilestoneStatus.APPROVED},
    MilestoneStatus.IN_REVIEW: {MilestoneStatus.PENDING, MilestoneStatus.APPROVED},
    MilestoneStatus.APPROVED: {MilestoneStatus.PAID},
    MilestoneStatus.PAID: set(),
}, locked={MilestoneStatus.PAID})

DELIVERABLE_MACHINE = StateMachine('deliverable', {
    DeliverableStatus.SUBMITTED: {
        DeliverableStatus.IN_REVIEW, DeliverableStatus.APPROVED, DeliverableStatus.CHANGES_REQUESTED,
    },
    DeliverableStatus.IN_REVIEW: {
        DeliverableStatus.SUBMITTED, DeliverableStatus.APPROVED, DeliverableStatus.CHANGES_REQUESTED,
    },
    DeliverableStatus.CHANGES_REQUESTED: {DeliverableStatus.IN_REVIEW, DeliverableStatus.APPROVED},
    DeliverableStatus.APPROVED: {DeliverableStatus.CHANGES_REQUESTED},
})


def transition(machine: StateMachine, current: str, target: str) -> str:
    """
    Validate a status change against a machine's table.

    Returns the target status so callers can write it directly.

    Raises:
        ImmutableState: current status is locked (no further writes)
        InvalidTransition: target not reachable from current
    """
    if current in machine.locked:
        raise ImmutableState(f"Cannot change status of {current} {machine.name}")
    if target not in machine.allowed(current):
        raise InvalidTransition(machine.name, current, target)
    return target


def transition_path(machine: StateMachine, current: str, *targets: str) -> str:
    """Walk several transitions in order, validating each hop."""
    for target in targets:
        current = transition(machine, current, target)
    return current
