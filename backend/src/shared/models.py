"""
Data models and status constants for the marketplace.
Based on the hiring lifecycle: Job → Bid → Contract → Milestone/Deliverable → Review
"""
import uuid


class Role:
    """Caller roles (Cognito groups)."""
    ADMIN = 'admin'
    STUDIO = 'studio'
    ARTIST = 'artist'


class JobStatus:
    """Job lifecycle statuses."""
    DRAFT = 'draft'
    OPEN = 'open'
    UNDER_REVIEW = 'under_review'
    AWARDED = 'awarded'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


class JobType:
    STUDIO_SALARIED = 'studio_salaried'
    FREELANCE = 'freelance'


class AssignmentMode:
    """How a freelance job is filled."""
    DIRECT = 'direct'
    OPEN = 'open'


class PaymentType:
    FIXED = 'fixed'
    PER_SHOT = 'per_shot'
    PER_FRAME = 'per_frame'
    HOURLY = 'hourly'


class BidStatus:
    """Bid review statuses."""
    PENDING = 'pending'
    SHORTLISTED = 'shortlisted'
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'


class ContractStatus:
    ACTIVE = 'active'
    COMPLETED = 'completed'
    TERMINATED = 'terminated'
    DISPUTED = 'disputed'


class DeliverablesStatus:
    """Contract-level roll-up of its deliverables."""
    NOT_STARTED = 'not_started'
    IN_PROGRESS = 'in_progress'
    SUBMITTED = 'submitted'
    APPROVED = 'approved'
    CHANGES_REQUESTED = 'changes_requested'


class MilestoneStatus:
    PENDING = 'pending'
    IN_REVIEW = 'in_review'
    APPROVED = 'approved'
    PAID = 'paid'


class DeliverableStatus:
    """Deliverable approval workflow."""
    SUBMITTED = 'submitted'
    IN_REVIEW = 'in_review'
    APPROVED = 'approved'
    CHANGES_REQUESTED = 'changes_requested'


class FileType:
    PREVIEW = 'preview'
    FINAL = 'final'
    WORKING = 'working'
    REFERENCE = 'reference'


class ShotComplexity:
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'


def values(constants) -> set:
    """All string values declared on a constants class."""
    return {v for k, v in vars(constants).items() if k.isupper()}


# Review sub-ratings
REVIEW_ASPECTS = ('communication', 'quality', 'timeliness', 'professionalism')

# Jobs locked against edits and deletion
LOCKED_JOB_STATUSES = (JobStatus.AWARDED, JobStatus.IN_PROGRESS, JobStatus.COMPLETED)

# Deliverables the uploader can no longer change
REVIEWED_DELIVERABLE_STATUSES = (DeliverableStatus.APPROVED, DeliverableStatus.CHANGES_REQUESTED)


# Deterministic ids: a second write of the same pair collides on attribute_not_exists
_ID_NAMESPACE = uuid.UUID('6f1c2b0e-4d7a-5e39-9b8e-3a2f0c9d1e74')


def bid_id_for(job_id: str, bidder_id: str) -> str:
    return str(uuid.uuid5(_ID_NAMESPACE, f"bid:{job_id}:{bidder_id}"))


def contract_id_for(job_id: str) -> str:
    return str(uuid.uuid5(_ID_NAMESPACE, f"contract:{job_id}"))


def review_id_for(contract_id: str) -> str:
    return str(uuid.uuid5(_ID_NAMESPACE, f"review:{contract_id}"))
