"""
models.py — Data models for the Job Market Sync layer.

Every record here is a read-projection: derived from the ledger and the
message backend, never the system of record. Records are frozen and hold
tuples so that a published snapshot cannot be mutated by its consumers.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional


PAY_TYPE_WEEKLY = "WEEKLY"
PAY_TYPE_ONE_OFF = "ONE_OFF"

ROLE_EMPLOYER = "employer"
ROLE_WORKER = "worker"
ROLE_JUROR = "juror"

RESOLUTION_FOR_WORKER = "in_favor_of_worker"
RESOLUTION_AGAINST_WORKER = "against_worker"


@dataclass(frozen=True)
class Identity:
    """The connected wallet, or an anonymous read-only session."""
    address: Optional[str] = None
    is_connected: bool = False


@dataclass(frozen=True)
class ContractHandles:
    """Live bindings to the ledger contracts for the current identity."""
    job_factory: Any
    dispute_dao: Any


@dataclass(frozen=True)
class ProfileInfo:
    """A user profile from the off-chain directory."""
    address: str
    display_name: str
    role: Optional[str] = None
    raw: dict = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class JobSummary:
    """A live (not cancelled) job in the public listing."""
    address: str
    employer_address: str
    employer_display_name: str
    title: str
    description: str
    pay_type: str
    weekly_pay: Decimal
    total_pay: Decimal
    duration_weeks: int
    created_at: datetime
    tags: tuple[str, ...] = ()
    positions: int = 0
    positions_filled: int = 0
    employer_rating: float = 0.0


@dataclass(frozen=True)
class EmployerJob:
    """A job the current user created, as shown on their dashboard."""
    address: str
    title: str
    description: str
    duration_weeks: int
    positions: int
    pay_type: str
    total_pay: Decimal
    posted_at: datetime
    application_count: int = 0


@dataclass(frozen=True)
class ApplicantRecord:
    """One application to one of the current user's jobs."""
    id: str
    address: str
    job_address: str
    job_title: str
    display_name: str
    application_text: str
    applied_at: datetime
    status: str  # "pending", "reviewed"
    rating: float = 0.0
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class WorkerJob:
    """A job the current user is assigned to as a worker."""
    address: str
    title: str
    employer_address: str
    employer_display_name: str
    pay_type: str
    weekly_pay: Decimal
    total_pay: Decimal
    duration_weeks: int
    start_date: datetime
    progress: float
    next_payout_date: Optional[datetime]
    payouts_made: int
    positions_filled: int
    dispute_dao_address: Optional[str] = None


@dataclass(frozen=True)
class Party:
    address: Optional[str]
    name: str


@dataclass(frozen=True)
class VoteTally:
    votes_for: int = 0
    votes_against: int = 0


@dataclass(frozen=True)
class ChatMessage:
    """A message in a dispute thread, with its sender's derived role."""
    sender: str
    sender_display_name: str
    role: str  # "employer", "worker", "juror"
    content: str
    timestamp: Optional[datetime]


@dataclass(frozen=True)
class DisputeRecord:
    id: int
    job_address: str
    job_title: str
    description: str
    employer: Party
    worker: Party
    assigned_workers: tuple[str, ...]
    initiator: str
    resolved: bool
    status: str  # "pending", "resolved"
    resolution: Optional[str]
    opened_date: Optional[datetime]
    voting_ends: Optional[datetime]
    votes: VoteTally
    reason: str
    messages: tuple[ChatMessage, ...] = ()


@dataclass(frozen=True)
class PeerMessage:
    """A direct message between two users, as stored by the backend."""
    sender: str
    receiver: str
    content: str
    created_at: datetime


@dataclass(frozen=True)
class Conversation:
    counterparty_address: str
    counterparty_display_name: str
    last_message: PeerMessage
    messages: tuple[PeerMessage, ...] = ()


@dataclass(frozen=True)
class PipelineState:
    """A published snapshot of everything the pipeline has derived."""
    identity: Identity = field(default_factory=Identity)
    generation: int = 0
    contracts: Optional[ContractHandles] = None
    job_addresses: tuple[str, ...] = ()
    all_jobs: tuple[JobSummary, ...] = ()
    employer_job_addresses: tuple[str, ...] = ()
    employer_job_details: tuple[EmployerJob, ...] = ()
    applicants: tuple[ApplicantRecord, ...] = ()
    worker_jobs: tuple[WorkerJob, ...] = ()
    disputes: tuple[DisputeRecord, ...] = ()
    my_disputes: tuple[DisputeRecord, ...] = ()
    failures: dict = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class DisputePost:
    """A message in a dispute thread as stored by the backend, before enrichment."""
    sender: str
    content: str
    created_at: Optional[datetime]
