"""
disputes.py — Joins on-chain dispute state with job metadata and the off-chain thread.

For each dispute: the DAO summary tuple, the opening date from its
DisputeCreated log, the disputed job's title/employer/workers, display names
from the profile cache, and the message thread with each sender's role.
"""

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from config import UNKNOWN_LABEL, UNKNOWN_WORKER_LABEL, VOTING_WINDOW_DAYS
from batch import BatchResult, gather_items
from ledger.base import PROOF_OF_WORK_JOB, ContractBinding, LedgerCallError, LedgerProvider
from models import (
    RESOLUTION_AGAINST_WORKER, RESOLUTION_FOR_WORKER, ROLE_EMPLOYER, ROLE_JUROR, ROLE_WORKER,
    ChatMessage, DisputePost, DisputeRecord, Party, VoteTally,
)
from monitoring import get_logger

logger = get_logger("disputes")


def resolve_resolution(resolved: bool, votes_for: int, votes_against: int) -> Optional[str]:
    """
    Outcome of a dispute. A tie goes against the worker: the worker side
    needs a strict majority of votes.
    """
    if not resolved:
        return None
    if votes_for > votes_against:
        return RESOLUTION_FOR_WORKER
    return RESOLUTION_AGAINST_WORKER


def resolve_role(sender: str, employer: Optional[str], workers: Iterable[str]) -> str:
    sender = sender.lower()
    if employer and sender == employer.lower():
        return ROLE_EMPLOYER
    if any(sender == w.lower() for w in workers):
        return ROLE_WORKER
    return ROLE_JUROR


def disputes_for_user(disputes: Iterable[DisputeRecord], address: Optional[str]) -> tuple[DisputeRecord, ...]:
    """Disputes where `address` is the employer or the initiator."""
    if not address:
        return ()
    me = address.lower()
    return tuple(
        d for d in disputes
        if (d.employer.address or "").lower() == me or (d.initiator or "").lower() == me
    )


def append_message(disputes: Iterable[DisputeRecord], dispute_id: int, message: ChatMessage) -> tuple[DisputeRecord, ...]:
    """New snapshot with `message` appended to one dispute's thread."""
    return tuple(
        replace(d, messages=d.messages + (message,)) if d.id == dispute_id else d
        for d in disputes
    )


class DisputeAggregator:
    def __init__(self, api, profiles, voting_window_days: int = VOTING_WINDOW_DAYS):
        self.api = api
        self.profiles = profiles
        self.voting_window = timedelta(days=voting_window_days)

    async def fetch_all(self, provider: LedgerProvider, dispute_dao: ContractBinding) -> BatchResult:
        try:
            count = int(await dispute_dao.call("getDisputeCount"))
        except LedgerCallError as e:
            logger.error(f"Error fetching dispute count: {e}")
            return BatchResult()

        batch = await gather_items(
            range(count), lambda dispute_id: self.fetch_one(provider, dispute_dao, dispute_id), "disputes"
        )
        logger.info(f"Aggregated {len(batch.values)} of {count} disputes")
        return batch

    async def fetch_one(self, provider: LedgerProvider, dispute_dao: ContractBinding, dispute_id: int) -> DisputeRecord:
        job_address, initiator, resolved, votes_for, votes_against, reason = await dispute_dao.call(
            "getDisputeSummary", dispute_id
        )
        votes_for, votes_against = int(votes_for), int(votes_against)

        job = provider.contract(job_address, PROOF_OF_WORK_JOB)
        opened_date, (title, employer, description, assigned) = await asyncio.gather(
            self.opened_date(provider, dispute_dao, dispute_id),
            asyncio.gather(
                job.call("title"),
                job.call("employer"),
                job.call("description"),
                job.call("getAssignedWorkers"),
            ),
        )
        assigned = tuple(assigned)

        # The first assigned worker is the disputing party
        worker_address = assigned[0] if assigned else None
        employer_name, worker_name, posts = await asyncio.gather(
            self.profiles.display_name(employer, UNKNOWN_LABEL),
            self.profiles.display_name(worker_address, UNKNOWN_LABEL if worker_address else UNKNOWN_WORKER_LABEL),
            self.api.get_dispute_messages(dispute_id),
        )
        messages = await asyncio.gather(*(self.enrich_message(p, employer, assigned) for p in posts))

        resolved = bool(resolved)
        return DisputeRecord(
            id=dispute_id,
            job_address=job_address,
            job_title=title,
            description=description,
            employer=Party(address=employer, name=employer_name),
            worker=Party(address=worker_address, name=worker_name),
            assigned_workers=assigned,
            initiator=initiator,
            resolved=resolved,
            status="resolved" if resolved else "pending",
            resolution=resolve_resolution(resolved, votes_for, votes_against),
            opened_date=opened_date,
            voting_ends=opened_date + self.voting_window if opened_date else None,
            votes=VoteTally(votes_for=votes_for, votes_against=votes_against),
            reason=reason,
            messages=tuple(messages),
        )

    async def opened_date(self, provider: LedgerProvider, dispute_dao: ContractBinding, dispute_id: int) -> Optional[datetime]:
        """Timestamp of the block that emitted DisputeCreated(dispute_id); None if not found."""
        try:
            events = await dispute_dao.events("DisputeCreated", disputeId=dispute_id)
            if not events:
                logger.warning(f"No DisputeCreated event for dispute {dispute_id}")
                return None
            timestamp = await provider.block_timestamp(events[0].block_number)
        except LedgerCallError as e:
            logger.warning(f"Could not date dispute {dispute_id}: {e}")
            return None
        if timestamp is None:
            return None
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)

    async def enrich_message(self, post: DisputePost, employer: Optional[str], workers: Iterable[str]) -> ChatMessage:
        return ChatMessage(
            sender=post.sender,
            sender_display_name=await self.profiles.display_name(post.sender, UNKNOWN_LABEL),
            role=resolve_role(post.sender, employer, workers),
            content=post.content,
            timestamp=post.created_at,
        )
