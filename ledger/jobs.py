"""
jobs.py — Reads job contracts and projects them into listing records.

Core fields (title, employer, pay terms, ...) are required: if one of those
reads fails the whole job fails and the caller's batch records it.
Secondary fields (tags, rating, filled positions) fall back to empty/zero
and are logged.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

from config import PAYOUT_INTERVAL_DAYS
from ledger.base import (
    PROOF_OF_WORK_JOB, REPUTATION_SYSTEM, ContractBinding, LedgerCallError, LedgerProvider,
)
from models import (
    PAY_TYPE_ONE_OFF, PAY_TYPE_WEEKLY, ApplicantRecord, EmployerJob, JobSummary, WorkerJob,
)
from scanner import scan_all
from monitoring import get_logger

logger = get_logger("ledger.jobs")

WEI_PER_ETHER = Decimal(10) ** 18


def format_ether(wei) -> Decimal:
    """Convert an integer wei amount to ether."""
    return Decimal(int(wei)) / WEI_PER_ETHER


def pay_type_label(raw) -> str:
    return PAY_TYPE_WEEKLY if int(raw) == 0 else PAY_TYPE_ONE_OFF


def from_unix(seconds) -> datetime:
    return datetime.fromtimestamp(int(seconds), tz=timezone.utc)


# --- Job factory ---

async def fetch_all_job_addresses(job_factory: ContractBinding) -> list[str]:
    try:
        return list(await job_factory.call("getAllJobs"))
    except LedgerCallError as e:
        logger.error(f"Error fetching job addresses: {e}")
        return []


async def fetch_jobs_by_employer(job_factory: ContractBinding, employer: str) -> list[str]:
    """Job addresses created by `employer`, from the factory's JobCreated logs."""
    try:
        events = await job_factory.events("JobCreated", employer=employer)
    except LedgerCallError as e:
        logger.error(f"Error fetching jobs for employer {employer}: {e}")
        return []
    return [ev.args["jobAddress"] for ev in events if ev.args.get("jobAddress")]


# --- Secondary reads ---

async def read_tags(job: ContractBinding) -> list[str]:
    return [str(tag) for tag in await scan_all(lambda i: job.call("tags", i), label=f"tags of {job.address}")]


async def assigned_worker_count(job: ContractBinding) -> int:
    try:
        return len(await job.call("getAssignedWorkers"))
    except LedgerCallError as e:
        logger.warning(f"Error fetching assigned workers for {job.address}: {e}")
        return 0


async def read_average_rating(provider: LedgerProvider, job: ContractBinding, user: str) -> tuple[float, int]:
    """Average rating (two decimals of precision on chain) and rating count, or zeros."""
    try:
        reputation_address = await job.call("reputation")
        reputation = provider.contract(reputation_address, REPUTATION_SYSTEM)
        average, total = await reputation.call("getAverageRating", user)
    except LedgerCallError as e:
        logger.warning(f"Error fetching rating for {user}: {e}")
        return 0.0, 0
    return int(average) / 100, int(total)


# --- Projections ---

async def fetch_job_summary(provider: LedgerProvider, address: str, profiles) -> Optional[JobSummary]:
    """Listing record for one job, or None if the job was cancelled."""
    job = provider.contract(address, PROOF_OF_WORK_JOB)
    (
        employer, title, description, pay_type, weekly_pay, total_pay,
        duration_weeks, created_at, positions, cancelled,
    ) = await asyncio.gather(
        job.call("employer"),
        job.call("title"),
        job.call("description"),
        job.call("payType"),
        job.call("weeklyPay"),
        job.call("totalPay"),
        job.call("durationWeeks"),
        job.call("createdAt"),
        job.call("positions"),
        job.call("jobCancelled"),
    )

    if cancelled:
        logger.debug(f"Skipping cancelled job {address}")
        return None

    tags, filled, (rating, _), employer_name = await asyncio.gather(
        read_tags(job),
        assigned_worker_count(job),
        read_average_rating(provider, job, employer),
        profiles.display_name(employer),
    )

    return JobSummary(
        address=address,
        employer_address=employer,
        employer_display_name=employer_name,
        title=title,
        description=description,
        pay_type=pay_type_label(pay_type),
        weekly_pay=format_ether(weekly_pay),
        total_pay=format_ether(total_pay),
        duration_weeks=int(duration_weeks),
        created_at=from_unix(created_at),
        tags=tuple(tags),
        positions=int(positions),
        positions_filled=filled,
        employer_rating=rating,
    )


async def fetch_employer_job(provider: LedgerProvider, address: str) -> Optional[EmployerJob]:
    """Dashboard record for a job the current user created, or None if cancelled."""
    job = provider.contract(address, PROOF_OF_WORK_JOB)
    (
        title, description, duration_weeks, positions, pay_type,
        total_pay, created_at, applications, cancelled,
    ) = await asyncio.gather(
        job.call("title"),
        job.call("description"),
        job.call("durationWeeks"),
        job.call("positions"),
        job.call("payType"),
        job.call("totalPay"),
        job.call("createdAt"),
        job.call("getTotalApplications"),
        job.call("jobCancelled"),
    )
    if cancelled:
        return None

    return EmployerJob(
        address=address,
        title=title,
        description=description,
        duration_weeks=int(duration_weeks),
        positions=int(positions),
        pay_type=pay_type_label(pay_type),
        total_pay=format_ether(total_pay),
        posted_at=from_unix(created_at),
        application_count=int(applications),
    )


async def fetch_applicants(provider: LedgerProvider, address: str, profiles) -> list[ApplicantRecord]:
    """Every application to one job, with reputation and profile name."""
    job = provider.contract(address, PROOF_OF_WORK_JOB)
    title, applicant_addresses = await asyncio.gather(job.call("title"), job.call("getAllApplicants"))
    tags = tuple(await read_tags(job))

    async def build(applicant: str) -> ApplicantRecord:
        (_, application, applied_at, _is_active), is_worker = await asyncio.gather(
            job.call("getApplicant", applicant),
            job.call("isWorker", applicant),
        )
        (rating, _), name = await asyncio.gather(
            read_average_rating(provider, job, applicant),
            profiles.display_name(applicant),
        )
        return ApplicantRecord(
            id=f"{address}-{applicant}",
            address=applicant,
            job_address=address,
            job_title=title,
            display_name=name,
            application_text=application,
            applied_at=from_unix(applied_at),
            status="reviewed" if is_worker else "pending",
            rating=rating,
            tags=tags,
        )

    return list(await asyncio.gather(*(build(a) for a in applicant_addresses)))


async def fetch_worker_job(provider: LedgerProvider, address: str, worker: str, profiles) -> Optional[WorkerJob]:
    """Record for a job where `worker` is assigned, or None if they are not."""
    job = provider.contract(address, PROOF_OF_WORK_JOB)
    if not await job.call("isWorker", worker):
        return None

    (
        title, employer, pay_type, weekly_pay, total_pay, duration_weeks,
        created_at, last_payout_at, payouts_made, assigned, dispute_dao,
    ) = await asyncio.gather(
        job.call("title"),
        job.call("employer"),
        job.call("payType"),
        job.call("weeklyPay"),
        job.call("totalPay"),
        job.call("durationWeeks"),
        job.call("createdAt"),
        job.call("lastPayoutAt"),
        job.call("payoutsMade"),
        job.call("getAssignedWorkers"),
        job.call("disputeDAO"),
    )

    duration = int(duration_weeks)
    payouts = int(payouts_made)
    label = pay_type_label(pay_type)
    next_payout = None
    if label == PAY_TYPE_WEEKLY:
        next_payout = from_unix(last_payout_at) + timedelta(days=PAYOUT_INTERVAL_DAYS)

    return WorkerJob(
        address=address,
        title=title,
        employer_address=employer,
        employer_display_name=await profiles.display_name(employer),
        pay_type=label,
        weekly_pay=format_ether(weekly_pay),
        total_pay=format_ether(total_pay),
        duration_weeks=duration,
        start_date=from_unix(created_at),
        progress=round(payouts / duration * 100, 2) if duration else 0.0,
        next_payout_date=next_payout,
        payouts_made=payouts,
        positions_filled=len(assigned),
        dispute_dao_address=dispute_dao,
    )
