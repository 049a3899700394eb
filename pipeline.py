"""
pipeline.py — Dependent fetch pipeline.

Stages are recomputed in dependency order whenever the identity (address,
wallet provider) changes. Every identity change bumps a generation counter;
a stage run publishes only if its generation is still current, so a slow run
for a previous wallet can never overwrite fresher state.

Published state is an immutable PipelineState snapshot. Consumers read it
through `state` or receive it via `subscribe`; changes (sending a message,
voting, ...) go through the mutator methods, which publish a new snapshot.
"""

import asyncio
from dataclasses import replace
from typing import Callable, Optional

from config import CHAT_PAGE_LIMIT, DISPUTE_DAO_ADDRESS, JOB_FACTORY_ADDRESS
from batch import gather_items
from conversations import build_conversations
from disputes import DisputeAggregator, append_message, disputes_for_user
from ledger.base import DISPUTE_DAO, JOB_FACTORY, LedgerCallError, LedgerProvider
from ledger.jobs import (
    fetch_all_job_addresses, fetch_applicants, fetch_employer_job, fetch_job_summary,
    fetch_jobs_by_employer, fetch_worker_job,
)
from models import ChatMessage, ContractHandles, Conversation, Identity, PeerMessage, PipelineState
from monitoring import get_logger, log_stage_failure, log_stage_success

logger = get_logger("pipeline")

STAGE_CONTRACTS = "contracts"
STAGE_JOB_UNIVERSE = "job_universe"
STAGE_EMPLOYER_JOBS = "employer_jobs"
STAGE_EMPLOYER_DETAILS = "employer_details"
STAGE_WORKER_JOBS = "worker_jobs"
STAGE_DISPUTES = "disputes"

# stage -> stages whose output it reads
STAGE_DEPENDENCIES = {
    STAGE_CONTRACTS: (),
    STAGE_JOB_UNIVERSE: (STAGE_CONTRACTS,),
    STAGE_EMPLOYER_JOBS: (STAGE_CONTRACTS,),
    STAGE_EMPLOYER_DETAILS: (STAGE_EMPLOYER_JOBS,),
    STAGE_WORKER_JOBS: (STAGE_JOB_UNIVERSE, STAGE_CONTRACTS),
    STAGE_DISPUTES: (STAGE_CONTRACTS,),
}


def stage_levels() -> list[list[str]]:
    """Group stages into waves: every stage runs after all of its dependencies' waves."""
    depth: dict[str, int] = {}

    def visit(stage: str) -> int:
        if stage not in depth:
            deps = STAGE_DEPENDENCIES[stage]
            depth[stage] = 1 + max((visit(d) for d in deps), default=-1)
        return depth[stage]

    for stage in STAGE_DEPENDENCIES:
        visit(stage)
    levels: list[list[str]] = [[] for _ in range(max(depth.values()) + 1)]
    for stage in STAGE_DEPENDENCIES:
        levels[depth[stage]].append(stage)
    return levels


def downstream_of(stage: str) -> set[str]:
    """`stage` plus every stage that depends on it, directly or not."""
    result = {stage}
    changed = True
    while changed:
        changed = False
        for name, deps in STAGE_DEPENDENCIES.items():
            if name not in result and result.intersection(deps):
                result.add(name)
                changed = True
    return result


class FetchPipeline:
    def __init__(
        self,
        api,
        profiles,
        public_provider: Optional[LedgerProvider] = None,
        job_factory_address: str = JOB_FACTORY_ADDRESS,
        dispute_dao_address: str = DISPUTE_DAO_ADDRESS,
        aggregator: Optional[DisputeAggregator] = None,
    ):
        self.api = api
        self.profiles = profiles
        self.public_provider = public_provider
        self.job_factory_address = job_factory_address
        self.dispute_dao_address = dispute_dao_address
        self.aggregator = aggregator or DisputeAggregator(api, profiles)

        self._provider: Optional[LedgerProvider] = None
        self._generation = 0
        self._state = PipelineState()
        self._subscribers: list[Callable[[PipelineState], None]] = []
        self._stages = {
            STAGE_CONTRACTS: self._stage_contracts,
            STAGE_JOB_UNIVERSE: self._stage_job_universe,
            STAGE_EMPLOYER_JOBS: self._stage_employer_jobs,
            STAGE_EMPLOYER_DETAILS: self._stage_employer_details,
            STAGE_WORKER_JOBS: self._stage_worker_jobs,
            STAGE_DISPUTES: self._stage_disputes,
        }

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def active_provider(self) -> Optional[LedgerProvider]:
        """The wallet provider when connected, otherwise the read-only one."""
        return self._provider or self.public_provider

    def subscribe(self, callback: Callable[[PipelineState], None]) -> Callable[[], None]:
        self._subscribers.append(callback)
        return lambda: self._subscribers.remove(callback)

    # --- Identity ---

    async def set_identity(self, address: Optional[str], provider: Optional[LedgerProvider]):
        """Switch wallet and re-stage everything from scratch."""
        connected = bool(address and provider)
        self._generation += 1
        generation = self._generation
        self._provider = provider if connected else None
        identity = Identity(address=address if connected else None, is_connected=connected)

        logger.info(f"Identity changed to {identity.address or '(read-only)'} (generation {generation})")
        self._state = PipelineState(identity=identity, generation=generation)
        self._notify()
        await self._run_stages(set(STAGE_DEPENDENCIES), generation)

    async def disconnect(self):
        await self.set_identity(None, None)

    def reset(self):
        """
        Forced logout: drop identity and every derived record. Used as the
        transport's session-expired callback; in-flight stage runs are
        discarded by the generation bump.
        """
        self._generation += 1
        self._provider = None
        self._state = PipelineState(generation=self._generation)
        logger.warning(f"Session expired — state cleared (generation {self._generation})")
        self._notify()

    async def refresh(self, stage: Optional[str] = None):
        """Re-run `stage` and everything downstream of it (all stages if None)."""
        if stage is not None and stage not in STAGE_DEPENDENCIES:
            raise ValueError(f"Unknown stage: {stage}")
        stages = downstream_of(stage) if stage else set(STAGE_DEPENDENCIES)
        await self._run_stages(stages, self._generation)

    # --- Stage runner ---

    async def _run_stages(self, stages: set[str], generation: int):
        for level in stage_levels():
            wave = [s for s in level if s in stages]
            if not wave:
                continue
            await asyncio.gather(*(self._run_stage(s, generation) for s in wave))
            if generation != self._generation:
                logger.debug(f"Generation {generation} superseded; stopping re-stage")
                return

    async def _run_stage(self, stage: str, generation: int):
        try:
            changes, failures = await self._stages[stage](generation)
        except Exception as e:
            log_stage_failure(logger, stage, e)
            return
        if self._publish(generation, stage, changes, failures):
            count = max((len(v) for v in changes.values() if isinstance(v, tuple)), default=0)
            log_stage_success(logger, stage, count, generation)

    def _publish(self, generation: int, stage: str, changes: dict, failures=()) -> bool:
        if generation != self._generation:
            logger.debug(f"[{stage}] Discarding output of stale generation {generation}")
            return False
        all_failures = dict(self._state.failures)
        if stage in STAGE_DEPENDENCIES:
            all_failures[stage] = tuple(failures)
        self._state = replace(self._state, failures=all_failures, **changes)
        self._notify()
        return True

    def _notify(self):
        for callback in list(self._subscribers):
            try:
                callback(self._state)
            except Exception as e:
                logger.error(f"Subscriber {callback!r} failed: {type(e).__name__}: {e}")

    # --- Stages ---

    async def _stage_contracts(self, generation: int):
        provider = self._provider
        if provider is None or not self._state.identity.address:
            return {"contracts": None}, ()

        job_factory = provider.contract(self.job_factory_address, JOB_FACTORY)
        try:
            dao_address = await job_factory.call("disputeDAOAddress")
        except LedgerCallError as e:
            logger.warning(f"Error fetching DisputeDAO address, using configured one: {e}")
            dao_address = None
        dao_address = dao_address or self.dispute_dao_address

        dispute_dao = provider.contract(dao_address, DISPUTE_DAO) if dao_address else None
        return {"contracts": ContractHandles(job_factory=job_factory, dispute_dao=dispute_dao)}, ()

    async def _stage_job_universe(self, generation: int):
        provider = self.active_provider
        contracts = self._state.contracts
        if contracts is not None:
            job_factory = contracts.job_factory
        elif provider is not None and self.job_factory_address:
            job_factory = provider.contract(self.job_factory_address, JOB_FACTORY)
        else:
            return {"job_addresses": (), "all_jobs": ()}, ()

        addresses = await fetch_all_job_addresses(job_factory)
        batch = await gather_items(
            addresses, lambda addr: fetch_job_summary(provider, addr, self.profiles), STAGE_JOB_UNIVERSE
        )
        return {"job_addresses": tuple(addresses), "all_jobs": tuple(batch.values)}, batch.failures

    async def _stage_employer_jobs(self, generation: int):
        contracts = self._state.contracts
        address = self._state.identity.address
        if contracts is None or not address:
            return {"employer_job_addresses": ()}, ()
        addresses = await fetch_jobs_by_employer(contracts.job_factory, address)
        return {"employer_job_addresses": tuple(addresses)}, ()

    async def _stage_employer_details(self, generation: int):
        provider = self._provider
        addresses = self._state.employer_job_addresses
        if provider is None or not addresses:
            return {"employer_job_details": (), "applicants": ()}, ()

        details, applicants = await asyncio.gather(
            gather_items(addresses, lambda addr: fetch_employer_job(provider, addr), "employer_details"),
            gather_items(addresses, lambda addr: fetch_applicants(provider, addr, self.profiles), "applicants"),
        )
        flat_applicants = tuple(a for group in applicants.values for a in group)
        return (
            {"employer_job_details": tuple(details.values), "applicants": flat_applicants},
            details.failures + applicants.failures,
        )

    async def _stage_worker_jobs(self, generation: int):
        provider = self._provider
        address = self._state.identity.address
        if provider is None or self._state.contracts is None or not address:
            return {"worker_jobs": ()}, ()

        batch = await gather_items(
            self._state.job_addresses,
            lambda addr: fetch_worker_job(provider, addr, address, self.profiles),
            STAGE_WORKER_JOBS,
        )
        return {"worker_jobs": tuple(batch.values)}, batch.failures

    async def _stage_disputes(self, generation: int):
        provider = self._provider
        contracts = self._state.contracts
        if provider is None or contracts is None or contracts.dispute_dao is None:
            return {"disputes": (), "my_disputes": ()}, ()

        batch = await self.aggregator.fetch_all(provider, contracts.dispute_dao)
        disputes = tuple(batch.values)
        return {
            "disputes": disputes,
            "my_disputes": disputes_for_user(disputes, self._state.identity.address),
        }, batch.failures

    # --- Mutators ---

    async def send_dispute_message(self, dispute_id: int, content: str) -> Optional[ChatMessage]:
        """Post to a dispute thread and append the enriched message to the snapshot."""
        generation = self._generation
        post = await self.api.post_dispute_message(dispute_id, content)
        if post is None:
            return None

        dispute = next((d for d in self._state.disputes if d.id == dispute_id), None)
        if dispute is None:
            dispute = next((d for d in self._state.my_disputes if d.id == dispute_id), None)
        employer = dispute.employer.address if dispute else None
        workers = dispute.assigned_workers if dispute else ()

        message = await self.aggregator.enrich_message(post, employer, workers)
        self._publish(generation, "send_dispute_message", {
            "disputes": append_message(self._state.disputes, dispute_id, message),
            "my_disputes": append_message(self._state.my_disputes, dispute_id, message),
        })
        return message

    async def send_peer_message(self, to: str, content: str) -> bool:
        return await self.api.post_peer_message(to, content)

    async def fetch_peer_messages(self, peer: str, page: int = 1, limit: int = CHAT_PAGE_LIMIT) -> list[PeerMessage]:
        return await self.api.get_peer_messages(peer, page=page, limit=limit)

    async def fetch_conversations(self) -> list[Conversation]:
        address = self._state.identity.address
        if not address:
            logger.warning("Cannot fetch conversations without a connected wallet")
            return []
        feed = await self.api.get_conversation_feed()
        return await build_conversations(feed, address, self.profiles)

    async def create_dispute(self, job_address: str, reason: str) -> bool:
        contracts = self._state.contracts
        if contracts is None or contracts.dispute_dao is None:
            logger.error("DisputeDAO contract or provider is not available.")
            return False
        if not reason.strip():
            logger.error("Reason cannot be empty.")
            return False

        try:
            await contracts.dispute_dao.transact("createDispute", job_address, reason)
        except LedgerCallError as e:
            logger.error(f"Error creating dispute: {e}")
            return False

        logger.info(f"Dispute created for job {job_address}")
        await self.refresh(STAGE_DISPUTES)
        return True

    async def vote(self, dispute_id: int, side: str) -> bool:
        """Cast a vote for the "worker" or the "employer" side of a dispute."""
        if side not in ("worker", "employer"):
            raise ValueError("Invalid vote. Must be 'worker' or 'employer'.")
        contracts = self._state.contracts
        if contracts is None or contracts.dispute_dao is None:
            logger.error("DisputeDAO contract or provider is not available.")
            return False

        try:
            await contracts.dispute_dao.transact("vote", dispute_id, side == "worker")
        except LedgerCallError as e:
            logger.error(f"Error voting on dispute {dispute_id}: {e}")
            return False

        logger.info(f"Voted for {side} on dispute {dispute_id}")
        await self.refresh(STAGE_DISPUTES)
        return True
