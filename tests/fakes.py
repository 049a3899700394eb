"""
In-memory ledger and REST fakes shared by the test modules.
"""

import inspect
from datetime import datetime, timezone

import httpx

from ledger.base import (
    DISPUTE_DAO, JOB_FACTORY, PROOF_OF_WORK_JOB, REPUTATION_SYSTEM,
    ContractBinding, LedgerProvider, LedgerRevertError, LogEvent,
)
from models import DisputePost, ProfileInfo

FACTORY = "0x" + "f" * 40
DAO = "0x" + "d" * 40
REPUTATION = "0x" + "9" * 40

ME = "0xAaAaAaAaAaAaAaAaAaAaAaAaAaAaAaAaAaAaAaAa"
EMPLOYER = "0xE0000000000000000000000000000000000000E1"
WORKER = "0xB0000000000000000000000000000000000000B1"
JUROR = "0xC0000000000000000000000000000000000000C1"


def job_address(n: int) -> str:
    return "0x" + f"{n:040x}"


def indexed(items):
    """A getter over `items` that reverts past the end, like a public array accessor."""
    items = list(items)

    def getter(index):
        if index >= len(items):
            raise LedgerRevertError("index out of bounds", "tags")
        return items[index]

    return getter


class FakeContract(ContractBinding):
    def __init__(self, address, abi_name="", functions=None, events=None):
        super().__init__(address, abi_name)
        self.functions = dict(functions or {})
        self.event_log = list(events or [])
        self.calls = []
        self.transactions = []

    async def call(self, function, *args):
        self.calls.append((function, args))
        if function not in self.functions:
            raise LedgerRevertError(f"no function {function}", function, self.address)
        value = self.functions[function]
        if callable(value):
            value = value(*args)
        if inspect.isawaitable(value):
            value = await value
        if isinstance(value, Exception):
            raise value
        return list(value) if isinstance(value, list) else value

    async def events(self, event, **filters):
        return [
            e for e in self.event_log
            if e.name == event and all(str(e.args.get(k)).lower() == str(v).lower() for k, v in filters.items())
        ]

    async def transact(self, function, *args):
        self.transactions.append((function, args))
        handler = self.functions.get(function)
        if callable(handler):
            result = handler(*args)
            if inspect.isawaitable(result):
                await result
        return "0x" + f"{len(self.transactions):064x}"


class FakeLedger(LedgerProvider):
    def __init__(self, read_only=True):
        self.read_only = read_only
        self.contracts = {}
        self.blocks = {}

    def add(self, contract: FakeContract) -> FakeContract:
        self.contracts[contract.address.lower()] = contract
        return contract

    def contract(self, address, abi_name):
        found = self.contracts.get(address.lower())
        if found is None:
            found = self.add(FakeContract(address, abi_name))
        return found

    async def block_timestamp(self, block_number):
        return self.blocks.get(block_number)


def job_contract(address, employer, title, cancelled=False, tags=(), workers=(), applicants=None,
                 pay_type=0, duration=4, payouts=1, created_at=1_700_000_000, last_payout=1_700_600_000):
    applicants = applicants or {}
    worker_set = {w.lower() for w in workers}
    return FakeContract(address, PROOF_OF_WORK_JOB, {
        "employer": employer,
        "title": title,
        "description": f"{title} description",
        "payType": pay_type,
        "weeklyPay": 10 ** 18,
        "totalPay": 4 * 10 ** 18,
        "durationWeeks": duration,
        "positions": 2,
        "createdAt": created_at,
        "jobCancelled": cancelled,
        "lastPayoutAt": last_payout,
        "payoutsMade": payouts,
        "getAssignedWorkers": list(workers),
        "getAllApplicants": list(applicants),
        "getApplicant": lambda a: (a, applicants[a][0], applicants[a][1], True),
        "isWorker": lambda a: a.lower() in worker_set,
        "getTotalApplications": len(applicants),
        "tags": indexed(tags),
        "reputation": REPUTATION,
        "disputeDAO": DAO,
    })


def reputation_contract(ratings=None):
    ratings = {k.lower(): v for k, v in (ratings or {}).items()}
    return FakeContract(REPUTATION, REPUTATION_SYSTEM, {
        "getAverageRating": lambda user: ratings.get(user.lower(), (0, 0)),
    })


def factory_contract(jobs, employer_jobs=None):
    events = [
        LogEvent("JobCreated", {"jobId": i, "employer": employer, "jobAddress": addr}, block_number=i + 1)
        for i, (employer, addr) in enumerate(employer_jobs or [])
    ]
    return FakeContract(FACTORY, JOB_FACTORY, {
        "getAllJobs": list(jobs),
        "disputeDAOAddress": DAO,
    }, events)


def dao_contract(summaries, created_blocks=None):
    """`summaries` is a list of getDisputeSummary tuples; `created_blocks` maps id -> block."""
    created_blocks = created_blocks or {}
    events = [LogEvent("DisputeCreated", {"disputeId": i}, block_number=b) for i, b in created_blocks.items()]

    def summary(dispute_id):
        value = summaries[dispute_id]
        if isinstance(value, Exception):
            raise value
        return value

    return FakeContract(DAO, DISPUTE_DAO, {
        "getDisputeCount": len(summaries),
        "getDisputeSummary": summary,
        "createDispute": None,
        "vote": None,
    }, events)


def ts(hour: int, minute: int = 0) -> datetime:
    return datetime(2025, 3, 1, hour, minute, tzinfo=timezone.utc)


class FakeApi:
    """Stands in for MarketApi: user directory, dispute threads and chat feed."""

    def __init__(self, names=None, dispute_messages=None, feed=None, me=ME):
        self.names = {k.lower(): v for k, v in (names or {}).items()}
        self.dispute_messages = dispute_messages or {}
        self.feed = list(feed or [])
        self.me = me
        self.failing = set()
        self.gate = None
        self.exists_calls = 0
        self.get_calls = 0
        self.posted = []

    async def user_exists(self, address):
        self.exists_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if address.lower() in self.failing:
            raise httpx.ConnectError("directory unreachable")
        return address.lower() in self.names

    async def get_user(self, address):
        self.get_calls += 1
        return ProfileInfo(address=address.lower(), display_name=self.names[address.lower()])

    async def get_dispute_messages(self, dispute_id):
        return list(self.dispute_messages.get(dispute_id, []))

    async def post_dispute_message(self, dispute_id, content):
        self.posted.append((dispute_id, content))
        return DisputePost(sender=self.me.lower(), content=content, created_at=ts(12))

    async def post_peer_message(self, to, content):
        self.posted.append((to, content))
        return True

    async def get_peer_messages(self, peer, page=1, limit=50):
        return [m for m in self.feed if peer.lower() in (m.sender, m.receiver)]

    async def get_conversation_feed(self):
        return list(self.feed)
