"""
base.py — Ledger provider abstraction.

The sync layer never talks to a chain client directly. It asks a
LedgerProvider for contract bindings and reads through them, so tests can
swap in an in-memory ledger and the web3 binding stays in one place.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

JOB_FACTORY = "JobFactory"
DISPUTE_DAO = "DisputeDAO"
REPUTATION_SYSTEM = "ReputationSystem"
PROOF_OF_WORK_JOB = "ProofOfWorkJob"


class LedgerCallError(Exception):
    """A contract call failed: network error, bad output, or revert."""

    def __init__(self, message: str, function: str = "", address: str = ""):
        super().__init__(message)
        self.function = function
        self.address = address


class LedgerRevertError(LedgerCallError):
    """The contract itself rejected the call (including out-of-range reads)."""


@dataclass(frozen=True)
class LogEvent:
    name: str
    args: dict = field(default_factory=dict)
    block_number: int = 0


class ContractBinding(ABC):
    """A live binding to one deployed contract."""

    def __init__(self, address: str, abi_name: str):
        self.address = address
        self.abi_name = abi_name

    @abstractmethod
    async def call(self, function: str, *args: Any) -> Any:
        """Run a read-only call. Raises LedgerCallError on failure."""

    @abstractmethod
    async def events(self, event: str, **filters: Any) -> list[LogEvent]:
        """Query historical logs of `event`, filtered by argument values."""

    @abstractmethod
    async def transact(self, function: str, *args: Any) -> str:
        """Send a state-changing transaction, wait for it to be mined, return its hash."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.abi_name}@{self.address})"


class LedgerProvider(ABC):
    """Hands out contract bindings and block data for one chain connection."""

    read_only: bool = True

    @abstractmethod
    def contract(self, address: str, abi_name: str) -> ContractBinding:
        pass

    @abstractmethod
    async def block_timestamp(self, block_number: int) -> Optional[int]:
        """Unix timestamp of a block, or None if the block is unknown."""

    async def close(self):
        pass
