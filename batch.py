"""
batch.py — Best-effort fan-out: one result per item, failures kept for diagnostics.

A fetch that returns None means "deliberately excluded" (e.g. a cancelled
job) and is neither a value nor a failure.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Optional

from monitoring import get_logger, log_batch_failures

logger = get_logger("batch")


@dataclass(frozen=True)
class ItemFailure:
    key: Any
    error: Exception


@dataclass(frozen=True)
class ItemResult:
    key: Any
    value: Any = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchResult:
    results: list = field(default_factory=list)

    @property
    def values(self) -> list:
        return [r.value for r in self.results if r.ok and r.value is not None]

    @property
    def failures(self) -> list[ItemFailure]:
        return [ItemFailure(r.key, r.error) for r in self.results if not r.ok]


async def gather_items(keys: Iterable, fetch: Callable[[Any], Awaitable[Any]], label: str) -> BatchResult:
    """Run `fetch` for every key concurrently and wait for all of them."""
    keys = list(keys)
    outcomes = await asyncio.gather(*(fetch(key) for key in keys), return_exceptions=True)

    results = []
    for key, outcome in zip(keys, outcomes):
        if isinstance(outcome, Exception):
            results.append(ItemResult(key=key, error=outcome))
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            results.append(ItemResult(key=key, value=outcome))

    batch = BatchResult(results=results)
    failures = batch.failures
    if failures:
        log_batch_failures(logger, label, failures)
    return batch
