"""
scanner.py — Enumerates ledger collections that expose an indexed getter but no length.

Probes index 0, 1, 2, ... until the first failed call. The ledger signals
out-of-range as a call failure, so a revert ends the scan. A transient I/O
failure also ends it: the items read so far are returned and the stop is
logged as a possible truncation. There is no retry.
"""

from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from ledger.base import LedgerCallError, LedgerRevertError
from monitoring import get_logger

logger = get_logger("scanner")

T = TypeVar("T")

STOP_OUT_OF_RANGE = "out_of_range"
STOP_TRANSIENT = "transient"


@dataclass
class ScanResult(Generic[T]):
    items: list = field(default_factory=list)
    stop_reason: str = STOP_OUT_OF_RANGE
    error: Optional[Exception] = None

    @property
    def possibly_truncated(self) -> bool:
        return self.stop_reason == STOP_TRANSIENT


async def scan(reader: Callable[[int], Awaitable[T]], label: str = "collection") -> ScanResult:
    """Probe `reader` at increasing indices and report why the scan stopped."""
    items = []
    index = 0
    while True:
        try:
            item = await reader(index)
        except LedgerRevertError as e:
            return ScanResult(items=items, stop_reason=STOP_OUT_OF_RANGE, error=e)
        except LedgerCallError as e:
            logger.warning(
                f"Scan of {label} stopped at index {index} on a non-revert failure; "
                f"result may be truncated: {e}"
            )
            return ScanResult(items=items, stop_reason=STOP_TRANSIENT, error=e)
        items.append(item)
        index += 1


async def scan_all(reader: Callable[[int], Awaitable[T]], label: str = "collection") -> list:
    """Return every element of the collection, in index order."""
    result = await scan(reader, label)
    return result.items
