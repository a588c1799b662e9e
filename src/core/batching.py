"""
Batched execution of destructive upstream operations.

Items run concurrently inside a fixed-size batch and the runner pauses
between batches so a large delete does not trip upstream throttling. One
item failing never stops the others.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, TypeVar

from core.config import BATCH_DELAY_SECONDS, BATCH_SIZE, NOT_IN_SCOPE_PATTERNS
from core.errors import PartialBatchFailure, RateLimited, RemoteApiError
from models.entries import Progress

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ItemFailure(Generic[T]):
    item: T
    reason: str


@dataclass
class BatchResult(Generic[T]):
    """Partial-result record: every input item lands in exactly one list."""

    succeeded: list[T] = field(default_factory=list)
    failed: list[ItemFailure[T]] = field(default_factory=list)
    skipped: list[ItemFailure[T]] = field(default_factory=list)
    results: list[Any] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed) + len(self.skipped)

    def partial_failure(self) -> PartialBatchFailure | None:
        """Informational error value when any item failed; never raised here."""
        if not self.failed:
            return None
        return PartialBatchFailure(self)

    def summary(self) -> str:
        text = f"succeeded: {len(self.succeeded)}, failed: {len(self.failed)}"
        if self.skipped:
            text += f", skipped: {len(self.skipped)}"
        return text


def is_not_in_scope(exc: BaseException) -> bool:
    """Upstream says the object does not belong to the claimed workspace/project."""
    if not isinstance(exc, RemoteApiError):
        return False
    message = exc.remote_message.lower()
    return any(pattern in message for pattern in NOT_IN_SCOPE_PATTERNS)


def chunked(items: list[T], size: int) -> list[list[T]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


async def run_batched(
    items: list[T],
    op: Callable[[T], Awaitable[Any]],
    batch_size: int = BATCH_SIZE,
    delay_seconds: float = BATCH_DELAY_SECONDS,
    on_progress: Callable[[Progress], None] | None = None,
    is_skippable: Callable[[BaseException], bool] = is_not_in_scope,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Callable[[], float] = time.time,
) -> BatchResult[T]:
    """
    Run `op` over `items` in batches of `batch_size`.

    Each batch is joined settle-all (gather with return_exceptions), then the
    runner waits `delay_seconds` before starting the next one. Failures
    matching `is_skippable` are recorded as skipped rather than failed.
    Items refused with RateLimited are not failures: the runner sleeps until
    the window resets and runs them again.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    items = list(items)
    result: BatchResult[T] = BatchResult()
    batches = chunked(items, batch_size)
    completed = 0

    for batch_index, batch in enumerate(batches):
        if batch_index > 0 and delay_seconds > 0:
            await sleep(delay_seconds)

        last_error = None
        pending = batch
        while pending:
            outcomes = await asyncio.gather(*(op(item) for item in pending), return_exceptions=True)

            limited: list[T] = []
            reset_at = 0.0
            for item, outcome in zip(pending, outcomes):
                if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                    raise outcome
                if isinstance(outcome, RateLimited):
                    limited.append(item)
                    reset_at = max(reset_at, outcome.reset_at)
                elif isinstance(outcome, Exception):
                    reason = str(outcome)
                    if is_skippable(outcome):
                        result.skipped.append(ItemFailure(item, reason))
                        logger.info("Skipped %s: %s", item, reason)
                    else:
                        result.failed.append(ItemFailure(item, reason))
                        last_error = reason
                        logger.warning("Failed %s: %s", item, reason)
                else:
                    result.succeeded.append(item)
                    result.results.append(outcome)

            if limited:
                delay = max(0.0, reset_at - clock())
                logger.warning("Rate limited, pausing %.1fs before retrying %d items", delay, len(limited))
                await sleep(delay)
            pending = limited

        completed += len(batch)
        logger.debug("Batch %d/%d done (%d/%d items)", batch_index + 1, len(batches), completed, len(items))
        if on_progress:
            on_progress(Progress(completed=completed, total=len(items), last_error=last_error))

    return result
