"""
Chunked processing for rate-limited calls.

Firecrawl enforces a request budget, so detail pages are fetched a few at a
time: all items of a chunk run concurrently, the whole chunk settles, then
the runner sleeps before starting the next chunk.

Results are grouped chunk by chunk (chunk-major order), not re-sorted.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

from kosengrade.config import CHUNK_DELAY_MS, CHUNK_SIZE
from kosengrade.model import BatchFailure, BatchResult


logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

Worker = Callable[[T, int, int], Awaitable[R]]
ProgressCallback = Callable[[int, int, Any], None]
ErrorCallback = Callable[[BaseException, int, Any], None]
Sleep = Callable[[float], Awaitable[Any]]


def _notify(callback: Optional[Callable[..., None]], *args: Any) -> None:
    if callback is None:
        return
    try:
        callback(*args)
    except Exception:
        logger.exception("Batch callback %r raised", callback)


async def run_in_chunks(
    items: Sequence[T],
    worker: Worker,
    *,
    chunk_size: int = CHUNK_SIZE,
    delay_ms: float = CHUNK_DELAY_MS,
    on_progress: Optional[ProgressCallback] = None,
    on_error: Optional[ErrorCallback] = None,
    sleep: Sleep = asyncio.sleep,
) -> BatchResult:
    """
    Run `worker(item, index, total)` over items, `chunk_size` at a time.

    A failing item is recorded in `failed` and never stops its chunk-mates
    or later chunks.
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1 (got {chunk_size})")

    items = list(items)
    total = len(items)
    result: BatchResult = BatchResult(total=total)
    completed = 0

    logger.info("Starting chunked processing: %d items, chunk size %d", total, chunk_size)

    for start in range(0, total, chunk_size):
        chunk = items[start : start + chunk_size]
        logger.debug(
            "Processing chunk %d (items %d-%d of %d)",
            start // chunk_size + 1,
            start + 1,
            start + len(chunk),
            total,
        )

        outcomes = await asyncio.gather(
            *(worker(item, start + offset, total) for offset, item in enumerate(chunk)),
            return_exceptions=True,
        )

        for offset, (item, outcome) in enumerate(zip(chunk, outcomes)):
            index = start + offset
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    # CancelledError / KeyboardInterrupt are not item failures
                    raise outcome
                result.failed.append(BatchFailure(index=index, error=outcome, item=item))
                _notify(on_error, outcome, index, item)
            else:
                completed += 1
                result.successful.append(outcome)
                _notify(on_progress, completed, total, item)

        if start + chunk_size < total:
            logger.debug("Waiting %sms before next chunk", delay_ms)
            await sleep(delay_ms / 1000)

    logger.info(
        "Chunked processing complete: %d successful, %d failed",
        len(result.successful),
        len(result.failed),
    )
    return result


async def retry_with_backoff(
    fn: Callable[[], Awaitable[R]],
    *,
    max_retries: int = 3,
    initial_delay_ms: float = 1000,
    sleep: Sleep = asyncio.sleep,
) -> R:
    """
    Call `fn` up to `max_retries` times, waiting initial_delay_ms * 2**attempt
    between attempts. The last error is re-raised.
    """
    if max_retries < 1:
        raise ValueError(f"max_retries must be >= 1 (got {max_retries})")

    last_error: Optional[Exception] = None
    for attempt in range(max_retries):
        try:
            return await fn()
        except Exception as exc:
            last_error = exc
            if attempt < max_retries - 1:
                delay = initial_delay_ms * (2**attempt)
                logger.info("Retry %d/%d after %sms: %s", attempt + 1, max_retries, delay, exc)
                await sleep(delay / 1000)

    assert last_error is not None
    raise last_error
