"""
Concurrency control for the batch entry points.

Scoring functions are pure and synchronous, so a batch is a parallel map: each
item runs in a worker thread while holding a slot of an asyncio semaphore that
caps how many evaluations are in flight at once.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Callable, Iterable, List, Optional, TypeVar

from atlas_score.config import ConcurrencyConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


# ============================================================================
# GLOBAL SEMAPHORE
# ============================================================================
_semaphore: Optional[asyncio.Semaphore] = None
_semaphore_loop: Optional[asyncio.AbstractEventLoop] = None
_pending_requests: int = 0
_active_requests: int = 0


def get_semaphore() -> asyncio.Semaphore:
    """Get or create the concurrency semaphore for the running event loop."""
    global _semaphore, _semaphore_loop
    loop = asyncio.get_running_loop()
    if _semaphore is None or _semaphore_loop is not loop:
        _semaphore = asyncio.Semaphore(ConcurrencyConfig.MAX_CONCURRENT_EVALUATIONS)
        _semaphore_loop = loop
        logger.info(
            f"Concurrency semaphore initialized with limit: "
            f"{ConcurrencyConfig.MAX_CONCURRENT_EVALUATIONS}"
        )
    return _semaphore


# ============================================================================
# SLOT CONTEXT MANAGER
# ============================================================================
@asynccontextmanager
async def acquire_slot(timeout: Optional[float] = None):
    """
    Context manager that holds one semaphore slot.

    Args:
        timeout: Maximum wait in seconds. Defaults to
                 ConcurrencyConfig.SEMAPHORE_TIMEOUT. 0 does not wait.

    Raises:
        ConcurrencyLimitExceeded: If no slot frees up within the timeout.

    Usage:
        async with acquire_slot():
            result = await asyncio.to_thread(calculate_driver_score, metrics)
    """
    global _pending_requests, _active_requests

    if not ConcurrencyConfig.RATE_LIMITING_ENABLED:
        yield
        return

    if timeout is None:
        timeout = ConcurrencyConfig.SEMAPHORE_TIMEOUT
    semaphore = get_semaphore()

    _pending_requests += 1

    try:
        await asyncio.wait_for(semaphore.acquire(), timeout=timeout)
    except asyncio.TimeoutError:
        _pending_requests -= 1
        raise ConcurrencyLimitExceeded(
            f"Timeout waiting for slot after {timeout}s. "
            f"Engine is at capacity. Active: {_active_requests}, Pending: {_pending_requests}"
        )

    _pending_requests -= 1
    _active_requests += 1

    logger.debug(
        f"Slot acquired. Active: {_active_requests}/{ConcurrencyConfig.MAX_CONCURRENT_EVALUATIONS}, "
        f"Pending: {_pending_requests}"
    )

    try:
        yield
    finally:
        _active_requests -= 1
        semaphore.release()
        logger.debug(
            f"Slot released. Active: {_active_requests}/{ConcurrencyConfig.MAX_CONCURRENT_EVALUATIONS}"
        )


# ============================================================================
# PARALLEL MAP
# ============================================================================
async def run_in_slot(func: Callable[..., R], *args: Any) -> R:
    """Run a synchronous function in a worker thread while holding a slot."""
    async with acquire_slot():
        return await asyncio.to_thread(func, *args)


async def parallel_map(func: Callable[[T], R], items: Iterable[T]) -> List[R]:
    """Apply func to every item concurrently. Results keep the input order."""
    return list(await asyncio.gather(*(run_in_slot(func, item) for item in items)))


# ============================================================================
# STATS
# ============================================================================
def get_concurrency_stats() -> dict:
    """
    Current concurrency statistics.

    Returns:
        dict with:
        - max_concurrent: configured limit
        - active_requests: evaluations running now
        - pending_requests: evaluations waiting for a slot
        - available_slots: free slots
        - rate_limiting_enabled: whether slots are enforced
    """
    max_concurrent = ConcurrencyConfig.MAX_CONCURRENT_EVALUATIONS
    return {
        "max_concurrent": max_concurrent,
        "active_requests": _active_requests,
        "pending_requests": _pending_requests,
        "available_slots": max(0, max_concurrent - _active_requests),
        "rate_limiting_enabled": ConcurrencyConfig.RATE_LIMITING_ENABLED,
    }


# ============================================================================
# EXCEPTIONS
# ============================================================================
class ConcurrencyLimitExceeded(Exception):
    """
    Raised when the engine is at capacity and a batch item could not
    obtain a slot in time.
    """
    pass
