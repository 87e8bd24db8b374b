"""
Core module: structured logging and concurrency control.
"""

from .structured_logging import (
    ContextLogger,
    JsonFormatter,
    ScoringLogger,
    get_logger,
    request_context,
    set_request_context,
    setup_logging,
)
from .concurrency import (
    ConcurrencyLimitExceeded,
    acquire_slot,
    get_concurrency_stats,
    parallel_map,
)

__all__ = [
    "ContextLogger",
    "JsonFormatter",
    "ScoringLogger",
    "get_logger",
    "request_context",
    "set_request_context",
    "setup_logging",
    "ConcurrencyLimitExceeded",
    "acquire_slot",
    "get_concurrency_stats",
    "parallel_map",
]
