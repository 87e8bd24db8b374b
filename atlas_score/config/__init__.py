"""
Configuration module.
"""

from .settings import (
    ServiceConfig,
    LoggingConfig,
    ConcurrencyConfig,
)

__all__ = [
    "ServiceConfig",
    "LoggingConfig",
    "ConcurrencyConfig",
]
