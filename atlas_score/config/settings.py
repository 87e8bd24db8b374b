"""
Centralized configuration for the scoring engine.
All environment variables are read here.
"""

import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# ============================================================================
# SERVICE
# ============================================================================
class ServiceConfig:
    """General service identity."""

    SERVICE_NAME = os.getenv("SERVICE_NAME", "atlas-score")

    APP_VERSION = "0.1.0"


# ============================================================================
# LOGGING
# ============================================================================
class LoggingConfig:
    """Structured logging settings."""

    ENVIRONMENT = os.getenv("ENVIRONMENT", "production")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Empty means stdout only
    LOG_FILE = os.getenv("LOG_FILE", "")

    LOG_MAX_BYTES = int(os.getenv("LOG_MAX_BYTES", str(10 * 1024 * 1024)))
    LOG_BACKUP_COUNT = int(os.getenv("LOG_BACKUP_COUNT", "5"))


# ============================================================================
# CONCURRENCY
# ============================================================================
class ConcurrencyConfig:
    """Limits for the parallel batch entry points."""

    MAX_CONCURRENT_EVALUATIONS = int(os.getenv("MAX_CONCURRENT_EVALUATIONS", "8"))
    SEMAPHORE_TIMEOUT = float(os.getenv("SEMAPHORE_TIMEOUT", "30.0"))  # seconds
    RATE_LIMITING_ENABLED = _env_bool("RATE_LIMITING_ENABLED", "true")
