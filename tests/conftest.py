"""
Shared test fixtures for the Atlas Score test suite.
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

# Ensure the repository root is on the path so imports work without install
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Set env vars before any application imports
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("LOG_FILE", "")
os.environ.setdefault("MAX_CONCURRENT_EVALUATIONS", "2")

from atlas_score.schemas import DriverMetrics, ZoneAverages  # noqa: E402

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_metrics():
    """Factory for DriverMetrics. Defaults describe a strong, active driver."""

    def _make(**overrides) -> DriverMetrics:
        data = {
            "driver_id": "drv_001",
            "total_deliveries": 100,
            "completed_deliveries": 95,
            "average_rating": 4.8,
            "total_ratings": 30,
            "on_time_deliveries": 90,
            "accepted_orders": 80,
            "offered_orders": 100,
            "cancelled_orders": 5,
            "fraud_flags": 0,
            "last_active_at": NOW - timedelta(hours=2),
            "account_created_at": datetime(2025, 1, 15, tzinfo=timezone.utc),
        }
        data.update(overrides)
        return DriverMetrics(**data)

    return _make


@pytest.fixture
def strong_metrics(make_metrics):
    return make_metrics()


@pytest.fixture
def zone_averages():
    return ZoneAverages(
        zone_id="zone_casablanca_center",
        average_rating=4.8,
        average_completion_rate=95,
        average_on_time_rate=50,
        average_acceptance_rate=40,
        average_cancellation_rate=10,
        driver_count=240,
    )


@pytest.fixture
def mock_logger():
    """Injected logger double for asserting log calls."""
    return MagicMock()
