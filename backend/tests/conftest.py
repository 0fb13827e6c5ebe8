"""
Pytest configuration and shared fixtures.
"""

import pytest

# Import fixtures
from tests.fixtures.container_fixtures import (
    catalog,
    default_runtime_config,
    status_registry,
    gateway,
    service_registry,
    orchestrator,
    reconciler,
    ready_record,
    failed_record,
)

__all__ = [
    "catalog",
    "default_runtime_config",
    "status_registry",
    "gateway",
    "service_registry",
    "orchestrator",
    "reconciler",
    "ready_record",
    "failed_record",
]


def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
