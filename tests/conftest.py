"""
Shared pytest fixtures for the partition migrator tests.

This module provides:
- Migration settings with small pages (migration_settings)
- A failure log rooted in a temporary directory (failure_log)
- Metrics collector and recording sleep fixtures
"""

import pytest

from partition_migrator.config.manager import MigrationSettings
from partition_migrator.migrations.failure_log import FailureLog
from partition_migrator.monitoring.metrics import MetricsCollector
from tests.fakes import RecordingSleep


@pytest.fixture
def migration_settings() -> MigrationSettings:
    """Two records per page, two partitions at a time."""
    return MigrationSettings(
        max_item_count=2,
        max_buffered_item_count=2,
        degree_of_parallelism=2,
        partition_list_page_size=2,
    )


@pytest.fixture
def failure_log(tmp_path) -> FailureLog:
    return FailureLog(tmp_path / "failures", prefix="Partition")


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
