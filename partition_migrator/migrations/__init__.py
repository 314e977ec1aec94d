"""
Partition migration: enumeration, progress, pumps and orchestration
"""
from .engine import (
    MigrationEngine,
    MigrationReport,
    ManagedMigration,
    create_migration_engine
)
from .enumerator import discover_partitions, select_partitions
from .failure_log import FailureLog, FailureLogEntry, FailureLogSink, failure_log_filename
from .progress import ProgressEntry, ProgressTracker
from .pump import PageEvent, PartitionPump, PartitionResult, PumpState
