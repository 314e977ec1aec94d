"""
Partition Migrator
Partition-parallel document migration between MongoDB-compatible stores
"""

__version__ = "1.0.0"

# Errors
from .exceptions import (
    MigratorError,
    ConfigurationError,
    EnumerationError,
    FetchError,
    WriteError,
    WriteConflictError,
    WriteThrottledError,
    WriteFailedError,
    MigrationFailedError,
    describe_error
)

# Store contracts and MongoDB backends
from .core.stores import (
    DestinationStore,
    Page,
    PartitionListing,
    PartitionRange,
    Record,
    SourceStore
)
from .core.database import (
    DatabaseType,
    MongoSourceStore,
    MongoDestinationStore,
    create_source_store,
    create_destination_store
)

# Configuration management
from .config.manager import (
    ConfigManager,
    MigratorConfig,
    DatabaseSettings,
    MigrationSettings,
    Environment
)

# Migration
from .migrations.engine import (
    MigrationEngine,
    MigrationReport,
    create_migration_engine
)
from .migrations.pump import PartitionPump, PartitionResult, PumpState
from .migrations.progress import ProgressTracker
from .migrations.failure_log import FailureLog

# Monitoring
from .monitoring.metrics import MetricsCollector, Counter

__all__ = [
    "MigratorError",
    "ConfigurationError",
    "EnumerationError",
    "FetchError",
    "WriteError",
    "WriteConflictError",
    "WriteThrottledError",
    "WriteFailedError",
    "MigrationFailedError",
    "describe_error",
    "DestinationStore",
    "Page",
    "PartitionListing",
    "PartitionRange",
    "Record",
    "SourceStore",
    "DatabaseType",
    "MongoSourceStore",
    "MongoDestinationStore",
    "create_source_store",
    "create_destination_store",
    "ConfigManager",
    "MigratorConfig",
    "DatabaseSettings",
    "MigrationSettings",
    "Environment",
    "MigrationEngine",
    "MigrationReport",
    "create_migration_engine",
    "PartitionPump",
    "PartitionResult",
    "PumpState",
    "ProgressTracker",
    "FailureLog",
    "MetricsCollector",
    "Counter",
]
