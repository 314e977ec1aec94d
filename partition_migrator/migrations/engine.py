"""
Migration Orchestrator
Discovers partitions and runs one pump per partition with bounded concurrency
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..config.manager import MigrationSettings, MigratorConfig
from ..core.database import (
    BaseDatabaseClient,
    check_connections,
    create_destination_store,
    create_source_store,
)
from ..core.stores import DestinationStore, PartitionRange, SourceStore
from ..exceptions import MigrationFailedError, describe_error
from ..monitoring.metrics import MetricsCollector, OperationType
from .enumerator import discover_partitions, select_partitions
from .failure_log import FailureLog
from .progress import ProgressEntry, ProgressTracker
from .pump import PageCallback, PartitionPump, PartitionResult, SleepFunc

logger = logging.getLogger(__name__)


@dataclass
class MigrationReport:
    """Final state of a migration run"""
    partitions: Dict[str, PartitionResult] = field(default_factory=dict)
    progress: Mapping[str, ProgressEntry] = field(default_factory=dict)
    concurrency_limit: int = 0
    peak_concurrency: int = 0
    elapsed_seconds: float = 0.0
    metrics: Dict[str, Any] = field(default_factory=dict)

    @property
    def total_documents(self) -> int:
        return sum(entry.documents_transferred for entry in self.progress.values())

    @property
    def failed_partitions(self) -> List[str]:
        return [pid for pid, result in self.partitions.items() if not result.succeeded]

    @property
    def failure_log_entries(self) -> int:
        return sum(result.failed_writes for result in self.partitions.values())

    @property
    def succeeded(self) -> bool:
        return not self.failed_partitions

    def summary(self) -> Dict[str, Any]:
        return {
            "partitions": len(self.partitions),
            "failed_partitions": self.failed_partitions,
            "total_documents": self.total_documents,
            "conflicts": sum(r.conflicts for r in self.partitions.values()),
            "throttle_retries": sum(r.throttle_retries for r in self.partitions.values()),
            "failure_log_entries": self.failure_log_entries,
            "concurrency_limit": self.concurrency_limit,
            "peak_concurrency": self.peak_concurrency,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }


class MigrationEngine:
    """
    Migration orchestrator with:
    - Complete partition discovery before any transfer starts
    - One pump per partition, at most concurrency_limit running at once
    - Per-partition failure isolation
    - Aggregated failure raised only after every pump finished
    """

    def __init__(self,
                 source: SourceStore,
                 destination: DestinationStore,
                 settings: Optional[MigrationSettings] = None,
                 failure_log: Optional[FailureLog] = None,
                 metrics: Optional[MetricsCollector] = None,
                 sleep: SleepFunc = asyncio.sleep):
        self.source = source
        self.destination = destination
        self.settings = settings or MigrationSettings()
        self.failure_log = failure_log or FailureLog(self.settings.failure_log_dir,
                                                     self.settings.failure_log_prefix)
        self.metrics_collector = metrics or MetricsCollector()
        self.sleep = sleep
        self.progress: Optional[ProgressTracker] = None
        self.active_pumps = 0
        self.peak_concurrency = 0

    async def discover(self) -> List[PartitionRange]:
        """Enumerate every source partition, narrowed to the configured allow-list"""
        operation = self.metrics_collector.start_operation(
            "enumerate", "enumerate partitions", OperationType.ENUMERATE
        )
        try:
            partitions = await discover_partitions(self.source, self.settings.partition_list_page_size)
        except Exception as e:
            self.metrics_collector.end_operation(operation, 0, False, describe_error(e))
            raise
        self.metrics_collector.end_operation(operation, 0, True)
        return select_partitions(partitions, self.settings.partitions)

    async def run(self,
                  partitions: Sequence[PartitionRange],
                  concurrency_limit: Optional[int] = None,
                  progress_callback: Optional[PageCallback] = None) -> MigrationReport:
        """
        Migrate the given partitions

        Raises:
            MigrationFailedError: one or more partitions aborted; raised after all
                pumps finished and carries the complete report
        """
        limit = concurrency_limit if concurrency_limit is not None else self.settings.degree_of_parallelism
        if limit < 1:
            raise ValueError(f"Concurrency limit must be >= 1, got {limit}")

        self.progress = ProgressTracker(p.partition_id for p in partitions)
        self.active_pumps = 0
        self.peak_concurrency = 0
        semaphore = asyncio.Semaphore(limit)
        start_time = time.time()

        logger.info(f"🚀 Migrating {len(partitions)} partitions with concurrency {limit}")

        pumps = [
            PartitionPump(
                partition,
                self.source,
                self.destination,
                self.progress,
                self.failure_log,
                self.settings,
                metrics=self.metrics_collector,
                sleep=self.sleep,
                on_page=progress_callback,
            )
            for partition in partitions
        ]

        outcomes = await asyncio.gather(
            *(self._run_pump(pump, semaphore) for pump in pumps),
            return_exceptions=True,
        )

        report = MigrationReport(
            partitions={pump.partition_id: pump.result for pump in pumps},
            progress=self.progress.snapshot(),
            concurrency_limit=limit,
            peak_concurrency=self.peak_concurrency,
            elapsed_seconds=time.time() - start_time,
            metrics=self.metrics_collector.get_summary(),
        )

        failures: Dict[str, str] = {}
        for pump, outcome in zip(pumps, outcomes):
            if isinstance(outcome, BaseException):
                failures[pump.partition_id] = describe_error(outcome)

        logger.info(f"📊 Migrated {report.total_documents:,} documents across {len(partitions)} partitions "
                    f"in {report.elapsed_seconds:.2f}s (peak concurrency {report.peak_concurrency})")
        if report.failure_log_entries:
            logger.warning(f"⚠️ {report.failure_log_entries} write(s) logged for reconciliation")

        if failures:
            raise MigrationFailedError(report, failures)
        return report

    async def _run_pump(self, pump: PartitionPump, semaphore: asyncio.Semaphore) -> PartitionResult:
        async with semaphore:
            self.active_pumps += 1
            self.peak_concurrency = max(self.peak_concurrency, self.active_pumps)
            try:
                return await pump.run()
            finally:
                self.active_pumps -= 1

    async def migrate(self,
                      concurrency_limit: Optional[int] = None,
                      progress_callback: Optional[PageCallback] = None) -> MigrationReport:
        """Discover all partitions, then migrate them"""
        partitions = await self.discover()
        return await self.run(partitions, concurrency_limit, progress_callback)


class ManagedMigration:
    """
    Migration over MongoDB stores built from a MigratorConfig

    Owns the database connections; use as an async context manager.
    """

    def __init__(self, config: MigratorConfig, metrics: Optional[MetricsCollector] = None):
        self.config = config
        self.source = create_source_store(config.source_database,
                                          config.migration.partition_key_field)
        self.destination = create_destination_store(config.destination_database,
                                                    config.migration.default_retry_after_ms / 1000.0)
        self.engine = MigrationEngine(self.source, self.destination, config.migration, metrics=metrics)

    async def initialize(self) -> bool:
        """Connect to both stores"""
        return await check_connections(self.source, self.destination)

    async def cleanup(self):
        """Close database connections"""
        clients: List[BaseDatabaseClient] = [self.source, self.destination]
        for client in clients:
            await client.disconnect()
        logger.info("Migration engine cleaned up")

    async def __aenter__(self) -> "ManagedMigration":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.cleanup()


def create_migration_engine(config: MigratorConfig,
                            metrics: Optional[MetricsCollector] = None) -> ManagedMigration:
    """Create a migration over the configured MongoDB stores"""
    return ManagedMigration(config, metrics=metrics)
