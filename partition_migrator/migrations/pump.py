"""
Record Transfer Pump
Moves one partition from source to destination page by page, classifying write failures
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from ..config.manager import MigrationSettings
from ..core.stores import DestinationStore, Page, PartitionRange, Record, SourceStore
from ..exceptions import (
    FetchError,
    MigratorError,
    WriteConflictError,
    WriteThrottledError,
    describe_error,
)
from ..monitoring.metrics import Counter, MetricsCollector, OperationType
from .failure_log import FailureLog, FailureLogEntry, FailureLogSink
from .progress import ProgressEntry, ProgressTracker

logger = logging.getLogger(__name__)

# Throttled writes wait this multiple of the server suggested delay
THROTTLE_BACKOFF_MULTIPLIER = 2

SleepFunc = Callable[[float], Awaitable[Any]]
PageCallback = Callable[["PageEvent"], Any]


class PumpState(Enum):
    """Pump lifecycle"""
    PENDING = "pending"
    FETCHING = "fetching"
    WRITING = "writing"
    EXHAUSTED = "exhausted"
    FAILED_FATAL = "failed_fatal"


@dataclass
class PageEvent:
    """Reported after each page is written and recorded"""
    partition_id: str
    page_number: int
    page_size: int
    documents_transferred: int
    is_last: bool


@dataclass
class PartitionResult:
    """Outcome of one partition"""
    partition_id: str
    state: PumpState
    documents_transferred: int = 0
    pages: int = 0
    conflicts: int = 0
    throttle_retries: int = 0
    failed_writes: int = 0
    failure_log_path: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state == PumpState.EXHAUSTED


class PartitionPump:
    """
    Per-partition migration state machine

    FETCHING reads one page with the current continuation token, WRITING writes
    each record of the page:
    - conflict: logged and skipped
    - throttled: wait twice the suggested delay and retry the same write
    - anything else: logged and appended to the partition's failure log
    The page is then recorded in the progress tracker. An absent continuation
    token ends the partition (EXHAUSTED); a failed fetch aborts it
    (FAILED_FATAL) by raising FetchError; any other unexpected error also
    aborts it and is raised as MigratorError.
    """

    def __init__(self,
                 partition: PartitionRange,
                 source: SourceStore,
                 destination: DestinationStore,
                 progress: ProgressTracker,
                 failure_log: FailureLog,
                 settings: MigrationSettings,
                 metrics: Optional[MetricsCollector] = None,
                 sleep: SleepFunc = asyncio.sleep,
                 on_page: Optional[PageCallback] = None):
        self.partition = partition
        self.source = source
        self.destination = destination
        self.progress = progress
        self.failure_log = failure_log
        self.settings = settings
        self.metrics = metrics or MetricsCollector()
        self.sleep = sleep
        self.on_page = on_page
        self.state = PumpState.PENDING
        self.result = PartitionResult(partition.partition_id, PumpState.PENDING)

    @property
    def partition_id(self) -> str:
        return self.partition.partition_id

    async def run(self) -> PartitionResult:
        """Run the partition to completion"""
        operation = self.metrics.start_operation(
            f"partition:{self.partition_id}", f"migrate partition {self.partition_id}",
            OperationType.MIGRATE_PARTITION
        )
        self.result.failure_log_path = str(self.failure_log.path_for(self.partition_id))

        try:
            with self.failure_log.open(self.partition_id) as sink:
                await self._pump(sink)
        except FetchError as e:
            self._finish(PumpState.FAILED_FATAL, operation, describe_error(e))
            raise
        except Exception as e:
            self._finish(PumpState.FAILED_FATAL, operation, describe_error(e))
            raise MigratorError(f"Partition {self.partition_id} aborted: {describe_error(e)}") from e

        self._finish(PumpState.EXHAUSTED, operation)
        return self.result

    def _finish(self, state: PumpState, operation, error: Optional[str] = None):
        self.state = state
        entry = self.progress.get(self.partition_id)
        self.result.state = state
        self.result.documents_transferred = entry.documents_transferred
        self.result.pages = entry.pages
        self.result.error = error
        self.metrics.end_operation(operation, entry.documents_transferred, state == PumpState.EXHAUSTED, error)
        if state == PumpState.EXHAUSTED:
            logger.info(f"✅ Partition {self.partition_id} exhausted: "
                        f"{entry.documents_transferred:,} documents in {entry.pages} page(s)")
        else:
            logger.error(f"❌ Partition {self.partition_id} aborted after "
                         f"{entry.documents_transferred:,} documents: {error}")

    async def _pump(self, sink: FailureLogSink):
        continuation: Optional[str] = None
        page_number = 1

        while True:
            page = await self._fetch(continuation)

            self.state = PumpState.WRITING
            for record in page.records:
                await self._transfer(record, sink)

            entry = self.progress.record_page(self.partition_id, len(page), page.continuation)
            self.metrics.increment(Counter.PAGES, self.partition_id)
            self.metrics.increment(Counter.DOCUMENTS_READ, self.partition_id, len(page))
            self._report_page(page_number, page, entry)

            if page.is_last:
                return
            continuation = page.continuation
            page_number += 1

    async def _fetch(self, continuation: Optional[str]) -> Page:
        self.state = PumpState.FETCHING
        try:
            return await self.source.read_page(
                self.partition_id,
                continuation,
                self.settings.max_item_count,
                self.settings.max_buffered_item_count,
            )
        except FetchError:
            raise
        except Exception as e:
            raise FetchError(
                f"Read failed for partition {self.partition_id}: {describe_error(e)}",
                partition_id=self.partition_id,
            ) from e

    def _report_page(self, page_number: int, page: Page, entry: ProgressEntry):
        logger.info(f"PKRange: {self.partition_id}, Continuation: {page_number}, "
                    f"Document Count: {entry.documents_transferred}")
        if self.on_page is not None:
            self.on_page(PageEvent(
                partition_id=self.partition_id,
                page_number=page_number,
                page_size=len(page),
                documents_transferred=entry.documents_transferred,
                is_last=page.is_last,
            ))

    def _identify(self, record: Record):
        """Partition key and id of a record, as text for diagnostics"""
        pk_field = self.settings.partition_key_field
        id_field = self.settings.id_field
        if not record.has(pk_field):
            logger.warning(f"Document does not contain partition key field: {pk_field}")
        if not record.has(id_field):
            logger.warning(f"Document does not contain {id_field} field")
        pk_value = record.get(pk_field)
        record_id = record.get(id_field)
        return ("" if pk_value is None else str(pk_value),
                "" if record_id is None else str(record_id))

    async def _transfer(self, record: Record, sink: FailureLogSink):
        """Write one record; record level errors never leave this method"""
        attempts = 0
        delay: Optional[float] = None
        while True:
            attempts += 1
            try:
                await self.destination.write(record)
                self.metrics.increment(Counter.DOCUMENTS_WRITTEN, self.partition_id)
                return

            except WriteConflictError:
                pk_value, record_id = self._identify(record)
                logger.info(f"Conflict while writing document with partition key: {pk_value} "
                            f"and id: {record_id} as the resource already exists")
                self.metrics.increment(Counter.CONFLICTS, self.partition_id)
                self.result.conflicts += 1
                return

            except WriteThrottledError as e:
                pk_value, record_id = self._identify(record)
                self.metrics.increment(Counter.THROTTLES, self.partition_id)
                max_attempts = self.settings.throttle_max_attempts
                if max_attempts and attempts >= max_attempts:
                    self._defer(sink, pk_value, record_id,
                                f"still throttled after {attempts} attempts: {describe_error(e)}")
                    return

                # The first throttle of a record fixes the backoff for all its retries
                if delay is None:
                    delay = e.retry_after * THROTTLE_BACKOFF_MULTIPLIER
                if attempts == 1:
                    logger.warning(f"Throttled when writing document with pk: {pk_value} and id: {record_id}. "
                                   f"Original message was: {describe_error(e)}")
                else:
                    logger.warning(f"Yet another throttle while writing document with pk: {pk_value} "
                                   f"and id: {record_id} (attempt {attempts})")
                logger.debug(f"Backing off {delay:.3f}s before retrying {record_id}")
                await self.sleep(delay)
                self.metrics.increment(Counter.THROTTLE_RETRIES, self.partition_id)
                self.result.throttle_retries += 1

            except Exception as e:
                pk_value, record_id = self._identify(record)
                self._defer(sink, pk_value, record_id, describe_error(e))
                return

    def _defer(self, sink: FailureLogSink, pk_value: str, record_id: str, message: str):
        logger.error(f"Exception thrown when writing document with pk: {pk_value} and id: {record_id}. "
                     f"Original message was: {message}. Logging to {sink.path}")
        sink.append(FailureLogEntry(
            partition_id=self.partition_id,
            record_id=record_id,
            partition_key_value=pk_value,
            message=message,
        ))
        self.metrics.increment(Counter.FAILED_WRITES, self.partition_id)
        self.result.failed_writes += 1
