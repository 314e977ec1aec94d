"""
Monitoring and Metrics
Per-partition operation tracking, write outcome counters and process metrics
"""
import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Optional, Any
from enum import Enum
import json

import psutil

logger = logging.getLogger(__name__)


class OperationType(Enum):
    """Types of operations to monitor"""
    ENUMERATE = "enumerate"
    MIGRATE_PARTITION = "migrate_partition"


class Counter(Enum):
    """Counted events"""
    PAGES = "pages"
    DOCUMENTS_READ = "documents_read"
    DOCUMENTS_WRITTEN = "documents_written"
    CONFLICTS = "conflicts"
    THROTTLES = "throttles"
    THROTTLE_RETRIES = "throttle_retries"
    FAILED_WRITES = "failed_writes"


@dataclass
class OperationMetrics:
    """Metrics for a single operation"""
    operation_id: str
    operation_name: str
    operation_type: OperationType
    start_time: float
    end_time: Optional[float] = None
    documents_processed: int = 0
    success: bool = False
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def duration(self) -> float:
        if self.end_time is None:
            return time.time() - self.start_time
        return self.end_time - self.start_time

    @property
    def rate(self) -> float:
        return self.documents_processed / self.duration if self.duration > 0 else 0


class MetricsCollector:
    """
    Metrics collector with:
    - Operation tracking (one per partition run)
    - Global and per-partition counters
    - Process memory/CPU snapshot
    - JSON/CSV export
    """

    def __init__(self):
        self.active_operations: Dict[str, OperationMetrics] = {}
        self.completed_operations: Dict[str, OperationMetrics] = {}
        self.counters: Dict[Counter, int] = defaultdict(int)
        self.partition_counters: Dict[str, Dict[Counter, int]] = defaultdict(lambda: defaultdict(int))
        self.total_operations = 0
        self.total_errors = 0
        self.start_time = time.time()

    def start_operation(self, operation_id: str, operation_name: str,
                        operation_type: OperationType) -> OperationMetrics:
        """Start tracking an operation"""
        operation = OperationMetrics(
            operation_id=operation_id,
            operation_name=operation_name,
            operation_type=operation_type,
            start_time=time.time(),
        )
        self.active_operations[operation_id] = operation
        self.total_operations += 1
        logger.debug(f"Started operation: {operation_name} ({operation_id})")
        return operation

    def end_operation(self, operation: OperationMetrics, documents_processed: int,
                      success: bool, error_message: Optional[str] = None):
        """End tracking an operation"""
        operation.end_time = time.time()
        operation.documents_processed = documents_processed
        operation.success = success
        operation.error_message = error_message

        if not success:
            self.total_errors += 1

        self.active_operations.pop(operation.operation_id, None)
        self.completed_operations[operation.operation_id] = operation
        logger.debug(f"Ended operation: {operation.operation_name} - "
                     f"{documents_processed} docs in {operation.duration:.2f}s")

    def increment(self, counter: Counter, partition_id: Optional[str] = None, value: int = 1):
        """Increment a counter, globally and for the partition when given"""
        self.counters[counter] += value
        if partition_id is not None:
            self.partition_counters[partition_id][counter] += value

    def count(self, counter: Counter, partition_id: Optional[str] = None) -> int:
        if partition_id is None:
            return self.counters.get(counter, 0)
        return self.partition_counters.get(partition_id, {}).get(counter, 0)

    def partition_summary(self, partition_id: str) -> Dict[str, int]:
        return {counter.value: self.count(counter, partition_id) for counter in Counter}

    def get_process_metrics(self) -> Dict[str, float]:
        """Current process memory (MB) and CPU usage (percent)"""
        process = psutil.Process()
        return {
            "memory_usage_mb": process.memory_info().rss / 1024 / 1024,
            "cpu_usage_percent": process.cpu_percent(interval=None),
        }

    def get_summary(self) -> Dict[str, Any]:
        """Get comprehensive metrics summary"""
        elapsed = time.time() - self.start_time
        written = self.count(Counter.DOCUMENTS_WRITTEN)
        failed_operations = [op for op in self.completed_operations.values() if not op.success]

        return {
            "total_operations": self.total_operations,
            "active_operations": len(self.active_operations),
            "failed_operations": len(failed_operations),
            "counters": {counter.value: self.count(counter) for counter in Counter},
            "documents_per_second": written / elapsed if elapsed > 0 else 0,
            "uptime_seconds": elapsed,
            "process": self.get_process_metrics(),
        }

    def export_metrics(self, format: str = "json") -> str:
        """Export metrics in specified format"""
        summary = self.get_summary()

        if format.lower() == "json":
            return json.dumps(summary, indent=2)
        elif format.lower() == "csv":
            lines = ["metric,value"]
            for key, value in summary.items():
                if isinstance(value, dict):
                    for sub_key, sub_value in value.items():
                        lines.append(f"{key}.{sub_key},{sub_value}")
                else:
                    lines.append(f"{key},{value}")
            return "\n".join(lines)
        else:
            raise ValueError(f"Unsupported export format: {format}")
