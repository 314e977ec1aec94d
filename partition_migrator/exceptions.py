"""
Migration Errors
Error taxonomy for partition discovery, page reads and record writes
"""
from typing import Dict, Optional

UNKNOWN_ERROR_DETAIL = "unknown error, no further detail"


def describe_error(error: Optional[BaseException]) -> str:
    """Human readable description of an error, tolerant of empty causes"""
    if error is None:
        return UNKNOWN_ERROR_DETAIL
    message = str(error).strip()
    if not message and error.__cause__ is not None:
        message = str(error.__cause__).strip()
    return message or UNKNOWN_ERROR_DETAIL


class MigratorError(Exception):
    """Base exception for all partition migrator errors."""


class ConfigurationError(MigratorError, ValueError):
    """Raised when the loaded configuration is incomplete or invalid."""


class EnumerationError(MigratorError):
    """Raised when the source partition listing cannot be read completely.

    Fatal for the whole run: nothing is migrated without full partition knowledge.
    """


class FetchError(MigratorError):
    """Raised when a page of records cannot be read for a partition.

    Fatal for that partition only.
    """

    def __init__(self, message: str, partition_id: Optional[str] = None):
        self.partition_id = partition_id
        super().__init__(message)


class WriteError(MigratorError):
    """Base class for destination write failures."""


class WriteConflictError(WriteError):
    """The destination already holds a record with the same identity."""


class WriteThrottledError(WriteError):
    """The destination is rate limiting and suggests a retry delay.

    Attributes:
        retry_after: Server suggested delay in seconds
    """

    def __init__(self, message: str, retry_after: float):
        self.retry_after = max(0.0, float(retry_after))
        super().__init__(message)


class WriteFailedError(WriteError):
    """Any other destination write failure; deferred to the failure log."""


class MigrationFailedError(MigratorError):
    """Raised after all pumps finished when one or more partitions aborted.

    Attributes:
        report: The full migration report, successful partitions included
        failures: Partition id -> error description for each aborted partition
    """

    def __init__(self, report, failures: Dict[str, str]):
        self.report = report
        self.failures = dict(failures)
        details = "; ".join(f"{pid}: {msg}" for pid, msg in sorted(self.failures.items()))
        super().__init__(f"{len(self.failures)} partition(s) could not be migrated: {details}")
