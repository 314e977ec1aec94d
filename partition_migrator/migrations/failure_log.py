"""
Failure Log
Per-partition append-only record of writes that need out-of-band reconciliation
"""
import hashlib
import logging
import re
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, TextIO, Union

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True)
class FailureLogEntry:
    """A write that could not be completed"""
    partition_id: str
    record_id: str
    partition_key_value: str
    message: str

    def format_line(self) -> str:
        return (
            f"Exception thrown when writing document with pk: {self.partition_key_value} "
            f"and id: {self.record_id} in partition {self.partition_id}. "
            f"Original message was: {self.message}. Not a conflict or throttle. Logged for reconciliation."
        )


def failure_log_filename(prefix: str, partition_id: str) -> str:
    """Deterministic, filesystem safe file name for a partition's failure log"""
    safe = _UNSAFE_CHARS.sub("_", partition_id).strip("._") or "partition"
    if safe != partition_id:
        # Sanitizing can map distinct ids onto one name
        digest = hashlib.sha1(partition_id.encode("utf-8")).hexdigest()[:8]
        safe = f"{safe}_{digest}"
    return f"{prefix}_{safe}"


class FailureLogSink:
    """
    Append-only failure log for one partition

    The file is created on the first append and closed by close(); an entry is
    flushed as soon as it is written. Intended for sequential use by the
    partition's own pump only.
    """

    def __init__(self, partition_id: str, path: Path):
        self.partition_id = partition_id
        self.path = path
        self.entries: List[FailureLogEntry] = []
        self._file: Optional[TextIO] = None
        self.closed = False

    def append(self, entry: FailureLogEntry):
        """Append one entry"""
        if self.closed:
            raise ValueError(f"Failure log for partition {self.partition_id} is closed")
        if entry.partition_id != self.partition_id:
            raise ValueError(
                f"Entry for partition {entry.partition_id} appended to log of {self.partition_id}"
            )
        if self._file is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._file = open(self.path, "a", encoding="utf-8")
            logger.info(f"Opened failure log {self.path}")
        self._file.write(entry.format_line() + "\n")
        self._file.flush()
        self.entries.append(entry)

    @property
    def count(self) -> int:
        return len(self.entries)

    def close(self):
        if self._file is not None:
            self._file.close()
            self._file = None
            logger.info(f"Closed failure log {self.path} ({self.count} entries)")
        self.closed = True


class FailureLog:
    """Hands out one failure log sink per partition"""

    def __init__(self, directory: Union[str, Path] = ".", prefix: str = "Partition"):
        self.directory = Path(directory)
        self.prefix = prefix

    def path_for(self, partition_id: str) -> Path:
        return self.directory / failure_log_filename(self.prefix, partition_id)

    @contextmanager
    def open(self, partition_id: str) -> Iterator[FailureLogSink]:
        """Scoped sink; always closed, including when the partition aborts"""
        sink = FailureLogSink(partition_id, self.path_for(partition_id))
        try:
            yield sink
        finally:
            sink.close()
