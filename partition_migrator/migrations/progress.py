"""
Partition Progress Tracker
Document counts and continuation tokens per partition
"""
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional


@dataclass
class ProgressEntry:
    """Progress of one partition"""
    partition_id: str
    documents_transferred: int = 0
    continuation_token: Optional[str] = None
    pages: int = 0


class ProgressTracker:
    """
    Partition id -> ProgressEntry

    Each entry is written only by the pump that owns the partition. All pumps
    share one event loop, so per-key ownership is enough; readers get copies
    through snapshot().
    """

    def __init__(self, partition_ids: Iterable[str]):
        self._entries: Dict[str, ProgressEntry] = {}
        for partition_id in partition_ids:
            if partition_id in self._entries:
                raise ValueError(f"Duplicate partition id: {partition_id}")
            self._entries[partition_id] = ProgressEntry(partition_id)

    def record_page(self, partition_id: str, page_size: int, new_token: Optional[str]) -> ProgressEntry:
        """Add a page's document count and replace the continuation token"""
        if page_size < 0:
            raise ValueError(f"Page size must be >= 0, got {page_size}")
        entry = self._entries[partition_id]
        entry.documents_transferred += page_size
        entry.continuation_token = new_token or None
        entry.pages += 1
        return replace(entry)

    def get(self, partition_id: str) -> ProgressEntry:
        return replace(self._entries[partition_id])

    def snapshot(self) -> Mapping[str, ProgressEntry]:
        """Read-only copy of every entry"""
        return MappingProxyType({pid: replace(entry) for pid, entry in self._entries.items()})

    @property
    def total_documents(self) -> int:
        return sum(entry.documents_transferred for entry in self._entries.values())

    def __contains__(self, partition_id: str) -> bool:
        return partition_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
