"""
Store Contracts
Read/write capabilities a source and destination document store must expose
"""
import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional


@dataclass(frozen=True)
class PartitionRange:
    """One logical shard of the source, identified by an opaque string"""
    partition_id: str

    def __str__(self) -> str:
        return self.partition_id


class Record:
    """
    Opaque document envelope

    Exposes field lookup by name and a copy of the payload for writing;
    identifier and partition key field names are supplied by configuration.
    """

    __slots__ = ("_document",)

    def __init__(self, document: Mapping[str, Any]):
        self._document = document

    def get(self, field_name: str, default: Any = None) -> Any:
        """Read a top level field, or a dotted path into nested documents"""
        if field_name in self._document:
            return self._document[field_name]
        if "." not in field_name:
            return default
        value: Any = self._document
        for part in field_name.split("."):
            if not isinstance(value, Mapping) or part not in value:
                return default
            value = value[part]
        return value

    def has(self, field_name: str) -> bool:
        sentinel = object()
        return self.get(field_name, sentinel) is not sentinel

    def payload(self) -> Dict[str, Any]:
        """Deep copy of the document; the source copy is never handed out"""
        return copy.deepcopy(dict(self._document))

    def __repr__(self) -> str:
        return f"Record(fields={sorted(self._document)!r})"


@dataclass
class PartitionListing:
    """A page of partition metadata"""
    partition_ids: List[str]
    next_cursor: Optional[str] = None


@dataclass
class Page:
    """A page of records read from one partition"""
    records: List[Record] = field(default_factory=list)
    continuation: Optional[str] = None

    def __len__(self) -> int:
        return len(self.records)

    @property
    def is_last(self) -> bool:
        return not self.continuation


class SourceStore(ABC):
    """Partitioned source of records"""

    @abstractmethod
    async def list_partitions(self, cursor: Optional[str], page_size: int) -> PartitionListing:
        """List one page of partition identifiers starting at cursor"""

    @abstractmethod
    async def read_page(self,
                        partition_id: str,
                        continuation: Optional[str],
                        max_item_count: int,
                        max_buffered_item_count: int) -> Page:
        """Read the next page of a partition; raises FetchError on failure"""


class DestinationStore(ABC):
    """Destination of records"""

    @abstractmethod
    async def write(self, record: Record) -> None:
        """
        Write one record

        Raises:
            WriteConflictError: a record with the same identity already exists
            WriteThrottledError: rate limited, carries the suggested retry delay
            WriteFailedError: any other failure
        """
