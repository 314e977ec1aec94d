"""
Partition Enumerator
Discovers every source partition through the paginated partition listing
"""
import logging
from typing import List, Optional, Sequence

from ..core.stores import PartitionRange, SourceStore
from ..exceptions import EnumerationError, describe_error

logger = logging.getLogger(__name__)


async def discover_partitions(source: SourceStore, page_size: int = 1000) -> List[PartitionRange]:
    """
    Read the complete, ordered partition list

    Raises:
        EnumerationError: any listing page failed; no partial list is returned
    """
    partitions: List[PartitionRange] = []
    seen = set()
    cursor: Optional[str] = None
    listing_pages = 0

    while True:
        try:
            listing = await source.list_partitions(cursor, page_size)
        except Exception as e:
            raise EnumerationError(
                f"Failed to list partitions after {len(partitions)} partitions: {describe_error(e)}"
            ) from e

        listing_pages += 1
        for partition_id in listing.partition_ids:
            if partition_id in seen:
                continue
            seen.add(partition_id)
            partitions.append(PartitionRange(partition_id))

        if not listing.next_cursor:
            break
        if listing.next_cursor == cursor:
            raise EnumerationError(f"Partition listing did not advance past cursor {cursor!r}")
        cursor = listing.next_cursor

    logger.info(f"📋 Discovered {len(partitions)} partitions in {listing_pages} listing page(s)")
    return partitions


def select_partitions(partitions: Sequence[PartitionRange],
                      allowed: Sequence[str]) -> List[PartitionRange]:
    """Restrict discovered partitions to an explicit allow-list, keeping source order"""
    if not allowed:
        return list(partitions)

    known = {p.partition_id for p in partitions}
    for partition_id in allowed:
        if partition_id not in known:
            logger.warning(f"⚠️ Requested partition {partition_id} does not exist at the source; ignoring")

    wanted = set(allowed)
    selected = [p for p in partitions if p.partition_id in wanted]
    logger.info(f"Migrating {len(selected)} of {len(partitions)} partitions (explicit partition list)")
    return selected
