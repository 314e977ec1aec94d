"""
Core store contracts and MongoDB backends
"""
from .stores import (
    DestinationStore,
    Page,
    PartitionListing,
    PartitionRange,
    Record,
    SourceStore,
)
