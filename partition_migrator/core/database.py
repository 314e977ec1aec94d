"""
MongoDB Store Backends
Source and destination stores for Azure Cosmos DB (API for MongoDB) and MongoDB Atlas,
with connection pooling, Cosmos compatibility options and typed write errors
"""
import asyncio
import logging
import re
from typing import Dict, List, Optional, Any
from enum import Enum

from bson import json_util
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import DuplicateKeyError, PyMongoError

from .stores import DestinationStore, Page, PartitionListing, Record, SourceStore
from ..config.manager import DatabaseSettings
from ..exceptions import (
    FetchError,
    WriteConflictError,
    WriteFailedError,
    WriteThrottledError,
    describe_error,
)

logger = logging.getLogger(__name__)

# Cosmos DB API for MongoDB reports rate limiting as error 16500 ("TooManyRequests")
THROTTLE_ERROR_CODES = frozenset({16500, 429})
_RETRY_AFTER_PATTERN = re.compile(r"RetryAfterMs=(\d+)", re.IGNORECASE)


class DatabaseType(Enum):
    """Supported database types"""
    COSMOS_DB = "cosmos_db"
    MONGODB_ATLAS = "mongodb_atlas"
    MONGODB_LOCAL = "mongodb_local"


def detect_database_type(connection_string: str) -> DatabaseType:
    """Guess the store flavour from its connection string"""
    lowered = connection_string.lower()
    if "cosmos.azure.com" in lowered or "documents.azure.com" in lowered:
        return DatabaseType.COSMOS_DB
    if lowered.startswith("mongodb+srv://") or "mongodb.net" in lowered:
        return DatabaseType.MONGODB_ATLAS
    return DatabaseType.MONGODB_LOCAL


def client_options(settings: DatabaseSettings, db_type: DatabaseType) -> Dict[str, Any]:
    """Driver options for a store"""
    options: Dict[str, Any] = {
        'maxPoolSize': settings.max_pool_size,
        'minPoolSize': settings.min_pool_size,
        'maxIdleTimeMS': settings.max_idle_time_ms,
        'socketTimeoutMS': settings.socket_timeout_ms,
        'connectTimeoutMS': settings.connect_timeout_ms,
        'serverSelectionTimeoutMS': settings.server_selection_timeout_ms,
    }
    if db_type == DatabaseType.COSMOS_DB:
        # Cosmos DB API for MongoDB does not support retryable writes
        options['retryWrites'] = False
    return options


def encode_value(value: Any) -> str:
    """Canonical extended JSON text for a BSON value"""
    return json_util.dumps(value, json_options=json_util.CANONICAL_JSON_OPTIONS)


def decode_value(text: str) -> Any:
    """Inverse of encode_value"""
    return json_util.loads(text)


def parse_retry_after(error: BaseException, default_seconds: float) -> float:
    """Server suggested retry delay in seconds, from RetryAfterMs=<n> in the error"""
    sources = [str(error)]
    details = getattr(error, "details", None)
    if isinstance(details, dict):
        sources.append(str(details.get("errmsg", "")))
        if "RetryAfterMs" in details:
            sources.append(f"RetryAfterMs={details['RetryAfterMs']}")
    for text in sources:
        match = _RETRY_AFTER_PATTERN.search(text)
        if match:
            return int(match.group(1)) / 1000.0
    return default_seconds


def is_throttle_error(error: BaseException) -> bool:
    """True for destination rate limiting errors"""
    code = getattr(error, "code", None)
    if code in THROTTLE_ERROR_CODES:
        return True
    message = str(error).lower()
    return "request rate is large" in message or "toomanyrequests" in message


class BaseDatabaseClient:
    """
    Base class for MongoDB backed stores

    Provides common functionality for:
    - Connection management
    - Connection pool warmup
    - Collection access
    """

    def __init__(self, settings: DatabaseSettings, db_type: Optional[DatabaseType] = None):
        self.settings = settings
        self.db_type = db_type or detect_database_type(settings.connection_string)
        self.client: Optional[AsyncIOMotorClient] = None
        self.database = None
        self.collection = None
        self.is_connected = False

    @property
    def label(self) -> str:
        return f"{self.db_type.value} {self.settings.namespace}"

    async def connect(self) -> bool:
        """Connect and ping; returns False on failure"""
        try:
            logger.info(f"Connecting to {self.label}...")

            self.client = AsyncIOMotorClient(
                self.settings.connection_string,
                **client_options(self.settings, self.db_type)
            )
            self.database = self.client[self.settings.database_name]
            self.collection = self.database[self.settings.collection_name]

            await self._warmup_connections()
            await self.client.admin.command('ping')

            self.is_connected = True
            logger.info(f"✅ Connected to {self.label}")
            return True

        except PyMongoError as e:
            logger.error(f"❌ Failed to connect to {self.label}: {describe_error(e)}")
            return False

    async def _warmup_connections(self):
        """Pre-warm connection pool"""
        if self.settings.warmup_connections <= 0:
            return

        logger.info(f"Pre-warming {self.settings.warmup_connections} connections...")
        warmup_tasks = [self.client.admin.command('ping')
                        for _ in range(min(self.settings.warmup_connections, 50))]
        await asyncio.gather(*warmup_tasks, return_exceptions=True)
        logger.info("Connection pool pre-warmed")

    async def disconnect(self):
        """Disconnect from database"""
        if self.client:
            self.client.close()
            self.is_connected = False
            logger.info(f"Disconnected from {self.label}")


class MongoSourceStore(BaseDatabaseClient, SourceStore):
    """
    Source store over a MongoDB collection

    Partitions are the distinct values of the partition key field; records of a
    partition are paged in _id order and the continuation token is the last _id
    of a full page.
    """

    def __init__(self, settings: DatabaseSettings, partition_key_field: str,
                 db_type: Optional[DatabaseType] = None):
        super().__init__(settings, db_type)
        self.partition_key_field = partition_key_field

    async def list_partitions(self, cursor: Optional[str], page_size: int) -> PartitionListing:
        """One page of distinct partition key values; the cursor is an offset"""
        offset = int(cursor) if cursor else 0
        pipeline = [
            {"$group": {"_id": f"${self.partition_key_field}"}},
            {"$sort": {"_id": 1}},
            {"$skip": offset},
            {"$limit": page_size},
        ]
        try:
            rows = await self.collection.aggregate(pipeline, allowDiskUse=True).to_list(length=page_size)
        except PyMongoError as e:
            raise FetchError(f"Partition listing failed at offset {offset}: {describe_error(e)}") from e

        partition_ids = [encode_value(row["_id"]) for row in rows]
        next_cursor = str(offset + len(rows)) if len(rows) == page_size else None
        logger.debug(f"Listed {len(partition_ids)} partitions from offset {offset}")
        return PartitionListing(partition_ids=partition_ids, next_cursor=next_cursor)

    def _partition_query(self, partition_id: str, continuation: Optional[str]) -> Dict[str, Any]:
        query: Dict[str, Any] = {self.partition_key_field: decode_value(partition_id)}
        if continuation:
            # $expr compares across BSON types in sort order; a plain $gt only
            # matches _ids of the token's own type
            query["$expr"] = {"$gt": ["$_id", {"$literal": decode_value(continuation)}]}
        return query

    async def read_page(self,
                        partition_id: str,
                        continuation: Optional[str],
                        max_item_count: int,
                        max_buffered_item_count: int) -> Page:
        """Read the next page of records for a partition"""
        try:
            query = self._partition_query(partition_id, continuation)
            cursor = (
                self.collection
                .find(query)
                .sort('_id', 1)
                .limit(max_item_count)
                .batch_size(max_buffered_item_count)
            )
            documents: List[Dict[str, Any]] = await cursor.to_list(length=max_item_count)
        except (PyMongoError, ValueError) as e:
            raise FetchError(f"Read failed for partition {partition_id}: {describe_error(e)}",
                             partition_id=partition_id) from e

        next_token = None
        if documents and len(documents) >= max_item_count:
            next_token = encode_value(documents[-1]["_id"])
        return Page(records=[Record(doc) for doc in documents], continuation=next_token)


class MongoDestinationStore(BaseDatabaseClient, DestinationStore):
    """Destination store over a MongoDB collection with acknowledged single inserts"""

    def __init__(self, settings: DatabaseSettings, default_retry_after: float = 1.0,
                 db_type: Optional[DatabaseType] = None):
        super().__init__(settings, db_type)
        self.default_retry_after = default_retry_after

    async def write(self, record: Record) -> None:
        """Insert one record, translating driver errors into write errors"""
        try:
            await self.collection.insert_one(record.payload())
        except DuplicateKeyError as e:
            raise WriteConflictError(describe_error(e)) from e
        except PyMongoError as e:
            if is_throttle_error(e):
                raise WriteThrottledError(describe_error(e),
                                          parse_retry_after(e, self.default_retry_after)) from e
            raise WriteFailedError(describe_error(e)) from e


def create_source_store(settings: DatabaseSettings, partition_key_field: str) -> MongoSourceStore:
    """Factory function for the source store"""
    return MongoSourceStore(settings, partition_key_field)


def create_destination_store(settings: DatabaseSettings, default_retry_after: float = 1.0) -> MongoDestinationStore:
    """Factory function for the destination store"""
    return MongoDestinationStore(settings, default_retry_after=default_retry_after)


async def check_connections(source: BaseDatabaseClient, destination: BaseDatabaseClient) -> bool:
    """Connect to both stores and report whether both answered"""
    source_ok = await source.connect()
    destination_ok = await destination.connect()
    return source_ok and destination_ok
