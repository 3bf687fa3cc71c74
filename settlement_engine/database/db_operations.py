"""
Database operations - Generic helpers shared by the settlement stores
"""
import asyncio
import logging
from typing import List, Dict, Optional, Any, Awaitable, Callable, TypeVar
from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import AutoReconnect, NetworkTimeout
from datetime import datetime, timezone

from settlement_engine.config.database import db_config
from settlement_engine.config.settings import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS = (AutoReconnect, NetworkTimeout)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what pymongo hands back by default"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Return an ObjectId for a 24-char hex string or ObjectId, else None"""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and len(value) == 24 and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


async def with_store_retry(operation: Callable[[], Awaitable[T]], attempts: Optional[int] = None) -> T:
    """
    Run a store operation, retrying transient I/O errors with exponential backoff.
    Domain errors are never retried.
    """
    attempts = attempts or settings.STORE_RETRY_ATTEMPTS
    delay = settings.STORE_RETRY_BASE_DELAY
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except TRANSIENT_ERRORS as exc:
            if attempt == attempts:
                raise
            logger.warning("⚠️ Transient store error (attempt %d/%d): %s", attempt, attempts, exc)
            await asyncio.sleep(delay)
            delay *= 2


class DBOperations:
    """Generic database operations for MongoDB collections"""

    @staticmethod
    async def get_all(collection_name: str, filter_query: Dict = None, skip: int = 0, limit: int = 0,
                      sort: Optional[List] = None) -> List[Dict]:
        """Get all documents from a collection with optional filtering"""
        collection = db_config.get_collection(collection_name)
        filter_query = filter_query or {}
        cursor = collection.find(filter_query)
        if sort:
            cursor = cursor.sort(sort)
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return await cursor.to_list(length=limit or None)

    @staticmethod
    async def get_by_id(collection_name: str, doc_id: Any) -> Optional[Dict]:
        """Get a single document by ID"""
        oid = to_object_id(doc_id)
        if oid is None:
            return None
        collection = db_config.get_collection(collection_name)
        return await collection.find_one({"_id": oid})

    @staticmethod
    async def get_one(collection_name: str, filter_query: Dict, sort: Optional[List] = None) -> Optional[Dict]:
        """Get a single document by filter query"""
        collection = db_config.get_collection(collection_name)
        return await collection.find_one(filter_query, sort=sort)

    @staticmethod
    async def create(collection_name: str, document: Dict) -> Dict:
        """Create a new document"""
        collection = db_config.get_collection(collection_name)
        now = utcnow()
        document.setdefault("createdAt", now)
        document["updatedAt"] = now
        result = await collection.insert_one(document)
        document["_id"] = result.inserted_id
        return document

    @staticmethod
    async def conditional_update(collection_name: str, filter_query: Dict, update: Dict) -> Optional[Dict]:
        """
        Atomically apply `update` to the single document matching `filter_query`.
        Returns the updated document, or None when nothing matched.
        """
        collection = db_config.get_collection(collection_name)
        update = dict(update)
        update.setdefault("$set", {})
        update["$set"] = {**update["$set"], "updatedAt": utcnow()}
        return await collection.find_one_and_update(
            filter_query,
            update,
            return_document=ReturnDocument.AFTER,
        )

    @staticmethod
    async def count(collection_name: str, filter_query: Dict = None) -> int:
        """Count documents in a collection"""
        collection = db_config.get_collection(collection_name)
        return await collection.count_documents(filter_query or {})

    @staticmethod
    async def aggregate(collection_name: str, pipeline: List[Dict]) -> List[Dict]:
        """Execute aggregation pipeline"""
        collection = db_config.get_collection(collection_name)
        cursor = collection.aggregate(pipeline)
        return await cursor.to_list(length=None)


db_ops = DBOperations()
