"""
Database helpers

Thin wrapper over a pymongo Database. Collections are named after the
lowercase entity (Category -> "category"). Any driver error is re-raised as
DependencyFailure so callers only deal with catalog errors.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from config import Settings
from errors import Conflict, DependencyFailure, ValidationFailure

logger = logging.getLogger(__name__)

CATEGORY = "category"
SUBCATEGORY = "subcategory"
PRODUCT = "product"
REVIEW = "review"
USER = "user"
IMAGE_UPLOAD = "imageupload"

HIDDEN_FIELDS = ("password_hash",)

IdLike = Union[str, ObjectId]


def connect(settings: Settings) -> Optional[Database]:
    if not settings.database_url or not settings.database_name:
        logger.warning("DATABASE_URL or DATABASE_NAME not set, database disabled")
        return None
    client = MongoClient(settings.database_url)
    return client[settings.database_name]


def parse_object_id(value: Optional[IdLike], label: str = "ID") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise ValidationFailure(f"Invalid {label}")


def optional_object_id(value: Optional[IdLike], label: str = "ID") -> Optional[ObjectId]:
    if value in (None, ""):
        return None
    return parse_object_id(value, label)


def serialize_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, list):
        return [serialize_value(v) for v in value]
    if isinstance(value, dict):
        return {k: serialize_value(v) for k, v in value.items() if k not in HIDDEN_FIELDS}
    return value


def serialize_document(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return doc
    doc = {**doc}
    if doc.get("_id") is not None:
        doc["id"] = doc.pop("_id")
    return serialize_value(doc)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class EntityStore:
    """Per-collection CRUD used by the aggregator, the coordinator and the routes."""

    def __init__(self, db: Database):
        self.db = db

    def ensure_indexes(self) -> None:
        try:
            self.db[CATEGORY].create_index([("name", ASCENDING)], unique=True)
            self.db[CATEGORY].create_index([("slug", ASCENDING)], unique=True)
            self.db[SUBCATEGORY].create_index([("name", ASCENDING), ("parent_id", ASCENDING)], unique=True)
            self.db[PRODUCT].create_index([("slug", ASCENDING)], unique=True)
            self.db[REVIEW].create_index([("product_id", ASCENDING)])
            self.db[USER].create_index([("username", ASCENDING)], unique=True)
            self.db[USER].create_index([("email", ASCENDING)], unique=True)
        except PyMongoError as e:
            raise DependencyFailure(f"Could not create indexes: {e}") from e

    def find_by_id(self, collection: str, doc_id: IdLike, projection: Optional[dict] = None) -> Optional[dict]:
        return self.find_one(collection, {"_id": parse_object_id(doc_id)}, projection)

    def find_one(self, collection: str, filter_q: dict, projection: Optional[dict] = None) -> Optional[dict]:
        try:
            return self.db[collection].find_one(filter_q, projection)
        except PyMongoError as e:
            raise DependencyFailure(f"{collection} lookup failed: {e}") from e

    def find_many(
        self,
        collection: str,
        filter_q: Optional[dict] = None,
        sort: Optional[Sequence[Tuple[str, int]]] = None,
        skip: int = 0,
        limit: int = 0,
        projection: Optional[dict] = None,
    ) -> List[dict]:
        try:
            cursor = self.db[collection].find(filter_q or {}, projection)
            if sort:
                cursor = cursor.sort(list(sort))
            if skip:
                cursor = cursor.skip(skip)
            if limit:
                cursor = cursor.limit(limit)
            return list(cursor)
        except PyMongoError as e:
            raise DependencyFailure(f"{collection} query failed: {e}") from e

    def count(self, collection: str, filter_q: Optional[dict] = None) -> int:
        try:
            return self.db[collection].count_documents(filter_q or {})
        except PyMongoError as e:
            raise DependencyFailure(f"{collection} count failed: {e}") from e

    def create(self, collection: str, data: Dict[str, Any]) -> dict:
        doc = dict(data)
        now = _now()
        doc.setdefault("created_at", now)
        doc.setdefault("updated_at", now)
        try:
            result = self.db[collection].insert_one(doc)
        except DuplicateKeyError as e:
            raise Conflict(f"duplicate: {collection} already exists") from e
        except PyMongoError as e:
            raise DependencyFailure(f"{collection} insert failed: {e}") from e
        doc["_id"] = result.inserted_id
        return doc

    def update_by_id(self, collection: str, doc_id: IdLike, patch: dict) -> Optional[dict]:
        return self.update_where(collection, {"_id": parse_object_id(doc_id)}, patch)

    def update_where(self, collection: str, filter_q: dict, patch: dict) -> Optional[dict]:
        """Apply an update document atomically; returns the updated record or None if nothing matched."""
        patch = dict(patch)
        patch.setdefault("$set", {})
        patch["$set"] = {**patch["$set"], "updated_at": _now()}
        try:
            return self.db[collection].find_one_and_update(
                filter_q, patch, return_document=ReturnDocument.AFTER
            )
        except DuplicateKeyError as e:
            raise Conflict(f"duplicate: {collection} already exists") from e
        except PyMongoError as e:
            raise DependencyFailure(f"{collection} update failed: {e}") from e

    def update_many(self, collection: str, filter_q: dict, patch: dict) -> int:
        try:
            return self.db[collection].update_many(filter_q, patch).modified_count
        except PyMongoError as e:
            raise DependencyFailure(f"{collection} update failed: {e}") from e

    def delete_by_id(self, collection: str, doc_id: IdLike) -> Optional[dict]:
        try:
            return self.db[collection].find_one_and_delete({"_id": parse_object_id(doc_id)})
        except PyMongoError as e:
            raise DependencyFailure(f"{collection} delete failed: {e}") from e

    def delete_many(self, collection: str, filter_q: dict) -> int:
        try:
            return self.db[collection].delete_many(filter_q).deleted_count
        except PyMongoError as e:
            raise DependencyFailure(f"{collection} delete failed: {e}") from e

    def collection_names(self) -> List[str]:
        try:
            return self.db.list_collection_names()
        except PyMongoError as e:
            raise DependencyFailure(f"Could not list collections: {e}") from e
