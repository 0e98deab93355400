"""
MongoDB access layer for the admin API.

`db` is the process-wide database built from DATABASE_URL / DATABASE_NAME.
Route handlers talk to it through a DocumentStore so tests can hand in any
pymongo-compatible database instead.

Conventions:
- Every document gets created_at / updated_at (UTC datetimes).
- Public documents expose `id` (string) instead of `_id`.
- Singleton documents (e.g. the time rules) live in the "settings"
  collection under a fixed string _id.
"""
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import DESCENDING, MongoClient
from pymongo.errors import PyMongoError

import config
from errors import ConflictError, NotFoundError, ValidationFailed

logger = logging.getLogger("grocery-admin.database")

SETTINGS_COLLECTION = "settings"

client = MongoClient(config.DATABASE_URL) if config.DATABASE_URL else None
db = client[config.DATABASE_NAME] if client is not None else None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """pymongo hands back naive datetimes; they are always UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def oid(s: str) -> ObjectId:
    # ObjectId(None) would mint a fresh id.
    if not isinstance(s, str):
        raise ValidationFailed("Invalid id")
    try:
        return ObjectId(s)
    except (InvalidId, TypeError):
        raise ValidationFailed("Invalid id")


def to_public(doc: Optional[dict]) -> Optional[dict]:
    if doc is None:
        return None
    doc["id"] = str(doc.pop("_id"))
    return doc


def _as_dict(data: Any) -> dict:
    if isinstance(data, BaseModel):
        return data.model_dump(exclude={"id"})
    return dict(data)


def _clean_filters(filters: Optional[dict]) -> dict:
    # Empty form values mean "no filter".
    return {k: v for k, v in (filters or {}).items() if v is not None and v != ""}


class Subscription:
    """Pushes the full ordered collection to `on_data` whenever it changes.

    The first push happens synchronously in `start()`. Later pushes come from
    a daemon thread reading a change stream. Errors are handed to `on_error`
    and stop the subscription; data already delivered is left alone.
    """

    poll_interval = 0.5

    def __init__(self, store: "DocumentStore", collection_name: str,
                 on_data: Callable[[List[dict]], None],
                 on_error: Optional[Callable[[Exception], None]] = None,
                 filters: Optional[dict] = None):
        self.store = store
        self.collection_name = collection_name
        self.on_data = on_data
        self.on_error = on_error
        self.filters = filters
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def refresh(self) -> None:
        self.on_data(self.store.list(self.collection_name, self.filters))

    def start(self, watch: bool = True) -> "Subscription":
        try:
            self.refresh()
        except PyMongoError as exc:
            self._fail(exc)
            return self
        if watch:
            self._thread = threading.Thread(
                target=self._run, name=f"watch-{self.collection_name}", daemon=True
            )
            self._thread.start()
        return self

    def _run(self) -> None:
        try:
            with self.store.db[self.collection_name].watch() as stream:
                while not self._stop.is_set():
                    change = stream.try_next()
                    if change is None:
                        self._stop.wait(self.poll_interval)
                        continue
                    self.refresh()
        except Exception as exc:  # noqa: BLE001 - reported through on_error
            self._fail(exc)

    def _fail(self, exc: Exception) -> None:
        logger.error("Subscription to %s failed: %s", self.collection_name, exc)
        if self.on_error is not None:
            self.on_error(exc)

    def unsubscribe(self) -> None:
        self._stop.set()

    __call__ = unsubscribe


class DocumentStore:
    def __init__(self, database):
        self.db = database

    # ---------- Generic CRUD ----------
    def create(self, collection_name: str, data: Any) -> str:
        doc = _as_dict(data)
        now = utc_now()
        doc["created_at"] = now
        doc["updated_at"] = now
        try:
            result = self.db[collection_name].insert_one(doc)
        except PyMongoError:
            logger.exception("Error creating %s", collection_name)
            raise
        return str(result.inserted_id)

    def update(self, collection_name: str, doc_id: str, data: Any,
               expected_version: Optional[int] = None) -> None:
        """Merge `data` into the document.

        With `expected_version` the write only applies while the stored
        version still matches, and bumps it; otherwise ConflictError.
        """
        fields = _as_dict(data)
        fields.pop("version", None)
        fields.setdefault("updated_at", utc_now())
        query: Dict[str, Any] = {"_id": oid(doc_id)}
        update: Dict[str, Any] = {"$set": fields}
        if expected_version is not None:
            if expected_version == 0:
                query["$or"] = [{"version": 0}, {"version": {"$exists": False}}]
            else:
                query["version"] = expected_version
            update["$inc"] = {"version": 1}
        try:
            res = self.db[collection_name].update_one(query, update)
        except PyMongoError:
            logger.exception("Error updating %s", collection_name)
            raise
        if res.matched_count == 0:
            if expected_version is not None and self.db[collection_name].count_documents({"_id": oid(doc_id)}):
                raise ConflictError(f"{collection_name} {doc_id} was modified by another session")
            raise NotFoundError(f"{collection_name} {doc_id} not found")

    def delete(self, collection_name: str, doc_id: str) -> None:
        try:
            res = self.db[collection_name].delete_one({"_id": oid(doc_id)})
        except PyMongoError:
            logger.exception("Error deleting %s", collection_name)
            raise
        if res.deleted_count == 0:
            raise NotFoundError(f"{collection_name} {doc_id} not found")

    def get_by_id(self, collection_name: str, doc_id: str) -> Optional[dict]:
        return to_public(self.db[collection_name].find_one({"_id": oid(doc_id)}))

    def require(self, collection_name: str, doc_id: str) -> dict:
        doc = self.get_by_id(collection_name, doc_id)
        if doc is None:
            raise NotFoundError(f"{collection_name} {doc_id} not found")
        return doc

    def list(self, collection_name: str, filters: Optional[dict] = None,
             sort: Optional[List[Tuple[str, int]]] = None) -> List[dict]:
        cursor = self.db[collection_name].find(_clean_filters(filters))
        cursor = cursor.sort(sort or [("created_at", DESCENDING)])
        return [to_public(d) for d in cursor]

    def get_paginated(self, collection_name: str, page: int = 1, page_size: int = 20,
                      filters: Optional[dict] = None) -> dict:
        query = _clean_filters(filters)
        coll = self.db[collection_name]
        total = coll.count_documents(query)
        cursor = (
            coll.find(query)
            .sort("created_at", DESCENDING)
            .skip((page - 1) * page_size)
            .limit(page_size)
        )
        return {
            "data": [to_public(d) for d in cursor],
            "page": page,
            "page_size": page_size,
            "total": total,
        }

    # ---------- Real-time listeners ----------
    def subscribe_to_collection(self, collection_name: str,
                                on_data: Callable[[List[dict]], None],
                                on_error: Optional[Callable[[Exception], None]] = None,
                                filters: Optional[dict] = None,
                                watch: bool = True) -> Subscription:
        return Subscription(self, collection_name, on_data, on_error, filters).start(watch=watch)

    # ---------- Singleton documents ----------
    def get_singleton(self, name: str) -> Optional[dict]:
        doc = self.db[SETTINGS_COLLECTION].find_one({"_id": name})
        if doc is None:
            return None
        doc.pop("_id", None)
        return doc

    def set_singleton(self, name: str, data: dict) -> None:
        try:
            self.db[SETTINGS_COLLECTION].replace_one({"_id": name}, dict(data), upsert=True)
        except PyMongoError:
            logger.exception("Error writing settings/%s", name)
            raise

    def unset_singleton_field(self, name: str, field: str) -> None:
        try:
            self.db[SETTINGS_COLLECTION].update_one({"_id": name}, {"$unset": {field: ""}})
        except PyMongoError:
            logger.exception("Error clearing settings/%s.%s", name, field)
            raise


store = DocumentStore(db) if db is not None else None


def get_store() -> DocumentStore:
    if store is None:
        raise RuntimeError("Database is not configured; set DATABASE_URL")
    return store

