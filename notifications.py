"""Admin-facing notification feed (the bell in the panel header)."""
from typing import List

from pymongo import DESCENDING

from database import DocumentStore, oid, to_public, utc_now
from errors import NotFoundError
from schemas import COLLECTIONS, Notification

ADMIN_FILTER = {"target_audience": "admin"}


def admin_notifications(store: DocumentStore, limit: int = 20) -> List[dict]:
    cursor = (
        store.db[COLLECTIONS["notifications"]]
        .find(ADMIN_FILTER)
        .sort("created_at", DESCENDING)
        .limit(limit)
    )
    return [to_public(d) for d in cursor]


def unread_count(store: DocumentStore) -> int:
    return store.db[COLLECTIONS["notifications"]].count_documents({**ADMIN_FILTER, "is_read": False})


def mark_read(store: DocumentStore, notification_id: str) -> None:
    res = store.db[COLLECTIONS["notifications"]].update_one(
        {"_id": oid(notification_id)},
        {"$set": {"is_read": True, "read_at": utc_now()}},
    )
    if res.matched_count == 0:
        raise NotFoundError("Notification not found")


def mark_all_read(store: DocumentStore) -> int:
    res = store.db[COLLECTIONS["notifications"]].update_many(
        {**ADMIN_FILTER, "is_read": False},
        {"$set": {"is_read": True, "read_at": utc_now()}},
    )
    return res.modified_count


def create_admin_notification(store: DocumentStore, notification: Notification) -> str:
    doc = notification.model_dump()
    doc["target_audience"] = "admin"
    return store.create(COLLECTIONS["notifications"], doc)
