"""Delivery partners and delivery assignments."""
import logging
from datetime import datetime
from typing import List

from database import DocumentStore, as_utc, oid, utc_now
from schemas import COLLECTIONS, DeliveryPartner

logger = logging.getLogger("grocery-admin.deliveries")


def create_partner(store: DocumentStore, partner: DeliveryPartner, hash_password) -> str:
    doc = partner.model_dump()
    if doc.get("password"):
        doc["password"] = hash_password(doc["password"])
    # New partners wait for admin approval before taking deliveries.
    doc.update({
        "admin_approved": False,
        "status": "inactive",
        "rating": 0,
        "total_deliveries": 0,
    })
    return store.create(COLLECTIONS["delivery_partners"], doc)


def bulk_set_status(store: DocumentStore, collection_name: str, ids: List[str], status: str) -> int:
    now = utc_now()
    res = store.db[collection_name].update_many(
        {"_id": {"$in": [oid(i) for i in ids]}},
        {"$set": {"status": status, "updated_at": now}},
    )
    return res.modified_count


def assign_delivery(store: DocumentStore, order_id: str, partner_id: str) -> str:
    store.require(COLLECTIONS["orders"], order_id)
    partner = store.require(COLLECTIONS["delivery_partners"], partner_id)
    now = utc_now()
    delivery_id = store.create(COLLECTIONS["deliveries"], {
        "order_id": order_id,
        "delivery_partner_id": partner_id,
        "earnings": partner.get("earning_per_delivery") or 0,
        "distance": 0,
        "status": "active",
        "start_time": now,
    })
    logger.info("Assigned order %s to partner %s (delivery %s)", order_id, partner_id, delivery_id)
    return delivery_id


def delivery_statistics(deliveries: List[dict], today_start: datetime) -> dict:
    stats = {"total_deliveries": 0, "active_deliveries": 0, "delivered_today": 0, "total_earnings": 0.0}
    for d in deliveries:
        stats["total_deliveries"] += 1
        status = d.get("status")
        if status == "active":
            stats["active_deliveries"] += 1
        if status == "delivered":
            started = as_utc(d.get("start_time"))
            if started is not None and started >= today_start:
                stats["delivered_today"] += 1
            stats["total_earnings"] += float(d.get("earnings") or 0)
    return stats
