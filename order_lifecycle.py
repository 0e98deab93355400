"""
Order fulfillment and payment-verification state machines.

The transition functions are pure: they take an Order and return a
Transition holding the new order, the dotted-path `$set` document to
persist, and the customer notifications to send. OptimisticCommand runs a
transition against AdminState and the store with snapshot/rollback.

Any fulfillment transition is allowed, including out of delivered or
cancelled; operators are trusted to pick the right status.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError
from pymongo.errors import PyMongoError

from app_state import AdminState
from database import DocumentStore, as_utc, utc_now
from errors import AdminError, NotFoundError, ValidationFailed
from schemas import COLLECTIONS, CodPaymentDetails, Notification, Order, UpiPaymentDetails

logger = logging.getLogger("grocery-admin.orders")

TRACKING_FIELDS = {
    "confirmed": "confirmed_at",
    "preparing": "preparing_at",
    "out_for_delivery": "out_for_delivery_at",
    "delivered": "delivered_at",
}

STATUS_NOTIFICATIONS = {
    "confirmed": {
        "title": "Order Confirmed! ✅",
        "message": "Your order #{order_number} has been confirmed and is being prepared.",
        "type": "order_update",
        "priority": "normal",
    },
    "preparing": {
        "title": "Order Being Prepared 👨‍🍳",
        "message": "Your order #{order_number} is now being prepared in the kitchen.",
        "type": "order_update",
        "priority": "normal",
    },
    "out_for_delivery": {
        "title": "Out for Delivery 🚚",
        "message": "Your order #{order_number} is now out for delivery and will reach you soon.",
        "type": "delivery_update",
        "priority": "normal",
    },
    "delivered": {
        "title": "Order Delivered! 🎉",
        "message": "Your order #{order_number} has been delivered successfully. Thank you for your order!",
        "type": "delivery_update",
        "priority": "high",
    },
    "cancelled": {
        "title": "Order Cancelled ❌",
        "message": "Your order #{order_number} has been cancelled. If you have any questions, please contact support.",
        "type": "order_update",
        "priority": "high",
    },
    "refunded": {
        "title": "Order Refunded 💰",
        "message": "Your order #{order_number} has been refunded. The amount will be credited back to your payment method.",
        "type": "order_update",
        "priority": "high",
    },
}

ORDER_STATUSES = ("placed", "confirmed", "preparing", "out_for_delivery", "delivered", "cancelled", "refunded")
PENDING_STATUSES = ORDER_STATUSES[:4]


@dataclass
class Transition:
    order: Order
    updates: Dict[str, object] = field(default_factory=dict)
    notifications: List[Notification] = field(default_factory=list)


def _customer_notification(order: Order, **fields) -> Notification:
    return Notification(
        order_id=order.id or "",
        order_number=order.order_number,
        customer_id=order.customer_id,
        customer_name=order.customer_name,
        customer_email=order.customer_email,
        total=order.total,
        target_audience="customer",
        **fields,
    )


def apply_status_transition(order: Order, new_status: str, now: Optional[datetime] = None) -> Transition:
    if new_status not in ORDER_STATUSES:
        raise ValidationFailed(f"Unknown order status: {new_status}")
    now = now or utc_now()
    new = order.model_copy(deep=True)
    updates: Dict[str, object] = {"status": new_status, "updated_at": now}
    new.status = new_status
    new.updated_at = now

    tracking_field = TRACKING_FIELDS.get(new_status)
    if tracking_field and getattr(new.order_tracking, tracking_field) is None:
        setattr(new.order_tracking, tracking_field, now)
        updates[f"order_tracking.{tracking_field}"] = now

    if new_status == "delivered":
        new.payment_status = "completed"
        new.delivery_slot.actual_delivery_time = now
        updates["payment_status"] = "completed"
        updates["delivery_slot.actual_delivery_time"] = now

    if new_status == "cancelled":
        new.is_cancellable = False
        new.is_refundable = True
        updates["is_cancellable"] = False
        updates["is_refundable"] = True

    notifications = []
    copy = STATUS_NOTIFICATIONS.get(new_status)
    if copy:
        notifications.append(_customer_notification(
            new,
            type=copy["type"],
            title=copy["title"],
            message=copy["message"].format(order_number=order.order_number),
            priority=copy["priority"],
        ))
    return Transition(order=new, updates=updates, notifications=notifications)


def apply_payment_verification(order: Order, status: str, reason: Optional[str] = None,
                               now: Optional[datetime] = None) -> Transition:
    if status not in ("verified", "rejected"):
        raise ValidationFailed(f"Unknown verification status: {status}")
    now = now or utc_now()
    new = order.model_copy(deep=True)

    details = new.payment_details
    replace_details = details is None
    if details is None:
        if new.payment_method != "cash_on_delivery":
            raise ValidationFailed(f"Order {order.order_number} has no UPI payment details to verify")
        details = CodPaymentDetails()

    if isinstance(details, UpiPaymentDetails):
        verified_message = (
            f"Your UPI payment for order #{order.order_number} (transaction {details.upi_transaction_id}) "
            f"has been verified successfully. Total: ₹{order.total:.2f}"
        )
    elif isinstance(details, CodPaymentDetails):
        verified_message = (
            f"Your payment for order #{order.order_number} has been verified successfully. "
            f"Total: ₹{order.total:.2f}"
        )
    else:
        raise TypeError(f"Unhandled payment details variant: {type(details).__name__}")

    details.verification_status = status
    details.verification_date = now
    updates: Dict[str, object] = {
        "payment_details.verification_status": status,
        "payment_details.verification_date": now,
        "updated_at": now,
    }
    if status == "rejected" and reason:
        details.rejection_reason = reason
        updates["payment_details.rejection_reason"] = reason

    new.payment_details = details
    new.payment_status = "completed" if status == "verified" else "failed"
    new.updated_at = now
    updates["payment_status"] = new.payment_status

    if replace_details:
        # Dotted paths cannot create fields under a null payment_details.
        for key in [k for k in updates if k.startswith("payment_details.")]:
            del updates[key]
        updates["payment_details"] = details.model_dump(exclude={"method"})

    if status == "verified":
        notification = _customer_notification(
            new,
            type="payment_verified",
            title="Payment Verified! ✅",
            message=verified_message,
            priority="normal",
        )
    else:
        hint = f"Reason: {reason}" if reason else "Please contact support for assistance."
        notification = _customer_notification(
            new,
            type="payment_rejected",
            title="Payment Verification Failed ❌",
            message=f"Your payment for order #{order.order_number} could not be verified. {hint}",
            priority="high",
        )
    notification.payment_method = new.payment_method
    notification.verification_status = status
    notification.rejection_reason = reason if status == "rejected" else None
    return Transition(order=new, updates=updates, notifications=[notification])


class OptimisticCommand:
    """Snapshot, apply locally, persist, then commit or roll back.

    The locally observable order in AdminState is replaced before the write
    and restored to the exact pre-update snapshot if the write fails. The
    write is conditional on the order's version token, so a concurrent admin
    change surfaces as ConflictError instead of being silently overwritten.
    """

    def __init__(self, state: AdminState, store: DocumentStore, action: str):
        self.state = state
        self.store = store
        self.action = action

    def run(self, order_id: str, apply: Callable[[Order], Transition]) -> Transition:
        coll = COLLECTIONS["orders"]
        with self.state.busy(self.action, order_id):
            current = Order.model_validate(self.store.require(coll, order_id))
            snapshot = self.state.get_order(order_id)

            transition = apply(current)
            self.state.upsert_order(transition.order)
            try:
                self.store.update(coll, order_id, transition.updates, expected_version=current.version)
            except Exception:
                self.state.restore_order(snapshot, order_id)
                logger.warning("Rolled back %s on order %s", self.action, order_id)
                raise

            transition.order.version = current.version + 1
            self.state.upsert_order(transition.order)

        for notification in transition.notifications:
            try:
                self.store.create(COLLECTIONS["notifications"], notification)
            except PyMongoError as exc:
                logger.error("Failed to create %s notification for order %s: %s",
                             notification.type, transition.order.order_number, exc)
        return transition


def update_order_status(state: AdminState, store: DocumentStore, order_id: str, new_status: str) -> Order:
    transition = OptimisticCommand(state, store, "status").run(
        order_id, lambda order: apply_status_transition(order, new_status)
    )
    logger.info("Order %s status updated to %s", order_id, new_status)
    return transition.order


def update_payment_verification(state: AdminState, store: DocumentStore, order_id: str,
                                status: str, reason: Optional[str] = None) -> Order:
    transition = OptimisticCommand(state, store, "verification").run(
        order_id, lambda order: apply_payment_verification(order, status, reason)
    )
    logger.info("Payment verification updated for order %s: %s", order_id, status)
    return transition.order


def _run_one(order_id: str, run: Callable[[], Order]) -> dict:
    try:
        order = run()
    except NotFoundError:
        return {"order_id": order_id, "ok": False, "error": "Order not found"}
    except AdminError as exc:
        return {"order_id": order_id, "ok": False, "error": str(exc.detail)}
    except ValidationError as exc:
        logger.error("Skipping malformed order %s in bulk update: %s", order_id, exc)
        return {"order_id": order_id, "ok": False, "error": "Stored order is malformed"}
    except PyMongoError as exc:
        logger.error("Database error on order %s in bulk update: %s", order_id, exc)
        return {"order_id": order_id, "ok": False, "error": "Database error"}
    return {"order_id": order_id, "ok": True, "status": order.status, "payment_status": order.payment_status}


def _bulk(jobs: List[Tuple[str, Callable[[], Order]]]) -> List[dict]:
    """Run each job on its own; one result per input entry, in input order."""
    results = []
    seen = set()
    for order_id, run in jobs:
        if order_id in seen:
            results.append({"order_id": order_id, "ok": False, "error": "Duplicate order id"})
            continue
        seen.add(order_id)
        results.append(_run_one(order_id, run))
    return results


def bulk_update_order_status(state: AdminState, store: DocumentStore, order_ids: List[str],
                             new_status: str) -> List[dict]:
    results = _bulk([
        (order_id, partial(update_order_status, state, store, order_id, new_status))
        for order_id in order_ids
    ])
    logger.info("Bulk status update to %s for %d order(s)", new_status, len(order_ids))
    return results


def bulk_update_payment_verification(state: AdminState, store: DocumentStore, updates: List[dict]) -> List[dict]:
    results = _bulk([
        (u["order_id"], partial(update_payment_verification, state, store, u["order_id"], u["status"], u.get("reason")))
        for u in updates
    ])
    logger.info("Bulk payment verification for %d order(s)", len(updates))
    return results


# ---------- Queries ----------

def order_statistics(orders: List[dict], today_start: datetime) -> dict:
    stats = {
        "total_orders": 0,
        "pending_orders": 0,
        "pending_payments": 0,
        "delivered_today": 0,
        "today_revenue": 0.0,
        "status_breakdown": {},
        "payment_breakdown": {},
    }
    for o in orders:
        stats["total_orders"] += 1
        status = o.get("status")
        method = o.get("payment_method")
        stats["status_breakdown"][status] = stats["status_breakdown"].get(status, 0) + 1
        stats["payment_breakdown"][method] = stats["payment_breakdown"].get(method, 0) + 1
        if status in PENDING_STATUSES:
            stats["pending_orders"] += 1
        if (o.get("payment_details") or {}).get("verification_status") == "pending":
            stats["pending_payments"] += 1
        created = as_utc(o.get("created_at"))
        if status == "delivered" and created is not None and created >= today_start:
            stats["delivered_today"] += 1
            stats["today_revenue"] += float(o.get("total", 0))
    stats["today_revenue"] = round(stats["today_revenue"], 2)
    return stats


def search_orders(orders: List[dict], term: str) -> List[dict]:
    needle = term.lower()
    matches = []
    for o in orders:
        haystack = " ".join(
            str(o.get(k) or "") for k in ("order_number", "customer_name", "customer_phone", "customer_email")
        ).lower()
        if needle in haystack:
            matches.append(o)
    return matches
