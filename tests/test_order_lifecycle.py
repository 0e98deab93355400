from datetime import datetime, timedelta, timezone

import pytest

from conftest import UPI_DETAILS, order_doc
from errors import ValidationFailed
from order_lifecycle import (
    apply_payment_verification,
    apply_status_transition,
    order_statistics,
    search_orders,
)
from schemas import CodPaymentDetails, Order, UpiPaymentDetails

T0 = datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc)


def order(**overrides):
    return Order.model_validate({"id": "o1", **order_doc(**overrides)})


def upi_order(**overrides):
    return order(payment_method="upi_online", payment_details=dict(UPI_DETAILS), **overrides)


def test_payment_details_are_tagged_from_payment_method():
    assert isinstance(upi_order().payment_details, UpiPaymentDetails)
    cod = order(payment_details={"verification_status": "pending"})
    assert isinstance(cod.payment_details, CodPaymentDetails)


def test_confirm_stamps_tracking_and_notifies_customer():
    t = apply_status_transition(order(), "confirmed", now=T0)
    assert t.order.status == "confirmed"
    assert t.order.order_tracking.confirmed_at == T0
    assert t.updates["order_tracking.confirmed_at"] == T0
    assert len(t.notifications) == 1
    note = t.notifications[0]
    assert note.title == "Order Confirmed! ✅"
    assert "ORD-1001" in note.message
    assert note.customer_id == "cust-1"
    assert note.target_audience == "customer"


def test_tracking_timestamp_is_first_write_wins():
    first = apply_status_transition(order(), "confirmed", now=T0).order
    again = apply_status_transition(first, "confirmed", now=T0 + timedelta(hours=1))
    assert again.order.order_tracking.confirmed_at == T0
    assert "order_tracking.confirmed_at" not in again.updates


@pytest.mark.parametrize("prior", ["pending", "failed", "refunded", "completed"])
def test_delivered_completes_payment(prior):
    t = apply_status_transition(order(payment_status=prior), "delivered", now=T0)
    assert t.order.payment_status == "completed"
    assert t.order.delivery_slot.actual_delivery_time == T0
    assert t.order.order_tracking.delivered_at == T0
    assert t.notifications[0].priority == "high"


def test_cancelled_flags_refundable():
    t = apply_status_transition(order(), "cancelled", now=T0)
    assert t.order.is_cancellable is False
    assert t.order.is_refundable is True
    assert t.updates["is_refundable"] is True


def test_placed_sends_no_notification():
    t = apply_status_transition(order(status="confirmed"), "placed", now=T0)
    assert t.order.status == "placed"
    assert t.notifications == []


def test_unknown_status_is_rejected():
    with pytest.raises(ValidationFailed):
        apply_status_transition(order(), "lost")


def test_placed_confirmed_delivered_scenario():
    o = order()
    notes = []
    for status, at in (("confirmed", T0), ("delivered", T0 + timedelta(minutes=40))):
        t = apply_status_transition(o, status, now=at)
        o = t.order
        notes.extend(t.notifications)
    assert o.order_tracking.confirmed_at == T0
    assert o.order_tracking.delivered_at == T0 + timedelta(minutes=40)
    assert o.payment_status == "completed"
    assert [n.title for n in notes] == ["Order Confirmed! ✅", "Order Delivered! 🎉"]


def test_upi_rejection_records_reason():
    t = apply_payment_verification(upi_order(), "rejected", "blurry screenshot", now=T0)
    details = t.order.payment_details
    assert details.verification_status == "rejected"
    assert details.rejection_reason == "blurry screenshot"
    assert details.verification_date == T0
    assert t.order.payment_status == "failed"
    assert t.updates["payment_details.rejection_reason"] == "blurry screenshot"

    note = t.notifications[0]
    assert note.type == "payment_rejected"
    assert "Reason: blurry screenshot" in note.message
    assert note.priority == "high"
    assert note.rejection_reason == "blurry screenshot"


def test_rejection_without_reason_points_to_support():
    t = apply_payment_verification(upi_order(), "rejected", now=T0)
    assert t.order.payment_details.rejection_reason is None
    assert "contact support" in t.notifications[0].message


def test_upi_verification_mentions_transaction():
    t = apply_payment_verification(upi_order(), "verified", now=T0)
    assert t.order.payment_status == "completed"
    assert "T4471" in t.notifications[0].message
    assert t.notifications[0].verification_status == "verified"
    assert t.notifications[0].rejection_reason is None


def test_cod_without_details_gets_them_created():
    t = apply_payment_verification(order(), "verified", now=T0)
    assert isinstance(t.order.payment_details, CodPaymentDetails)
    assert t.updates["payment_details"]["verification_status"] == "verified"
    assert not any(k.startswith("payment_details.") for k in t.updates)


def test_upi_without_details_cannot_be_verified():
    with pytest.raises(ValidationFailed):
        apply_payment_verification(order(payment_method="upi_online"), "verified")


def test_order_statistics():
    today = datetime(2026, 10, 16, 18, 30, tzinfo=timezone.utc)
    orders = [
        order_doc(status="delivered", total=250, created_at=today + timedelta(hours=2)),
        order_doc(status="delivered", total=90, created_at=today - timedelta(hours=3)),
        order_doc(status="preparing", payment_method="upi_online",
                  payment_details=dict(UPI_DETAILS), created_at=today + timedelta(hours=1)),
        order_doc(status="cancelled", created_at=today + timedelta(hours=1)),
    ]
    stats = order_statistics(orders, today)
    assert stats["total_orders"] == 4
    assert stats["pending_orders"] == 1
    assert stats["pending_payments"] == 1
    assert stats["delivered_today"] == 1
    assert stats["today_revenue"] == 250.0
    assert stats["status_breakdown"]["delivered"] == 2
    assert stats["payment_breakdown"] == {"cash_on_delivery": 3, "upi_online": 1}


def test_search_matches_number_name_and_phone():
    orders = [order_doc(), order_doc(order_number="ORD-2002", customer_name="Meera", customer_phone="9000000001")]
    assert [o["order_number"] for o in search_orders(orders, "meera")] == ["ORD-2002"]
    assert [o["order_number"] for o in search_orders(orders, "1001")] == ["ORD-1001"]
    assert len(search_orders(orders, "ord-")) == 2
