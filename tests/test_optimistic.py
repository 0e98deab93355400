import pytest
from pymongo.errors import PyMongoError

from conftest import UPI_DETAILS
from database import oid
from errors import ConflictError, NotFoundError, UpdateInProgress
from order_lifecycle import (
    OptimisticCommand,
    apply_status_transition,
    bulk_update_order_status,
    bulk_update_payment_verification,
    update_order_status,
    update_payment_verification,
)
from schemas import COLLECTIONS, Order


def load_into_state(state, store, order_id):
    state.upsert_order(Order.model_validate(store.require(COLLECTIONS["orders"], order_id)))
    return state.get_order(order_id)


def notifications(store):
    return store.list(COLLECTIONS["notifications"])


def test_status_update_persists_and_bumps_version(state, store, make_order):
    order_id = make_order()
    updated = update_order_status(state, store, order_id, "confirmed")

    assert updated.version == 1
    stored = store.require(COLLECTIONS["orders"], order_id)
    assert stored["status"] == "confirmed"
    assert stored["version"] == 1
    assert stored["order_tracking"]["confirmed_at"] is not None
    assert stored["order_tracking"]["placed_at"] is not None
    assert state.get_order(order_id).status == "confirmed"
    assert [n["title"] for n in notifications(store)] == ["Order Confirmed! ✅"]


def test_failed_write_restores_exact_snapshot(state, store, make_order, monkeypatch):
    order_id = make_order()
    before = load_into_state(state, store, order_id)

    def fail(*args, **kwargs):
        raise PyMongoError("write concern timeout")

    monkeypatch.setattr(store, "update", fail)
    with pytest.raises(PyMongoError):
        update_order_status(state, store, order_id, "delivered")

    assert state.get_order(order_id) == before
    assert store.require(COLLECTIONS["orders"], order_id)["status"] == "placed"
    assert notifications(store) == []
    assert not state.is_busy("status", order_id)


def test_failed_write_without_local_copy_leaves_state_empty(state, store, make_order, monkeypatch):
    order_id = make_order()

    def fail(*args, **kwargs):
        raise PyMongoError("down")

    monkeypatch.setattr(store, "update", fail)
    with pytest.raises(PyMongoError):
        update_order_status(state, store, order_id, "confirmed")
    assert state.get_order(order_id) is None


def test_concurrent_change_is_a_conflict(state, store, make_order):
    order_id = make_order()
    before = load_into_state(state, store, order_id)

    def racing(order):
        # Another admin confirms the order while this one is deciding.
        store.db[COLLECTIONS["orders"]].update_one({"_id": oid(order_id)}, {"$set": {"version": 1}})
        return apply_status_transition(order, "cancelled")

    with pytest.raises(ConflictError):
        OptimisticCommand(state, store, "status").run(order_id, racing)
    assert state.get_order(order_id) == before
    assert store.require(COLLECTIONS["orders"], order_id)["status"] == "placed"


def test_second_update_while_busy_is_refused(state, store, make_order):
    order_id = make_order()
    with state.busy("status", order_id):
        with pytest.raises(UpdateInProgress):
            update_order_status(state, store, order_id, "confirmed")
    # Other actions on the same order are independent.
    update_payment_verification(state, store, order_id, "verified")


def test_missing_order_is_not_found(state, store):
    with pytest.raises(NotFoundError):
        update_order_status(state, store, "64b0000000000000000000ff", "confirmed")


def test_notification_failure_does_not_undo_transition(state, store, make_order, monkeypatch):
    order_id = make_order()

    def no_notifications(collection_name, data):
        raise PyMongoError("notifications unavailable")

    monkeypatch.setattr(store, "create", no_notifications)
    updated = update_order_status(state, store, order_id, "out_for_delivery")
    assert updated.status == "out_for_delivery"
    assert store.require(COLLECTIONS["orders"], order_id)["status"] == "out_for_delivery"


def test_upi_verification_persists_dotted_fields(state, store, make_order):
    order_id = make_order(payment_method="upi_online", payment_details=dict(UPI_DETAILS))
    update_payment_verification(state, store, order_id, "rejected", "blurry screenshot")

    stored = store.require(COLLECTIONS["orders"], order_id)
    assert stored["payment_status"] == "failed"
    assert stored["payment_details"]["verification_status"] == "rejected"
    assert stored["payment_details"]["rejection_reason"] == "blurry screenshot"
    assert stored["payment_details"]["upi_transaction_id"] == "T4471"
    note = notifications(store)[0]
    assert "Reason: blurry screenshot" in note["message"]


def test_bulk_status_reports_each_order(state, store, make_order):
    first = make_order()
    second = make_order(order_number="ORD-1002")
    missing = "64b0000000000000000000ff"

    results = bulk_update_order_status(state, store, [first, missing, second], "confirmed")
    assert [r["ok"] for r in results] == [True, False, True]
    assert results[1]["error"] == "Order not found"
    assert len(notifications(store)) == 2


def test_bulk_verification(state, store, make_order):
    first = make_order(payment_method="upi_online", payment_details=dict(UPI_DETAILS))
    second = make_order(order_number="ORD-1002")
    results = bulk_update_payment_verification(state, store, [
        {"order_id": first, "status": "verified"},
        {"order_id": second, "status": "rejected", "reason": "cash short"},
    ])
    assert [(r["ok"], r["payment_status"]) for r in results] == [(True, "completed"), (True, "failed")]


def test_bulk_keeps_going_past_a_malformed_order(state, store, make_order):
    first = make_order()
    broken = store.create(COLLECTIONS["orders"], {"order_number": "broken"})
    third = make_order(order_number="ORD-1003")

    results = bulk_update_order_status(state, store, [first, broken, third], "confirmed")
    assert [r["ok"] for r in results] == [True, False, True]
    assert results[1]["error"] == "Stored order is malformed"
    assert store.require(COLLECTIONS["orders"], first)["status"] == "confirmed"
    assert store.require(COLLECTIONS["orders"], third)["status"] == "confirmed"


def test_bulk_reports_database_error_per_order(state, store, make_order, monkeypatch):
    first = make_order()
    second = make_order(order_number="ORD-1002")
    real_update = store.update

    def flaky(collection_name, doc_id, data, expected_version=None):
        if doc_id == first:
            raise PyMongoError("primary stepped down")
        return real_update(collection_name, doc_id, data, expected_version=expected_version)

    monkeypatch.setattr(store, "update", flaky)
    results = bulk_update_order_status(state, store, [first, second], "preparing")
    assert [(r["ok"], r.get("error")) for r in results] == [(False, "Database error"), (True, None)]
    assert store.require(COLLECTIONS["orders"], first)["status"] == "placed"


def test_bulk_verification_reports_repeated_ids(state, store, make_order):
    order_id = make_order()
    results = bulk_update_payment_verification(state, store, [
        {"order_id": order_id, "status": "verified"},
        {"order_id": order_id, "status": "rejected", "reason": "second thoughts"},
    ])
    assert len(results) == 2
    assert results[0]["ok"] is True
    assert results[1] == {"order_id": order_id, "ok": False, "error": "Duplicate order id"}
    assert store.require(COLLECTIONS["orders"], order_id)["payment_status"] == "completed"
