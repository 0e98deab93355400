from datetime import datetime, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient

import main
from app_state import AdminState
from database import DocumentStore
from schemas import COLLECTIONS

ADMIN = {
    "id": "64b000000000000000000001",
    "name": "Asha Rao",
    "email": "asha@grocer.in",
    "role": "admin",
    "is_active": True,
}
SUBADMIN = {**ADMIN, "id": "64b000000000000000000002", "email": "vik@grocer.in", "role": "subadmin"}


def order_doc(**overrides):
    doc = {
        "order_number": "ORD-1001",
        "customer_id": "cust-1",
        "customer_name": "Ravi Kumar",
        "customer_phone": "9876543210",
        "customer_email": "ravi@grocer.in",
        "items": [
            {"product_id": "p1", "product_name": "Tomatoes", "quantity": 2, "price": 40, "total": 80},
        ],
        "subtotal": 80,
        "delivery_fee": 20,
        "total": 100,
        "status": "placed",
        "payment_status": "pending",
        "payment_method": "cash_on_delivery",
        "payment_details": None,
        "order_tracking": {"placed_at": datetime(2026, 10, 17, 8, 0, tzinfo=timezone.utc)},
        "is_cancellable": True,
        "is_refundable": False,
    }
    doc.update(overrides)
    return doc


UPI_DETAILS = {
    "upi_transaction_id": "T4471",
    "payment_screenshot": "https://img.grocer.in/pay/4471.png",
    "upi_id": "freshmart@okaxis",
    "verification_status": "pending",
}


@pytest.fixture
def store():
    return DocumentStore(mongomock.MongoClient()["grocery_admin_test"])


@pytest.fixture
def state():
    return AdminState()


@pytest.fixture
def make_order(store):
    def _make(**overrides):
        return store.create(COLLECTIONS["orders"], order_doc(**overrides))
    return _make


def _client(store, state, user):
    main.app.dependency_overrides[main.get_store] = lambda: store
    main.app.dependency_overrides[main.get_state] = lambda: state
    if user is not None:
        main.app.dependency_overrides[main.get_current_user] = lambda: dict(user)
    return TestClient(main.app)


@pytest.fixture
def client(store, state):
    yield _client(store, state, ADMIN)
    main.app.dependency_overrides.clear()


@pytest.fixture
def subadmin_client(store, state):
    yield _client(store, state, SUBADMIN)
    main.app.dependency_overrides.clear()


@pytest.fixture
def anon_client(store, state):
    yield _client(store, state, None)
    main.app.dependency_overrides.clear()
