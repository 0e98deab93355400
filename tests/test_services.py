from datetime import datetime, timedelta, timezone

import httpx
import pytest

import config
from catalog import discount_percentage, discounted_price, prepare_product
from conftest import order_doc
from deliveries import assign_delivery, bulk_set_status, create_partner, delivery_statistics
from errors import NotFoundError, UpstreamError, ValidationFailed
from notifications import admin_notifications, mark_all_read, mark_read, unread_count
from schemas import COLLECTIONS, DeliveryPartner, Notification, Product
from uploads import upload_image

VEG = {"id": "cat-veg", "name": "Vegetables"}
FARM = {"id": "ven-1", "name": "Green Farms"}


# ---------- Catalog ----------

def test_discount_arithmetic():
    assert discount_percentage(200, 150) == 25
    assert discount_percentage(100, 100) == 0
    assert discounted_price(200, 10) == 180
    assert discounted_price(200, 0) == 200


def test_prepare_product_derives_price_from_percentage():
    doc = prepare_product(Product(name="Apples", price=120, has_discount=True, discount_percentage=25,
                                  categories=[VEG], vendors=[FARM]))
    assert doc["discounted_price"] == 90
    assert doc["discount_percentage"] == 25


def test_prepare_product_without_discount_drops_fields():
    doc = prepare_product(Product(name="Apples", price=120, discounted_price=100, categories=[VEG], vendors=[FARM]))
    assert "discounted_price" not in doc
    assert "discount_percentage" not in doc


@pytest.mark.parametrize("fields,message", [
    ({"vendors": []}, "Please select at least one vendor"),
    ({"categories": []}, "Please select at least one category"),
    ({"has_discount": True, "discounted_price": 0}, "Discounted price must be greater than 0"),
    ({"has_discount": True}, "Discounted price is required when a discount is enabled"),
])
def test_prepare_product_rejects(fields, message):
    data = {"name": "Apples", "price": 120, "categories": [VEG], "vendors": [FARM], **fields}
    with pytest.raises(ValidationFailed) as exc:
        prepare_product(Product(**data))
    assert exc.value.detail == message


# ---------- Uploads ----------

def _client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_upload_returns_secure_url(monkeypatch):
    monkeypatch.setattr(config, "IMAGE_UPLOAD_URL", "https://images.test/upload")
    monkeypatch.setattr(config, "IMAGE_UPLOAD_PRESET", "grocery")
    seen = {}

    def handler(request):
        seen["body"] = request.content
        return httpx.Response(200, json={"secure_url": "https://cdn.test/p/apple.png"})

    with _client(handler) as client:
        url = upload_image(client, "apple.png", b"\x89PNG...", "image/png", folder="Products")
    assert url == "https://cdn.test/p/apple.png"
    assert b"grocery" in seen["body"]
    assert b"apple.png" in seen["body"]


def test_upload_rejects_non_images_and_large_files(monkeypatch):
    monkeypatch.setattr(config, "IMAGE_UPLOAD_URL", "https://images.test/upload")
    monkeypatch.setattr(config, "MAX_IMAGE_BYTES", 10)
    with _client(lambda r: httpx.Response(200, json={})) as client:
        with pytest.raises(ValidationFailed):
            upload_image(client, "notes.txt", b"hello", "text/plain")
        with pytest.raises(ValidationFailed):
            upload_image(client, "big.png", b"x" * 11, "image/png")


def test_upload_host_failure_is_upstream_error(monkeypatch, caplog):
    monkeypatch.setattr(config, "IMAGE_UPLOAD_URL", "https://images.test/upload")
    with _client(lambda r: httpx.Response(500, text="boom")) as client:
        with pytest.raises(UpstreamError):
            upload_image(client, "apple.png", b"png", "image/png")
    rejected = [r for r in caplog.records if r.name == "grocery-admin.uploads"]
    assert rejected[0].args == (500, "boom")
    assert rejected[0].getMessage() == "Image host rejected upload (500): boom"


def test_upload_network_error_is_logged_with_args(monkeypatch, caplog):
    monkeypatch.setattr(config, "IMAGE_UPLOAD_URL", "https://images.test/upload")

    def handler(request):
        raise httpx.ConnectError("connection refused")

    with _client(handler) as client:
        with pytest.raises(UpstreamError):
            upload_image(client, "apple.png", b"png", "image/png")
    [record] = [r for r in caplog.records if r.name == "grocery-admin.uploads"]
    assert record.getMessage() == "Image upload failed: connection refused"


def test_upload_without_host_configured(monkeypatch):
    monkeypatch.setattr(config, "IMAGE_UPLOAD_URL", "")
    with _client(lambda r: httpx.Response(200, json={})) as client:
        with pytest.raises(UpstreamError):
            upload_image(client, "apple.png", b"png", "image/png")


# ---------- Deliveries ----------

def test_new_partner_waits_for_approval(store):
    pid = create_partner(store, DeliveryPartner(name="Sunil", email="sunil@grocer.in", phone="900",
                                                password="ride-safe"), lambda pw: f"hashed:{pw}")
    doc = store.require(COLLECTIONS["delivery_partners"], pid)
    assert doc["admin_approved"] is False
    assert doc["status"] == "inactive"
    assert doc["password"] == "hashed:ride-safe"


def test_assign_requires_existing_order_and_partner(store):
    pid = create_partner(store, DeliveryPartner(name="Sunil", email="sunil@grocer.in", phone="900",
                                                earning_per_delivery=40), str)
    with pytest.raises(NotFoundError):
        assign_delivery(store, "64b0000000000000000000ff", pid)
    order_id = store.create(COLLECTIONS["orders"], order_doc())
    did = assign_delivery(store, order_id, pid)
    assert store.require(COLLECTIONS["deliveries"], did)["earnings"] == 40


def test_bulk_partner_status(store):
    ids = [create_partner(store, DeliveryPartner(name=n, email=f"{n}@grocer.in", phone="9"), str)
           for n in ("a", "b")]
    assert bulk_set_status(store, COLLECTIONS["delivery_partners"], ids, "online") == 2
    assert {p["status"] for p in store.list(COLLECTIONS["delivery_partners"])} == {"online"}


def test_delivery_statistics():
    today = datetime(2026, 10, 16, 18, 30, tzinfo=timezone.utc)
    deliveries = [
        {"status": "active", "earnings": 30, "start_time": today + timedelta(hours=1)},
        {"status": "delivered", "earnings": 40, "start_time": today + timedelta(hours=2)},
        {"status": "delivered", "earnings": 25, "start_time": today - timedelta(days=1)},
    ]
    stats = delivery_statistics(deliveries, today)
    assert stats == {"total_deliveries": 3, "active_deliveries": 1, "delivered_today": 1, "total_earnings": 65.0}


# ---------- Notifications ----------

def test_admin_feed_excludes_customer_notifications(store):
    store.create(COLLECTIONS["notifications"], Notification(type="order_update", title="c", message="m"))
    store.create(COLLECTIONS["notifications"],
                 Notification(type="new_order", title="a", message="m", target_audience="admin"))
    store.create(COLLECTIONS["notifications"],
                 Notification(type="new_order", title="b", message="m", target_audience="admin"))

    assert {n["title"] for n in admin_notifications(store)} == {"a", "b"}
    assert unread_count(store) == 2
    assert mark_all_read(store) == 2
    assert unread_count(store) == 0


def test_mark_read_missing_notification(store):
    with pytest.raises(NotFoundError):
        mark_read(store, "64b0000000000000000000ff")
