import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, EmailStr, Field

import config
import database
from app_state import AdminState
from catalog import prepare_product
from database import DocumentStore, utc_now
from deliveries import assign_delivery, bulk_set_status, create_partner, delivery_statistics
from errors import AdminError, ValidationFailed
from notifications import admin_notifications, create_admin_notification, mark_all_read, mark_read, unread_count
from order_lifecycle import (
    bulk_update_order_status,
    bulk_update_payment_verification,
    order_statistics,
    search_orders,
    update_order_status,
    update_payment_verification,
)
from reports import dashboard_metrics, sales_series
from schemas import (
    COLLECTIONS,
    BulkDeliveryStatus,
    BulkPartnerStatus,
    BulkPaymentVerification,
    BulkStatusUpdate,
    Category,
    CategoryReference,
    CategoryUpdate,
    DeliveryAssignment,
    DeliveryPartner,
    DeliveryPartnerUpdate,
    DeliveryStatusUpdate,
    Notification,
    PartnerApproval,
    PartnerStatusUpdate,
    PaymentVerificationUpdate,
    Product,
    StatusUpdate,
    TimeRule,
    TimeSlot,
    TimeSlotUpdate,
    UpiPaymentMethod,
    UpiPaymentMethodUpdate,
    User as UserSchema,
    UserUpdate,
    Vendor,
    VendorUpdate,
)
from time_rules import (
    categories_available_at,
    delete_time_slot,
    get_time_rules,
    list_time_slots,
    local_now,
    prune_orphaned_rules,
    save_rules,
    seed_default_time_slots,
    toggle_category_for_slot,
)
from uploads import get_http_client, upload_image

# ----- Logging -----
logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] [grocery-admin] %(name)s: %(message)s",
)
logger = logging.getLogger("grocery-admin")

# ---------- Auth setup ----------
# Older user rows hold plaintext passwords; they verify once and get re-hashed.
pwd_context = CryptContext(schemes=["bcrypt", "plaintext"], deprecated=["plaintext"])
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class TokenData(BaseModel):
    user_id: Optional[str] = None
    role: Optional[str] = None


# ---------- Shared state ----------
state = AdminState()


def get_store() -> DocumentStore:
    return database.get_store()


def get_state() -> AdminState:
    return state


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.store is not None:
        state.attach(database.store)
    yield
    state.detach()


# ---------- FastAPI app ----------
app = FastAPI(title="Grocery Admin API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AdminError)
async def admin_error_handler(request, exc: AdminError):
    if exc.status_code >= 500:
        logger.error("%s: %s", exc.message, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": True, "message": exc.message, "details": exc.detail, "status_code": exc.status_code},
    )


# ---------- Utility helpers ----------
class UserPublic(BaseModel):
    id: str
    name: str
    email: EmailStr
    role: str
    avatar: Optional[str] = None
    is_active: bool = True
    managed_category: Optional[str] = None
    last_login: Optional[datetime] = None


def doc_to_public_user(doc) -> UserPublic:
    return UserPublic(
        id=str(doc.get("id") or doc.get("_id")),
        name=doc.get("name"),
        email=doc.get("email"),
        role=doc.get("role", "subadmin"),
        avatar=doc.get("avatar"),
        is_active=doc.get("is_active", True),
        managed_category=doc.get("managed_category"),
        last_login=doc.get("last_login"),
    )


def today_start_utc() -> datetime:
    midnight = local_now().replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight.astimezone(timezone.utc)


def live_docs(app_state: AdminState, store: DocumentStore, name: str) -> List[dict]:
    docs = app_state.documents(name)
    return docs if docs is not None else store.list(name)


async def get_current_user(token: str = Depends(oauth2_scheme), store: DocumentStore = Depends(get_store)):
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
        user_id: str = payload.get("sub")
        role: str = payload.get("role")
        if user_id is None:
            raise credentials_exception
        token_data = TokenData(user_id=user_id, role=role)
    except JWTError:
        raise credentials_exception

    try:
        user = store.get_by_id(COLLECTIONS["users"], token_data.user_id)
    except ValidationFailed:
        raise credentials_exception
    if not user or not user.get("is_active", True):
        raise credentials_exception
    return user


def require_admin(user=Depends(get_current_user)):
    if user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin privileges required")
    return user


# ---------- Health ----------
@app.get("/")
def read_root():
    return {"message": "Grocery Admin API"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if config.DATABASE_URL else "❌ Not Set",
        "database_name": "✅ Set" if config.DATABASE_NAME else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
        "loading": state.loading,
        "subscription_errors": state.errors,
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Available"
            response["connection_status"] = "Connected"
            response["collections"] = database.db.list_collection_names()
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# ---------- Auth Endpoints ----------
class LoginPayload(BaseModel):
    email: EmailStr
    password: str


@app.post("/auth/login", response_model=Token)
def login(payload: LoginPayload, store: DocumentStore = Depends(get_store)):
    users = store.db[COLLECTIONS["users"]]
    user = users.find_one({"email": payload.email, "is_active": True})
    if not user:
        raise HTTPException(status_code=400, detail="Invalid email or password")
    valid, new_hash = pwd_context.verify_and_update(payload.password, user.get("password", ""))
    if not valid:
        raise HTTPException(status_code=400, detail="Invalid email or password")

    update = {"last_login": utc_now()}
    if new_hash:
        update["password"] = new_hash
    store.update(COLLECTIONS["users"], str(user["_id"]), update)
    logger.info("Admin %s logged in", payload.email)
    access_token = create_access_token(data={"sub": str(user["_id"]), "role": user.get("role", "subadmin")})
    return Token(access_token=access_token)


@app.get("/auth/me", response_model=UserPublic)
def me(user=Depends(get_current_user)):
    return doc_to_public_user(user)


# ---------- Admin Users ----------
@app.get("/users", response_model=List[UserPublic])
def list_users(admin=Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return [doc_to_public_user(d) for d in store.list(COLLECTIONS["users"])]


@app.post("/users", response_model=UserPublic, status_code=201)
def create_user(payload: UserSchema, admin=Depends(require_admin), store: DocumentStore = Depends(get_store)):
    if store.db[COLLECTIONS["users"]].find_one({"email": payload.email}):
        raise HTTPException(status_code=400, detail="Email already registered")
    doc = payload.model_dump()
    doc["password"] = hash_password(payload.password)
    uid = store.create(COLLECTIONS["users"], doc)
    return doc_to_public_user(store.get_by_id(COLLECTIONS["users"], uid))


@app.put("/users/{user_id}", response_model=UserPublic)
def update_user(user_id: str, payload: UserUpdate, admin=Depends(require_admin),
                store: DocumentStore = Depends(get_store)):
    data = payload.model_dump(exclude_unset=True)
    if data.get("password"):
        data["password"] = hash_password(data["password"])
    store.update(COLLECTIONS["users"], user_id, data)
    return doc_to_public_user(store.get_by_id(COLLECTIONS["users"], user_id))


@app.delete("/users/{user_id}")
def delete_user(user_id: str, admin=Depends(require_admin), store: DocumentStore = Depends(get_store)):
    if user_id == admin["id"]:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")
    store.delete(COLLECTIONS["users"], user_id)
    return {"deleted": True}


# ---------- Categories ----------
@app.get("/categories")
def list_categories(active: Optional[bool] = None, user=Depends(get_current_user),
                    store: DocumentStore = Depends(get_store)):
    return store.list(COLLECTIONS["categories"], {"is_active": active})


@app.post("/categories", status_code=201)
def create_category(category: Category, admin=Depends(require_admin), store: DocumentStore = Depends(get_store)):
    cid = store.create(COLLECTIONS["categories"], category)
    return store.get_by_id(COLLECTIONS["categories"], cid)


@app.put("/categories/{category_id}")
def update_category(category_id: str, category: CategoryUpdate, admin=Depends(require_admin),
                    store: DocumentStore = Depends(get_store)):
    # Products keep the name snapshot they embedded; nothing is cascaded.
    store.update(COLLECTIONS["categories"], category_id, category.model_dump(exclude_unset=True))
    return store.get_by_id(COLLECTIONS["categories"], category_id)


@app.delete("/categories/{category_id}")
def delete_category(category_id: str, admin=Depends(require_admin), store: DocumentStore = Depends(get_store)):
    store.delete(COLLECTIONS["categories"], category_id)
    return {"deleted": True}


# ---------- Vendors ----------
@app.get("/vendors")
def list_vendors(active: Optional[bool] = None, user=Depends(get_current_user),
                 store: DocumentStore = Depends(get_store)):
    return store.list(COLLECTIONS["vendors"], {"is_active": active})


@app.post("/vendors", status_code=201)
def create_vendor(vendor: Vendor, admin=Depends(require_admin), store: DocumentStore = Depends(get_store)):
    vid = store.create(COLLECTIONS["vendors"], vendor)
    return store.get_by_id(COLLECTIONS["vendors"], vid)


@app.put("/vendors/{vendor_id}")
def update_vendor(vendor_id: str, vendor: VendorUpdate, admin=Depends(require_admin),
                  store: DocumentStore = Depends(get_store)):
    store.update(COLLECTIONS["vendors"], vendor_id, vendor.model_dump(exclude_unset=True))
    return store.get_by_id(COLLECTIONS["vendors"], vendor_id)


@app.delete("/vendors/{vendor_id}")
def delete_vendor(vendor_id: str, admin=Depends(require_admin), store: DocumentStore = Depends(get_store)):
    store.delete(COLLECTIONS["vendors"], vendor_id)
    return {"deleted": True}


# ---------- Products ----------
@app.get("/products")
def list_products(
    category_id: Optional[str] = None,
    vendor_id: Optional[str] = None,
    available: Optional[bool] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200),
    user=Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    filters = {"categories.id": category_id, "vendors.id": vendor_id, "available": available}
    return store.get_paginated(COLLECTIONS["products"], page, page_size, filters)


@app.get("/products/{product_id}")
def get_product(product_id: str, user=Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    return store.require(COLLECTIONS["products"], product_id)


@app.post("/products", status_code=201)
def create_product(product: Product, admin=Depends(require_admin), store: DocumentStore = Depends(get_store)):
    pid = store.create(COLLECTIONS["products"], prepare_product(product))
    return store.get_by_id(COLLECTIONS["products"], pid)


@app.put("/products/{product_id}")
def update_product(product_id: str, product: Product, admin=Depends(require_admin),
                   store: DocumentStore = Depends(get_store)):
    doc = prepare_product(product)
    unset = {} if product.has_discount else {"discounted_price": "", "discount_percentage": ""}
    store.update(COLLECTIONS["products"], product_id, doc)
    if unset:
        store.db[COLLECTIONS["products"]].update_one({"_id": database.oid(product_id)}, {"$unset": unset})
    return store.get_by_id(COLLECTIONS["products"], product_id)


@app.delete("/products/{product_id}")
def delete_product(product_id: str, admin=Depends(require_admin), store: DocumentStore = Depends(get_store)):
    store.delete(COLLECTIONS["products"], product_id)
    return {"deleted": True}


# ---------- Time Slots ----------
@app.get("/time-slots", response_model=List[TimeSlot])
def get_time_slots(user=Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    return list_time_slots(store)


@app.post("/time-slots", response_model=TimeSlot, status_code=201)
def create_time_slot(slot: TimeSlot, admin=Depends(require_admin), store: DocumentStore = Depends(get_store)):
    sid = store.create(COLLECTIONS["time_slots"], slot)
    return TimeSlot.model_validate(store.get_by_id(COLLECTIONS["time_slots"], sid))


@app.put("/time-slots/{slot_id}", response_model=TimeSlot)
def update_time_slot(slot_id: str, slot: TimeSlotUpdate, admin=Depends(require_admin),
                     store: DocumentStore = Depends(get_store)):
    store.update(COLLECTIONS["time_slots"], slot_id, slot.model_dump(exclude_unset=True))
    return TimeSlot.model_validate(store.get_by_id(COLLECTIONS["time_slots"], slot_id))


@app.delete("/time-slots/{slot_id}")
def remove_time_slot(slot_id: str, admin=Depends(require_admin), store: DocumentStore = Depends(get_store),
                     app_state: AdminState = Depends(get_state)):
    rule_cleared = delete_time_slot(store, slot_id)
    if rule_cleared:
        rules = dict(app_state.time_rules)
        rules.pop(slot_id, None)
        app_state.set_time_rules(rules)
    return {"deleted": True, "rule_cleared": rule_cleared}


@app.post("/time-slots/seed-defaults")
def seed_time_slots(admin=Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return {"created": seed_default_time_slots(store)}


# ---------- Time Rules ----------
class ToggleCategoryPayload(BaseModel):
    slot_id: str
    category_id: str
    included: bool
    rules: Optional[Dict[str, TimeRule]] = Field(None, description="Unsaved draft; defaults to the saved rules")


@app.get("/time-rules", response_model=Dict[str, TimeRule])
def read_time_rules(user=Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    return get_time_rules(store)


@app.put("/time-rules", response_model=Dict[str, TimeRule])
def write_time_rules(rules: Dict[str, TimeRule], admin=Depends(require_admin),
                     store: DocumentStore = Depends(get_store), app_state: AdminState = Depends(get_state)):
    rules = prune_orphaned_rules(rules, list_time_slots(store))
    save_rules(store, rules)
    app_state.set_time_rules(rules)
    return rules


@app.post("/time-rules/toggle", response_model=Dict[str, TimeRule])
def toggle_time_rule(payload: ToggleCategoryPayload, admin=Depends(require_admin),
                     store: DocumentStore = Depends(get_store)):
    """Edit a draft of the rules. Nothing is stored until PUT /time-rules."""
    slot = TimeSlot.model_validate(store.require(COLLECTIONS["time_slots"], payload.slot_id))
    category = store.require(COLLECTIONS["categories"], payload.category_id)
    rules = payload.rules if payload.rules is not None else get_time_rules(store)
    return toggle_category_for_slot(
        rules, slot, CategoryReference(id=category["id"], name=category["name"]), payload.included
    )


@app.get("/time-rules/active")
def active_time_rule(
    at: Optional[str] = Query(None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$"),
    user=Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
    app_state: AdminState = Depends(get_state),
):
    now = datetime.strptime(at, "%H:%M").time() if at else local_now()
    slots = [TimeSlot.model_validate(d) for d in live_docs(app_state, store, COLLECTIONS["time_slots"])]
    rules = app_state.live_time_rules()
    if rules is None:
        rules = get_time_rules(store)
    slot, categories = categories_available_at(now, slots, rules)
    return {"slot": slot, "categories": categories}


# ---------- UPI Payment Methods ----------
@app.get("/upi-methods")
def list_upi_methods(user=Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    return store.list(COLLECTIONS["upi_methods"])


@app.post("/upi-methods", status_code=201)
def create_upi_method(method: UpiPaymentMethod, admin=Depends(require_admin),
                      store: DocumentStore = Depends(get_store)):
    mid = store.create(COLLECTIONS["upi_methods"], method)
    return store.get_by_id(COLLECTIONS["upi_methods"], mid)


@app.put("/upi-methods/{method_id}")
def update_upi_method(method_id: str, method: UpiPaymentMethodUpdate, admin=Depends(require_admin),
                      store: DocumentStore = Depends(get_store)):
    store.update(COLLECTIONS["upi_methods"], method_id, method.model_dump(exclude_unset=True))
    return store.get_by_id(COLLECTIONS["upi_methods"], method_id)


@app.delete("/upi-methods/{method_id}")
def delete_upi_method(method_id: str, admin=Depends(require_admin), store: DocumentStore = Depends(get_store)):
    store.delete(COLLECTIONS["upi_methods"], method_id)
    return {"deleted": True}


# ---------- Orders ----------
@app.get("/orders")
def list_orders(
    status: Optional[str] = None,
    payment_method: Optional[str] = None,
    payment_status: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200),
    user=Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    filters = {"status": status, "payment_method": payment_method, "payment_status": payment_status}
    return store.get_paginated(COLLECTIONS["orders"], page, page_size, filters)


@app.get("/orders/search")
def find_orders(q: str = Query(..., min_length=1), user=Depends(get_current_user),
                store: DocumentStore = Depends(get_store), app_state: AdminState = Depends(get_state)):
    return search_orders(live_docs(app_state, store, COLLECTIONS["orders"]), q)


@app.get("/orders/stats")
def orders_stats(user=Depends(get_current_user), store: DocumentStore = Depends(get_store),
                 app_state: AdminState = Depends(get_state)):
    return order_statistics(live_docs(app_state, store, COLLECTIONS["orders"]), today_start_utc())


@app.get("/orders/{order_id}")
def get_order(order_id: str, user=Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    return store.require(COLLECTIONS["orders"], order_id)


@app.put("/orders/{order_id}/status")
def change_order_status(order_id: str, payload: StatusUpdate, user=Depends(get_current_user),
                        store: DocumentStore = Depends(get_store), app_state: AdminState = Depends(get_state)):
    return update_order_status(app_state, store, order_id, payload.status)


@app.put("/orders/{order_id}/payment-verification")
def verify_order_payment(order_id: str, payload: PaymentVerificationUpdate, user=Depends(get_current_user),
                         store: DocumentStore = Depends(get_store), app_state: AdminState = Depends(get_state)):
    return update_payment_verification(app_state, store, order_id, payload.status, payload.reason)


@app.post("/orders/bulk/status")
def bulk_order_status(payload: BulkStatusUpdate, user=Depends(get_current_user),
                      store: DocumentStore = Depends(get_store), app_state: AdminState = Depends(get_state)):
    return {"results": bulk_update_order_status(app_state, store, payload.order_ids, payload.status)}


@app.post("/orders/bulk/payment-verification")
def bulk_payment_verification(payload: BulkPaymentVerification, user=Depends(get_current_user),
                              store: DocumentStore = Depends(get_store),
                              app_state: AdminState = Depends(get_state)):
    updates = [u.model_dump() for u in payload.updates]
    return {"results": bulk_update_payment_verification(app_state, store, updates)}


# ---------- Reports ----------
@app.get("/reports/dashboard")
def dashboard_report(user=Depends(get_current_user), store: DocumentStore = Depends(get_store),
                     app_state: AdminState = Depends(get_state)):
    return dashboard_metrics(
        live_docs(app_state, store, COLLECTIONS["orders"]),
        live_docs(app_state, store, COLLECTIONS["products"]),
        local_now(),
    )


@app.get("/reports/sales")
def sales_report(days: int = Query(7, ge=1, le=90), user=Depends(get_current_user),
                 store: DocumentStore = Depends(get_store), app_state: AdminState = Depends(get_state)):
    return sales_series(live_docs(app_state, store, COLLECTIONS["orders"]), local_now(), days)


# ---------- Notifications ----------
@app.get("/notifications/admin")
def get_admin_notifications(limit: int = Query(20, ge=1, le=100), user=Depends(get_current_user),
                            store: DocumentStore = Depends(get_store)):
    return admin_notifications(store, limit)


@app.get("/notifications/admin/unread-count")
def get_unread_count(user=Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    return {"unread": unread_count(store)}


@app.post("/notifications/admin", status_code=201)
def post_admin_notification(notification: Notification, admin=Depends(require_admin),
                            store: DocumentStore = Depends(get_store)):
    return {"id": create_admin_notification(store, notification)}


@app.post("/notifications/admin/read-all")
def read_all_notifications(user=Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    return {"updated": mark_all_read(store)}


@app.put("/notifications/{notification_id}/read")
def read_notification(notification_id: str, user=Depends(get_current_user),
                      store: DocumentStore = Depends(get_store)):
    mark_read(store, notification_id)
    return {"read": True}


# ---------- Delivery Partners ----------
def _public_partner(doc: dict) -> dict:
    doc.pop("password", None)
    return doc


@app.get("/delivery-partners")
def list_partners(user=Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    return [_public_partner(d) for d in store.list(COLLECTIONS["delivery_partners"])]


@app.post("/delivery-partners", status_code=201)
def add_partner(partner: DeliveryPartner, admin=Depends(require_admin), store: DocumentStore = Depends(get_store)):
    pid = create_partner(store, partner, hash_password)
    return _public_partner(store.get_by_id(COLLECTIONS["delivery_partners"], pid))


@app.get("/delivery-partners/{partner_id}")
def get_partner(partner_id: str, user=Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    return _public_partner(store.require(COLLECTIONS["delivery_partners"], partner_id))


@app.put("/delivery-partners/{partner_id}")
def edit_partner(partner_id: str, partner: DeliveryPartnerUpdate, admin=Depends(require_admin),
                 store: DocumentStore = Depends(get_store)):
    data = partner.model_dump(exclude_unset=True)
    if data.get("password"):
        data["password"] = hash_password(data["password"])
    store.update(COLLECTIONS["delivery_partners"], partner_id, data)
    return _public_partner(store.get_by_id(COLLECTIONS["delivery_partners"], partner_id))


@app.delete("/delivery-partners/{partner_id}")
def remove_partner(partner_id: str, admin=Depends(require_admin), store: DocumentStore = Depends(get_store)):
    store.delete(COLLECTIONS["delivery_partners"], partner_id)
    return {"deleted": True}


@app.put("/delivery-partners/{partner_id}/approval")
def approve_partner(partner_id: str, payload: PartnerApproval, admin=Depends(require_admin),
                    store: DocumentStore = Depends(get_store)):
    store.update(COLLECTIONS["delivery_partners"], partner_id, {"admin_approved": payload.approved})
    return {"admin_approved": payload.approved}


@app.put("/delivery-partners/{partner_id}/status")
def set_partner_status(partner_id: str, payload: PartnerStatusUpdate, admin=Depends(require_admin),
                       store: DocumentStore = Depends(get_store)):
    store.update(COLLECTIONS["delivery_partners"], partner_id, {"status": payload.status})
    return {"status": payload.status}


@app.post("/delivery-partners/bulk/status")
def bulk_partner_status(payload: BulkPartnerStatus, admin=Depends(require_admin),
                        store: DocumentStore = Depends(get_store)):
    return {"updated": bulk_set_status(store, COLLECTIONS["delivery_partners"], payload.partner_ids, payload.status)}


# ---------- Deliveries ----------
@app.get("/deliveries")
def list_deliveries(status: Optional[str] = None, user=Depends(get_current_user),
                    store: DocumentStore = Depends(get_store)):
    return store.list(COLLECTIONS["deliveries"], {"status": status})


@app.get("/deliveries/stats")
def deliveries_stats(user=Depends(get_current_user), store: DocumentStore = Depends(get_store),
                     app_state: AdminState = Depends(get_state)):
    return delivery_statistics(live_docs(app_state, store, COLLECTIONS["deliveries"]), today_start_utc())


@app.post("/deliveries/assign", status_code=201)
def assign_partner(payload: DeliveryAssignment, user=Depends(get_current_user),
                   store: DocumentStore = Depends(get_store)):
    did = assign_delivery(store, payload.order_id, payload.partner_id)
    return store.get_by_id(COLLECTIONS["deliveries"], did)


@app.put("/deliveries/{delivery_id}/status")
def set_delivery_status(delivery_id: str, payload: DeliveryStatusUpdate, user=Depends(get_current_user),
                        store: DocumentStore = Depends(get_store)):
    store.update(COLLECTIONS["deliveries"], delivery_id, {"status": payload.status})
    return {"status": payload.status}


@app.post("/deliveries/bulk/status")
def bulk_delivery_status(payload: BulkDeliveryStatus, user=Depends(get_current_user),
                         store: DocumentStore = Depends(get_store)):
    return {"updated": bulk_set_status(store, COLLECTIONS["deliveries"], payload.delivery_ids, payload.status)}


# ---------- Uploads ----------
@app.post("/uploads/image")
def upload(file: UploadFile = File(...), folder: Optional[str] = Form(None), admin=Depends(require_admin)):
    content = file.file.read()
    with get_http_client() as client:
        url = upload_image(client, file.filename or "upload", content, file.content_type, folder)
    return {"url": url}
