"""
Database Schemas for the Grocery Admin Panel

Each Pydantic model represents a MongoDB collection (or an embedded
document). Collection names are fixed in COLLECTIONS below because the
customer app writes to the same collections.

Collections:
- users: admin and sub-admin accounts for this panel
- categories, vendors, products: the catalog
- timeSlots: named wall-clock windows gating category availability
- settings/timeRules: singleton slot id -> allowed categories map
- upiPaymentMethods: UPI ids/QR codes shown to customers
- orders: customer orders placed through the customer app
- notifications: admin and customer notifications
- deliveryPartners, deliveries: last-mile delivery

Note: embedded {id, name} references are snapshots taken at write time.
Renaming a category or vendor does not rewrite products that embed it.
"""

from datetime import datetime
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

COLLECTIONS = {
    "users": "users",
    "categories": "categories",
    "vendors": "vendors",
    "products": "products",
    "time_slots": "timeSlots",
    "upi_methods": "upiPaymentMethods",
    "orders": "orders",
    "notifications": "notifications",
    "delivery_partners": "deliveryPartners",
    "deliveries": "deliveries",
}

TIME_RULES_DOC = "timeRules"

HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"
UPI_ID_PATTERN = r"^[a-zA-Z0-9.-]+@[a-zA-Z]+$"

OrderStatus = Literal["placed", "confirmed", "preparing", "out_for_delivery", "delivered", "cancelled", "refunded"]
PaymentStatus = Literal["pending", "completed", "failed", "refunded"]
PaymentMethod = Literal["cash_on_delivery", "upi_online"]
VerificationStatus = Literal["pending", "verified", "rejected"]
Priority = Literal["low", "normal", "medium", "high"]


# -----------------------------
# Admin users
# -----------------------------

class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Login email")
    password: str = Field(..., description="passlib hash (legacy rows may hold plaintext)")
    role: Literal["admin", "subadmin"] = Field("subadmin")
    avatar: Optional[str] = None
    is_active: bool = Field(True, description="Inactive users cannot log in")
    last_login: Optional[datetime] = None
    managed_category: Optional[str] = Field(None, description="Category a sub-admin looks after")


class UserUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    role: Optional[Literal["admin", "subadmin"]] = None
    avatar: Optional[str] = None
    is_active: Optional[bool] = None
    managed_category: Optional[str] = None


# -----------------------------
# Catalog
# -----------------------------

class CategoryReference(BaseModel):
    id: str
    name: str


class VendorReference(BaseModel):
    id: str
    name: str


class Category(BaseModel):
    name: str = Field(..., description="Category name, e.g. Vegetables")
    description: str = Field("", description="Short description")
    is_active: bool = Field(True)


class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class Vendor(BaseModel):
    name: str
    location: str = ""
    commission: float = Field(0, ge=0, le=100, description="Commission percentage")
    category: List[str] = Field(default_factory=list, description="Category names the vendor supplies")
    contact_person: str = ""
    phone: str = ""
    email: Optional[EmailStr] = None
    address: str = ""
    is_active: bool = True
    total_products: int = Field(0, ge=0)
    total_orders: int = Field(0, ge=0)
    rating: float = Field(0, ge=0, le=5)


class VendorUpdate(BaseModel):
    name: Optional[str] = None
    location: Optional[str] = None
    commission: Optional[float] = Field(None, ge=0, le=100)
    category: Optional[List[str]] = None
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    address: Optional[str] = None
    is_active: Optional[bool] = None
    total_products: Optional[int] = Field(None, ge=0)
    total_orders: Optional[int] = Field(None, ge=0)
    rating: Optional[float] = Field(None, ge=0, le=5)


class Product(BaseModel):
    name: str = Field(..., description="Product name")
    categories: List[CategoryReference] = Field(default_factory=list)
    price: float = Field(..., ge=0, description="Original price")
    has_discount: bool = False
    discounted_price: Optional[float] = Field(None, description="Only set when has_discount")
    discount_percentage: Optional[int] = Field(None, ge=0, le=100)
    stock: int = Field(0, ge=0)
    vendors: List[VendorReference] = Field(default_factory=list)
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    available: bool = True
    image_url: Optional[str] = None
    average_rating: float = Field(0, ge=0, le=5)
    total_ratings: int = Field(0, ge=0)
    rating_breakdown: Dict[str, int] = Field(default_factory=lambda: {str(star): 0 for star in range(1, 6)})


# -----------------------------
# Time slots and rules
# -----------------------------

class TimeSlot(BaseModel):
    id: Optional[str] = None
    name: str = Field(..., description="Internal key, e.g. morning")
    label: str = Field(..., description="Display label")
    icon: str = Field("⏰")
    start_time: str = Field(..., pattern=HHMM_PATTERN, description="HH:MM, 24h local time")
    end_time: str = Field(..., pattern=HHMM_PATTERN, description="HH:MM; <= start_time wraps past midnight")
    is_active: bool = True
    order: int = Field(0, description="Display and evaluation priority")


class TimeSlotUpdate(BaseModel):
    name: Optional[str] = None
    label: Optional[str] = None
    icon: Optional[str] = None
    start_time: Optional[str] = Field(None, pattern=HHMM_PATTERN)
    end_time: Optional[str] = Field(None, pattern=HHMM_PATTERN)
    is_active: Optional[bool] = None
    order: Optional[int] = None


class TimeRule(BaseModel):
    time_slot_name: str
    start_time: str
    end_time: str
    allowed_categories: List[CategoryReference] = Field(default_factory=list)
    is_active: bool = True


TimeRulesConfig = Dict[str, TimeRule]


# -----------------------------
# Payments
# -----------------------------

class UpiPaymentMethod(BaseModel):
    name: str = Field(..., min_length=1)
    upi_id: str = Field(..., pattern=UPI_ID_PATTERN)
    qr_image_url: str = Field(..., min_length=1, description="Hosted QR code image")
    is_active: bool = True


class UpiPaymentMethodUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    upi_id: Optional[str] = Field(None, pattern=UPI_ID_PATTERN)
    qr_image_url: Optional[str] = Field(None, min_length=1)
    is_active: Optional[bool] = None


class UpiPaymentDetails(BaseModel):
    method: Literal["upi_online"] = "upi_online"
    upi_transaction_id: str
    payment_screenshot: str
    upi_id: str
    verification_status: VerificationStatus = "pending"
    verification_date: Optional[datetime] = None
    rejection_reason: Optional[str] = None


class CodPaymentDetails(BaseModel):
    method: Literal["cash_on_delivery"] = "cash_on_delivery"
    verification_status: VerificationStatus = "pending"
    verification_date: Optional[datetime] = None
    rejection_reason: Optional[str] = None


PaymentDetails = Annotated[Union[UpiPaymentDetails, CodPaymentDetails], Field(discriminator="method")]


# -----------------------------
# Orders
# -----------------------------

class OrderItem(BaseModel):
    product_id: str = Field(..., description="ID of the product")
    product_name: str = Field(..., description="Snapshot of product name at order time")
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Snapshot of unit price at order time")
    total: float = Field(..., ge=0)
    image_url: Optional[str] = None
    variant: Optional[str] = None


class DeliverySlot(BaseModel):
    type: Literal["immediate", "express", "scheduled"] = "immediate"
    estimated_time: Optional[datetime] = None
    actual_delivery_time: Optional[datetime] = None
    fee: float = Field(0, ge=0)
    scheduled_date: Optional[str] = None
    scheduled_time: Optional[str] = None


class OrderTracking(BaseModel):
    placed_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    preparing_at: Optional[datetime] = None
    out_for_delivery_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None


class Order(BaseModel):
    # Keeps fields written by the customer app that this panel does not model.
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    order_number: str
    customer_id: str
    customer_name: str
    customer_phone: str = ""
    customer_email: Optional[str] = None
    delivery_address: Optional[dict] = None
    items: List[OrderItem] = Field(default_factory=list)
    subtotal: float = Field(0, ge=0)
    delivery_fee: float = Field(0, ge=0)
    taxes: float = Field(0, ge=0)
    discount: float = Field(0, ge=0)
    total: float = Field(0, ge=0)
    status: OrderStatus = "placed"
    payment_status: PaymentStatus = "pending"
    payment_method: PaymentMethod = "cash_on_delivery"
    payment_details: Optional[PaymentDetails] = None
    delivery_slot: DeliverySlot = Field(default_factory=DeliverySlot)
    notes: Optional[str] = None
    special_instructions: Optional[str] = None
    order_tracking: OrderTracking = Field(default_factory=OrderTracking)
    is_cancellable: bool = True
    is_refundable: bool = False
    rating: Optional[int] = None
    review: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = Field(0, ge=0, description="Concurrency token bumped by every admin transition")

    @model_validator(mode="before")
    @classmethod
    def tag_payment_details(cls, data):
        # Stored payment details carry no tag; it mirrors payment_method.
        if isinstance(data, dict):
            details = data.get("payment_details")
            if isinstance(details, dict) and "method" not in details:
                data = dict(data)
                data["payment_details"] = {**details, "method": data.get("payment_method", "cash_on_delivery")}
        return data


class StatusUpdate(BaseModel):
    status: OrderStatus


class PaymentVerificationUpdate(BaseModel):
    status: Literal["verified", "rejected"]
    reason: Optional[str] = None


class BulkStatusUpdate(BaseModel):
    order_ids: List[str] = Field(..., min_length=1)
    status: OrderStatus


class BulkVerificationItem(BaseModel):
    order_id: str
    status: Literal["verified", "rejected"]
    reason: Optional[str] = None


class BulkPaymentVerification(BaseModel):
    updates: List[BulkVerificationItem] = Field(..., min_length=1)


# -----------------------------
# Notifications
# -----------------------------

class Notification(BaseModel):
    type: str
    title: str
    message: str
    order_id: str = ""
    order_number: str = ""
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    total: Optional[float] = None
    target_audience: Literal["admin", "customer"] = "customer"
    is_read: bool = False
    priority: Priority = "normal"
    payment_method: Optional[str] = None
    verification_status: Optional[str] = None
    rejection_reason: Optional[str] = None


# -----------------------------
# Delivery
# -----------------------------

class DeliveryPartner(BaseModel):
    name: str
    email: EmailStr
    phone: str
    password: Optional[str] = None
    vehicle_number: str = ""
    vehicle_type: str = ""
    earning_per_delivery: float = Field(0, ge=0)


class DeliveryPartnerUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    password: Optional[str] = None
    vehicle_number: Optional[str] = None
    vehicle_type: Optional[str] = None
    earning_per_delivery: Optional[float] = Field(None, ge=0)


class PartnerStatusUpdate(BaseModel):
    status: Literal["online", "offline", "active", "inactive"]


class PartnerApproval(BaseModel):
    approved: bool


class BulkPartnerStatus(BaseModel):
    partner_ids: List[str] = Field(..., min_length=1)
    status: Literal["online", "offline", "active", "inactive"]


class DeliveryAssignment(BaseModel):
    order_id: str
    partner_id: str


class DeliveryStatusUpdate(BaseModel):
    status: str = Field(..., min_length=1)


class BulkDeliveryStatus(BaseModel):
    delivery_ids: List[str] = Field(..., min_length=1)
    status: str = Field(..., min_length=1)
