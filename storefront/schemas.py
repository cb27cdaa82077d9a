"""
Database Schemas for the storefront

Each record model maps to a MongoDB collection named after the lowercased
class name (Product -> "product", CustomOrder -> "customorder"). Models ending
in Create/Update/In are request bodies; embedded models (OrderItem,
CouponCodes, AppliedCoupon) are stored inside their parent document.
"""

from __future__ import annotations
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, field_validator

DeliveryZone = Literal["inside_dhaka", "outside_dhaka"]
DELIVERY_ZONES = ("inside_dhaka", "outside_dhaka")

OrderStatus = Literal["placed", "confirmed", "packed", "shipped", "out_for_delivery", "delivered"]
ORDER_STATUSES = ("placed", "confirmed", "packed", "shipped", "out_for_delivery", "delivered")

# Older documents used pending/confirmed/delivered
LEGACY_ORDER_STATUSES = {"pending": "placed"}

CustomOrderStatus = Literal["pending", "reviewing", "price_quoted", "confirmed", "ordered", "delivered", "cancelled"]
CUSTOM_ORDER_STATUSES = ("pending", "reviewing", "price_quoted", "confirmed", "ordered", "delivered", "cancelled")

UrgencyLevel = Literal["normal", "urgent"]
LineKind = Literal["product", "offer"]
CouponType = Literal["free_delivery_inside", "free_delivery_outside", "price_reduction"]

FEATURED_CATEGORIES = [
    "Earbuds",
    "Headphones",
    "Smart Watch",
    "Speakers",
    "Watches",
    "Mobile Phones",
    "Mobile Accessories",
    "Gaming Consoles",
    "Controllers",
    "Camera",
]


def migrate_order_status(value):
    if isinstance(value, str):
        return LEGACY_ORDER_STATUSES.get(value, value)
    return value


# ------------ Catalog ------------
class CouponCodes(BaseModel):
    inside_dhaka_code: Optional[str] = None
    outside_dhaka_code: Optional[str] = None
    price_reduction_code: Optional[str] = None
    price_reduction_amount: Optional[float] = Field(None, ge=0)


class Product(BaseModel):
    name: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    images: List[str] = []
    stock: int = Field(0, ge=0)
    sold: int = Field(0, ge=0)
    menu_category: str = ""
    featured_category: str = ""
    button_text: str = "Buy Now"
    button_url: str = ""
    description: Optional[str] = None
    colors: List[str] = []
    product_group: Optional[str] = None
    brand: Optional[str] = None
    warranty: Optional[str] = None
    coupon_codes: Optional[CouponCodes] = None


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    price: Optional[float] = Field(None, ge=0)
    images: Optional[List[str]] = None
    stock: Optional[int] = Field(None, ge=0)
    menu_category: Optional[str] = None
    featured_category: Optional[str] = None
    button_text: Optional[str] = None
    button_url: Optional[str] = None
    description: Optional[str] = None
    colors: Optional[List[str]] = None
    product_group: Optional[str] = None
    brand: Optional[str] = None
    warranty: Optional[str] = None
    coupon_codes: Optional[CouponCodes] = None


class Offer(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = ""
    images: List[str] = []
    combo_price: float = Field(..., ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    stock: int = Field(0, ge=0)
    sold: int = Field(0, ge=0)
    colors: List[str] = []
    warranty: Optional[str] = None
    coupon_codes: Optional[CouponCodes] = None


class OfferUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    images: Optional[List[str]] = None
    combo_price: Optional[float] = Field(None, ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
    colors: Optional[List[str]] = None
    warranty: Optional[str] = None
    coupon_codes: Optional[CouponCodes] = None


class SliderItem(BaseModel):
    media_url: str
    type: Literal["image", "video"] = "image"
    redirect_url: str = ""


class SliderItemUpdate(BaseModel):
    media_url: Optional[str] = None
    type: Optional[Literal["image", "video"]] = None
    redirect_url: Optional[str] = None


# ------------ Orders ------------
class OrderLineIn(BaseModel):
    kind: LineKind = "product"
    product_id: str
    qty: int = Field(1, ge=1)
    color: Optional[str] = None


class OrderItem(BaseModel):
    kind: LineKind = "product"
    product_id: str
    product_name: str
    price: float
    qty: int = Field(..., ge=1)
    color: Optional[str] = None
    warranty: Optional[str] = None


class AppliedCoupon(BaseModel):
    code: str
    type: CouponType
    discount_amount: float = 0


class OrderCreate(BaseModel):
    # Blank values are rejected by the order service with validation_failed
    customer_name: str = ""
    phone: str = ""
    address: str = ""
    items: List[OrderLineIn] = []
    delivery_zone: DeliveryZone = "inside_dhaka"
    notes: Optional[str] = None
    coupon_code: Optional[str] = None


class Order(BaseModel):
    customer_name: str
    phone: str
    address: str
    items: List[OrderItem]
    subtotal: float
    delivery_charge: float
    delivery_zone: DeliveryZone
    discount: float = 0
    total: float
    applied_coupon: Optional[AppliedCoupon] = None
    status: OrderStatus = "placed"
    notes: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def migrate_legacy_status(cls, value):
        return migrate_order_status(value)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus

    @field_validator("status", mode="before")
    @classmethod
    def migrate_legacy_status(cls, value):
        return migrate_order_status(value)


class QuoteRequest(BaseModel):
    items: List[OrderLineIn]
    delivery_zone: DeliveryZone = "inside_dhaka"
    coupon_code: Optional[str] = None


class CouponCheck(BaseModel):
    code: str
    items: List[OrderLineIn]


# ------------ Custom orders ------------
class CustomOrderCreate(BaseModel):
    customer_name: str = ""
    phone: str = ""
    email: Optional[str] = None
    product_name: str = ""
    product_category: str = ""
    product_description: Optional[str] = None
    reference_link: Optional[str] = None
    product_image_url: Optional[str] = None
    expected_budget: Optional[float] = None
    quantity: int = Field(1, ge=1)
    urgency_level: UrgencyLevel = "normal"
    delivery_zone: Optional[DeliveryZone] = None
    additional_notes: Optional[str] = None


class CustomOrderStatusUpdate(BaseModel):
    status: CustomOrderStatus


class AdminNotesUpdate(BaseModel):
    admin_notes: str = ""


# ------------ Analytics ------------
class VisitIn(BaseModel):
    visitor_id: Optional[str] = None


class ProductViewIn(BaseModel):
    product_id: str
    visitor_id: Optional[str] = None
