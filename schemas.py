"""
Database Schemas for the Uniform Store

Each Pydantic model represents a MongoDB collection. Collection name is the lowercase of the class name.
- School -> "school"
- Product -> "product"
- Order -> "order"
- CorporateInquiry -> "corporateinquiry"
- Admin -> "admin"
"""
from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

DEFAULT_COLOR = "Default"

SchoolCategory = Literal["pre-primary", "primary", "secondary", "institution"]
ProductCategory = Literal["uniforms", "sportswear", "footwear", "accessories", "outerwear"]
DeliveryType = Literal["delivery", "store-pickup"]
OrderStatus = Literal["pending", "confirmed", "processing", "shipped", "delivered", "cancelled"]
PaymentStatus = Literal["pending", "paid", "failed", "refunded"]
InquiryStatus = Literal["new", "contacted", "quoted", "converted", "closed"]


class Lifecycle(str, Enum):
    """Soft-delete state of schools and products."""
    ACTIVE = "active"
    RETIRED = "retired"


class Role(str, Enum):
    SUPER_ADMIN = "super-admin"
    ADMIN = "admin"
    MANAGER = "manager"


def _check_stock_lines(lines):
    seen = set()
    for line in lines:
        key = (line.size, line.color)
        if key in seen:
            raise ValueError(f"Duplicate stock line for size {line.size}, color {line.color}")
        seen.add(key)
    return lines


def _normalize_sku(value):
    return value.strip().upper() if isinstance(value, str) else value


# Admins collection
class Admin(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password_hash: str = Field(..., min_length=10)
    role: Role = Role.ADMIN
    is_active: bool = True

    @field_validator("email", mode="before")
    @classmethod
    def fold_email(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


# Schools collection
class School(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    name: str = Field(..., min_length=1)
    slug: str = Field(..., min_length=1)
    logo: Optional[str] = None
    image: Optional[str] = None
    color: str = "#0ea5e9"
    category: SchoolCategory = "primary"
    description: str = ""
    lifecycle: Lifecycle = Lifecycle.ACTIVE


# Products collection
class StockLine(BaseModel):
    size: str = Field(..., min_length=1)
    color: str = DEFAULT_COLOR
    quantity: int = Field(0, ge=0)


class Product(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    name: str = Field(..., min_length=1)
    sku: str = Field(..., min_length=1)
    description: str = ""
    category: ProductCategory
    school: Optional[str] = Field(None, description="School id; exclusive with institution")
    institution: Optional[str] = Field(None, description="Tag for non-school lines, e.g. mens-wear")
    price: float = Field(..., ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    images: List[str] = Field(default_factory=list)
    stock: List[StockLine] = Field(default_factory=list)
    sizes: List[str] = Field(default_factory=list)
    colors: List[str] = Field(default_factory=list)
    rating: float = Field(0, ge=0, le=5)
    reviews: int = Field(0, ge=0)
    low_stock_alert: bool = False
    lifecycle: Lifecycle = Lifecycle.ACTIVE

    @field_validator("sku", mode="before")
    @classmethod
    def upper_sku(cls, v):
        return _normalize_sku(v)

    @field_validator("stock")
    @classmethod
    def unique_stock_lines(cls, v):
        return _check_stock_lines(v)

    @model_validator(mode="after")
    def school_or_institution(self):
        if self.school and self.institution:
            raise ValueError("A product belongs to a school or an institution, not both")
        return self


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    sku: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    category: Optional[ProductCategory] = None
    school: Optional[str] = None
    institution: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    images: Optional[List[str]] = None
    stock: Optional[List[StockLine]] = None
    sizes: Optional[List[str]] = None
    colors: Optional[List[str]] = None
    rating: Optional[float] = Field(None, ge=0, le=5)
    reviews: Optional[int] = Field(None, ge=0)

    @field_validator("sku", mode="before")
    @classmethod
    def upper_sku(cls, v):
        return _normalize_sku(v)

    @field_validator("stock")
    @classmethod
    def unique_stock_lines(cls, v):
        return _check_stock_lines(v) if v is not None else v


# Orders collection
class OrderItem(BaseModel):
    """Snapshot of a product line as it was when the order was placed."""
    product_id: str
    name: str
    sku: str
    price: float = Field(..., ge=0)
    size: str
    color: str = DEFAULT_COLOR
    quantity: int = Field(..., ge=1)
    image: str = ""


class ShippingAddress(BaseModel):
    name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    email: Optional[EmailStr] = None
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    pincode: str = Field(..., min_length=1)
    landmark: str = ""

    @field_validator("email", mode="before")
    @classmethod
    def blank_email(cls, v):
        return v or None


class Order(BaseModel):
    order_number: str
    user_id: Optional[str] = None
    items: List[OrderItem]
    shipping_address: ShippingAddress
    delivery_type: DeliveryType
    pickup_time: Optional[datetime] = None
    subtotal: float = Field(..., ge=0)
    shipping_charges: float = Field(0, ge=0)
    total: float = Field(..., ge=0)
    status: OrderStatus = "pending"
    payment_status: PaymentStatus = "pending"
    payment_method: str = "cash-on-delivery"
    notes: str = ""


# Checkout payloads
class CartItem(BaseModel):
    product_id: str
    size: str = Field(..., min_length=1)
    color: Optional[str] = None
    quantity: int = Field(..., ge=1)


class CreateOrderPayload(BaseModel):
    items: List[CartItem] = Field(default_factory=list)
    shipping_address: ShippingAddress
    delivery_type: DeliveryType
    pickup_time: Optional[datetime] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def pickup_needs_time(self):
        if self.delivery_type == "store-pickup" and self.pickup_time is None:
            raise ValueError("pickup_time is required for store pickup")
        return self


# Corporate inquiries collection
class CorporateInquiry(BaseModel):
    name: str = Field(..., min_length=1)
    company_name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., min_length=1)
    requirement: str = Field(..., min_length=1)
    status: InquiryStatus = "new"
    notes: str = ""

    @field_validator("email", mode="before")
    @classmethod
    def fold_email(cls, v):
        return v.strip().lower() if isinstance(v, str) else v
