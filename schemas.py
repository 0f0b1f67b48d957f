"""
Database Schemas

MongoDB collection schemas for the marketplace, defined as Pydantic models.
These schemas are used for validation of request bodies and of documents
read back from the database.

Collection names are the lowercase model name:
- User -> "user" collection
- Vendor -> "vendor" collection
- Category -> "category" collection
- Product -> "product" collection
- Blog -> "blog" collection
- Order -> "order" collection

Documents are stored with snake_case keys; the API speaks camelCase
(vendorId, imageUrls, ...) and accepts either spelling on input.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Role(str, Enum):
    CUSTOMER = "Customer"
    VENDOR = "Vendor"
    ADMIN = "Admin"


class MongoModel(BaseModel):
    """Base for collection documents; `id` maps to the document's `_id`"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )

    id: Optional[str] = None


class User(MongoModel):
    """
    Users collection schema
    Collection name: "user"
    """
    username: str = Field("", description="Display name")
    email: str = Field(..., description="Email address (unique)")
    password_hash: str = Field("", description="BCrypt hash of the user's password")
    role: Role = Field(Role.CUSTOMER, validate_default=True, description="Customer, Vendor or Admin")
    created_at: Optional[datetime] = None


class Vendor(MongoModel):
    """
    Vendors collection schema
    Collection name: "vendor"
    """
    user_id: str = Field("", description="Owning user id")
    business_name: str = Field("", description="Vendor display name")
    description: Optional[str] = None
    banner_url: Optional[str] = Field(None, description="Banner/logo image URL")
    rating: Optional[float] = Field(None, ge=0, le=5)
    notice: Optional[str] = None
    phone: Optional[str] = None
    status: Optional[str] = None
    email: Optional[str] = None
    location: Optional[str] = None
    commission_rate: float = Field(0, ge=0)
    is_approved: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Category(MongoModel):
    """
    Categories collection schema
    Collection name: "category"
    """
    name: str = ""
    slug: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None


class Product(MongoModel):
    """
    Products collection schema
    Collection name: "product"
    """
    vendor_id: str = Field("", description="Owning vendor id")
    name: str = Field("", description="Product name")
    description: Optional[str] = Field(None, description="Product description")
    price: float = Field(0, ge=0, description="Price in dollars")
    sales_price: float = Field(0, ge=0, description="Sale price in dollars")
    stock_quantity: int = Field(0, ge=0)
    stock_status: bool = Field(False, description="Whether product is in stock")
    image_urls: List[str] = Field(default_factory=list, description="Image URLs")
    categories: List[str] = Field(default_factory=list, description="Category ids")
    attributes: Dict[str, str] = Field(default_factory=dict)
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Blog(MongoModel):
    """
    Blogs collection schema
    Collection name: "blog"
    """
    title: str = ""
    body: str = ""
    # Main/cover image
    image_url: Optional[str] = None
    # Additional images inside the content
    content_images: List[str] = Field(default_factory=list)
    published: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrderStatus(str, Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"
    REFUNDED = "Refunded"


class OrderItem(MongoModel):
    product_id: str
    product_name: str = ""
    unit_price: float = Field(0, ge=0)
    quantity: int = Field(1, ge=1)
    vendor_id: str = ""


class ShippingAddress(MongoModel):
    full_name: str = ""
    street: str = ""
    city: str = ""
    state: str = ""
    country: str = ""
    postal_code: str = ""
    phone: str = ""


class PaymentInfo(MongoModel):
    payment_method: str = Field("", description="e.g. CreditCard, PayPal")
    transaction_id: Optional[str] = None
    status: str = ""
    paid_at: Optional[datetime] = None


class Order(MongoModel):
    """
    Orders collection schema
    Collection name: "order"
    Not exposed by any endpoint yet.
    """
    customer_id: str = ""
    items: List[OrderItem] = Field(default_factory=list)
    status: OrderStatus = Field(OrderStatus.PENDING, validate_default=True)
    shipping_address: ShippingAddress = Field(default_factory=ShippingAddress)
    payment_info: PaymentInfo = Field(default_factory=PaymentInfo)
    subtotal: float = 0
    tax: float = 0
    shipping_cost: float = 0
    total: float = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ---------- Auth request/response models ----------

class RegisterRequest(BaseModel):
    username: str
    email: str
    password: str = Field(..., min_length=1)
    role: Optional[Role] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class UserOut(MongoModel):
    username: str
    email: str
    role: Role
    created_at: Optional[datetime] = None


class AuthResponse(BaseModel):
    token: str
    user: UserOut
