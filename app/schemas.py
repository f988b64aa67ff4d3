"""
Pydantic Schemas for Request/Response Validation

Covers accounts and profiles, the catalog, orders and the admin
order console, user documents, the admin gate and service health.
"""

import re
from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field, field_validator

from app.models import OrderStatus


EMAIL_PATTERN = re.compile(r'^[\w\.\+-]+@[\w\.-]+\.\w+$')


def _check_email(v: Optional[str]) -> Optional[str]:
    if v is None or v == "":
        return None
    if not EMAIL_PATTERN.match(v):
        raise ValueError('Invalid email format')
    return v.strip().lower()


# =============================================================================
# AUTH SCHEMAS
# =============================================================================

class SignupRequest(BaseModel):
    """Create a sign-in account."""
    email: str = Field(..., max_length=255, examples=["anna@example.com"])
    password: str = Field(..., min_length=6, max_length=128)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _check_email(v)


class LoginRequest(BaseModel):
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str


class AdminCheckResponse(BaseModel):
    """
    Result of the admin capability check.

    ``reason`` is set only when ``authorized`` is false; the capability token
    is issued only when it is true.
    """
    authorized: bool
    reason: Optional[str] = None
    user_id: Optional[str] = None
    capability_token: Optional[str] = None
    expires_at: Optional[int] = None


# =============================================================================
# PROFILE SCHEMAS
# =============================================================================

class ProfileRegister(BaseModel):
    """
    Profile registration payload.

    Required fields are checked by the service so that a missing field is
    reported as a 400 with a readable message.
    """
    id: Optional[str] = Field(None, examples=["5f0c1f7e-6a4b-4e8b-9a51-8d1f0e6c2b7a"])
    first_name: Optional[str] = Field(None, max_length=100, examples=["Анна"])
    last_name: Optional[str] = Field(None, max_length=100, examples=["Иванова"])
    name: Optional[str] = Field(None, max_length=200)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=30, examples=["+7 900 123-45-67"])
    address: Optional[str] = Field(None, max_length=255)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        return _check_email(v)


class ProfileUpdate(BaseModel):
    """Fields a user may change on their own profile."""
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=30)
    address: Optional[str] = Field(None, max_length=255)


class AdminProfileUpdate(ProfileUpdate):
    """Fields an administrator may change on any profile."""
    email: Optional[str] = Field(None, max_length=255)
    is_admin: Optional[bool] = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        return _check_email(v)


class AdminUserCreate(BaseModel):
    """Privileged creation of an account together with its profile."""
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=6, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=30)
    address: Optional[str] = Field(None, max_length=255)
    is_admin: bool = False

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _check_email(v)


class ProfileResponse(BaseModel):
    id: str
    first_name: str
    last_name: str
    name: Optional[str]
    email: str
    phone: Optional[str]
    address: Optional[str]
    is_admin: bool
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class RegisterResponse(BaseModel):
    success: bool = True
    created: bool
    data: ProfileResponse


# =============================================================================
# CATALOG SCHEMAS
# =============================================================================

class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, examples=["Крупы"])


class CategoryResponse(BaseModel):
    id: int
    name: str
    created_at: Optional[datetime] = None
    product_count: int = 0

    class Config:
        from_attributes = True


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200, examples=["Гречка"])
    description: Optional[str] = Field(None, max_length=2000)
    unit: str = Field(default="шт.", min_length=1, max_length=30, examples=["кг"])
    image_url: Optional[str] = Field(None, max_length=500)
    category_id: int


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    unit: Optional[str] = Field(None, min_length=1, max_length=30)
    image_url: Optional[str] = Field(None, max_length=500)
    category_id: Optional[int] = None


class ProductResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]
    unit: str
    image_url: Optional[str]
    category_id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# =============================================================================
# ORDER SCHEMAS
# =============================================================================

class OrderItemCreate(BaseModel):
    """Single cart line submitted at checkout."""
    product_id: int = Field(..., examples=[3])
    quantity: int = Field(..., ge=1, le=999, examples=[2])


class OrderCreate(BaseModel):
    """Whole cart submitted as one order."""
    items: List[OrderItemCreate] = Field(default_factory=list)

    @field_validator('items')
    @classmethod
    def unique_products(cls, v: List[OrderItemCreate]) -> List[OrderItemCreate]:
        seen = set()
        for item in v:
            if item.product_id in seen:
                raise ValueError(f'Product {item.product_id} appears more than once')
            seen.add(item.product_id)
        return v


class OrderItemResponse(BaseModel):
    id: int
    product_id: Optional[int]
    quantity: int
    product_name: str
    product_unit: str

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: int
    user_id: str
    status: OrderStatus
    status_label: str
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    item_count: int
    items: List[OrderItemResponse]


class AdminOrderResponse(OrderResponse):
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None


class OrderListResponse(BaseModel):
    total: int
    orders: List[OrderResponse]


class AdminOrderListResponse(BaseModel):
    total: int
    orders: List[AdminOrderResponse]


class ProcessingOrderResponse(BaseModel):
    has_processing_order: bool
    order_id: Optional[int] = None


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderItemsUpdate(BaseModel):
    """Edited quantities of one order, keyed by line item id."""
    quantities: dict[int, int]

    @field_validator('quantities')
    @classmethod
    def positive_quantities(cls, v: dict[int, int]) -> dict[int, int]:
        for item_id, quantity in v.items():
            if quantity < 1:
                raise ValueError(f'Quantity for item {item_id} must be at least 1')
        return v


# =============================================================================
# DOCUMENT SCHEMAS
# =============================================================================

class DocumentResponse(BaseModel):
    id: int
    user_id: str
    filename: str
    size_bytes: int
    mime_type: str
    storage_bucket: str
    storage_path: str
    uploaded_at: Optional[datetime]

    class Config:
        from_attributes = True


class UploadResponse(BaseModel):
    success: bool = True
    message: str
    document: DocumentResponse


class DocumentDeleteResponse(BaseModel):
    success: bool = True
    document_id: int
    deleted: bool


# =============================================================================
# ADMIN SCHEMAS
# =============================================================================

class AdminUserSummary(ProfileResponse):
    document_count: int = 0


class AdminUserDetail(ProfileResponse):
    documents: List[DocumentResponse] = []


class DashboardResponse(BaseModel):
    total_orders: int
    processing_orders: int
    confirmed_orders: int
    completed_orders: int
    total_products: int
    total_users: int
    recent_orders: List[AdminOrderResponse]


# =============================================================================
# GENERIC RESPONSES
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    storage: str
    timestamp: datetime
