"""
SQLAlchemy Database Models

Relational store for the food share service:
- Accounts and profiles (admin flag lives on the profile)
- Catalog of categories and products
- Orders with denormalised line items
- User documents held in object storage
"""

import enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base


class OrderStatus(str, enum.Enum):
    """Order status workflow."""
    PROCESSING = "processing"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ARCHIVED = "archived"


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class Account(Base):
    """
    Sign-in identity. One account owns exactly one profile with the same id.
    """
    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Account {self.id} - {self.email}>"


class Profile(Base):
    """
    Identity record of a registered user.

    Self-service fields are edited by the user; ``is_admin`` only by an admin.
    """
    __tablename__ = "profiles"

    id = Column(String(36), ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True)

    # =========================================================================
    # NAME & CONTACT
    # =========================================================================
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    name = Column(String(200), nullable=True)
    email = Column(String(255), nullable=False, index=True)
    phone = Column(String(30), nullable=True)
    address = Column(String(255), nullable=True)

    # =========================================================================
    # PRIVILEGES
    # =========================================================================
    is_admin = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    orders = relationship("Order", back_populates="profile")
    documents = relationship("UserDocument", back_populates="profile")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self):
        return f"<Profile {self.id} - {self.full_name} - admin={self.is_admin}>"


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    products = relationship("Product", back_populates="category")

    def __repr__(self):
        return f"<Category #{self.id} - {self.name}>"


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    unit = Column(String(30), nullable=False, default="шт.")
    image_url = Column(String(500), nullable=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    category = relationship("Category", back_populates="products")

    def __repr__(self):
        return f"<Product #{self.id} - {self.name} ({self.unit})>"


class Order(Base):
    """
    Order header. Created at checkout in ``processing`` status; status is
    changed only by administrators and orders are archived, never deleted.
    """
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("user_id", "processing_lock", name="uq_orders_one_processing"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    status = Column(
        Enum(OrderStatus, values_callable=_enum_values, native_enum=False, length=20),
        default=OrderStatus.PROCESSING,
        nullable=False,
        index=True
    )
    # True while processing in single-order mode, otherwise NULL
    processing_lock = Column(Boolean, nullable=True)

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    profile = relationship("Profile", back_populates="orders", lazy="selectin")
    items = relationship(
        "OrderItem",
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    @property
    def item_count(self) -> int:
        """Total number of units across all line items."""
        return sum(item.quantity for item in self.items)

    def __repr__(self):
        return f"<Order #{self.id} - {self.user_id} - {self.status.value}>"


class OrderItem(Base):
    """
    Order line item. Product name and unit are captured at order time so the
    order stays readable after the product is edited or deleted.
    """
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)
    quantity = Column(Integer, nullable=False)
    product_name = Column(String(200), nullable=False)
    product_unit = Column(String(30), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    order = relationship("Order", back_populates="items")

    def __repr__(self):
        return f"<OrderItem #{self.id} - order {self.order_id} - {self.product_name} x{self.quantity}>"


class UserDocument(Base):
    """
    Identity document uploaded by a user.

    The bytes live in object storage; the row is a tagged reference
    (bucket + path) plus the metadata needed to serve a download.
    """
    __tablename__ = "user_documents"
    __table_args__ = (
        UniqueConstraint("user_id", "exclusive", name="uq_user_documents_single"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    filename = Column(String(255), nullable=False)
    size_bytes = Column(Integer, nullable=False)
    mime_type = Column(String(120), nullable=False)
    # True when uploaded in single-document mode, NULL otherwise
    exclusive = Column(Boolean, nullable=True)

    # =========================================================================
    # STORAGE REFERENCE
    # =========================================================================
    storage_bucket = Column(String(100), nullable=False)
    storage_path = Column(String(500), nullable=False, unique=True)

    uploaded_at = Column(DateTime(timezone=True), server_default=func.now())

    profile = relationship("Profile", back_populates="documents")

    def __repr__(self):
        return f"<UserDocument #{self.id} - {self.storage_bucket}/{self.storage_path}>"
