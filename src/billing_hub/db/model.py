# models.py
from __future__ import annotations

import uuid
from enum import Enum

from sqlalchemy import (
    Column, Text, DateTime, Boolean, Integer, Numeric, ForeignKey, Uuid,
    CheckConstraint, Index, UniqueConstraint,
)
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import declarative_base, relationship

from billing_hub.utils.helpers import now

Base = declarative_base()

# -------------------------
# Enums
# -------------------------
class PaymentMethod(str, Enum):
    CASH = "Cash"
    CARD = "Card"
    UPI = "UPI"

    @classmethod
    def values(cls):
        return [m.value for m in cls]

class UserRole(str, Enum):
    ADMIN = "admin"
    CASHIER = "cashier"

PaymentMethodEnum = SAEnum(
    PaymentMethod,
    name="payment_method_enum",
    values_callable=lambda e: [m.value for m in e],
    validate_strings=True,
)
UserRoleEnum = SAEnum(
    UserRole,
    name="user_role_enum",
    values_callable=lambda e: [m.value for m in e],
)


def uuid_pk():
    return Column(Uuid(as_uuid=True), primary_key=True, nullable=False, default=uuid.uuid4)


# -------------------------
# Actors
# -------------------------
class User(Base):
    __tablename__ = "users"
    id = uuid_pk()
    name = Column(Text, nullable=False)
    email = Column(Text, unique=True)
    role = Column(UserRoleEnum, nullable=False, default=UserRole.CASHIER)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=now)


    def to_dict(self):
        return {"id": str(self.id), "name": self.name, "email": self.email}


# -------------------------
# Product catalog
# -------------------------
class Product(Base):
    __tablename__ = "products"
    id = uuid_pk()
    name = Column(Text, nullable=False)
    barcode = Column(Text, unique=True)
    price = Column(Numeric, nullable=False)
    tax_percent = Column(Numeric, nullable=False, default=0)
    stock = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=now)
    updated_at = Column(DateTime(timezone=True), default=now, onupdate=now)

    # UPDATE ... WHERE version = :snapshot_version; a concurrent writer makes it match no row
    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("stock >= 0", name="chk_product_stock_nonneg"),
        CheckConstraint("price >= 0", name="chk_product_price_nonneg"),
        CheckConstraint("tax_percent >= 0 AND tax_percent <= 100", name="chk_product_tax_0_100"),
        Index("idx_products_name", "name"),
        Index("idx_products_created_at", "created_at"),
    )

    def to_dict(self):
        return {
            "id": str(self.id),
            "name": self.name,
            "barcode": self.barcode,
            "price": self.price,
            "tax_percent": self.tax_percent,
            "stock": self.stock,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


# -------------------------
# Invoices + Items
# -------------------------
class Invoice(Base):
    __tablename__ = "invoices"
    id = uuid_pk()
    invoice_number = Column(Text, nullable=False)
    total_amount = Column(Numeric, nullable=False)
    tax_amount = Column(Numeric, nullable=False)
    discount = Column(Numeric, nullable=False, default=0)
    grand_total = Column(Numeric, nullable=False)
    payment_method = Column(PaymentMethodEnum, nullable=False)
    created_by = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=now)

    creator = relationship("User", lazy="joined")
    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.position",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("invoice_number", name="uq_invoices_invoice_number"),
        CheckConstraint("discount >= 0", name="chk_invoice_discount_nonneg"),
        Index("idx_invoices_created_at", "created_at"),
    )

    def to_dict(self):
        return {
            "id": str(self.id),
            "invoice_number": self.invoice_number,
            "items": [item.to_dict() for item in self.items],
            "total_amount": self.total_amount,
            "tax_amount": self.tax_amount,
            "discount": self.discount,
            "grand_total": self.grand_total,
            "payment_method": self.payment_method.value,
            "created_by": self.creator.to_dict() if self.creator else str(self.created_by),
            "created_at": self.created_at,
        }


class InvoiceItem(Base):
    """Line item holding a value copy of the product as sold."""
    __tablename__ = "invoice_items"
    id = uuid_pk()
    invoice_id = Column(Uuid(as_uuid=True), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False)
    # No foreign key: deleting a product must not touch sold lines
    product_id = Column(Uuid(as_uuid=True), nullable=False)
    name = Column(Text, nullable=False)
    price = Column(Numeric, nullable=False)
    quantity = Column(Integer, nullable=False)
    tax_percent = Column(Numeric, nullable=False, default=0)
    subtotal = Column(Numeric, nullable=False)

    invoice = relationship("Invoice", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="chk_invoice_item_qty_pos"),
        Index("idx_invoice_items_invoice", "invoice_id"),
        Index("idx_invoice_items_product", "product_id"),
    )

    def to_dict(self):
        return {
            "product_id": str(self.product_id),
            "name": self.name,
            "quantity": self.quantity,
            "price": self.price,
            "tax": self.tax_percent,
            "subtotal": self.subtotal,
        }


# -------------------------
# Optional: convenience bootstrap
# -------------------------
def create_all(bind):
    """Create enums (where the dialect has them) and tables."""
    Base.metadata.create_all(bind)
