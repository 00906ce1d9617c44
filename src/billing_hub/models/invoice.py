import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from billing_hub.core.exceptions import ValidationError
from billing_hub.db.model import PaymentMethod, UserRole
from billing_hub.utils.helpers import parse_uuid, to_decimal


@dataclass(frozen=True)
class Caller:
    """Authenticated identity handed over by the auth layer."""
    user_id: uuid.UUID
    role: UserRole = UserRole.CASHIER

    @classmethod
    def of(cls, user_id, role: Any = UserRole.CASHIER) -> "Caller":
        try:
            role = UserRole(role)
        except ValueError:
            raise ValidationError(f"Invalid role: {role}")
        return cls(user_id=parse_uuid(user_id, "user id"), role=role)


@dataclass
class LineRequest:
    product_id: Any
    quantity: Any


@dataclass
class InvoiceRequest:
    """
    A create-invoice request as received from the caller.

    Fields are kept as given; ``validate`` checks them and returns the
    normalised values so nothing is touched when validation fails.
    """
    items: List[LineRequest] = field(default_factory=list)
    payment_method: Any = None
    discount: Any = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InvoiceRequest":
        raw_items = data.get("items")
        items = None
        if isinstance(raw_items, list):
            items = []
            for raw in raw_items:
                if not isinstance(raw, dict):
                    raise ValidationError("Each item must be an object with product_id and quantity")
                items.append(LineRequest(raw.get("product_id"), raw.get("quantity")))
        return cls(
            items=items,
            payment_method=data.get("payment_method"),
            discount=data.get("discount", 0),
        )

    def validate(self) -> "ValidatedInvoiceRequest":
        errors = []

        if not self.items or not isinstance(self.items, list):
            errors.append("At least one item is required")

        lines = []
        seen = set()
        for idx, item in enumerate(self.items or [], start=1):
            try:
                product_id = parse_uuid(item.product_id, "product id")
            except ValidationError as e:
                errors.extend(f"Item {idx}: {msg}" for msg in e.errors)
                continue
            if product_id in seen:
                errors.append(f"Item {idx}: product {product_id} appears more than once")
                continue
            seen.add(product_id)
            qty = item.quantity
            if isinstance(qty, bool) or not isinstance(qty, int):
                errors.append(f"Item {idx}: quantity must be a whole number")
                continue
            if qty < 1:
                errors.append(f"Item {idx}: quantity must be at least 1")
                continue
            lines.append((product_id, qty))

        payment_method = None
        if not self.payment_method:
            errors.append("Payment method is required")
        elif self.payment_method not in PaymentMethod.values():
            errors.append("Invalid payment method")
        else:
            payment_method = PaymentMethod(self.payment_method)

        discount = Decimal(0)
        if self.discount is not None:
            try:
                discount = to_decimal(self.discount, "Discount")
                if discount < 0:
                    errors.append("Discount cannot be negative")
            except ValidationError as e:
                errors.extend(e.errors)

        if errors:
            raise ValidationError(errors)

        return ValidatedInvoiceRequest(lines=lines, payment_method=payment_method, discount=discount)


@dataclass(frozen=True)
class ValidatedInvoiceRequest:
    lines: List[tuple]
    payment_method: PaymentMethod
    discount: Decimal

    @property
    def product_ids(self) -> List[uuid.UUID]:
        return [product_id for product_id, _ in self.lines]
