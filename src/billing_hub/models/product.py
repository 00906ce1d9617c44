from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Dict, Any

from billing_hub.core.exceptions import ValidationError
from billing_hub.utils.helpers import to_decimal

PRODUCT_FIELDS = ("name", "barcode", "price", "tax_percent", "stock")

@dataclass
class ProductModel:
    """Product data model with validation."""
    
    name: str
    price: Any
    stock: Any
    barcode: Optional[str] = None
    tax_percent: Any = 0
    
    def __post_init__(self):
        """Validate and coerce data after initialization."""
        errors = []

        if not isinstance(self.name, str) or not self.name.strip():
            errors.append("Product name is required")
        else:
            self.name = self.name.strip()

        if self.price is None:
            errors.append("Price is required")
        else:
            try:
                self.price = to_decimal(self.price, "Price")
                if self.price < 0:
                    errors.append("Price cannot be negative")
            except ValidationError as e:
                errors.extend(e.errors)

        if self.stock is None:
            errors.append("Stock is required")
        elif isinstance(self.stock, bool) or not isinstance(self.stock, (int, Decimal, float)) \
                or not Decimal(self.stock).is_finite() or int(self.stock) != self.stock:
            errors.append("Stock must be a whole number")
        else:
            self.stock = int(self.stock)
            if self.stock < 0:
                errors.append("Stock cannot be negative")

        if self.tax_percent is None:
            self.tax_percent = Decimal(0)
        else:
            try:
                self.tax_percent = to_decimal(self.tax_percent, "Tax percent")
                if self.tax_percent < 0 or self.tax_percent > 100:
                    errors.append("Tax percent must be between 0 and 100")
            except ValidationError as e:
                errors.extend(e.errors)

        if self.barcode is not None:
            self.barcode = str(self.barcode).strip() or None

        if errors:
            raise ValidationError(errors)
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProductModel":
        unknown = set(data) - set(PRODUCT_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown product fields: {', '.join(sorted(unknown))}")
        return cls(
            name=data.get("name"),
            price=data.get("price"),
            stock=data.get("stock"),
            barcode=data.get("barcode"),
            tax_percent=data.get("tax_percent", 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for database insertion."""
        return {
            'name': self.name,
            'barcode': self.barcode,
            'price': self.price,
            'tax_percent': self.tax_percent,
            'stock': self.stock,
        }
