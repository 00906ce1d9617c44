from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from billing_hub.config.settings import BillingConfig
from billing_hub.core.exceptions import (
    ConcurrentModification,
    DuplicateBarcode,
    ProductNotFound,
    ValidationError,
)
from billing_hub.db.catalog import CatalogStore
from billing_hub.db.core import DB, is_unique_violation
from billing_hub.db.model import Product
from billing_hub.models.pagination import Page
from billing_hub.models.product import ProductModel
from billing_hub.utils.helpers import paginate_args, parse_uuid, to_decimal
from billing_hub.utils.logger import get_logger


class CatalogService:
    """Product create/read/update/delete plus listing and search."""

    def __init__(self, db: DB, config: Optional[BillingConfig] = None, store: Optional[CatalogStore] = None):
        self.db = db
        self.config = config or BillingConfig()
        self.store = store or CatalogStore()
        self.logger = get_logger(self.__class__.__name__)

    def create_product(self, data: Dict[str, Any]) -> Product:
        model = ProductModel.from_dict(data)
        try:
            with self.db.transaction() as session:
                if model.barcode and self.store.exists_by_barcode(session, model.barcode):
                    raise DuplicateBarcode(model.barcode)
                product = self.store.add(session, Product(**model.to_dict()))
        except IntegrityError as e:
            if is_unique_violation(e, "barcode"):
                raise DuplicateBarcode(model.barcode) from e
            raise
        self.logger.info(f"➕ Created product {product.name} ({product.id})")
        return product

    def get_product(self, product_id) -> Product:
        product_id = parse_uuid(product_id, "product id")
        with self.db.transaction() as session:
            product = self.store.get(session, product_id)
            if product is None:
                raise ProductNotFound()
            return product

    def update_product(self, product_id, changes: Dict[str, Any]) -> Product:
        product_id = parse_uuid(product_id, "product id")
        try:
            with self.db.transaction() as session:
                product = self.store.get(session, product_id)
                if product is None:
                    raise ProductNotFound()

                current = {
                    "name": product.name,
                    "barcode": product.barcode,
                    "price": product.price,
                    "tax_percent": product.tax_percent,
                    "stock": product.stock,
                }
                current.update(changes)
                model = ProductModel.from_dict(current)

                if model.barcode and model.barcode != product.barcode \
                        and self.store.exists_by_barcode(session, model.barcode, exclude_id=product.id):
                    raise DuplicateBarcode(model.barcode)

                for key, value in model.to_dict().items():
                    setattr(product, key, value)
                session.flush()
        except IntegrityError as e:
            if is_unique_violation(e, "barcode"):
                raise DuplicateBarcode(changes.get("barcode")) from e
            raise
        except StaleDataError as e:
            # An invoice sold from this product while it was being edited
            raise ConcurrentModification(1) from e
        self.logger.info(f"✏️  Updated product {product.id}")
        return product

    def delete_product(self, product_id) -> None:
        product_id = parse_uuid(product_id, "product id")
        with self.db.transaction() as session:
            product = self.store.get(session, product_id)
            if product is None:
                raise ProductNotFound()
            self.store.delete(session, product)
        self.logger.info(f"🗑️  Deleted product {product_id}")

    def list_products(
        self,
        page: Any = 1,
        limit: Any = None,
        search: Optional[str] = None,
        min_price: Any = None,
        max_price: Any = None,
        in_stock: bool = False,
    ) -> Page:
        page_num, limit_num = paginate_args(
            page, limit, self.config.default_page_size, self.config.max_page_size
        )
        filters = []
        if search:
            filters.append({"field": "name", "operator": "ilike", "value": f"%{search}%"})
        if min_price is not None and min_price != "":
            filters.append({"field": "price", "operator": "gte", "value": to_decimal(min_price, "minPrice")})
        if max_price is not None and max_price != "":
            filters.append({"field": "price", "operator": "lte", "value": to_decimal(max_price, "maxPrice")})
        if in_stock:
            filters.append({"field": "stock", "operator": "gt", "value": 0})

        result = Page(page=page_num, limit=limit_num)
        query = {
            "filters": filters,
            "sort": {"created_at": -1, "name": 1},
            "offset": result.offset,
            "limit": limit_num,
        }
        with self.db.transaction() as session:
            result.total = self.db.countRecords(session, "products", query)
            result.items = self.db.listRecords(session, "products", query)
        return result

    def search_products(self, q: Optional[str]):
        """Name search over in-stock products, capped at ``search_limit``."""
        if not q or not q.strip():
            raise ValidationError("Search query is required")
        query = {
            "filters": [
                {"field": "name", "operator": "ilike", "value": f"%{q.strip()}%"},
                {"field": "stock", "operator": "gt", "value": 0},
            ],
            "sort": {"name": 1},
            "limit": self.config.search_limit,
        }
        with self.db.transaction() as session:
            return self.db.listRecords(session, "products", query)
