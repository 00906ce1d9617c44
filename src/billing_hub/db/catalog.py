from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing_hub.core.exceptions import InsufficientStock
from billing_hub.db.model import Product


class CatalogStore:
    """Product persistence. Every method works inside the caller's session."""

    def find_by_ids(self, session: Session, ids: Iterable, lock: bool = False) -> List[Product]:
        """
        Return the requested products that exist. Missing ids are simply
        absent from the result; callers compare counts.
        """
        ids = sorted(set(ids))
        if not ids:
            return []
        return list(session.scalars(self.snapshot_query(ids, lock)))

    def snapshot_query(self, ids: Iterable, lock: bool = False):
        # Stable ordering so row locks are always taken in the same order
        stmt = select(Product).where(Product.id.in_(list(ids))).order_by(Product.id)
        if lock:
            stmt = stmt.with_for_update()
        # Fresh snapshot even if this session saw the rows before
        return stmt.execution_options(populate_existing=True)

    def decrement_stock(self, session: Session, product: Product, amount: int) -> Product:
        """
        Take ``amount`` units from a snapshot product.

        The write is guarded twice: against the snapshot's stock here, and
        against the snapshot's row version when the session flushes.
        """
        if amount > product.stock:
            raise InsufficientStock(product.id, product.name, product.stock, amount)
        product.stock = product.stock - amount
        return product

    def exists_by_barcode(self, session: Session, barcode: str, exclude_id=None) -> bool:
        stmt = select(Product.id).where(Product.barcode == barcode)
        if exclude_id is not None:
            stmt = stmt.where(Product.id != exclude_id)
        return bool(session.scalar(select(stmt.exists())))

    def get(self, session: Session, product_id) -> Optional[Product]:
        return session.get(Product, product_id)

    def get_by_barcode(self, session: Session, barcode: str) -> Optional[Product]:
        return session.scalars(select(Product).where(Product.barcode == barcode)).first()

    def add(self, session: Session, product: Product) -> Product:
        session.add(product)
        session.flush()
        return product

    def delete(self, session: Session, product: Product) -> None:
        session.delete(product)
        session.flush()
