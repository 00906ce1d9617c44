from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func, extract
from sqlalchemy.orm import Session

from billing_hub.db.model import Invoice, InvoiceItem
from billing_hub.models.pagination import Page

ZERO = Decimal(0)


def _range_filter(stmt, start: Optional[datetime], end: Optional[datetime], inclusive_end: bool = False):
    if start is not None:
        stmt = stmt.where(Invoice.created_at >= start)
    if end is not None:
        stmt = stmt.where(Invoice.created_at <= end if inclusive_end else Invoice.created_at < end)
    return stmt


class InvoiceStore:
    """
    Committed invoices.

    ``insert`` is only called by the invoice coordinator inside its unit of
    work. Everything else is read-only and reflects committed data.
    """

    def insert(self, session: Session, invoice: Invoice) -> Invoice:
        session.add(invoice)
        session.flush()
        return invoice

    def find_by_id(self, session: Session, invoice_id) -> Optional[Invoice]:
        return session.get(Invoice, invoice_id)

    def find_by_number(self, session: Session, invoice_number: str) -> Optional[Invoice]:
        return session.scalars(
            select(Invoice).where(Invoice.invoice_number == invoice_number)
        ).first()

    def latest_number_with_prefix(self, session: Session, prefix: str) -> Optional[str]:
        """Highest invoice number starting with ``prefix`` (fixed-width, so text order works)."""
        return session.scalar(
            select(Invoice.invoice_number)
            .where(Invoice.invoice_number.like(f"{prefix}%"))
            .order_by(Invoice.invoice_number.desc())
            .limit(1)
        )

    def find_in_range(
        self,
        session: Session,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        page: int = 1,
        limit: int = 10,
        inclusive_end: bool = True,
    ) -> Page:
        result = Page(page=page, limit=limit)
        count_stmt = _range_filter(select(func.count(Invoice.id)), start, end, inclusive_end)
        result.total = session.scalar(count_stmt) or 0

        stmt = _range_filter(select(Invoice), start, end, inclusive_end)
        stmt = stmt.order_by(Invoice.created_at.desc(), Invoice.invoice_number.desc())
        stmt = stmt.offset(result.offset).limit(limit)
        result.items = list(session.scalars(stmt).unique())
        return result

    def all_in_range(self, session: Session, start: datetime, end: datetime) -> List[Invoice]:
        stmt = _range_filter(select(Invoice), start, end).order_by(Invoice.created_at, Invoice.invoice_number)
        return list(session.scalars(stmt).unique())

    # -------------------------
    # Aggregates for reporting
    # -------------------------
    def sales_summary(self, session: Session, start: datetime, end: datetime) -> Dict[str, Any]:
        stmt = _range_filter(
            select(
                func.coalesce(func.sum(Invoice.grand_total), ZERO),
                func.coalesce(func.sum(Invoice.tax_amount), ZERO),
                func.coalesce(func.sum(Invoice.discount), ZERO),
                func.count(Invoice.id),
            ),
            start,
            end,
        )
        total_sales, total_tax, total_discount, count = session.execute(stmt).one()
        return {
            "total_sales": Decimal(total_sales),
            "total_tax": Decimal(total_tax),
            "total_discount": Decimal(total_discount),
            "invoice_count": int(count),
        }

    def payment_method_breakdown(self, session: Session, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        stmt = _range_filter(
            select(
                Invoice.payment_method,
                func.sum(Invoice.grand_total),
                func.count(Invoice.id),
            ),
            start,
            end,
        ).group_by(Invoice.payment_method).order_by(Invoice.payment_method)
        return [
            {"payment_method": method.value, "total": Decimal(total), "count": int(count)}
            for method, total, count in session.execute(stmt)
        ]

    def daily_breakdown(self, session: Session, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        day = extract("day", Invoice.created_at)
        stmt = _range_filter(
            select(day, func.sum(Invoice.grand_total), func.count(Invoice.id)),
            start,
            end,
        ).group_by(day).order_by(day)
        return [
            {"day": int(d), "total_sales": Decimal(total), "invoice_count": int(count)}
            for d, total, count in session.execute(stmt)
        ]

    def top_products(
        self,
        session: Session,
        start: datetime,
        end: datetime,
        limit: int = 10,
        inclusive_end: bool = False,
    ) -> List[Dict[str, Any]]:
        total_quantity = func.sum(InvoiceItem.quantity).label("total_quantity")
        total_revenue = func.sum(InvoiceItem.subtotal).label("total_revenue")
        stmt = (
            select(
                InvoiceItem.product_id,
                func.max(InvoiceItem.name),
                total_quantity,
                total_revenue,
            )
            .join(Invoice, Invoice.id == InvoiceItem.invoice_id)
        )
        stmt = _range_filter(stmt, start, end, inclusive_end)
        stmt = (
            stmt.group_by(InvoiceItem.product_id)
            .order_by(total_quantity.desc(), total_revenue.desc())
            .limit(limit)
        )
        return [
            {
                "product_id": str(product_id),
                "product_name": name,
                "total_quantity": int(quantity),
                "total_revenue": Decimal(revenue),
            }
            for product_id, name, quantity, revenue in session.execute(stmt)
        ]
