"""
Sales reports: read-only rollups over committed invoices.

Day and month windows are half-open ``[start, end)`` in UTC; explicit
ranges passed to ``top_products`` include their end bound.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from billing_hub.config.settings import BillingConfig
from billing_hub.core.exceptions import ValidationError
from billing_hub.db.core import DB
from billing_hub.db.invoices import InvoiceStore
from billing_hub.utils.helpers import day_bounds, month_bounds, now
from billing_hub.utils.logger import get_logger

EMPTY_SUMMARY = {
    "total_sales": Decimal(0),
    "total_tax": Decimal(0),
    "total_discount": Decimal(0),
    "invoice_count": 0,
}


class ReportService:
    def __init__(
        self,
        db: DB,
        config: Optional[BillingConfig] = None,
        store: Optional[InvoiceStore] = None,
        clock: Callable[[], datetime] = now,
    ):
        self.db = db
        self.config = config or BillingConfig()
        self.store = store or InvoiceStore()
        self.clock = clock
        self.logger = get_logger(self.__class__.__name__)

    def today_sales(self, day: Optional[date] = None) -> Dict[str, Any]:
        day = day or self.clock().date()
        start, end = day_bounds(day)
        with self.db.transaction() as session:
            summary = self.store.sales_summary(session, start, end)
            breakdown = self.store.payment_method_breakdown(session, start, end)
        return {
            "date": day.isoformat(),
            "data": summary if summary["invoice_count"] else dict(EMPTY_SUMMARY),
            "payment_method_breakdown": breakdown,
        }

    def month_sales(self, month: Optional[int] = None, year: Optional[int] = None) -> Dict[str, Any]:
        today = self.clock()
        month = int(month) if month else today.month
        year = int(year) if year else today.year
        start, end = month_bounds(year, month)
        with self.db.transaction() as session:
            summary = self.store.sales_summary(session, start, end)
            daily = self.store.daily_breakdown(session, start, end)
            breakdown = self.store.payment_method_breakdown(session, start, end)
        return {
            "data": summary if summary["invoice_count"] else dict(EMPTY_SUMMARY),
            "daily_sales": daily,
            "payment_method_breakdown": breakdown,
            "month": month,
            "year": year,
        }

    def top_products(
        self,
        limit: Any = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> Dict[str, Any]:
        try:
            limit_num = int(limit) if limit is not None else self.config.top_products_limit
        except (TypeError, ValueError):
            raise ValidationError("limit must be an integer")
        if limit_num < 1:
            raise ValidationError("limit must be at least 1")

        inclusive_end = False
        if start_date and end_date:
            if start_date > end_date:
                raise ValidationError("start date must not be after end date")
            start, end, inclusive_end = start_date, end_date, True
        else:
            today = self.clock()
            start, end = month_bounds(int(year) if year else today.year, int(month) if month else today.month)

        with self.db.transaction() as session:
            rows = self.store.top_products(session, start, end, limit_num, inclusive_end=inclusive_end)
        self.logger.debug(f"Top products {start} → {end}: {len(rows)} rows")
        return {"data": rows, "count": len(rows)}
