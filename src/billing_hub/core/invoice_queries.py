from datetime import datetime
from typing import Any, Optional

from billing_hub.config.settings import BillingConfig
from billing_hub.core.exceptions import InvoiceNotFound, ValidationError
from billing_hub.db.core import DB
from billing_hub.db.invoices import InvoiceStore
from billing_hub.db.model import Invoice
from billing_hub.models.pagination import Page
from billing_hub.utils.helpers import paginate_args, parse_uuid


class InvoiceQueryService:
    """Read side of the invoice store."""

    def __init__(self, db: DB, config: Optional[BillingConfig] = None, store: Optional[InvoiceStore] = None):
        self.db = db
        self.config = config or BillingConfig()
        self.store = store or InvoiceStore()

    def list_invoices(
        self,
        page: Any = 1,
        limit: Any = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Page:
        if start_date and end_date and start_date > end_date:
            raise ValidationError("start date must not be after end date")
        page_num, limit_num = paginate_args(
            page, limit, self.config.default_page_size, self.config.max_page_size
        )
        with self.db.transaction() as session:
            return self.store.find_in_range(session, start_date, end_date, page_num, limit_num)

    def get_invoice(self, invoice_id) -> Invoice:
        invoice_id = parse_uuid(invoice_id, "invoice id")
        with self.db.transaction() as session:
            invoice = self.store.find_by_id(session, invoice_id)
            if invoice is None:
                raise InvoiceNotFound()
            return invoice

    def get_invoice_by_number(self, invoice_number: str) -> Invoice:
        with self.db.transaction() as session:
            invoice = self.store.find_by_number(session, invoice_number)
            if invoice is None:
                raise InvoiceNotFound()
            return invoice
