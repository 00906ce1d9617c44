"""
Billing Hub - application facade.

Wires configuration, the database and the services together, and turns
every outcome into a ``{success, ...}`` payload plus a status code at the
request boundary.
"""
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

from billing_hub.config.settings import ApplicationConfig, load_config
from billing_hub.core.catalog_service import CatalogService
from billing_hub.core.exceptions import BillingError, error_response, status_for
from billing_hub.core.invoice_coordinator import InvoiceCoordinator
from billing_hub.core.invoice_queries import InvoiceQueryService
from billing_hub.core.report_service import ReportService
from billing_hub.db.core import DB
from billing_hub.importers.product_importer import ProductImporter
from billing_hub.models.invoice import Caller, InvoiceRequest
from billing_hub.utils.helpers import now
from billing_hub.utils.logger import get_logger

logger = get_logger(__name__)

Response = Tuple[int, Dict[str, Any]]


class BillingHub:
    """Main entry point for all billing operations."""

    def __init__(
        self,
        config: Optional[ApplicationConfig] = None,
        config_path: str = "config/settings.yaml",
        db: Optional[DB] = None,
        clock: Callable[[], datetime] = now,
    ):
        self.config = config or load_config(config_path)
        self.db = db or DB(self.config.database)
        billing = self.config.billing

        self.catalog = CatalogService(self.db, billing)
        self.invoices = InvoiceCoordinator(self.db, billing, clock=clock)
        self.invoice_queries = InvoiceQueryService(self.db, billing)
        self.reports = ReportService(self.db, billing, clock=clock)

        logger.info("🎯 Billing Hub initialized")

    def product_importer(self) -> ProductImporter:
        return ProductImporter(self.db, self.config.importer.__dict__)

    def _respond(self, status: int, action: Callable[[], Any]) -> Response:
        try:
            return status, {"success": True, **action()}
        except BillingError as e:
            logger.info(f"Request rejected [{e.code}]: {e.message}")
            return status_for(e), error_response(e)
        except Exception as e:
            logger.exception(f"💥 Unhandled error: {e}")
            return status_for(e), error_response(e)

    def create_invoice(self, payload: Dict[str, Any], user_id: Any, role: str = "cashier") -> Response:
        def action():
            caller = Caller.of(user_id, role)
            invoice = self.invoices.create_invoice(InvoiceRequest.from_dict(payload), caller)
            return {"data": invoice.to_dict()}
        return self._respond(201, action)

    def get_invoice(self, invoice_id: Any) -> Response:
        return self._respond(200, lambda: {"data": self.invoice_queries.get_invoice(invoice_id).to_dict()})

    def get_invoice_by_number(self, invoice_number: str) -> Response:
        return self._respond(
            200, lambda: {"data": self.invoice_queries.get_invoice_by_number(invoice_number).to_dict()}
        )

    def list_invoices(self, **query) -> Response:
        def action():
            page = self.invoice_queries.list_invoices(**query)
            return {"data": [inv.to_dict() for inv in page.items], "pagination": page.pagination()}
        return self._respond(200, action)

    def create_product(self, payload: Dict[str, Any]) -> Response:
        return self._respond(201, lambda: {"data": self.catalog.create_product(payload).to_dict()})

    def update_product(self, product_id: Any, payload: Dict[str, Any]) -> Response:
        return self._respond(200, lambda: {"data": self.catalog.update_product(product_id, payload).to_dict()})

    def delete_product(self, product_id: Any) -> Response:
        def action():
            self.catalog.delete_product(product_id)
            return {"message": "Product deleted successfully"}
        return self._respond(200, action)

    def get_product(self, product_id: Any) -> Response:
        return self._respond(200, lambda: {"data": self.catalog.get_product(product_id).to_dict()})

    def list_products(self, **query) -> Response:
        def action():
            page = self.catalog.list_products(**query)
            return {"data": [p.to_dict() for p in page.items], "pagination": page.pagination()}
        return self._respond(200, action)

    def search_products(self, q: Optional[str]) -> Response:
        def action():
            products = self.catalog.search_products(q)
            return {"data": [p.to_dict() for p in products], "count": len(products)}
        return self._respond(200, action)

    def today_sales(self) -> Response:
        return self._respond(200, self.reports.today_sales)

    def month_sales(self, month: Optional[int] = None, year: Optional[int] = None) -> Response:
        return self._respond(200, lambda: self.reports.month_sales(month, year))

    def top_products(self, **query) -> Response:
        return self._respond(200, lambda: self.reports.top_products(**query))
