import time
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from billing_hub.config.settings import BillingConfig
from billing_hub.core.exceptions import (
    BillingError,
    ConcurrentModification,
    InsufficientStock,
    InternalError,
    NumberAllocationFailed,
    ProductNotFound,
    ValidationError,
)
from billing_hub.core.numbering import InvoiceNumberGenerator
from billing_hub.core.pricing import InvoiceTotals, compute_totals, price_line
from billing_hub.db.catalog import CatalogStore
from billing_hub.db.core import DB, is_concurrency_conflict, is_unique_violation
from billing_hub.db.invoices import InvoiceStore
from billing_hub.db.model import Invoice, InvoiceItem, Product
from billing_hub.db.users import UserStore
from billing_hub.models.invoice import Caller, InvoiceRequest, ValidatedInvoiceRequest
from billing_hub.utils.helpers import now
from billing_hub.utils.logger import get_logger


class _NumberCollision(Exception):
    """Another transaction committed the invoice number first."""

    def __init__(self, invoice_number: str):
        super().__init__(invoice_number)
        self.invoice_number = invoice_number


class _StockConflict(Exception):
    """A product row changed between snapshot and write."""


class InvoiceCoordinator:
    """
    Creates invoices as one all-or-nothing unit of work.

    Steps per attempt:
        1. snapshot the requested products
        2. check stock for every line against the snapshot
        3. price every line and the invoice
        4. decrement stock (version-guarded)
        5. allocate the day's next invoice number
        6. insert the invoice and commit

    Validation runs once, before any attempt. A number collision or a
    concurrent stock change rolls the attempt back and starts again at
    step 1 with a fresh snapshot, up to ``max_retries`` attempts.
    """

    def __init__(
        self,
        db: DB,
        config: Optional[BillingConfig] = None,
        catalog: Optional[CatalogStore] = None,
        invoices: Optional[InvoiceStore] = None,
        users: Optional[UserStore] = None,
        numbering: Optional[InvoiceNumberGenerator] = None,
        clock: Callable[[], datetime] = now,
    ):
        self.db = db
        self.config = config or BillingConfig()
        self.catalog = catalog or CatalogStore()
        self.invoices = invoices or InvoiceStore()
        self.users = users or UserStore()
        self.numbering = numbering or InvoiceNumberGenerator(self.invoices)
        self.clock = clock
        self.logger = get_logger(self.__class__.__name__)

    def create_invoice(self, request: InvoiceRequest, caller: Caller) -> Invoice:
        validated = request.validate()
        max_attempts = max(1, self.config.max_retries)
        last_failure = None

        for attempt in range(1, max_attempts + 1):
            try:
                with self.db.transaction() as session:
                    invoice = self._attempt(session, validated, caller)
                self.logger.info(
                    f"🧾 Created {invoice.invoice_number}: {len(invoice.items)} lines, "
                    f"grand total {invoice.grand_total} ({invoice.payment_method.value})"
                )
                return invoice

            except _NumberCollision as e:
                last_failure = e
                self.logger.warning(
                    f"⚠️  Invoice number {e.invoice_number} taken, retrying "
                    f"(attempt {attempt}/{max_attempts})"
                )
            except _StockConflict as e:
                last_failure = e
                self.logger.warning(
                    f"⚠️  Stock changed concurrently, retrying with fresh snapshot "
                    f"(attempt {attempt}/{max_attempts})"
                )
            except BillingError:
                raise
            except Exception as e:
                self.logger.exception(f"💥 Invoice transaction failed: {e}")
                raise InternalError() from e

            if attempt < max_attempts and self.config.retry_backoff_seconds:
                time.sleep(self.config.retry_backoff_seconds * attempt)

        if isinstance(last_failure, _NumberCollision):
            self.logger.error(f"❌ No free invoice number after {max_attempts} attempts")
            raise NumberAllocationFailed(
                f"Could not allocate a unique invoice number after {max_attempts} attempts"
            ) from last_failure
        self.logger.error(f"❌ Stock kept changing concurrently after {max_attempts} attempts")
        raise ConcurrentModification(max_attempts) from last_failure

    def _attempt(self, session: Session, request: ValidatedInvoiceRequest, caller: Caller) -> Invoice:
        creator = self.users.get(session, caller.user_id)
        if creator is None or not creator.is_active:
            raise ValidationError(f"Unknown or inactive user: {caller.user_id}")

        products = self._snapshot(session, request)
        self._check_stock(request, products)
        totals = self._price(request, products)

        try:
            for product_id, quantity in request.lines:
                self.catalog.decrement_stock(session, products[product_id], quantity)
            session.flush()
        except SQLAlchemyError as e:
            if is_concurrency_conflict(e):
                raise _StockConflict() from e
            raise

        created_at = self.clock()
        invoice_number = self.numbering.next_invoice_number(session, created_at.date())
        invoice = self._build_invoice(request, products, totals, invoice_number, creator, created_at)

        try:
            self.invoices.insert(session, invoice)
            session.commit()
        except IntegrityError as e:
            if is_unique_violation(e, "invoice_number"):
                raise _NumberCollision(invoice_number) from e
            raise
        except SQLAlchemyError as e:
            if is_concurrency_conflict(e):
                raise _StockConflict() from e
            raise
        return invoice

    def _snapshot(self, session: Session, request: ValidatedInvoiceRequest) -> Dict:
        found = self.catalog.find_by_ids(session, request.product_ids, lock=self.config.lock_products)
        products = {p.id: p for p in found}
        if len(products) != len(request.product_ids):
            missing = [pid for pid in request.product_ids if pid not in products]
            raise ProductNotFound("One or more products not found", product_ids=missing)
        return products

    def _check_stock(self, request: ValidatedInvoiceRequest, products: Dict) -> None:
        for product_id, quantity in request.lines:
            product = products[product_id]
            if quantity > product.stock:
                raise InsufficientStock(product.id, product.name, product.stock, quantity)

    def _price(self, request: ValidatedInvoiceRequest, products: Dict) -> InvoiceTotals:
        lines = [
            price_line(products[pid].price, products[pid].tax_percent, qty)
            for pid, qty in request.lines
        ]
        return compute_totals(lines, request.discount)

    def _build_invoice(
        self,
        request: ValidatedInvoiceRequest,
        products: Dict,
        totals: InvoiceTotals,
        invoice_number: str,
        creator,
        created_at: datetime,
    ) -> Invoice:
        items: List[InvoiceItem] = []
        for position, ((product_id, quantity), line) in enumerate(zip(request.lines, totals.lines)):
            product: Product = products[product_id]
            items.append(InvoiceItem(
                position=position,
                product_id=product.id,
                name=product.name,
                price=line.price,
                quantity=quantity,
                tax_percent=line.tax_percent,
                subtotal=line.line_total,
            ))
        return Invoice(
            invoice_number=invoice_number,
            items=items,
            total_amount=totals.total_amount,
            tax_amount=totals.tax_amount,
            discount=totals.discount,
            grand_total=totals.grand_total,
            payment_method=request.payment_method,
            created_by=creator.id,
            creator=creator,
            created_at=created_at,
        )
