import uuid
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update

from billing_hub.core.exceptions import (
    ConcurrentModification,
    InsufficientStock,
    NumberAllocationFailed,
    ProductNotFound,
    ValidationError,
)
from billing_hub.core.invoice_coordinator import InvoiceCoordinator
from billing_hub.core.numbering import InvoiceNumberGenerator
from billing_hub.db.catalog import CatalogStore
from billing_hub.db.invoices import InvoiceStore
from billing_hub.db.model import Invoice, PaymentMethod, Product
from billing_hub.models.invoice import Caller


def invoice_count(db):
    with db.transaction() as session:
        return session.scalar(select(func.count(Invoice.id)))


def test_creates_invoice_with_totals_and_stock_decrement(coordinator, caller, make_product, stock_of, invoice_request):
    product = make_product(price="100", tax_percent="10", stock=5)

    invoice = coordinator.create_invoice(
        invoice_request((product.id, 2), payment_method="Card", discount=10), caller
    )

    assert invoice.invoice_number == "INV-20240115-0001"
    assert invoice.total_amount == Decimal("200")
    assert invoice.tax_amount == Decimal("20")
    assert invoice.discount == Decimal("10")
    assert invoice.grand_total == Decimal("210")
    assert invoice.payment_method is PaymentMethod.CARD

    [line] = invoice.items
    assert line.product_id == product.id
    assert line.name == "Widget"
    assert line.price == Decimal("100")
    assert line.tax_percent == Decimal("10")
    assert line.quantity == 2
    assert line.subtotal == Decimal("220")

    assert stock_of(product.id) == 3


def test_returned_invoice_resolves_creator(coordinator, caller, cashier, make_product, invoice_request):
    product = make_product()
    invoice = coordinator.create_invoice(invoice_request((product.id, 1)), caller)

    data = invoice.to_dict()
    assert data["created_by"] == {"id": str(cashier.id), "name": "Asha", "email": "asha@example.com"}
    assert data["items"][0]["subtotal"] == Decimal("110")


def test_invoice_is_persisted(db, coordinator, caller, make_product, invoice_request):
    product = make_product(stock=10)
    created = coordinator.create_invoice(invoice_request((product.id, 3), discount="5"), caller)

    with db.transaction() as session:
        stored = InvoiceStore().find_by_number(session, created.invoice_number)
        assert stored.id == created.id
        assert stored.grand_total == Decimal("325")
        assert [item.quantity for item in stored.items] == [3]
        assert stored.creator.email == "asha@example.com"


def test_multi_line_totals_and_stock(coordinator, caller, make_product, stock_of, invoice_request):
    a = make_product(name="A", price="100", tax_percent="10", stock=5)
    b = make_product(name="B", price="20", tax_percent="0", stock=8)
    c = make_product(name="C", price="7.5", tax_percent="20", stock=4)

    invoice = coordinator.create_invoice(
        invoice_request((a.id, 1), (b.id, 3), (c.id, 4), payment_method="UPI"), caller
    )

    assert [item.name for item in invoice.items] == ["A", "B", "C"]
    assert invoice.total_amount == Decimal("190")
    assert invoice.tax_amount == Decimal("16")
    assert invoice.grand_total == invoice.total_amount + invoice.tax_amount - invoice.discount
    assert sum(item.subtotal for item in invoice.items) == invoice.total_amount + invoice.tax_amount
    assert (stock_of(a.id), stock_of(b.id), stock_of(c.id)) == (4, 5, 0)


def test_insufficient_stock_names_product_and_changes_nothing(db, coordinator, caller, make_product, stock_of, invoice_request):
    product = make_product(stock=5)

    with pytest.raises(InsufficientStock) as exc_info:
        coordinator.create_invoice(invoice_request((product.id, 6)), caller)

    assert exc_info.value.available == 5
    assert exc_info.value.product_id == product.id
    assert "Widget" in exc_info.value.message
    assert stock_of(product.id) == 5
    assert invoice_count(db) == 0


def test_one_short_line_aborts_every_line(db, coordinator, caller, make_product, stock_of, invoice_request):
    plenty = make_product(name="Plenty", stock=50)
    scarce = make_product(name="Scarce", stock=1)

    with pytest.raises(InsufficientStock) as exc_info:
        coordinator.create_invoice(invoice_request((plenty.id, 10), (scarce.id, 2)), caller)

    assert exc_info.value.product_name == "Scarce"
    assert stock_of(plenty.id) == 50
    assert stock_of(scarce.id) == 1
    assert invoice_count(db) == 0


def test_missing_product_aborts(db, coordinator, caller, make_product, stock_of, invoice_request):
    product = make_product(stock=5)
    ghost = uuid.uuid4()

    with pytest.raises(ProductNotFound) as exc_info:
        coordinator.create_invoice(invoice_request((product.id, 1), (ghost, 1)), caller)

    assert exc_info.value.product_ids == [ghost]
    assert stock_of(product.id) == 5
    assert invoice_count(db) == 0


@pytest.mark.parametrize("payload", [
    {"items": [], "payment_method": "Cash"},
    {"payment_method": "Cash"},
    {"items": [{"product_id": "PID", "quantity": 0}], "payment_method": "Cash"},
    {"items": [{"product_id": "PID", "quantity": "2"}], "payment_method": "Cash"},
    {"items": [{"product_id": "PID", "quantity": 1.5}], "payment_method": "Cash"},
    {"items": [{"product_id": "PID", "quantity": 1}], "payment_method": "Cheque"},
    {"items": [{"product_id": "PID", "quantity": 1}]},
    {"items": [{"product_id": "PID", "quantity": 1}], "payment_method": "Cash", "discount": -1},
    {"items": [{"product_id": "PID", "quantity": 1}], "payment_method": "Cash", "discount": "ten"},
    {"items": [{"product_id": "not-a-uuid", "quantity": 1}], "payment_method": "Cash"},
    {"items": [{"product_id": "PID", "quantity": 1}, {"product_id": "PID", "quantity": 2}],
     "payment_method": "Cash"},
])
def test_invalid_requests_are_rejected_without_side_effects(db, coordinator, caller, make_product, stock_of, payload):
    from billing_hub.models.invoice import InvoiceRequest

    product = make_product(stock=5)
    for item in payload.get("items", []):
        if item["product_id"] == "PID":
            item["product_id"] = str(product.id)

    with pytest.raises(ValidationError):
        coordinator.create_invoice(InvoiceRequest.from_dict(payload), caller)

    assert stock_of(product.id) == 5
    assert invoice_count(db) == 0


def test_validation_collects_all_messages(coordinator, caller):
    from billing_hub.models.invoice import InvoiceRequest

    with pytest.raises(ValidationError) as exc_info:
        coordinator.create_invoice(InvoiceRequest.from_dict({"items": [], "discount": -5}), caller)

    assert exc_info.value.errors == [
        "At least one item is required",
        "Payment method is required",
        "Discount cannot be negative",
    ]


def test_unknown_creator_is_rejected(db, coordinator, make_product, stock_of, invoice_request):
    product = make_product(stock=5)

    with pytest.raises(ValidationError):
        coordinator.create_invoice(invoice_request((product.id, 1)), Caller.of(uuid.uuid4()))

    assert stock_of(product.id) == 5


def test_large_discount_is_not_clamped(coordinator, caller, make_product, invoice_request):
    product = make_product(price="10", tax_percent="0", stock=5)
    invoice = coordinator.create_invoice(invoice_request((product.id, 1), discount=25), caller)
    assert invoice.grand_total == Decimal("-15")


def test_invoice_keeps_product_data_as_sold(db, coordinator, caller, make_product, invoice_request):
    product = make_product(name="Tea", price="40", tax_percent="5", stock=5)
    created = coordinator.create_invoice(invoice_request((product.id, 1)), caller)

    with db.transaction() as session:
        live = session.get(Product, product.id)
        live.name = "Green Tea"
        live.price = Decimal("55")
    with db.transaction() as session:
        session.delete(session.get(Product, product.id))

    with db.transaction() as session:
        stored = InvoiceStore().find_by_id(session, created.id)
        [line] = stored.items
        assert line.name == "Tea"
        assert line.price == Decimal("40")
        assert line.subtotal == Decimal("42")
        assert stored.grand_total == Decimal("42")


class StaleFirstNumbers(InvoiceNumberGenerator):
    """Hands out a number that is already taken for the first ``stale`` calls."""

    def __init__(self, taken: str, stale: int):
        super().__init__()
        self.taken = taken
        self.stale = stale
        self.calls = 0

    def next_invoice_number(self, session, day):
        self.calls += 1
        if self.calls <= self.stale:
            return self.taken
        return super().next_invoice_number(session, day)


def test_number_collision_is_retried_with_fresh_number(db, config, clock, caller, make_product, stock_of, invoice_request):
    product = make_product(stock=5)
    InvoiceCoordinator(db, config, clock=clock).create_invoice(invoice_request((product.id, 1)), caller)

    numbering = StaleFirstNumbers("INV-20240115-0001", stale=1)
    coordinator = InvoiceCoordinator(db, config, numbering=numbering, clock=clock)
    invoice = coordinator.create_invoice(invoice_request((product.id, 2)), caller)

    assert numbering.calls == 2
    assert invoice.invoice_number == "INV-20240115-0002"
    # the rolled-back attempt must not have taken stock
    assert stock_of(product.id) == 2
    assert invoice_count(db) == 2


def test_number_allocation_gives_up_after_retries(db, config, clock, caller, make_product, stock_of, invoice_request):
    product = make_product(stock=5)
    InvoiceCoordinator(db, config, clock=clock).create_invoice(invoice_request((product.id, 1)), caller)

    numbering = StaleFirstNumbers("INV-20240115-0001", stale=100)
    coordinator = InvoiceCoordinator(db, config, numbering=numbering, clock=clock)

    with pytest.raises(NumberAllocationFailed):
        coordinator.create_invoice(invoice_request((product.id, 2)), caller)

    assert numbering.calls == config.max_retries
    assert stock_of(product.id) == 4
    assert invoice_count(db) == 1


class RacingCatalog(CatalogStore):
    """Sells one unit through a separate transaction right after each snapshot."""

    def __init__(self, db, races: int):
        self.db = db
        self.races = races

    def find_by_ids(self, session, ids, lock=False):
        products = super().find_by_ids(session, ids, lock)
        if self.races > 0:
            self.races -= 1
            with self.db.transaction() as other:
                other.execute(
                    update(Product)
                    .where(Product.id.in_([p.id for p in products]))
                    .values(stock=Product.stock - 1, version=Product.version + 1)
                )
        return products


def test_concurrent_stock_change_retries_from_fresh_snapshot(db, config, clock, caller, make_product, stock_of, invoice_request):
    product = make_product(stock=5)
    catalog = RacingCatalog(db, races=1)
    coordinator = InvoiceCoordinator(db, config, catalog=catalog, clock=clock)

    invoice = coordinator.create_invoice(invoice_request((product.id, 2)), caller)

    assert invoice.invoice_number == "INV-20240115-0001"
    # one unit went to the racing writer, two to this invoice
    assert stock_of(product.id) == 2


def test_persistent_conflicts_raise_concurrent_modification(db, config, clock, caller, make_product, stock_of, invoice_request):
    product = make_product(stock=10)
    catalog = RacingCatalog(db, races=100)
    coordinator = InvoiceCoordinator(db, config, catalog=catalog, clock=clock)

    with pytest.raises(ConcurrentModification):
        coordinator.create_invoice(invoice_request((product.id, 2)), caller)

    # only the racing writer's sales landed
    assert stock_of(product.id) == 10 - config.max_retries
    assert invoice_count(db) == 0


def test_snapshot_under_race_still_refuses_overselling(db, config, clock, caller, make_product, stock_of, invoice_request):
    product = make_product(stock=2)
    catalog = RacingCatalog(db, races=1)
    coordinator = InvoiceCoordinator(db, config, catalog=catalog, clock=clock)

    with pytest.raises(InsufficientStock) as exc_info:
        coordinator.create_invoice(invoice_request((product.id, 2)), caller)

    assert exc_info.value.available == 1
    assert stock_of(product.id) == 1


def test_locking_snapshot_creates_invoice(db, clock, caller, make_product, stock_of, invoice_request):
    from billing_hub.config.settings import BillingConfig

    a = make_product(name="A", stock=5)
    b = make_product(name="B", stock=3)
    coordinator = InvoiceCoordinator(db, BillingConfig(lock_products=True, retry_backoff_seconds=0), clock=clock)

    invoice = coordinator.create_invoice(invoice_request((b.id, 1), (a.id, 2)), caller)

    assert [item.name for item in invoice.items] == ["B", "A"]
    assert (stock_of(a.id), stock_of(b.id)) == (3, 2)


def test_locking_snapshot_query_locks_rows_in_id_order():
    from sqlalchemy.dialects import postgresql

    ids = sorted([uuid.uuid4(), uuid.uuid4()])
    locked = str(CatalogStore().snapshot_query(ids, lock=True).compile(dialect=postgresql.dialect()))
    plain = str(CatalogStore().snapshot_query(ids).compile(dialect=postgresql.dialect()))

    assert "ORDER BY products.id" in locked
    assert locked.rstrip().endswith("FOR UPDATE")
    assert "FOR UPDATE" not in plain
