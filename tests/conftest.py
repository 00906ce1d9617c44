from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from billing_hub.config.settings import BillingConfig
from billing_hub.core.invoice_coordinator import InvoiceCoordinator
from billing_hub.db.core import DB
from billing_hub.db.model import Product
from billing_hub.db.users import UserStore
from billing_hub.models.invoice import Caller, InvoiceRequest


class FakeClock:
    def __init__(self, current: datetime):
        self.current = current

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs):
        self.current = self.current + timedelta(**kwargs)


@pytest.fixture
def db(tmp_path):
    # A file database so separate connections (and threads) really interleave
    database = DB({
        "url": f"sqlite:///{tmp_path / 'billing.db'}",
        "connect_args": {"check_same_thread": False, "timeout": 30},
    })
    database.create_schema()
    yield database
    database.dispose()


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc))


@pytest.fixture
def config():
    return BillingConfig(retry_backoff_seconds=0)


@pytest.fixture
def cashier(db):
    with db.transaction() as session:
        user = UserStore().create(session, "Asha", "asha@example.com")
    return user


@pytest.fixture
def caller(cashier):
    return Caller.of(cashier.id)


@pytest.fixture
def make_product(db):
    def _make(name="Widget", price="100", tax_percent="10", stock=5, barcode=None):
        with db.transaction() as session:
            product = Product(
                name=name,
                price=Decimal(price),
                tax_percent=Decimal(tax_percent),
                stock=stock,
                barcode=barcode,
            )
            session.add(product)
        return product
    return _make


@pytest.fixture
def coordinator(db, config, clock):
    return InvoiceCoordinator(db, config, clock=clock)


@pytest.fixture
def stock_of(db):
    def _stock(product_id):
        with db.transaction() as session:
            return session.get(Product, product_id).stock
    return _stock


def build_request(*lines, payment_method="Card", discount=0):
    return InvoiceRequest.from_dict({
        "items": [{"product_id": str(pid), "quantity": qty} for pid, qty in lines],
        "payment_method": payment_method,
        "discount": discount,
    })


@pytest.fixture
def invoice_request():
    """Build a request from (product_id, quantity) pairs."""
    return build_request
