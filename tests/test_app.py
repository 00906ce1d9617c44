import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pandas as pd
import pytest

from billing_hub.app import BillingHub
from billing_hub.config.settings import ApplicationConfig, BillingConfig
from billing_hub.db.invoices import InvoiceStore
from billing_hub.utils.report_generator import export_invoices, generate_sales_report


@pytest.fixture
def hub(db, clock):
    config = ApplicationConfig(billing=BillingConfig(retry_backoff_seconds=0))
    return BillingHub(config=config, db=db, clock=clock)


@pytest.fixture
def tea(hub):
    status, body = hub.create_product({"name": "Tea", "barcode": "T1", "price": "100", "tax_percent": "10", "stock": 5})
    assert status == 201
    return body["data"]


def order(product, quantity, **extra):
    return {
        "items": [{"product_id": product["id"], "quantity": quantity}],
        "payment_method": extra.pop("payment_method", "Card"),
        **extra,
    }


def test_create_invoice_returns_201_with_invoice(hub, cashier, tea):
    status, body = hub.create_invoice(order(tea, 2, discount=10), cashier.id)

    assert status == 201
    assert body["success"] is True
    invoice = body["data"]
    assert invoice["invoice_number"] == "INV-20240115-0001"
    assert invoice["grand_total"] == Decimal("210")
    assert invoice["payment_method"] == "Card"
    assert invoice["created_by"]["email"] == "asha@example.com"
    assert invoice["items"][0]["name"] == "Tea"

    status, body = hub.get_product(tea["id"])
    assert body["data"]["stock"] == 3


def test_insufficient_stock_maps_to_422(hub, cashier, tea):
    status, body = hub.create_invoice(order(tea, 9), cashier.id)

    assert status == 422
    assert body == {
        "success": False,
        "code": "INSUFFICIENT_STOCK",
        "message": "Insufficient stock for product: Tea. Available: 5",
        "product_id": tea["id"],
        "available": 5,
    }


def test_unknown_product_maps_to_404(hub, cashier):
    status, body = hub.create_invoice(order({"id": str(uuid.uuid4())}, 1), cashier.id)
    assert status == 404
    assert body["code"] == "PRODUCT_NOT_FOUND"


@pytest.mark.parametrize("payload", [
    {"items": [], "payment_method": "Card"},
    {"items": "lots", "payment_method": "Card"},
    {"items": ["oops"], "payment_method": "Card"},
])
def test_malformed_requests_map_to_400(hub, cashier, payload):
    status, body = hub.create_invoice(payload, cashier.id)
    assert status == 400
    assert body["code"] == "VALIDATION_ERROR"


def test_invalid_role_maps_to_400(hub, cashier, tea):
    status, body = hub.create_invoice(order(tea, 1), cashier.id, role="manager")
    assert status == 400


def test_infrastructure_failures_are_opaque(hub, cashier, tea, monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError("connection reset by peer at 10.0.0.7")

    monkeypatch.setattr(hub.invoices, "_attempt", explode)
    status, body = hub.create_invoice(order(tea, 1), cashier.id)

    assert status == 500
    assert body == {"success": False, "code": "INTERNAL_ERROR", "message": "Internal server error"}
    assert hub.get_product(tea["id"])[1]["data"]["stock"] == 5


def test_unexpected_errors_outside_invoicing_are_opaque(hub, monkeypatch):
    def explode(*args, **kwargs):
        raise KeyError("secret")

    monkeypatch.setattr(hub.catalog, "list_products", explode)
    status, body = hub.list_products()
    assert status == 500
    assert body["message"] == "Internal server error"


def test_product_endpoints(hub, tea):
    status, body = hub.create_product({"name": "Other", "barcode": "T1", "price": 1, "stock": 1})
    assert (status, body["code"]) == (409, "DUPLICATE_BARCODE")

    status, body = hub.update_product(tea["id"], {"price": 120})
    assert status == 200
    assert body["data"]["price"] == Decimal("120")

    status, body = hub.list_products(search="te")
    assert body["pagination"] == {"page": 1, "limit": 10, "total": 1, "pages": 1}

    status, body = hub.search_products("tea")
    assert body["count"] == 1

    status, body = hub.delete_product(tea["id"])
    assert body == {"success": True, "message": "Product deleted successfully"}
    assert hub.get_product(tea["id"])[0] == 404


def test_invoice_reads_and_reports(hub, cashier, tea):
    _, created = hub.create_invoice(order(tea, 1, payment_method="Cash"), cashier.id)
    number = created["data"]["invoice_number"]

    status, body = hub.get_invoice_by_number(number)
    assert status == 200
    assert body["data"]["id"] == created["data"]["id"]

    assert hub.get_invoice("not-a-uuid")[0] == 400
    assert hub.get_invoice(str(uuid.uuid4()))[0] == 404

    status, body = hub.list_invoices(page=1, limit=5)
    assert body["pagination"]["total"] == 1

    status, body = hub.today_sales()
    assert body["data"]["total_sales"] == Decimal("110")

    status, body = hub.month_sales()
    assert body["daily_sales"] == [{"day": 15, "total_sales": Decimal("110"), "invoice_count": 1}]

    status, body = hub.top_products(limit=5)
    assert body["count"] == 1


def test_export_invoices_to_csv(db, hub, cashier, tea, tmp_path):
    hub.create_invoice(order(tea, 2), cashier.id)
    hub.create_invoice(order(tea, 1, payment_method="UPI"), cashier.id)

    out = tmp_path / "exports" / "january.csv"
    with db.transaction() as session:
        invoices = InvoiceStore().all_in_range(
            session,
            datetime(2024, 1, 1, tzinfo=timezone.utc),
            datetime(2024, 2, 1, tzinfo=timezone.utc),
        )
        export_invoices(invoices, str(out))

    frame = pd.read_csv(out)
    assert list(frame["invoice_number"]) == ["INV-20240115-0001", "INV-20240115-0002"]
    assert list(frame["payment_method"]) == ["Card", "UPI"]
    assert list(frame["items"]) == [2, 1]
    assert list(frame["created_by"]) == ["asha@example.com"] * 2


def test_export_rejects_unknown_format(tmp_path):
    with pytest.raises(ValueError):
        export_invoices([], str(tmp_path / "out.json"))


def test_sales_report_file(hub, cashier, tea, tmp_path):
    hub.create_invoice(order(tea, 1), cashier.id)
    out = tmp_path / "month.txt"

    generate_sales_report(hub.reports.month_sales(), str(out), title="MONTHLY SALES")

    text = out.read_text()
    assert "BILLING HUB - MONTHLY SALES" in text
    assert "Invoices: 1" in text
    assert "Card: 110" in text


def test_non_finite_stock_maps_to_400(hub):
    status, body = hub.create_product({"name": "Odd", "price": 1, "stock": float("nan")})
    assert (status, body["code"]) == (400, "VALIDATION_ERROR")
    assert body["message"] == "Stock must be a whole number"
