"""
Date-scoped invoice numbers: ``INV-YYYYMMDD-NNNN``.

The next number is derived inside the invoice transaction from the highest
number already stored for the day. Two concurrent transactions can still
derive the same number; the unique constraint on ``invoices.invoice_number``
rejects the later insert and the coordinator retries with a fresh number.
"""
import re
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from billing_hub.core.exceptions import NumberAllocationFailed
from billing_hub.db.invoices import InvoiceStore

PREFIX = "INV"
MAX_SEQUENCE = 9999

NUMBER_PATTERN = re.compile(r"^INV-(\d{8})-(\d{4})$")


def date_prefix(day: date) -> str:
    return f"{PREFIX}-{day.strftime('%Y%m%d')}-"


def format_invoice_number(day: date, sequence: int) -> str:
    if not 1 <= sequence <= MAX_SEQUENCE:
        raise NumberAllocationFailed(
            f"Invoice sequence {sequence} is outside 1..{MAX_SEQUENCE} for {day.isoformat()}"
        )
    return f"{date_prefix(day)}{sequence:04d}"


def parse_sequence(invoice_number: Optional[str]) -> int:
    """Sequence part of a stored number, 0 when there is none."""
    if not invoice_number:
        return 0
    match = NUMBER_PATTERN.match(invoice_number)
    if not match:
        raise ValueError(f"Malformed invoice number: {invoice_number}")
    return int(match.group(2))


class InvoiceNumberGenerator:
    """Numbering service backed by the invoice table."""

    def __init__(self, invoice_store: InvoiceStore = None):
        self.invoice_store = invoice_store or InvoiceStore()

    def next_invoice_number(self, session: Session, day: date) -> str:
        latest = self.invoice_store.latest_number_with_prefix(session, date_prefix(day))
        return format_invoice_number(day, parse_sequence(latest) + 1)
