"""
Pure invoice arithmetic.

Every amount is a ``Decimal`` and nothing is rounded, so

    grand_total == total_amount + tax_amount - discount

holds exactly and the invoice totals always equal the sum of their lines.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List

HUNDRED = Decimal(100)
ZERO = Decimal(0)


@dataclass(frozen=True)
class LinePricing:
    """Amounts for one invoice line."""
    price: Decimal
    tax_percent: Decimal
    quantity: int
    subtotal_pre_tax: Decimal
    tax_amount: Decimal
    line_total: Decimal


@dataclass(frozen=True)
class InvoiceTotals:
    lines: List[LinePricing] = field(default_factory=list)
    total_amount: Decimal = ZERO
    tax_amount: Decimal = ZERO
    discount: Decimal = ZERO
    grand_total: Decimal = ZERO


def price_line(price: Decimal, tax_percent: Decimal, quantity: int) -> LinePricing:
    price = Decimal(price)
    tax_percent = Decimal(tax_percent)
    subtotal = price * quantity
    tax = subtotal * (tax_percent / HUNDRED)
    return LinePricing(
        price=price,
        tax_percent=tax_percent,
        quantity=quantity,
        subtotal_pre_tax=subtotal,
        tax_amount=tax,
        line_total=subtotal + tax,
    )


def compute_totals(lines: Iterable[LinePricing], discount: Decimal = ZERO) -> InvoiceTotals:
    """
    Aggregate priced lines into invoice totals.

    The discount is a flat, invoice-level subtraction. It is not capped, so a
    discount larger than the totals yields a negative grand total.
    """
    lines = list(lines)
    discount = Decimal(discount)
    total_amount = sum((line.subtotal_pre_tax for line in lines), ZERO)
    tax_amount = sum((line.tax_amount for line in lines), ZERO)
    return InvoiceTotals(
        lines=lines,
        total_amount=total_amount,
        tax_amount=tax_amount,
        discount=discount,
        grand_total=total_amount + tax_amount - discount,
    )
