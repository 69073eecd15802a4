"""Tax and total computation for invoices."""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

from .models import InvoiceTotals

Number = Union[Decimal, int, str]


def compute_tax(subtotal: Number, tax_rate: Number) -> Decimal:
    """Return ``subtotal * tax_rate / 100`` rounded half up to a whole unit."""

    raw = Decimal(str(subtotal)) * Decimal(str(tax_rate)) / Decimal(100)
    return raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def price_invoice(subtotal: Number, tax_rate: Number) -> InvoiceTotals:
    subtotal_value = Decimal(str(subtotal))
    rate = Decimal(str(tax_rate))
    if subtotal_value < 0:
        raise ValueError("subtotal must be >= 0")
    if rate < 0:
        raise ValueError("tax_rate must be >= 0")
    tax_amount = compute_tax(subtotal_value, rate)
    return InvoiceTotals(
        subtotal=subtotal_value,
        tax_rate=rate,
        tax_amount=tax_amount,
        total_amount=subtotal_value + tax_amount,
    )


__all__ = ["compute_tax", "price_invoice"]
