"""Domain models for issued invoices."""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..payments.models import EmployerAccount
from ..plans.models import PlanId


class InvoiceStatus(str, Enum):
    """Status of a persisted invoice record."""

    ISSUED = "issued"
    VOID = "void"


class BillTo(BaseModel):
    """Snapshot of the employer's billing identity at issuance time."""

    company_name: str
    company_email: str
    company_phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    zip_code: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_employer(cls, employer: EmployerAccount) -> "BillTo":
        hq = employer.headquarters
        return cls(
            company_name=employer.company_name,
            company_email=employer.company_email,
            company_phone=employer.company_phone,
            address=hq.address,
            city=hq.city,
            state=hq.state,
            country=hq.country,
            zip_code=hq.zip_code,
        )

    def address_lines(self) -> List[str]:
        lines = [self.address] if self.address else []
        locality = ", ".join(part for part in (self.city, self.state, self.zip_code) if part)
        if locality:
            lines.append(locality)
        if self.country:
            lines.append(self.country)
        return lines


class InvoiceItem(BaseModel):
    description: str
    plan_id: Optional[PlanId] = None
    quantity: int = Field(default=1, ge=1)
    unit_price: Decimal = Field(ge=0)
    amount: Decimal = Field(ge=0)

    model_config = ConfigDict(frozen=True)


class InvoiceTotals(BaseModel):
    """Priced amounts for an invoice."""

    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total_amount: Decimal

    model_config = ConfigDict(frozen=True)


class Invoice(BaseModel):
    """Issued invoice; only ``status`` may change after creation."""

    invoice_id: str
    employer_id: str
    payment_id: str
    subscription_id: Optional[str] = None
    invoice_number: str
    invoice_date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    bill_to: BillTo
    items: List[InvoiceItem]
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    currency: str = "INR"
    pdf_url: Optional[str] = None
    pdf_public_id: Optional[str] = None
    notes: Optional[str] = None
    status: InvoiceStatus = InvoiceStatus.ISSUED
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_totals(self) -> "Invoice":
        if self.total_amount != self.subtotal + self.tax_amount:
            raise ValueError("total_amount must equal subtotal + tax_amount")
        return self

    def summary(self) -> Dict[str, object]:
        return {
            "invoiceNumber": self.invoice_number,
            "totalAmount": self.total_amount,
            "currency": self.currency,
            "pdfUrl": self.pdf_url,
        }


class StoredDocument(BaseModel):
    """Location of an archived file."""

    url: str
    public_id: str

    model_config = ConfigDict(frozen=True)


class InvoicePage(BaseModel):
    invoices: List[Invoice]
    total: int
    page: int
    limit: int

    model_config = ConfigDict(frozen=True)

    @property
    def pages(self) -> int:
        if self.limit <= 0:
            return 0
        return -(-self.total // self.limit)


__all__ = [
    "BillTo",
    "Invoice",
    "InvoiceItem",
    "InvoicePage",
    "InvoiceStatus",
    "InvoiceTotals",
    "StoredDocument",
]
