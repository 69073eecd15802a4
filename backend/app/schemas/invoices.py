"""API schemas for invoice endpoints."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..invoices import Invoice, InvoicePage
from .payments import Pagination


class InvoiceItemOut(BaseModel):
    description: str
    plan_id: Optional[str] = Field(alias="planId", default=None)
    quantity: int
    unit_price: Decimal = Field(alias="unitPrice")
    amount: Decimal

    model_config = ConfigDict(populate_by_name=True)


class BillToOut(BaseModel):
    company_name: str = Field(alias="companyName")
    company_email: str = Field(alias="companyEmail")
    company_phone: Optional[str] = Field(alias="companyPhone", default=None)
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    zip_code: Optional[str] = Field(alias="zipCode", default=None)

    model_config = ConfigDict(populate_by_name=True)


class InvoiceOut(BaseModel):
    invoice_number: str = Field(alias="invoiceNumber")
    invoice_date: datetime = Field(alias="invoiceDate")
    payment_id: str = Field(alias="paymentId")
    subscription_id: Optional[str] = Field(alias="subscriptionId", default=None)
    bill_to: BillToOut = Field(alias="billTo")
    items: List[InvoiceItemOut]
    subtotal: Decimal
    tax_rate: Decimal = Field(alias="taxRate")
    tax_amount: Decimal = Field(alias="taxAmount")
    total_amount: Decimal = Field(alias="totalAmount")
    currency: str
    pdf_url: Optional[str] = Field(alias="pdfUrl", default=None)
    status: str

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_invoice(cls, invoice: Invoice) -> "InvoiceOut":
        return cls(
            invoice_number=invoice.invoice_number,
            invoice_date=invoice.invoice_date,
            payment_id=invoice.payment_id,
            subscription_id=invoice.subscription_id,
            bill_to=BillToOut(**invoice.bill_to.model_dump()),
            items=[
                InvoiceItemOut(
                    description=item.description,
                    plan_id=item.plan_id.value if item.plan_id else None,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    amount=item.amount,
                )
                for item in invoice.items
            ],
            subtotal=invoice.subtotal,
            tax_rate=invoice.tax_rate,
            tax_amount=invoice.tax_amount,
            total_amount=invoice.total_amount,
            currency=invoice.currency,
            pdf_url=invoice.pdf_url,
            status=invoice.status.value,
        )


class InvoiceListResponse(BaseModel):
    invoices: List[InvoiceOut]
    pagination: Pagination

    @classmethod
    def from_page(cls, page: InvoicePage) -> "InvoiceListResponse":
        return cls(
            invoices=[InvoiceOut.from_invoice(invoice) for invoice in page.invoices],
            pagination=Pagination(current=page.page, pages=page.pages, total=page.total),
        )
