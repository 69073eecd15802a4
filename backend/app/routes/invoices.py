"""API routes exposing an employer's invoices."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..payments import PaymentError
from ..schemas.invoices import InvoiceListResponse, InvoiceOut
from ..services.payments import get_invoice_service
from .payments import _get_current_employer

router = APIRouter(prefix="/api/invoices", tags=["invoices"])


@router.get("", response_model=InvoiceListResponse)
def list_invoices(
    page: int = Query(1),
    limit: int = Query(10),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    *,
    current_employer=Depends(_get_current_employer),
) -> InvoiceListResponse:
    service = get_invoice_service()
    try:
        result = service.list_invoices(
            current_employer.employer_id,
            page=page,
            limit=limit,
            start_date=start_date,
            end_date=end_date,
        )
    except PaymentError as exc:
        raise exc.to_http_exception() from exc
    return InvoiceListResponse.from_page(result)


@router.get("/{invoice_number}", response_model=InvoiceOut)
def get_invoice(
    invoice_number: str,
    *,
    current_employer=Depends(_get_current_employer),
) -> InvoiceOut:
    service = get_invoice_service()
    try:
        invoice = service.get_invoice(invoice_number, current_employer.employer_id)
    except PaymentError as exc:
        raise exc.to_http_exception() from exc
    return InvoiceOut.from_invoice(invoice)
