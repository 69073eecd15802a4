"""Invoice issuance, lookup and voiding."""
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Protocol, Tuple
from uuid import uuid4

from ...mail import EmailAttachment, EmailConfig, EmailProvider, render_invoice_email
from ..payments.exceptions import (
    EmployerNotFoundError,
    InvalidTransitionError,
    InvoiceIssuanceError,
    InvoiceNotFoundError,
    PaymentValidationError,
)
from ..payments.models import EmployerAccount, PaymentRecord, SubscriptionRecord
from ..plans.models import PlanDefinition
from ..side_effects import StepResult, best_effort
from .models import BillTo, Invoice, InvoiceItem, InvoicePage, InvoiceStatus, StoredDocument
from .numbering import InvoiceCounter, format_invoice_number
from .pricing import price_invoice
from .renderer import format_money, render_invoice_pdf
from .storage import InvoiceStorage

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100

_dataclass_kwargs = {"slots": True} if sys.version_info >= (3, 10) else {}


class EmployerDirectory(Protocol):
    def get_employer(self, employer_id: str) -> Optional[EmployerAccount]:
        ...


class InvoiceRepository(Protocol):
    """Persistence operations required by the invoice service."""

    def create_invoice(self, invoice: Invoice) -> Invoice:
        ...

    def get_invoice_by_number(self, invoice_number: str, employer_id: str) -> Optional[Invoice]:
        ...

    def list_invoices(
        self,
        employer_id: str,
        *,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        offset: int = 0,
        limit: int = 10,
    ) -> Tuple[List[Invoice], int]:
        ...

    def void_invoice(self, invoice_number: str, *, notes: Optional[str] = None) -> Optional[Invoice]:
        ...


class InvoiceMailer:
    """Sends issued invoices to the payer when outbound email is configured."""

    def __init__(self, *, provider: EmailProvider, config: EmailConfig, app_name: str = "JobZee") -> None:
        self.provider = provider
        self.config = config
        self.app_name = app_name

    def send_invoice(self, invoice: Invoice, pdf: bytes, *, plan_name: str) -> bool:
        if not self.config.is_configured:
            logger.info(
                "Email not configured; skipping invoice email",
                extra={"invoice_number": invoice.invoice_number},
            )
            return False

        subject, text_body, html_body = render_invoice_email(
            {
                "app_name": self.app_name,
                "company_name": invoice.bill_to.company_name,
                "plan_name": plan_name,
                "invoice_number": invoice.invoice_number,
                "invoice_date": invoice.invoice_date.strftime("%d %b %Y"),
                "currency": invoice.currency,
                "total_amount": f"{invoice.total_amount:,.2f}",
                "pdf_url": invoice.pdf_url,
            }
        )
        self.provider.send_email(
            invoice.bill_to.company_email,
            subject,
            html_body,
            text_body,
            attachments=[EmailAttachment(filename=f"{invoice.invoice_number}.pdf", content=pdf)],
        )
        logger.info("Invoice email sent", extra={"invoice_number": invoice.invoice_number})
        return True


@dataclass(**_dataclass_kwargs)
class InvoiceService:
    """Numbers, renders, archives and records invoices for verified payments."""

    repository: InvoiceRepository
    employers: EmployerDirectory
    counter: InvoiceCounter
    storage: InvoiceStorage
    mailer: Optional[InvoiceMailer] = None
    tax_rate: Decimal = Decimal("18")
    app_name: str = "JobZee"

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def issue_invoice(
        self,
        *,
        payment: PaymentRecord,
        subscription: Optional[SubscriptionRecord],
        plan: PlanDefinition,
    ) -> Invoice:
        employer = self.employers.get_employer(payment.employer_id)
        if employer is None:
            raise EmployerNotFoundError(detail={"employerId": payment.employer_id})

        now = self._now()
        invoice_number = format_invoice_number(now.year, self.counter.next_value(now.year))

        totals = price_invoice(payment.amount, self.tax_rate)
        items = [
            InvoiceItem(
                description=f"{plan.name} Plan",
                plan_id=plan.plan_id,
                quantity=1,
                unit_price=payment.amount,
                amount=payment.amount,
            )
        ]
        bill_to = BillTo.from_employer(employer)

        try:
            pdf = render_invoice_pdf(
                invoice_number=invoice_number,
                invoice_date=now,
                bill_to=bill_to,
                items=items,
                totals=totals,
                currency=payment.currency,
                app_name=self.app_name,
            )
        except Exception as exc:
            raise InvoiceIssuanceError("Invoice rendering failed", invoice_number=invoice_number) from exc

        try:
            stored: StoredDocument = self.storage.save(invoice_number, pdf)
        except Exception as exc:
            raise InvoiceIssuanceError("Invoice archival failed", invoice_number=invoice_number) from exc

        invoice = Invoice(
            invoice_id=f"inv_{uuid4().hex}",
            employer_id=payment.employer_id,
            payment_id=payment.payment_id,
            subscription_id=subscription.subscription_id if subscription else None,
            invoice_number=invoice_number,
            invoice_date=now,
            bill_to=bill_to,
            items=items,
            subtotal=totals.subtotal,
            tax_rate=totals.tax_rate,
            tax_amount=totals.tax_amount,
            total_amount=totals.total_amount,
            currency=payment.currency,
            pdf_url=stored.url,
            pdf_public_id=stored.public_id,
            status=InvoiceStatus.ISSUED,
            created_at=now,
            updated_at=now,
        )
        try:
            persisted = self.repository.create_invoice(invoice)
        except Exception as exc:
            raise InvoiceIssuanceError("Invoice persistence failed", invoice_number=invoice_number) from exc

        logger.info(
            "Invoice issued",
            extra={
                "invoice_number": invoice_number,
                "order_id": payment.gateway_order_id,
                "invoice_total": format_money(persisted.total_amount, persisted.currency),
            },
        )

        if self.mailer is not None:
            self._notify(persisted, pdf, plan)
        return persisted

    def _notify(self, invoice: Invoice, pdf: bytes, plan: PlanDefinition) -> StepResult:
        return best_effort(
            "invoice_email",
            self.mailer.send_invoice,
            invoice,
            pdf,
            plan_name=plan.name,
            log=logger,
            context={"invoice_number": invoice.invoice_number},
        )

    def list_invoices(
        self,
        employer_id: str,
        *,
        page: int = 1,
        limit: int = 10,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> InvoicePage:
        if page < 1:
            raise PaymentValidationError(message="page must be >= 1")
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise PaymentValidationError(message=f"limit must be between 1 and {MAX_PAGE_SIZE}")
        invoices, total = self.repository.list_invoices(
            employer_id,
            start_date=start_date,
            end_date=end_date,
            offset=(page - 1) * limit,
            limit=limit,
        )
        return InvoicePage(invoices=invoices, total=total, page=page, limit=limit)

    def get_invoice(self, invoice_number: str, employer_id: str) -> Invoice:
        invoice = self.repository.get_invoice_by_number(invoice_number, employer_id)
        if invoice is None:
            raise InvoiceNotFoundError(detail={"invoiceNumber": invoice_number})
        return invoice

    def void_invoice(self, invoice_number: str, employer_id: str, *, reason: Optional[str] = None) -> Invoice:
        """Flip an issued invoice to ``void``; the number is never reissued."""

        invoice = self.get_invoice(invoice_number, employer_id)
        if invoice.status != InvoiceStatus.ISSUED:
            raise InvalidTransitionError(
                message="Only issued invoices can be voided",
                detail={"invoiceNumber": invoice_number, "status": invoice.status.value},
            )
        voided = self.repository.void_invoice(invoice_number, notes=reason)
        if voided is None:
            raise InvalidTransitionError(
                message="Only issued invoices can be voided",
                detail={"invoiceNumber": invoice_number},
            )
        logger.info("Invoice voided", extra={"invoice_number": invoice_number})
        return voided


__all__ = ["EmployerDirectory", "InvoiceMailer", "InvoiceRepository", "InvoiceService"]
