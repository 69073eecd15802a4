"""Shared in-memory collaborators for payment and invoice tests."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import pytest

from backend.app.invoices import InMemoryInvoiceCounter, Invoice, InvoiceMailer, InvoiceService, InvoiceStatus, StoredDocument
from backend.app.payments import (
    BillingAddress,
    EmployerAccount,
    EntitlementUpdate,
    GatewayError,
    GatewayOrder,
    PaymentRecord,
    PaymentService,
    PaymentStats,
    PaymentStatus,
    SubscriptionRecord,
    SubscriptionStatus,
)
from backend.app.payments.models import payment_sources_for, subscription_sources_for
from backend.app.payments.service import PaymentRepository
from backend.app.plans import StaticPlanCatalog
from backend.mail import EmailAttachment, EmailProvider, load_email_config

SECRET = "test_secret"


class InMemoryPaymentRepository(PaymentRepository):
    def __init__(self, employers: Sequence[EmployerAccount] = ()) -> None:
        self.employers: Dict[str, EmployerAccount] = {employer.employer_id: employer for employer in employers}
        self.payments: Dict[str, PaymentRecord] = {}
        self.subscriptions: Dict[str, SubscriptionRecord] = {}
        self.calls: List[str] = []

    def get_employer(self, employer_id: str) -> Optional[EmployerAccount]:
        return self.employers.get(employer_id)

    def apply_entitlement(self, employer_id: str, update: EntitlementUpdate) -> Optional[EmployerAccount]:
        self.calls.append("apply_entitlement")
        employer = self.employers.get(employer_id)
        if employer is None:
            return None
        updated = employer.model_copy(update=update.model_dump())
        self.employers[employer_id] = updated
        return updated

    def create_order_records(
        self,
        payment: PaymentRecord,
        subscription: SubscriptionRecord,
    ) -> Tuple[PaymentRecord, SubscriptionRecord]:
        if payment.gateway_order_id in self.payments:
            raise ValueError("duplicate gateway order id")
        self.payments[payment.gateway_order_id] = payment
        self.subscriptions[subscription.order_id] = subscription
        return payment, subscription

    def get_payment_by_order(self, order_id: str, employer_id: str) -> Optional[PaymentRecord]:
        payment = self.payments.get(order_id)
        if payment is None or payment.employer_id != employer_id:
            return None
        return payment

    def get_payment(self, payment_id: str, employer_id: str) -> Optional[PaymentRecord]:
        payment = self.get_payment_by_id(payment_id)
        if payment is None or payment.employer_id != employer_id:
            return None
        return payment

    def get_payment_by_id(self, payment_id: str) -> Optional[PaymentRecord]:
        for payment in self.payments.values():
            if payment.payment_id == payment_id:
                return payment
        return None

    def _transition_payment(self, order_id: str, employer_id: str, target: PaymentStatus, **changes) -> Optional[PaymentRecord]:
        payment = self.get_payment_by_order(order_id, employer_id)
        if payment is None or payment.status not in payment_sources_for(target):
            return None
        updated = payment.model_copy(update={"status": target, **changes})
        self.payments[order_id] = updated
        return updated

    def claim_for_verification(self, order_id, employer_id):
        self.calls.append("claim_for_verification")
        return self._transition_payment(order_id, employer_id, PaymentStatus.PENDING)

    def mark_payment_succeeded(self, order_id, employer_id, *, gateway_payment_id, gateway_signature, completed_at):
        self.calls.append("mark_payment_succeeded")
        return self._transition_payment(
            order_id,
            employer_id,
            PaymentStatus.SUCCESS,
            gateway_payment_id=gateway_payment_id,
            gateway_signature=gateway_signature,
            completed_at=completed_at,
        )

    def mark_payment_failed(self, order_id, employer_id, *, gateway_payment_id, gateway_signature, failed_at, failure_reason):
        self.calls.append("mark_payment_failed")
        return self._transition_payment(
            order_id,
            employer_id,
            PaymentStatus.FAILED,
            gateway_payment_id=gateway_payment_id,
            gateway_signature=gateway_signature,
            failed_at=failed_at,
            failure_reason=failure_reason,
        )

    def record_refund(self, payment_id, *, status, refund_amount, refund_reason, refund_id, refunded_at):
        payment = self.get_payment_by_id(payment_id)
        if payment is None or payment.status not in payment_sources_for(status):
            return None
        updated = payment.model_copy(
            update={
                "status": status,
                "refund_amount": refund_amount,
                "refund_reason": refund_reason,
                "refund_id": refund_id,
                "refunded_at": refunded_at,
            }
        )
        self.payments[payment.gateway_order_id] = updated
        return updated

    def list_payments(self, employer_id, *, status=None, start_date=None, end_date=None, offset=0, limit=10):
        matching = [
            payment
            for payment in self.payments.values()
            if payment.employer_id == employer_id
            and (status is None or payment.status == status)
            and (start_date is None or payment.initiated_at >= start_date)
            and (end_date is None or payment.initiated_at <= end_date)
        ]
        matching.sort(key=lambda payment: payment.initiated_at, reverse=True)
        return matching[offset : offset + limit], len(matching)

    def payment_stats(self, employer_id, *, start_date=None, end_date=None) -> PaymentStats:
        payments, _ = self.list_payments(employer_id, start_date=start_date, end_date=end_date, limit=10_000)
        return PaymentStats(
            total_payments=len(payments),
            successful_payments=sum(1 for p in payments if p.status == PaymentStatus.SUCCESS),
            failed_payments=sum(1 for p in payments if p.status == PaymentStatus.FAILED),
            total_amount=sum((p.amount for p in payments), Decimal("0")),
            successful_amount=sum((p.amount for p in payments if p.status == PaymentStatus.SUCCESS), Decimal("0")),
            refunded_amount=sum((p.refund_amount for p in payments), Decimal("0")),
        )

    def _transition_subscription(self, order_id, employer_id, target, **changes):
        subscription = self.subscriptions.get(order_id)
        if (
            subscription is None
            or subscription.employer_id != employer_id
            or subscription.status not in subscription_sources_for(target)
        ):
            return None
        updated = subscription.model_copy(update={"status": target, **changes})
        self.subscriptions[order_id] = updated
        return updated

    def activate_subscription(self, order_id, employer_id, *, payment_id, signature, start_date, end_date):
        self.calls.append("activate_subscription")
        return self._transition_subscription(
            order_id,
            employer_id,
            SubscriptionStatus.ACTIVE,
            payment_id=payment_id,
            signature=signature,
            start_date=start_date,
            end_date=end_date,
        )

    def fail_subscription(self, order_id, employer_id, *, payment_id, signature):
        self.calls.append("fail_subscription")
        return self._transition_subscription(
            order_id,
            employer_id,
            SubscriptionStatus.FAILED,
            payment_id=payment_id,
            signature=signature,
        )


class FakeGateway:
    key_id = "rzp_test_key"

    def __init__(self) -> None:
        self.orders: List[GatewayOrder] = []
        self.fail = False

    def create_order(self, *, amount: int, currency: str, receipt: str, notes: Mapping[str, str]) -> GatewayOrder:
        if self.fail:
            raise GatewayError(detail={"receipt": receipt})
        order = GatewayOrder(
            id=f"order_{len(self.orders) + 1:04d}",
            amount=amount,
            currency=currency,
            receipt=receipt,
            notes=dict(notes),
        )
        self.orders.append(order)
        return order


class InMemoryInvoiceRepository:
    def __init__(self) -> None:
        self.invoices: Dict[str, Invoice] = {}
        self.fail = False

    def create_invoice(self, invoice: Invoice) -> Invoice:
        if self.fail:
            raise RuntimeError("database unavailable")
        if invoice.invoice_number in self.invoices:
            raise ValueError("duplicate invoice number")
        self.invoices[invoice.invoice_number] = invoice
        return invoice

    def get_invoice_by_number(self, invoice_number: str, employer_id: str) -> Optional[Invoice]:
        invoice = self.invoices.get(invoice_number)
        if invoice is None or invoice.employer_id != employer_id:
            return None
        return invoice

    def list_invoices(self, employer_id, *, start_date=None, end_date=None, offset=0, limit=10):
        matching = [
            invoice
            for invoice in self.invoices.values()
            if invoice.employer_id == employer_id
            and (start_date is None or invoice.invoice_date >= start_date)
            and (end_date is None or invoice.invoice_date <= end_date)
        ]
        matching.sort(key=lambda invoice: invoice.invoice_date, reverse=True)
        return matching[offset : offset + limit], len(matching)

    def void_invoice(self, invoice_number: str, *, notes: Optional[str] = None) -> Optional[Invoice]:
        invoice = self.invoices.get(invoice_number)
        if invoice is None or invoice.status != InvoiceStatus.ISSUED:
            return None
        updated = invoice.model_copy(update={"status": InvoiceStatus.VOID, "notes": notes or invoice.notes})
        self.invoices[invoice_number] = updated
        return updated


class MemoryStorage:
    def __init__(self) -> None:
        self.files: Dict[str, bytes] = {}
        self.fail = False

    def save(self, key: str, content: bytes) -> StoredDocument:
        if self.fail:
            raise ConnectionError("storage unreachable")
        object_key = f"jobzee/invoices/{key}.pdf"
        self.files[object_key] = content
        return StoredDocument(url=f"https://files.example.com/{object_key}", public_id=object_key)


class RecordingEmailProvider(EmailProvider):
    name = "recording"

    def __init__(self, exc: Optional[Exception] = None) -> None:
        super().__init__(from_email="billing@example.com")
        self.sent: List[dict] = []
        self._exc = exc

    def send_email(self, to, subject, html_body, text_body, attachments: Sequence[EmailAttachment] = ()) -> None:
        if self._exc is not None:
            raise self._exc
        self.sent.append(
            {"to": to, "subject": subject, "text": text_body, "html": html_body, "attachments": list(attachments)}
        )


def make_employer(employer_id: str = "emp_1", **overrides) -> EmployerAccount:
    values = dict(
        employer_id=employer_id,
        company_name="Acme Hiring Pvt Ltd",
        company_email="billing@acme.example",
        company_phone="+91 98765 43210",
        headquarters=BillingAddress(
            address="12 MG Road",
            city="Bengaluru",
            state="Karnataka",
            country="India",
            zip_code="560001",
        ),
    )
    values.update(overrides)
    return EmployerAccount(**values)


@dataclass
class PaymentComponents:
    service: PaymentService
    repository: InMemoryPaymentRepository
    gateway: FakeGateway
    invoice_service: InvoiceService
    invoices: InMemoryInvoiceRepository
    storage: MemoryStorage
    counter: InMemoryInvoiceCounter
    email: RecordingEmailProvider


def build_components(*, email_configured: bool = True, employers: Sequence[EmployerAccount] = ()) -> PaymentComponents:
    repository = InMemoryPaymentRepository(employers or [make_employer()])
    gateway = FakeGateway()
    invoices = InMemoryInvoiceRepository()
    storage = MemoryStorage()
    counter = InMemoryInvoiceCounter()
    email = RecordingEmailProvider()
    env = {"EMAIL_PROVIDER": "smtp", "SMTP_HOST": "smtp.example.com"} if email_configured else {}
    mailer = InvoiceMailer(provider=email, config=load_email_config(env=env))
    invoice_service = InvoiceService(
        repository=invoices,
        employers=repository,
        counter=counter,
        storage=storage,
        mailer=mailer,
        tax_rate=Decimal("18"),
    )
    service = PaymentService(
        repository=repository,
        plans=StaticPlanCatalog(),
        gateway=gateway,
        signing_secret=SECRET,
        invoices=invoice_service,
    )
    return PaymentComponents(
        service=service,
        repository=repository,
        gateway=gateway,
        invoice_service=invoice_service,
        invoices=invoices,
        storage=storage,
        counter=counter,
        email=email,
    )


@pytest.fixture()
def components() -> PaymentComponents:
    return build_components()


@pytest.fixture()
def component_factory():
    return build_components


@pytest.fixture()
def employer_factory():
    return make_employer
