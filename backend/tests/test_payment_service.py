"""Unit tests for order creation, verification and reporting."""
from __future__ import annotations

import logging
import re
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from backend.app.invoices import InvoiceStatus
from backend.app.payments import (
    EmployerNotFoundError,
    GatewayError,
    InvalidTransitionError,
    PaymentAlreadyProcessedError,
    PaymentConfigurationError,
    PaymentNotFoundError,
    PaymentStatus,
    PaymentValidationError,
    PlanNotFoundError,
    PlanUnchangedError,
    SignatureVerificationError,
    SubscriptionStatus,
    compute_signature,
)
from backend.app.payments.entitlements import entitlement_window
from backend.app.plans import DEFAULT_PLANS, PlanId, StaticPlanCatalog


def _verify(components, order_id: str, *, plan_id: str = "basic", employer_id: str = "emp_1", payment_ref: str = "pay_gw_1", signature=None):
    if signature is None:
        signature = compute_signature(components.service.signing_secret, order_id, payment_ref)
    return components.service.verify_payment(
        employer_id,
        gateway_order_id=order_id,
        gateway_payment_id=payment_ref,
        gateway_signature=signature,
        plan_id=plan_id,
    )


def test_create_order_converts_price_to_minor_units(components) -> None:
    created = components.service.create_order("emp_1", "basic", user_agent="pytest", ip_address="10.0.0.1")

    assert created.order.amount == 249900
    assert created.order.currency == "INR"
    assert created.key_id == components.gateway.key_id
    assert re.fullmatch(r"plan_basic_\d{13}", created.order.receipt)
    assert created.order.notes == {"planId": "basic", "employerId": "emp_1", "period": "monthly"}
    assert created.plan["planId"] == "basic"
    assert created.plan["jobPostingLimit"] == 5

    payment = components.repository.payments[created.order.id]
    assert payment.status == PaymentStatus.INITIATED
    assert payment.amount == Decimal("2499")
    assert payment.gateway_receipt == created.order.receipt
    assert payment.user_agent == "pytest"
    assert payment.ip_address == "10.0.0.1"
    assert payment.completed_at is None and payment.failed_at is None

    subscription = components.repository.subscriptions[created.order.id]
    assert subscription.status == SubscriptionStatus.CREATED
    assert subscription.start_date is None and subscription.end_date is None
    assert subscription.receipt == created.order.receipt


def test_create_order_rejects_current_plan_without_side_effects(component_factory, employer_factory) -> None:
    components = component_factory(employers=[employer_factory(subscription_plan=PlanId.BASIC)])

    with pytest.raises(PlanUnchangedError) as exc_info:
        components.service.create_order("emp_1", "basic")

    assert exc_info.value.status_code == 409
    assert components.gateway.orders == []
    assert components.repository.payments == {}
    assert components.repository.subscriptions == {}


@pytest.mark.parametrize("plan_id", ["platinum", "", "  "])
def test_create_order_unknown_or_blank_plan(components, plan_id: str) -> None:
    with pytest.raises((PlanNotFoundError, PaymentValidationError)):
        components.service.create_order("emp_1", plan_id)
    assert components.gateway.orders == []


def test_create_order_unavailable_plan_is_not_found(components) -> None:
    hidden = replace(DEFAULT_PLANS[PlanId.PREMIUM], is_available=False)
    components.service.plans = StaticPlanCatalog([DEFAULT_PLANS[PlanId.BASIC], hidden])

    with pytest.raises(PlanNotFoundError) as exc_info:
        components.service.create_order("emp_1", "premium")
    assert exc_info.value.status_code == 404


def test_create_order_rejects_non_positive_amount(components) -> None:
    with pytest.raises(PaymentValidationError):
        components.service.create_order("emp_1", "enterprise")
    assert components.gateway.orders == []
    assert components.repository.payments == {}


def test_create_order_gateway_failure_persists_nothing(components) -> None:
    components.gateway.fail = True

    with pytest.raises(GatewayError) as exc_info:
        components.service.create_order("emp_1", "basic")

    assert exc_info.value.status_code == 502
    assert components.repository.payments == {}
    assert components.repository.subscriptions == {}


def test_create_order_unknown_employer(components) -> None:
    with pytest.raises(EmployerNotFoundError):
        components.service.create_order("emp_missing", "basic")


def test_missing_signing_secret_is_configuration_error(components) -> None:
    components.service.signing_secret = ""

    with pytest.raises(PaymentConfigurationError) as exc_info:
        components.service.create_order("emp_1", "basic")
    assert exc_info.value.status_code == 500


def test_verify_valid_signature_activates_plan_and_issues_invoice(components) -> None:
    created = components.service.create_order("emp_1", "basic")

    verified = _verify(components, created.order.id)

    payment = components.repository.payments[created.order.id]
    subscription = components.repository.subscriptions[created.order.id]
    employer = components.repository.employers["emp_1"]

    assert payment.status == PaymentStatus.SUCCESS
    assert payment.gateway_payment_id == "pay_gw_1"
    assert payment.completed_at is not None
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.payment_id == "pay_gw_1"
    assert employer.subscription_plan == PlanId.BASIC
    assert employer.job_posting_limit == 5
    assert employer.featured_jobs_limit == 1

    start = employer.subscription_start_date
    assert start == payment.completed_at
    assert (start, employer.subscription_end_date) == entitlement_window("monthly", start)
    assert subscription.start_date == start
    assert subscription.end_date == employer.subscription_end_date

    assert verified.employer.subscription_plan == PlanId.BASIC
    assert verified.plan["planId"] == "basic"

    assert components.repository.calls == [
        "claim_for_verification",
        "apply_entitlement",
        "mark_payment_succeeded",
        "activate_subscription",
    ]

    (invoice,) = components.invoices.invoices.values()
    year = datetime.now(timezone.utc).year
    assert invoice.invoice_number == f"INV-{year}-0001"
    assert invoice.subtotal == Decimal("2499")
    assert invoice.tax_rate == Decimal("18")
    assert invoice.tax_amount == Decimal("450")
    assert invoice.total_amount == Decimal("2949")
    assert invoice.status == InvoiceStatus.ISSUED
    assert invoice.payment_id == payment.payment_id
    assert invoice.subscription_id == subscription.subscription_id
    assert invoice.items[0].description == "Basic Plan"
    assert invoice.bill_to.company_name == "Acme Hiring Pvt Ltd"

    (message,) = components.email.sent
    assert message["to"] == "billing@acme.example"
    assert invoice.invoice_number in message["subject"]
    assert message["attachments"][0].filename == f"{invoice.invoice_number}.pdf"


def test_verify_tampered_signature_records_failure(components) -> None:
    created = components.service.create_order("emp_1", "basic")

    with pytest.raises(SignatureVerificationError) as exc_info:
        _verify(components, created.order.id, signature="0" * 64)

    assert exc_info.value.status_code == 400
    payment = components.repository.payments[created.order.id]
    assert payment.status == PaymentStatus.FAILED
    assert payment.failure_reason == "Signature verification failed"
    assert payment.failed_at is not None
    assert payment.gateway_payment_id == "pay_gw_1"
    subscription = components.repository.subscriptions[created.order.id]
    assert subscription.status == SubscriptionStatus.FAILED
    assert subscription.start_date is None

    employer = components.repository.employers["emp_1"]
    assert employer.subscription_plan == PlanId.FREE
    assert "apply_entitlement" not in components.repository.calls
    assert components.invoices.invoices == {}


@pytest.mark.parametrize(
    "missing",
    ["gateway_order_id", "gateway_payment_id", "gateway_signature", "plan_id"],
)
def test_verify_requires_every_callback_field(components, missing: str) -> None:
    created = components.service.create_order("emp_1", "basic")
    kwargs = dict(
        gateway_order_id=created.order.id,
        gateway_payment_id="pay_gw_1",
        gateway_signature=compute_signature(components.service.signing_secret, created.order.id, "pay_gw_1"),
        plan_id="basic",
    )
    kwargs[missing] = None

    with pytest.raises(PaymentValidationError):
        components.service.verify_payment("emp_1", **kwargs)

    assert components.repository.payments[created.order.id].status == PaymentStatus.INITIATED
    assert components.repository.calls == []


def test_verify_replay_is_rejected_without_second_invoice(components) -> None:
    created = components.service.create_order("emp_1", "basic")
    _verify(components, created.order.id)

    with pytest.raises(PaymentAlreadyProcessedError) as exc_info:
        _verify(components, created.order.id)

    assert exc_info.value.status_code == 409
    assert len(components.invoices.invoices) == 1
    assert components.counter.current(datetime.now(timezone.utc).year) == 1


def test_verify_after_signature_failure_is_rejected(components) -> None:
    created = components.service.create_order("emp_1", "basic")
    with pytest.raises(SignatureVerificationError):
        _verify(components, created.order.id, signature="bad")

    with pytest.raises(PaymentAlreadyProcessedError):
        _verify(components, created.order.id)

    assert components.repository.employers["emp_1"].subscription_plan == PlanId.FREE


def test_concurrent_failure_during_entitlement_cannot_fail_claimed_order(components, monkeypatch) -> None:
    created = components.service.create_order("emp_1", "basic")
    repository = components.repository
    apply_entitlement = repository.apply_entitlement
    rejected = []

    def apply_with_concurrent_failure(employer_id, update):
        with pytest.raises(PaymentAlreadyProcessedError) as exc_info:
            _verify(components, created.order.id, payment_ref="pay_gw_2", signature="0" * 64)
        rejected.append(exc_info.value.detail)
        return apply_entitlement(employer_id, update)

    monkeypatch.setattr(repository, "apply_entitlement", apply_with_concurrent_failure)

    _verify(components, created.order.id)

    assert rejected == [{"status": "pending"}]
    assert "mark_payment_failed" not in repository.calls
    assert repository.payments[created.order.id].status == PaymentStatus.SUCCESS
    assert repository.payments[created.order.id].gateway_payment_id == "pay_gw_1"
    assert repository.subscriptions[created.order.id].status == SubscriptionStatus.ACTIVE
    assert repository.employers["emp_1"].subscription_plan == PlanId.BASIC
    assert len(components.invoices.invoices) == 1


def test_failure_that_claims_first_leaves_plan_unchanged(components, monkeypatch) -> None:
    created = components.service.create_order("emp_1", "basic")
    repository = components.repository
    claim = repository.claim_for_verification
    interleaved = []

    def claim_after_concurrent_failure(order_id, employer_id):
        if not interleaved:
            interleaved.append(order_id)
            with pytest.raises(SignatureVerificationError):
                _verify(components, order_id, payment_ref="pay_gw_2", signature="0" * 64)
        return claim(order_id, employer_id)

    monkeypatch.setattr(repository, "claim_for_verification", claim_after_concurrent_failure)

    with pytest.raises(PaymentAlreadyProcessedError) as exc_info:
        _verify(components, created.order.id)

    assert exc_info.value.detail == {"status": "failed"}
    assert "apply_entitlement" not in repository.calls
    assert "mark_payment_succeeded" not in repository.calls
    assert repository.payments[created.order.id].status == PaymentStatus.FAILED
    assert repository.subscriptions[created.order.id].status == SubscriptionStatus.FAILED
    assert repository.employers["emp_1"].subscription_plan == PlanId.FREE
    assert components.invoices.invoices == {}


def test_verify_of_order_already_claimed_is_rejected(components) -> None:
    created = components.service.create_order("emp_1", "basic")
    components.repository.claim_for_verification(created.order.id, "emp_1")

    with pytest.raises(PaymentAlreadyProcessedError) as exc_info:
        _verify(components, created.order.id)

    assert exc_info.value.status_code == 409
    assert components.repository.employers["emp_1"].subscription_plan == PlanId.FREE
    assert components.invoices.invoices == {}


def test_verify_plan_must_match_order(components) -> None:
    created = components.service.create_order("emp_1", "basic")

    with pytest.raises(PaymentValidationError):
        _verify(components, created.order.id, plan_id="premium")

    assert components.repository.payments[created.order.id].status == PaymentStatus.INITIATED


def test_verify_unknown_order_or_other_employer(component_factory, employer_factory) -> None:
    components = component_factory(employers=[employer_factory(), employer_factory("emp_2")])
    created = components.service.create_order("emp_1", "basic")

    with pytest.raises(PaymentNotFoundError):
        _verify(components, "order_missing")
    with pytest.raises(PaymentNotFoundError):
        _verify(components, created.order.id, employer_id="emp_2")


def test_invoice_failure_does_not_change_verification(components, caplog) -> None:
    components.storage.fail = True
    created = components.service.create_order("emp_1", "basic")

    with caplog.at_level(logging.ERROR):
        verified = _verify(components, created.order.id)

    assert verified.employer.subscription_plan == PlanId.BASIC
    assert components.repository.payments[created.order.id].status == PaymentStatus.SUCCESS
    assert components.repository.subscriptions[created.order.id].status == SubscriptionStatus.ACTIVE
    assert components.invoices.invoices == {}
    assert any("invoice_issuance" in record.getMessage() for record in caplog.records)


def test_unlimited_plan_limits_are_applied(components) -> None:
    created = components.service.create_order("emp_1", "premium")
    assert created.order.amount == 699900

    _verify(components, created.order.id, plan_id="premium")

    employer = components.repository.employers["emp_1"]
    assert employer.subscription_plan == PlanId.PREMIUM
    assert employer.job_posting_limit is None
    assert employer.featured_jobs_limit == 5


def test_payment_history_paginates_and_filters(components) -> None:
    first = components.service.create_order("emp_1", "basic")
    _verify(components, first.order.id)
    second = components.service.create_order("emp_1", "premium")
    with pytest.raises(SignatureVerificationError):
        _verify(components, second.order.id, plan_id="premium", signature="bad")

    page = components.service.get_payment_history("emp_1", page=1, limit=1)
    assert page.total == 2
    assert page.pages == 2
    assert len(page.payments) == 1

    failed = components.service.get_payment_history("emp_1", status="failed")
    assert [payment.gateway_order_id for payment in failed.payments] == [second.order.id]


@pytest.mark.parametrize(
    "kwargs",
    [{"page": 0}, {"limit": 0}, {"limit": 101}, {"status": "unknown"}],
)
def test_payment_history_rejects_invalid_arguments(components, kwargs) -> None:
    with pytest.raises(PaymentValidationError):
        components.service.get_payment_history("emp_1", **kwargs)


def test_payment_stats(components) -> None:
    assert components.service.get_payment_stats("emp_1").total_payments == 0

    first = components.service.create_order("emp_1", "basic")
    _verify(components, first.order.id)
    second = components.service.create_order("emp_1", "premium")
    with pytest.raises(SignatureVerificationError):
        _verify(components, second.order.id, plan_id="premium", signature="bad")

    stats = components.service.get_payment_stats("emp_1")
    assert stats.total_payments == 2
    assert stats.successful_payments == 1
    assert stats.failed_payments == 1
    assert stats.total_amount == Decimal("9498")
    assert stats.successful_amount == Decimal("2499")


def test_get_payment_is_scoped_to_employer(component_factory, employer_factory) -> None:
    components = component_factory(employers=[employer_factory(), employer_factory("emp_2")])
    created = components.service.create_order("emp_1", "basic")

    assert components.service.get_payment(created.payment.payment_id, "emp_1").gateway_order_id == created.order.id
    with pytest.raises(PaymentNotFoundError):
        components.service.get_payment(created.payment.payment_id, "emp_2")


def test_record_refund_partial_is_final(components) -> None:
    created = components.service.create_order("emp_1", "basic")
    _verify(components, created.order.id)
    payment_id = created.payment.payment_id

    partial = components.service.record_refund(payment_id, refund_amount=Decimal("500"), reason="goodwill")
    assert partial.status == PaymentStatus.PARTIALLY_REFUNDED
    assert partial.is_refunded
    assert partial.refund_amount == Decimal("500")

    with pytest.raises(InvalidTransitionError) as exc_info:
        components.service.record_refund(payment_id, refund_amount=Decimal("1999"))

    assert exc_info.value.status_code == 409
    assert components.repository.payments[created.order.id].refund_amount == Decimal("500")


def test_record_refund_full_amount_is_capped(components) -> None:
    created = components.service.create_order("emp_1", "basic")
    _verify(components, created.order.id)
    payment_id = created.payment.payment_id

    full = components.service.record_refund(payment_id, refund_amount=Decimal("3000"), refund_id="rfnd_1")
    assert full.status == PaymentStatus.REFUNDED
    assert full.refund_amount == Decimal("2499")
    assert full.refund_id == "rfnd_1"

    with pytest.raises(InvalidTransitionError):
        components.service.record_refund(payment_id, refund_amount=Decimal("1"))


def test_record_refund_requires_successful_payment(components) -> None:
    created = components.service.create_order("emp_1", "basic")

    with pytest.raises(InvalidTransitionError):
        components.service.record_refund(created.payment.payment_id, refund_amount=Decimal("2499"))
