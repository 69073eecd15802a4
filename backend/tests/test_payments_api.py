from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from backend import app_context
from backend.app.payments import compute_signature
from backend.app.routes import invoices as invoices_routes
from backend.app.routes import payments as payments_routes
from backend.app.schemas.payments import CreateOrderRequest, VerifyPaymentRequest


@pytest.fixture()
def api(components, monkeypatch):
    monkeypatch.setattr(payments_routes, "get_payment_service", lambda: components.service)
    monkeypatch.setattr(invoices_routes, "get_invoice_service", lambda: components.invoice_service)
    return components


def _request(**headers):
    return SimpleNamespace(headers=headers, client=SimpleNamespace(host="127.0.0.1"))


def _employer(api, employer_id: str = "emp_1"):
    return api.repository.employers[employer_id]


def _create_and_verify(api, plan_id: str = "basic"):
    created = payments_routes.create_order(
        CreateOrderRequest(planId=plan_id),
        _request(),
        current_employer=_employer(api),
    )
    order_id = created.order.id
    return created, payments_routes.verify_payment(
        VerifyPaymentRequest(
            gatewayOrderId=order_id,
            gatewayPaymentId="pay_gw_1",
            gatewaySignature=compute_signature(api.service.signing_secret, order_id, "pay_gw_1"),
            planId=plan_id,
        ),
        current_employer=_employer(api),
    )


def test_list_plans_returns_active_catalog(api):
    response = payments_routes.list_plans()

    assert [plan.plan_id for plan in response.plans] == ["free", "basic", "premium", "enterprise"]
    dumped = response.plans[1].model_dump(by_alias=True)
    assert dumped["displayPrice"] == "₹2,499"
    assert dumped["jobPostingLimit"] == 5


def test_create_order_returns_checkout_details(api):
    response = payments_routes.create_order(
        CreateOrderRequest(planId="premium"),
        _request(**{"user-agent": "pytest-agent", "x-forwarded-for": "203.0.113.7, 10.0.0.1"}),
        current_employer=_employer(api),
    )

    body = response.model_dump(by_alias=True)
    assert body["keyId"] == "rzp_test_key"
    assert body["order"]["amount"] == 699900
    assert body["order"]["currency"] == "INR"
    (payment,) = api.repository.payments.values()
    assert payment.user_agent == "pytest-agent"
    assert payment.ip_address == "203.0.113.7"


def test_create_order_without_plan_is_bad_request(api):
    with pytest.raises(HTTPException) as exc_info:
        payments_routes.create_order(CreateOrderRequest(), _request(), current_employer=_employer(api))

    assert exc_info.value.status_code == 400
    assert api.repository.payments == {}


def test_verify_success_response(api):
    _, response = _create_and_verify(api)

    body = response.model_dump(by_alias=True)
    assert body["success"] is True
    assert body["message"] == "Payment verified successfully"
    assert body["employer"]["subscriptionPlan"] == "basic"
    assert body["employer"]["jobPostingLimit"] == 5
    assert body["plan"]["planId"] == "basic"


def test_verify_bad_signature_maps_to_400(api):
    created = payments_routes.create_order(
        CreateOrderRequest(planId="basic"), _request(), current_employer=_employer(api)
    )

    with pytest.raises(HTTPException) as exc_info:
        payments_routes.verify_payment(
            VerifyPaymentRequest(
                gatewayOrderId=created.order.id,
                gatewayPaymentId="pay_gw_1",
                gatewaySignature="0" * 64,
                planId="basic",
            ),
            current_employer=_employer(api),
        )

    assert exc_info.value.status_code == 400
    assert exc_info.value.detail["error"] == "signature_verification_failed"


def test_verify_replay_maps_to_409(api):
    created, _ = _create_and_verify(api)

    with pytest.raises(HTTPException) as exc_info:
        payments_routes.verify_payment(
            VerifyPaymentRequest(
                gatewayOrderId=created.order.id,
                gatewayPaymentId="pay_gw_1",
                gatewaySignature=compute_signature(api.service.signing_secret, created.order.id, "pay_gw_1"),
                planId="basic",
            ),
            current_employer=_employer(api),
        )

    assert exc_info.value.status_code == 409


def test_history_and_details(api):
    _create_and_verify(api)

    history = payments_routes.payment_history(
        page=1, limit=10, status="success", start_date=None, end_date=None, current_employer=_employer(api)
    )

    assert history.pagination.total == 1
    assert history.pagination.pages == 1
    payment = history.payments[0]
    assert payment.is_successful

    details = payments_routes.payment_details(payment.payment_id, current_employer=_employer(api))
    assert details.gateway_order_id == payment.gateway_order_id

    stats = payments_routes.payment_stats(start_date=None, end_date=None, current_employer=_employer(api))
    assert stats.successful_payments == 1


def test_history_rejects_unknown_status(api):
    with pytest.raises(HTTPException) as exc_info:
        payments_routes.payment_history(
            page=1, limit=10, status="bogus", start_date=None, end_date=None, current_employer=_employer(api)
        )

    assert exc_info.value.status_code == 400


def test_details_of_unknown_payment_is_404(api):
    with pytest.raises(HTTPException) as exc_info:
        payments_routes.payment_details("missing", current_employer=_employer(api))

    assert exc_info.value.status_code == 404


def test_invoice_routes(api):
    _create_and_verify(api)

    listing = invoices_routes.list_invoices(
        page=1, limit=10, start_date=None, end_date=None, current_employer=_employer(api)
    )

    assert listing.pagination.total == 1
    invoice = listing.invoices[0]
    body = invoice.model_dump(by_alias=True)
    assert body["billTo"]["companyName"] == "Acme Hiring Pvt Ltd"
    assert body["totalAmount"] == body["subtotal"] + body["taxAmount"]
    assert body["status"] == "issued"

    fetched = invoices_routes.get_invoice(invoice.invoice_number, current_employer=_employer(api))
    assert fetched.pdf_url == invoice.pdf_url

    with pytest.raises(HTTPException) as exc_info:
        invoices_routes.get_invoice("INV-1999-0001", current_employer=_employer(api))
    assert exc_info.value.status_code == 404


def test_employer_dependency_uses_configured_resolver(monkeypatch):
    seen = {}

    def fake_resolver(*, session_token):
        seen["token"] = session_token
        return "employer"

    monkeypatch.setattr(app_context, "_get_current_employer", fake_resolver)

    assert payments_routes._get_current_employer(session_token="tok") == "employer"
    assert seen == {"token": "tok"}
