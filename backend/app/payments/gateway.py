"""Payment gateway adapters and callback signature verification."""
from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Dict, Mapping, Optional, Protocol
from uuid import uuid4

import razorpay

from .exceptions import GatewayError
from .models import GatewayOrder

logger = logging.getLogger(__name__)


class PaymentGateway(Protocol):
    """Remote order creation at the payment gateway."""

    key_id: str

    def create_order(
        self,
        *,
        amount: int,
        currency: str,
        receipt: str,
        notes: Mapping[str, str],
    ) -> GatewayOrder:
        """Create an order for ``amount`` minor currency units."""


def compute_signature(secret: str, order_id: str, payment_id: str) -> str:
    """Return the hex HMAC-SHA256 of ``"{order_id}|{payment_id}"``."""

    if not secret:
        raise ValueError("secret must be provided")
    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_signature(secret: str, order_id: str, payment_id: str, signature: str) -> bool:
    """Check a gateway callback signature in constant time."""

    expected = compute_signature(secret, order_id, payment_id)
    return hmac.compare_digest(expected.encode("utf-8"), (signature or "").encode("utf-8"))


def _order_from_payload(payload: Mapping[str, object], *, receipt: str) -> GatewayOrder:
    order_id = payload.get("id")
    if not order_id:
        raise GatewayError(message="Gateway did not return an order id")
    notes = payload.get("notes") or {}
    return GatewayOrder(
        id=str(order_id),
        amount=int(payload.get("amount") or 0),
        currency=str(payload.get("currency") or "INR"),
        receipt=str(payload.get("receipt") or receipt),
        status=str(payload.get("status") or "created"),
        notes={str(k): str(v) for k, v in notes.items()} if isinstance(notes, dict) else {},
    )


class RazorpayGateway:
    """Gateway adapter backed by the Razorpay SDK."""

    def __init__(self, *, key_id: str, key_secret: str, client: Optional[razorpay.Client] = None) -> None:
        if not key_id or not key_secret:
            raise ValueError("Razorpay key id and secret must be provided")
        self.key_id = key_id
        self._client = client or razorpay.Client(auth=(key_id, key_secret))

    def create_order(
        self,
        *,
        amount: int,
        currency: str,
        receipt: str,
        notes: Mapping[str, str],
    ) -> GatewayOrder:
        try:
            payload = self._client.order.create(
                data={
                    "amount": amount,
                    "currency": currency,
                    "receipt": receipt,
                    "notes": dict(notes),
                }
            )
        except Exception as exc:
            logger.exception("Razorpay order creation failed receipt=%s", receipt)
            raise GatewayError(detail={"receipt": receipt}) from exc
        return _order_from_payload(payload, receipt=receipt)


class SandboxGateway:
    """Local development gateway that fabricates orders without network calls."""

    def __init__(self, *, key_id: str = "rzp_test_sandbox") -> None:
        self.key_id = key_id
        self.orders: Dict[str, GatewayOrder] = {}

    def create_order(
        self,
        *,
        amount: int,
        currency: str,
        receipt: str,
        notes: Mapping[str, str],
    ) -> GatewayOrder:
        order = GatewayOrder(
            id=f"order_{uuid4().hex[:14]}",
            amount=amount,
            currency=currency,
            receipt=receipt,
            notes=dict(notes),
        )
        self.orders[order.id] = order
        return order


__all__ = [
    "PaymentGateway",
    "RazorpayGateway",
    "SandboxGateway",
    "compute_signature",
    "verify_signature",
]
