"""Domain errors raised by the payment and invoice services."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException, status


@dataclass
class PaymentError(Exception):
    """Represents an actionable payment failure surfaced to API callers."""

    code: str
    message: str
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        base_detail: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.detail:
            base_detail.update(self.detail)
        object.__setattr__(self, "_payload", base_detail)
        super().__init__(self.message)

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for JSON responses."""

        return self._payload

    def to_http_exception(self) -> HTTPException:
        """Convert the domain error into a FastAPI HTTPException."""

        return HTTPException(status_code=self.status_code, detail=dict(self.payload))


@dataclass
class PaymentValidationError(PaymentError):
    code: str = "validation_error"
    message: str = "Invalid payment request"
    status_code: int = status.HTTP_400_BAD_REQUEST


@dataclass
class PlanNotFoundError(PaymentError):
    code: str = "plan_not_found"
    message: str = "Invalid plan selected"
    status_code: int = status.HTTP_404_NOT_FOUND


@dataclass
class PaymentNotFoundError(PaymentError):
    code: str = "payment_not_found"
    message: str = "Payment not found"
    status_code: int = status.HTTP_404_NOT_FOUND


@dataclass
class EmployerNotFoundError(PaymentError):
    code: str = "employer_not_found"
    message: str = "Employer not found"
    status_code: int = status.HTTP_404_NOT_FOUND


@dataclass
class InvoiceNotFoundError(PaymentError):
    code: str = "invoice_not_found"
    message: str = "Invoice not found"
    status_code: int = status.HTTP_404_NOT_FOUND


@dataclass
class PlanUnchangedError(PaymentError):
    code: str = "plan_unchanged"
    message: str = "You are already on this plan"
    status_code: int = status.HTTP_409_CONFLICT


@dataclass
class PaymentAlreadyProcessedError(PaymentError):
    code: str = "payment_already_processed"
    message: str = "Payment has already been processed"
    status_code: int = status.HTTP_409_CONFLICT


@dataclass
class SignatureVerificationError(PaymentError):
    code: str = "signature_verification_failed"
    message: str = "Payment verification failed"
    status_code: int = status.HTTP_400_BAD_REQUEST


@dataclass
class GatewayError(PaymentError):
    code: str = "gateway_error"
    message: str = "Failed to create order"
    status_code: int = status.HTTP_502_BAD_GATEWAY


@dataclass
class PaymentConfigurationError(PaymentError):
    code: str = "payment_not_configured"
    message: str = "Payment gateway is not configured"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR


@dataclass
class InvalidTransitionError(PaymentError):
    code: str = "invalid_transition"
    message: str = "Status transition is not allowed"
    status_code: int = status.HTTP_409_CONFLICT


class InvoiceIssuanceError(RuntimeError):
    """Raised when an invoice could not be rendered, archived or persisted."""

    def __init__(self, message: str, *, invoice_number: Optional[str] = None) -> None:
        super().__init__(message)
        self.invoice_number = invoice_number


__all__ = [
    "EmployerNotFoundError",
    "GatewayError",
    "InvalidTransitionError",
    "InvoiceIssuanceError",
    "InvoiceNotFoundError",
    "PaymentAlreadyProcessedError",
    "PaymentConfigurationError",
    "PaymentError",
    "PaymentNotFoundError",
    "PaymentValidationError",
    "PlanNotFoundError",
    "PlanUnchangedError",
    "SignatureVerificationError",
]
