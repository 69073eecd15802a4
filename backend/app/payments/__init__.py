"""Payment orders, verification and subscription lifecycle."""

from .entitlements import PERIOD_LENGTH_MONTHS, build_entitlement_update, entitlement_window
from .exceptions import (
    EmployerNotFoundError,
    GatewayError,
    InvalidTransitionError,
    InvoiceIssuanceError,
    InvoiceNotFoundError,
    PaymentAlreadyProcessedError,
    PaymentConfigurationError,
    PaymentError,
    PaymentNotFoundError,
    PaymentValidationError,
    PlanNotFoundError,
    PlanUnchangedError,
    SignatureVerificationError,
)
from .gateway import PaymentGateway, RazorpayGateway, SandboxGateway, compute_signature, verify_signature
from .models import (
    BillingAddress,
    EmployerAccount,
    EntitlementUpdate,
    GatewayOrder,
    OrderCreated,
    PaymentMethod,
    PaymentPage,
    PaymentRecord,
    PaymentStats,
    PaymentStatus,
    PaymentVerified,
    SubscriptionRecord,
    SubscriptionStatus,
)
from .repository import PostgresPaymentRepository
from .service import InvoiceIssuer, PaymentRepository, PaymentService

__all__ = [
    "BillingAddress",
    "EmployerAccount",
    "EmployerNotFoundError",
    "EntitlementUpdate",
    "GatewayError",
    "GatewayOrder",
    "InvalidTransitionError",
    "InvoiceIssuanceError",
    "InvoiceIssuer",
    "InvoiceNotFoundError",
    "OrderCreated",
    "PERIOD_LENGTH_MONTHS",
    "PaymentAlreadyProcessedError",
    "PaymentConfigurationError",
    "PaymentError",
    "PaymentGateway",
    "PaymentMethod",
    "PaymentNotFoundError",
    "PaymentPage",
    "PaymentRecord",
    "PaymentRepository",
    "PaymentService",
    "PaymentStats",
    "PaymentStatus",
    "PaymentValidationError",
    "PaymentVerified",
    "PlanNotFoundError",
    "PlanUnchangedError",
    "PostgresPaymentRepository",
    "RazorpayGateway",
    "SandboxGateway",
    "SignatureVerificationError",
    "SubscriptionRecord",
    "SubscriptionStatus",
    "build_entitlement_update",
    "compute_signature",
    "entitlement_window",
    "verify_signature",
]
