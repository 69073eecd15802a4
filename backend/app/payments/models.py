"""Domain models for payments, subscriptions and employer entitlements."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..plans.models import PlanId


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentStatus(str, Enum):
    """Lifecycle status of one purchase attempt."""

    INITIATED = "initiated"
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"
    DISPUTED = "disputed"

    @property
    def awaiting_verification(self) -> bool:
        return self in _VERIFIABLE_PAYMENT_STATUSES

    def can_transition_to(self, target: "PaymentStatus") -> bool:
        return target in PAYMENT_TRANSITIONS.get(self, frozenset())


class SubscriptionStatus(str, Enum):
    """Lifecycle status of one entitlement grant."""

    CREATED = "created"
    ACTIVE = "active"
    FAILED = "failed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    def can_transition_to(self, target: "SubscriptionStatus") -> bool:
        return target in SUBSCRIPTION_TRANSITIONS.get(self, frozenset())


class PaymentMethod(str, Enum):
    CARD = "card"
    UPI = "upi"
    NETBANKING = "netbanking"
    WALLET = "wallet"
    EMI = "emi"
    OTHER = "other"


# `pending` marks an order claimed by an in-flight verification.
_VERIFIABLE_PAYMENT_STATUSES: FrozenSet[PaymentStatus] = frozenset({PaymentStatus.INITIATED})

# Forward-only edges. Anything absent is rejected, including self-loops.
PAYMENT_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.INITIATED: frozenset({PaymentStatus.PENDING, PaymentStatus.CANCELLED}),
    PaymentStatus.PENDING: frozenset(
        {PaymentStatus.SUCCESS, PaymentStatus.FAILED, PaymentStatus.CANCELLED}
    ),
    PaymentStatus.SUCCESS: frozenset(
        {PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED, PaymentStatus.DISPUTED}
    ),
}

SUBSCRIPTION_TRANSITIONS: Dict[SubscriptionStatus, FrozenSet[SubscriptionStatus]] = {
    SubscriptionStatus.CREATED: frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.FAILED}),
    SubscriptionStatus.ACTIVE: frozenset({SubscriptionStatus.EXPIRED, SubscriptionStatus.CANCELLED}),
}


def payment_sources_for(target: PaymentStatus) -> List[PaymentStatus]:
    """Return every status from which ``target`` may be reached."""

    return [source for source, targets in PAYMENT_TRANSITIONS.items() if target in targets]


def subscription_sources_for(target: SubscriptionStatus) -> List[SubscriptionStatus]:
    return [source for source, targets in SUBSCRIPTION_TRANSITIONS.items() if target in targets]


class BillingAddress(BaseModel):
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    zip_code: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class EmployerAccount(BaseModel):
    """Billing identity and entitlement subset of an employer."""

    employer_id: str
    company_name: str
    company_email: str
    company_phone: Optional[str] = None
    headquarters: BillingAddress = Field(default_factory=BillingAddress)
    subscription_plan: PlanId = PlanId.FREE
    subscription_start_date: Optional[datetime] = None
    subscription_end_date: Optional[datetime] = None
    job_posting_limit: Optional[int] = 1
    featured_jobs_limit: Optional[int] = 0

    model_config = ConfigDict(frozen=True)

    def entitlement_snapshot(self) -> Dict[str, object]:
        return {
            "employerId": self.employer_id,
            "subscriptionPlan": self.subscription_plan.value,
            "subscriptionStartDate": self.subscription_start_date,
            "subscriptionEndDate": self.subscription_end_date,
            "jobPostingLimit": self.job_posting_limit,
            "featuredJobsLimit": self.featured_jobs_limit,
        }


class EntitlementUpdate(BaseModel):
    """Plan-derived fields written to the employer on a verified payment."""

    subscription_plan: PlanId
    subscription_start_date: datetime
    subscription_end_date: Optional[datetime] = None
    job_posting_limit: Optional[int] = None
    featured_jobs_limit: int = 0

    model_config = ConfigDict(frozen=True)


class PaymentRecord(BaseModel):
    """Durable record of one purchase attempt, keyed by the gateway order id."""

    payment_id: str
    employer_id: str
    plan_id: PlanId
    amount: Decimal = Field(ge=0)
    currency: str = Field(default="INR", min_length=3, max_length=3)
    gateway_order_id: str
    gateway_payment_id: Optional[str] = None
    gateway_signature: Optional[str] = None
    gateway_receipt: str
    status: PaymentStatus = PaymentStatus.INITIATED
    payment_method: PaymentMethod = PaymentMethod.OTHER
    payment_method_details: str = ""
    initiated_at: datetime = Field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    error_code: Optional[str] = None
    error_description: Optional[str] = None
    refund_amount: Decimal = Field(default=Decimal("0"), ge=0)
    refund_reason: Optional[str] = None
    refund_id: Optional[str] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    notes: Dict[str, str] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(frozen=True)

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()

    @property
    def is_successful(self) -> bool:
        return self.status == PaymentStatus.SUCCESS

    @property
    def is_refunded(self) -> bool:
        return self.status in {PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED}

    @property
    def payment_duration(self) -> Optional[timedelta]:
        if self.completed_at and self.initiated_at:
            return self.completed_at - self.initiated_at
        return None


class SubscriptionRecord(BaseModel):
    """Entitlement grant tied to exactly one gateway order."""

    subscription_id: str
    employer_id: str
    plan_id: PlanId
    period: str = "monthly"
    amount: Decimal = Field(ge=0)
    currency: str = "INR"
    order_id: str
    payment_id: Optional[str] = None
    signature: Optional[str] = None
    receipt: Optional[str] = None
    status: SubscriptionStatus = SubscriptionStatus.CREATED
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    notes: Dict[str, str] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(frozen=True)


class GatewayOrder(BaseModel):
    """Order as returned by the payment gateway."""

    id: str
    amount: int
    currency: str
    receipt: str
    status: str = "created"
    notes: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


class OrderCreated(BaseModel):
    order: GatewayOrder
    key_id: str
    plan: Dict[str, object]
    payment: PaymentRecord
    subscription: SubscriptionRecord

    model_config = ConfigDict(frozen=True)


class PaymentVerified(BaseModel):
    employer: EmployerAccount
    plan: Dict[str, object]
    payment: PaymentRecord
    subscription: Optional[SubscriptionRecord] = None

    model_config = ConfigDict(frozen=True)


class PaymentStats(BaseModel):
    total_payments: int = 0
    successful_payments: int = 0
    failed_payments: int = 0
    total_amount: Decimal = Decimal("0")
    successful_amount: Decimal = Decimal("0")
    refunded_amount: Decimal = Decimal("0")

    model_config = ConfigDict(frozen=True)


class PaymentPage(BaseModel):
    payments: List[PaymentRecord]
    total: int
    page: int
    limit: int

    model_config = ConfigDict(frozen=True)

    @property
    def pages(self) -> int:
        if self.limit <= 0:
            return 0
        return -(-self.total // self.limit)
