"""API schemas for payment endpoints."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..payments import (
    EmployerAccount,
    OrderCreated,
    PaymentPage,
    PaymentRecord,
    PaymentStats,
    PaymentVerified,
)
from ..plans import PlanDefinition


class CreateOrderRequest(BaseModel):
    plan_id: Optional[str] = Field(alias="planId", default=None)

    model_config = ConfigDict(populate_by_name=True)


class OrderOut(BaseModel):
    id: str
    amount: int
    currency: str
    receipt: str
    status: str


class CreateOrderResponse(BaseModel):
    order: OrderOut
    key_id: str = Field(alias="keyId")
    plan: Dict[str, object]

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_order(cls, created: OrderCreated) -> "CreateOrderResponse":
        order = created.order
        return cls(
            order=OrderOut(
                id=order.id,
                amount=order.amount,
                currency=order.currency,
                receipt=order.receipt,
                status=order.status,
            ),
            key_id=created.key_id,
            plan=created.plan,
        )


class VerifyPaymentRequest(BaseModel):
    gateway_order_id: Optional[str] = Field(alias="gatewayOrderId", default=None)
    gateway_payment_id: Optional[str] = Field(alias="gatewayPaymentId", default=None)
    gateway_signature: Optional[str] = Field(alias="gatewaySignature", default=None)
    plan_id: Optional[str] = Field(alias="planId", default=None)

    model_config = ConfigDict(populate_by_name=True)


class EntitlementOut(BaseModel):
    employer_id: str = Field(alias="employerId")
    subscription_plan: str = Field(alias="subscriptionPlan")
    subscription_start_date: Optional[datetime] = Field(alias="subscriptionStartDate", default=None)
    subscription_end_date: Optional[datetime] = Field(alias="subscriptionEndDate", default=None)
    job_posting_limit: Optional[int] = Field(alias="jobPostingLimit", default=None)
    featured_jobs_limit: Optional[int] = Field(alias="featuredJobsLimit", default=None)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_employer(cls, employer: EmployerAccount) -> "EntitlementOut":
        return cls.model_validate(employer.entitlement_snapshot())


class VerifyPaymentResponse(BaseModel):
    success: bool = True
    message: str = "Payment verified successfully"
    employer: EntitlementOut
    plan: Dict[str, object]

    @classmethod
    def from_verification(cls, verified: PaymentVerified) -> "VerifyPaymentResponse":
        return cls(employer=EntitlementOut.from_employer(verified.employer), plan=verified.plan)


class PaymentOut(BaseModel):
    payment_id: str = Field(alias="paymentId")
    plan_id: str = Field(alias="planId")
    amount: Decimal
    currency: str
    status: str
    gateway_order_id: str = Field(alias="gatewayOrderId")
    gateway_payment_id: Optional[str] = Field(alias="gatewayPaymentId", default=None)
    gateway_receipt: str = Field(alias="gatewayReceipt")
    payment_method: str = Field(alias="paymentMethod")
    initiated_at: datetime = Field(alias="initiatedAt")
    completed_at: Optional[datetime] = Field(alias="completedAt", default=None)
    failed_at: Optional[datetime] = Field(alias="failedAt", default=None)
    refunded_at: Optional[datetime] = Field(alias="refundedAt", default=None)
    failure_reason: Optional[str] = Field(alias="failureReason", default=None)
    refund_amount: Decimal = Field(alias="refundAmount", default=Decimal("0"))
    is_successful: bool = Field(alias="isSuccessful", default=False)
    is_refunded: bool = Field(alias="isRefunded", default=False)
    payment_duration_seconds: Optional[float] = Field(alias="paymentDurationSeconds", default=None)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_record(cls, record: PaymentRecord) -> "PaymentOut":
        duration = record.payment_duration
        return cls(
            payment_id=record.payment_id,
            plan_id=record.plan_id.value,
            amount=record.amount,
            currency=record.currency,
            status=record.status.value,
            gateway_order_id=record.gateway_order_id,
            gateway_payment_id=record.gateway_payment_id,
            gateway_receipt=record.gateway_receipt,
            payment_method=record.payment_method.value,
            initiated_at=record.initiated_at,
            completed_at=record.completed_at,
            failed_at=record.failed_at,
            refunded_at=record.refunded_at,
            failure_reason=record.failure_reason,
            refund_amount=record.refund_amount,
            is_successful=record.is_successful,
            is_refunded=record.is_refunded,
            payment_duration_seconds=duration.total_seconds() if duration is not None else None,
        )


class Pagination(BaseModel):
    current: int
    pages: int
    total: int


class PaymentHistoryResponse(BaseModel):
    payments: List[PaymentOut]
    pagination: Pagination

    @classmethod
    def from_page(cls, page: PaymentPage) -> "PaymentHistoryResponse":
        return cls(
            payments=[PaymentOut.from_record(record) for record in page.payments],
            pagination=Pagination(current=page.page, pages=page.pages, total=page.total),
        )


class PaymentStatsResponse(BaseModel):
    total_payments: int = Field(alias="totalPayments")
    successful_payments: int = Field(alias="successfulPayments")
    failed_payments: int = Field(alias="failedPayments")
    total_amount: Decimal = Field(alias="totalAmount")
    successful_amount: Decimal = Field(alias="successfulAmount")
    refunded_amount: Decimal = Field(alias="refundedAmount")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_stats(cls, stats: PaymentStats) -> "PaymentStatsResponse":
        return cls(**stats.model_dump())


class PlanOut(BaseModel):
    plan_id: str = Field(alias="planId")
    name: str
    description: str
    amount: Decimal
    currency: str
    period: str
    display_price: str = Field(alias="displayPrice")
    job_posting_limit: Optional[int] = Field(alias="jobPostingLimit", default=None)
    featured_jobs_limit: Optional[int] = Field(alias="featuredJobsLimit", default=None)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_plan(cls, plan: PlanDefinition) -> "PlanOut":
        return cls(
            plan_id=plan.plan_id.value,
            name=plan.name,
            description=plan.description,
            amount=plan.price.amount,
            currency=plan.price.currency,
            period=plan.price.period,
            display_price=plan.price.display_price,
            job_posting_limit=plan.job_posting_limit,
            featured_jobs_limit=plan.featured_jobs_limit,
        )


class PlanListResponse(BaseModel):
    plans: List[PlanOut]
