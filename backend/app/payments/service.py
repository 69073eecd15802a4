"""Order creation, payment verification and payment reporting."""
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, NoReturn, Optional, Protocol, Tuple
from uuid import uuid4

from ..plans.catalog import PlanCatalog
from ..plans.models import PlanDefinition
from ..side_effects import StepResult, best_effort
from .entitlements import build_entitlement_update
from .exceptions import (
    EmployerNotFoundError,
    InvalidTransitionError,
    PaymentAlreadyProcessedError,
    PaymentConfigurationError,
    PaymentNotFoundError,
    PaymentValidationError,
    PlanNotFoundError,
    PlanUnchangedError,
    SignatureVerificationError,
)
from .gateway import PaymentGateway, verify_signature
from .models import (
    EmployerAccount,
    EntitlementUpdate,
    OrderCreated,
    PaymentPage,
    PaymentRecord,
    PaymentStats,
    PaymentStatus,
    PaymentVerified,
    SubscriptionRecord,
    SubscriptionStatus,
)

logger = logging.getLogger(__name__)

SIGNATURE_FAILURE_REASON = "Signature verification failed"
MAX_PAGE_SIZE = 100

_dataclass_kwargs = {"slots": True} if sys.version_info >= (3, 10) else {}


class PaymentRepository(Protocol):
    """Persistence operations required by the payment service."""

    def get_employer(self, employer_id: str) -> Optional[EmployerAccount]:
        ...

    def apply_entitlement(self, employer_id: str, update: EntitlementUpdate) -> Optional[EmployerAccount]:
        ...

    def create_order_records(
        self,
        payment: PaymentRecord,
        subscription: SubscriptionRecord,
    ) -> Tuple[PaymentRecord, SubscriptionRecord]:
        ...

    def get_payment_by_order(self, order_id: str, employer_id: str) -> Optional[PaymentRecord]:
        ...

    def get_payment(self, payment_id: str, employer_id: str) -> Optional[PaymentRecord]:
        ...

    def get_payment_by_id(self, payment_id: str) -> Optional[PaymentRecord]:
        ...

    def claim_for_verification(self, order_id: str, employer_id: str) -> Optional[PaymentRecord]:
        ...

    def mark_payment_succeeded(
        self,
        order_id: str,
        employer_id: str,
        *,
        gateway_payment_id: str,
        gateway_signature: str,
        completed_at: datetime,
    ) -> Optional[PaymentRecord]:
        ...

    def mark_payment_failed(
        self,
        order_id: str,
        employer_id: str,
        *,
        gateway_payment_id: str,
        gateway_signature: str,
        failed_at: datetime,
        failure_reason: str,
    ) -> Optional[PaymentRecord]:
        ...

    def record_refund(
        self,
        payment_id: str,
        *,
        status: PaymentStatus,
        refund_amount: Decimal,
        refund_reason: Optional[str],
        refund_id: Optional[str],
        refunded_at: datetime,
    ) -> Optional[PaymentRecord]:
        ...

    def list_payments(
        self,
        employer_id: str,
        *,
        status: Optional[PaymentStatus] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        offset: int = 0,
        limit: int = 10,
    ) -> Tuple[List[PaymentRecord], int]:
        ...

    def payment_stats(
        self,
        employer_id: str,
        *,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> PaymentStats:
        ...

    def activate_subscription(
        self,
        order_id: str,
        employer_id: str,
        *,
        payment_id: str,
        signature: str,
        start_date: datetime,
        end_date: Optional[datetime],
    ) -> Optional[SubscriptionRecord]:
        ...

    def fail_subscription(
        self,
        order_id: str,
        employer_id: str,
        *,
        payment_id: str,
        signature: str,
    ) -> Optional[SubscriptionRecord]:
        ...


class InvoiceIssuer(Protocol):
    """Issues an invoice for a verified payment."""

    def issue_invoice(
        self,
        *,
        payment: PaymentRecord,
        subscription: Optional[SubscriptionRecord],
        plan: PlanDefinition,
    ) -> object:
        ...


def _require(value: Optional[str], field_name: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise PaymentValidationError(
            message=f"{field_name} is required",
            detail={"field": field_name},
        )
    return cleaned


@dataclass(**_dataclass_kwargs)
class PaymentService:
    """Coordinates gateway orders, signature verification and entitlements."""

    repository: PaymentRepository
    plans: PlanCatalog
    gateway: PaymentGateway
    signing_secret: str
    invoices: Optional[InvoiceIssuer] = None

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def _ensure_configured(self) -> None:
        if not self.signing_secret:
            raise PaymentConfigurationError()

    def _get_plan(self, plan_id: str) -> PlanDefinition:
        plan = self.plans.get_plan(plan_id)
        if plan is None:
            raise PlanNotFoundError(detail={"planId": plan_id})
        return plan

    # Order creation ------------------------------------------------------------

    def create_order(
        self,
        employer_id: str,
        plan_id: str,
        *,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> OrderCreated:
        self._ensure_configured()
        plan_id = _require(plan_id, "planId")
        plan = self._get_plan(plan_id)

        employer = self.repository.get_employer(employer_id)
        if employer is None:
            raise EmployerNotFoundError(detail={"employerId": employer_id})
        if employer.subscription_plan == plan.plan_id:
            raise PlanUnchangedError(detail={"planId": plan.plan_id.value})

        amount_minor = plan.price.minor_units()
        if amount_minor <= 0:
            raise PaymentValidationError(
                message="Plan price must be greater than zero",
                detail={"planId": plan.plan_id.value},
            )

        now = self._now()
        receipt = f"plan_{plan.plan_id.value}_{int(now.timestamp() * 1000)}"
        notes = {
            "planId": plan.plan_id.value,
            "employerId": employer_id,
            "period": plan.price.period,
        }

        # A gateway failure raises here, before anything is persisted.
        order = self.gateway.create_order(
            amount=amount_minor,
            currency=plan.price.currency,
            receipt=receipt,
            notes=notes,
        )

        payment = PaymentRecord(
            payment_id=f"pay_{uuid4().hex}",
            employer_id=employer_id,
            plan_id=plan.plan_id,
            amount=plan.price.amount,
            currency=plan.price.currency,
            gateway_order_id=order.id,
            gateway_receipt=receipt,
            status=PaymentStatus.INITIATED,
            initiated_at=now,
            user_agent=user_agent,
            ip_address=ip_address,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        subscription = SubscriptionRecord(
            subscription_id=f"sub_{uuid4().hex}",
            employer_id=employer_id,
            plan_id=plan.plan_id,
            period=plan.price.period,
            amount=plan.price.amount,
            currency=plan.price.currency,
            order_id=order.id,
            receipt=receipt,
            status=SubscriptionStatus.CREATED,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        stored_payment, stored_subscription = self.repository.create_order_records(payment, subscription)

        logger.info(
            "Payment order created",
            extra={
                "payment_event": "order_created",
                "order_id": order.id,
                "employer_id": employer_id,
                "plan_id": plan.plan_id.value,
                "amount_minor": amount_minor,
            },
        )
        return OrderCreated(
            order=order,
            key_id=self.gateway.key_id,
            plan=plan.summary(),
            payment=stored_payment,
            subscription=stored_subscription,
        )

    # Verification --------------------------------------------------------------

    def verify_payment(
        self,
        employer_id: str,
        *,
        gateway_order_id: Optional[str],
        gateway_payment_id: Optional[str],
        gateway_signature: Optional[str],
        plan_id: Optional[str],
    ) -> PaymentVerified:
        """Verify a gateway callback and apply the purchased plan.

        The order is first claimed by moving it from ``initiated`` to
        ``pending``; a request that loses the claim gets a conflict and writes
        nothing. A signature mismatch records the payment and subscription as
        failed before raising. On a match the employer entitlement, payment and
        subscription are updated in that order, then an invoice is issued as a
        best-effort step whose failure never changes the result.
        """

        order_id = _require(gateway_order_id, "gatewayOrderId")
        payment_ref = _require(gateway_payment_id, "gatewayPaymentId")
        signature = _require(gateway_signature, "gatewaySignature")
        plan_key = _require(plan_id, "planId")
        self._ensure_configured()

        plan = self._get_plan(plan_key)

        payment = self.repository.get_payment_by_order(order_id, employer_id)
        if payment is None:
            raise PaymentNotFoundError(detail={"gatewayOrderId": order_id})
        if payment.plan_id != plan.plan_id:
            raise PaymentValidationError(
                message="planId does not match the order",
                detail={"planId": plan.plan_id.value, "orderPlanId": payment.plan_id.value},
            )
        if not payment.status.awaiting_verification:
            self._reject_replay(order_id, payment.status)

        # Only the request that wins this conditional update may write anything else.
        claimed = self.repository.claim_for_verification(order_id, employer_id)
        if claimed is None:
            current = self.repository.get_payment_by_order(order_id, employer_id)
            self._reject_replay(order_id, current.status if current else payment.status)

        now = self._now()
        if not verify_signature(self.signing_secret, order_id, payment_ref, signature):
            self._record_signature_failure(employer_id, order_id, payment_ref, signature, now)
            raise SignatureVerificationError()

        update = build_entitlement_update(plan, now)
        employer = self.repository.apply_entitlement(employer_id, update)
        if employer is None:
            raise EmployerNotFoundError(detail={"employerId": employer_id})

        updated_payment = self.repository.mark_payment_succeeded(
            order_id,
            employer_id,
            gateway_payment_id=payment_ref,
            gateway_signature=signature,
            completed_at=now,
        )
        if updated_payment is None:
            logger.error(
                "Claimed payment could not be completed",
                extra={"payment_event": "claim_lost", "order_id": order_id, "employer_id": employer_id},
            )
            raise PaymentAlreadyProcessedError()

        subscription = self.repository.activate_subscription(
            order_id,
            employer_id,
            payment_id=payment_ref,
            signature=signature,
            start_date=update.subscription_start_date,
            end_date=update.subscription_end_date,
        )
        if subscription is None:
            logger.warning("No pending subscription for verified order", extra={"order_id": order_id})

        logger.info(
            "Payment verified",
            extra={
                "payment_event": "payment_verified",
                "order_id": order_id,
                "employer_id": employer_id,
                "plan_id": plan.plan_id.value,
            },
        )

        self._issue_invoice(updated_payment, subscription, plan)

        return PaymentVerified(
            employer=employer,
            plan=plan.summary(),
            payment=updated_payment,
            subscription=subscription,
        )

    def _reject_replay(self, order_id: str, status: PaymentStatus) -> NoReturn:
        logger.warning(
            "Rejected verification replay",
            extra={"payment_event": "replay_rejected", "order_id": order_id, "status": status.value},
        )
        raise PaymentAlreadyProcessedError(detail={"status": status.value})

    def _record_signature_failure(
        self,
        employer_id: str,
        order_id: str,
        payment_ref: str,
        signature: str,
        now: datetime,
    ) -> None:
        logger.warning(
            "Payment signature mismatch",
            extra={"payment_event": "signature_mismatch", "order_id": order_id, "employer_id": employer_id},
        )
        self.repository.mark_payment_failed(
            order_id,
            employer_id,
            gateway_payment_id=payment_ref,
            gateway_signature=signature,
            failed_at=now,
            failure_reason=SIGNATURE_FAILURE_REASON,
        )
        self.repository.fail_subscription(
            order_id,
            employer_id,
            payment_id=payment_ref,
            signature=signature,
        )

    def _issue_invoice(
        self,
        payment: PaymentRecord,
        subscription: Optional[SubscriptionRecord],
        plan: PlanDefinition,
    ) -> Optional[StepResult]:
        if self.invoices is None:
            return None
        return best_effort(
            "invoice_issuance",
            self.invoices.issue_invoice,
            payment=payment,
            subscription=subscription,
            plan=plan,
            log=logger,
            context={"order_id": payment.gateway_order_id},
        )

    # Reporting -----------------------------------------------------------------

    def get_payment_history(
        self,
        employer_id: str,
        *,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> PaymentPage:
        if page < 1:
            raise PaymentValidationError(message="page must be >= 1")
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise PaymentValidationError(message=f"limit must be between 1 and {MAX_PAGE_SIZE}")
        status_filter: Optional[PaymentStatus] = None
        if status:
            try:
                status_filter = PaymentStatus(status)
            except ValueError as exc:
                raise PaymentValidationError(message="Unknown payment status", detail={"status": status}) from exc

        payments, total = self.repository.list_payments(
            employer_id,
            status=status_filter,
            start_date=start_date,
            end_date=end_date,
            offset=(page - 1) * limit,
            limit=limit,
        )
        return PaymentPage(payments=payments, total=total, page=page, limit=limit)

    def get_payment_stats(
        self,
        employer_id: str,
        *,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> PaymentStats:
        return self.repository.payment_stats(employer_id, start_date=start_date, end_date=end_date)

    def get_payment(self, payment_id: str, employer_id: str) -> PaymentRecord:
        payment = self.repository.get_payment(payment_id, employer_id)
        if payment is None:
            raise PaymentNotFoundError(detail={"paymentId": payment_id})
        return payment

    # Administration ------------------------------------------------------------

    def record_refund(
        self,
        payment_id: str,
        *,
        refund_amount: Decimal,
        reason: Optional[str] = None,
        refund_id: Optional[str] = None,
    ) -> PaymentRecord:
        """Record a refund issued outside this service.

        Only a ``success`` payment can be refunded, once; the amount is capped
        at the payment amount.
        """

        payment = self.repository.get_payment_by_id(payment_id)
        if payment is None:
            raise PaymentNotFoundError(detail={"paymentId": payment_id})

        amount = Decimal(str(refund_amount))
        if amount <= 0:
            raise PaymentValidationError(message="refund_amount must be greater than zero")

        target = PaymentStatus.REFUNDED if amount >= payment.amount else PaymentStatus.PARTIALLY_REFUNDED
        if not payment.status.can_transition_to(target):
            raise InvalidTransitionError(
                message="Only successful payments can be refunded",
                detail={"from": payment.status.value, "to": target.value},
            )

        updated = self.repository.record_refund(
            payment_id,
            status=target,
            refund_amount=min(amount, payment.amount),
            refund_reason=reason,
            refund_id=refund_id,
            refunded_at=self._now(),
        )
        if updated is None:
            raise InvalidTransitionError(detail={"from": payment.status.value, "to": target.value})
        logger.info(
            "Refund recorded",
            extra={"payment_event": "refund_recorded", "payment_id": payment_id, "status": target.value},
        )
        return updated


__all__ = ["InvoiceIssuer", "PaymentRepository", "PaymentService", "SIGNATURE_FAILURE_REASON"]
