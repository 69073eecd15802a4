"""Persistence layer for payments, subscriptions and employer entitlements."""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ..db import managed_connection
from ..plans.models import PlanId
from .models import (
    BillingAddress,
    EmployerAccount,
    EntitlementUpdate,
    PaymentMethod,
    PaymentRecord,
    PaymentStats,
    PaymentStatus,
    SubscriptionRecord,
    SubscriptionStatus,
    payment_sources_for,
    subscription_sources_for,
)


def _row_to_employer(row: dict) -> EmployerAccount:
    return EmployerAccount(
        employer_id=str(row["id"]),
        company_name=row["company_name"],
        company_email=row["company_email"],
        company_phone=row.get("company_phone"),
        headquarters=BillingAddress(
            address=row.get("hq_address"),
            city=row.get("hq_city"),
            state=row.get("hq_state"),
            country=row.get("hq_country"),
            zip_code=row.get("hq_zip_code"),
        ),
        subscription_plan=PlanId(row.get("subscription_plan") or PlanId.FREE.value),
        subscription_start_date=row.get("subscription_start_date"),
        subscription_end_date=row.get("subscription_end_date"),
        job_posting_limit=row.get("job_posting_limit"),
        featured_jobs_limit=row.get("featured_jobs_limit"),
    )


def _row_to_payment(row: dict) -> PaymentRecord:
    return PaymentRecord(
        payment_id=row["payment_id"],
        employer_id=str(row["employer_id"]),
        plan_id=PlanId(row["plan_id"]),
        amount=Decimal(str(row["amount"])),
        currency=row["currency"],
        gateway_order_id=row["gateway_order_id"],
        gateway_payment_id=row.get("gateway_payment_id"),
        gateway_signature=row.get("gateway_signature"),
        gateway_receipt=row["gateway_receipt"],
        status=PaymentStatus(row["status"]),
        payment_method=PaymentMethod(row.get("payment_method") or PaymentMethod.OTHER.value),
        payment_method_details=row.get("payment_method_details") or "",
        initiated_at=row["initiated_at"],
        completed_at=row.get("completed_at"),
        failed_at=row.get("failed_at"),
        refunded_at=row.get("refunded_at"),
        failure_reason=row.get("failure_reason"),
        error_code=row.get("error_code"),
        error_description=row.get("error_description"),
        refund_amount=Decimal(str(row.get("refund_amount") or 0)),
        refund_reason=row.get("refund_reason"),
        refund_id=row.get("refund_id"),
        user_agent=row.get("user_agent"),
        ip_address=row.get("ip_address"),
        notes=row.get("notes") or {},
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_subscription(row: dict) -> SubscriptionRecord:
    return SubscriptionRecord(
        subscription_id=row["subscription_id"],
        employer_id=str(row["employer_id"]),
        plan_id=PlanId(row["plan_id"]),
        period=row.get("period") or "monthly",
        amount=Decimal(str(row["amount"])),
        currency=row["currency"],
        order_id=row["order_id"],
        payment_id=row.get("payment_id"),
        signature=row.get("signature"),
        receipt=row.get("receipt"),
        status=SubscriptionStatus(row["status"]),
        start_date=row.get("start_date"),
        end_date=row.get("end_date"),
        notes=row.get("notes") or {},
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _statuses(values: Sequence) -> List[str]:
    return [value.value for value in values]


class PostgresPaymentRepository:
    """Concrete repository persisting payment models in PostgreSQL."""

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    @contextmanager
    def _cursor(self) -> Iterable[PgCursor]:
        with managed_connection(self._conn) as (connection, managed):
            cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield cursor
                if managed:
                    connection.commit()
            except Exception:
                if managed:
                    connection.rollback()
                raise
            finally:
                cursor.close()

    # Employers -----------------------------------------------------------------

    def get_employer(self, employer_id: str) -> Optional[EmployerAccount]:
        with self._cursor() as cursor:
            cursor.execute("SELECT * FROM employers WHERE id = %s LIMIT 1", (employer_id,))
            row = cursor.fetchone()
            return _row_to_employer(row) if row else None

    def apply_entitlement(self, employer_id: str, update: EntitlementUpdate) -> Optional[EmployerAccount]:
        """Overwrite the employer's plan fields; last writer wins."""

        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE employers
                SET subscription_plan = %(plan)s,
                    subscription_start_date = %(start)s,
                    subscription_end_date = %(end)s,
                    job_posting_limit = %(job_limit)s,
                    featured_jobs_limit = %(featured_limit)s,
                    updated_at = NOW()
                WHERE id = %(employer_id)s
                RETURNING *
                """,
                {
                    "plan": update.subscription_plan.value,
                    "start": update.subscription_start_date,
                    "end": update.subscription_end_date,
                    "job_limit": update.job_posting_limit,
                    "featured_limit": update.featured_jobs_limit,
                    "employer_id": employer_id,
                },
            )
            row = cursor.fetchone()
            return _row_to_employer(row) if row else None

    # Order creation ------------------------------------------------------------

    def create_order_records(
        self,
        payment: PaymentRecord,
        subscription: SubscriptionRecord,
    ) -> Tuple[PaymentRecord, SubscriptionRecord]:
        """Insert the payment and subscription rows in a single transaction."""

        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO payments (
                    payment_id, employer_id, plan_id, amount, currency,
                    gateway_order_id, gateway_receipt, status, payment_method,
                    initiated_at, user_agent, ip_address, notes
                )
                VALUES (%(payment_id)s, %(employer_id)s, %(plan_id)s, %(amount)s, %(currency)s,
                        %(gateway_order_id)s, %(gateway_receipt)s, %(status)s, %(payment_method)s,
                        %(initiated_at)s, %(user_agent)s, %(ip_address)s, %(notes)s)
                RETURNING *
                """,
                {
                    "payment_id": payment.payment_id,
                    "employer_id": payment.employer_id,
                    "plan_id": payment.plan_id.value,
                    "amount": payment.amount,
                    "currency": payment.currency,
                    "gateway_order_id": payment.gateway_order_id,
                    "gateway_receipt": payment.gateway_receipt,
                    "status": payment.status.value,
                    "payment_method": payment.payment_method.value,
                    "initiated_at": payment.initiated_at,
                    "user_agent": payment.user_agent,
                    "ip_address": payment.ip_address,
                    "notes": psycopg2.extras.Json(payment.notes),
                },
            )
            payment_row = cursor.fetchone()
            if not payment_row:
                raise RuntimeError("Failed to persist payment")

            cursor.execute(
                """
                INSERT INTO subscriptions (
                    subscription_id, employer_id, plan_id, period, amount, currency,
                    order_id, receipt, status, notes
                )
                VALUES (%(subscription_id)s, %(employer_id)s, %(plan_id)s, %(period)s, %(amount)s,
                        %(currency)s, %(order_id)s, %(receipt)s, %(status)s, %(notes)s)
                RETURNING *
                """,
                {
                    "subscription_id": subscription.subscription_id,
                    "employer_id": subscription.employer_id,
                    "plan_id": subscription.plan_id.value,
                    "period": subscription.period,
                    "amount": subscription.amount,
                    "currency": subscription.currency,
                    "order_id": subscription.order_id,
                    "receipt": subscription.receipt,
                    "status": subscription.status.value,
                    "notes": psycopg2.extras.Json(subscription.notes),
                },
            )
            subscription_row = cursor.fetchone()
            if not subscription_row:
                raise RuntimeError("Failed to persist subscription")
            return _row_to_payment(payment_row), _row_to_subscription(subscription_row)

    # Payments ------------------------------------------------------------------

    def get_payment_by_order(self, order_id: str, employer_id: str) -> Optional[PaymentRecord]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM payments
                WHERE gateway_order_id = %s AND employer_id = %s
                LIMIT 1
                """,
                (order_id, employer_id),
            )
            row = cursor.fetchone()
            return _row_to_payment(row) if row else None

    def get_payment(self, payment_id: str, employer_id: str) -> Optional[PaymentRecord]:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT * FROM payments WHERE payment_id = %s AND employer_id = %s LIMIT 1",
                (payment_id, employer_id),
            )
            row = cursor.fetchone()
            return _row_to_payment(row) if row else None

    def claim_for_verification(self, order_id: str, employer_id: str) -> Optional[PaymentRecord]:
        """Move ``initiated`` to ``pending``; returns ``None`` when another request holds the order."""

        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE payments
                SET status = %(status)s,
                    updated_at = NOW()
                WHERE gateway_order_id = %(order_id)s
                  AND employer_id = %(employer_id)s
                  AND status = ANY(%(allowed)s)
                RETURNING *
                """,
                {
                    "status": PaymentStatus.PENDING.value,
                    "order_id": order_id,
                    "employer_id": employer_id,
                    "allowed": _statuses(payment_sources_for(PaymentStatus.PENDING)),
                },
            )
            row = cursor.fetchone()
            return _row_to_payment(row) if row else None

    def mark_payment_succeeded(
        self,
        order_id: str,
        employer_id: str,
        *,
        gateway_payment_id: str,
        gateway_signature: str,
        completed_at: datetime,
    ) -> Optional[PaymentRecord]:
        """Move a claimed payment to ``success``; returns ``None`` if it was not claimed."""

        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE payments
                SET status = %(status)s,
                    gateway_payment_id = %(gateway_payment_id)s,
                    gateway_signature = %(gateway_signature)s,
                    completed_at = %(completed_at)s,
                    updated_at = NOW()
                WHERE gateway_order_id = %(order_id)s
                  AND employer_id = %(employer_id)s
                  AND status = ANY(%(allowed)s)
                  AND completed_at IS NULL
                RETURNING *
                """,
                {
                    "status": PaymentStatus.SUCCESS.value,
                    "gateway_payment_id": gateway_payment_id,
                    "gateway_signature": gateway_signature,
                    "completed_at": completed_at,
                    "order_id": order_id,
                    "employer_id": employer_id,
                    "allowed": _statuses(payment_sources_for(PaymentStatus.SUCCESS)),
                },
            )
            row = cursor.fetchone()
            return _row_to_payment(row) if row else None

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
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE payments
                SET status = %(status)s,
                    gateway_payment_id = %(gateway_payment_id)s,
                    gateway_signature = %(gateway_signature)s,
                    failed_at = %(failed_at)s,
                    failure_reason = %(failure_reason)s,
                    updated_at = NOW()
                WHERE gateway_order_id = %(order_id)s
                  AND employer_id = %(employer_id)s
                  AND status = ANY(%(allowed)s)
                  AND failed_at IS NULL
                RETURNING *
                """,
                {
                    "status": PaymentStatus.FAILED.value,
                    "gateway_payment_id": gateway_payment_id,
                    "gateway_signature": gateway_signature,
                    "failed_at": failed_at,
                    "failure_reason": failure_reason,
                    "order_id": order_id,
                    "employer_id": employer_id,
                    "allowed": _statuses(payment_sources_for(PaymentStatus.FAILED)),
                },
            )
            row = cursor.fetchone()
            return _row_to_payment(row) if row else None

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
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE payments
                SET status = %(status)s,
                    refund_amount = %(refund_amount)s,
                    refund_reason = %(refund_reason)s,
                    refund_id = %(refund_id)s,
                    refunded_at = %(refunded_at)s,
                    updated_at = NOW()
                WHERE payment_id = %(payment_id)s
                  AND status = ANY(%(allowed)s)
                RETURNING *
                """,
                {
                    "status": status.value,
                    "refund_amount": refund_amount,
                    "refund_reason": refund_reason,
                    "refund_id": refund_id,
                    "refunded_at": refunded_at,
                    "payment_id": payment_id,
                    "allowed": _statuses(payment_sources_for(status)),
                },
            )
            row = cursor.fetchone()
            return _row_to_payment(row) if row else None

    def get_payment_by_id(self, payment_id: str) -> Optional[PaymentRecord]:
        with self._cursor() as cursor:
            cursor.execute("SELECT * FROM payments WHERE payment_id = %s LIMIT 1", (payment_id,))
            row = cursor.fetchone()
            return _row_to_payment(row) if row else None

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
        clauses = ["employer_id = %(employer_id)s"]
        params: dict = {"employer_id": employer_id, "offset": offset, "limit": limit}
        if status is not None:
            clauses.append("status = %(status)s")
            params["status"] = status.value
        if start_date is not None:
            clauses.append("initiated_at >= %(start_date)s")
            params["start_date"] = start_date
        if end_date is not None:
            clauses.append("initiated_at <= %(end_date)s")
            params["end_date"] = end_date
        where = " AND ".join(clauses)

        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT *
                FROM payments
                WHERE {where}
                ORDER BY initiated_at DESC
                OFFSET %(offset)s
                LIMIT %(limit)s
                """,
                params,
            )
            rows = cursor.fetchall() or []
            cursor.execute(f"SELECT COUNT(*) AS total FROM payments WHERE {where}", params)
            count_row = cursor.fetchone() or {"total": 0}
            return [_row_to_payment(row) for row in rows], int(count_row["total"])

    def payment_stats(
        self,
        employer_id: str,
        *,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> PaymentStats:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT
                    COUNT(*) AS total_payments,
                    COUNT(*) FILTER (WHERE status = 'success') AS successful_payments,
                    COUNT(*) FILTER (WHERE status = 'failed') AS failed_payments,
                    COALESCE(SUM(amount), 0) AS total_amount,
                    COALESCE(SUM(amount) FILTER (WHERE status = 'success'), 0) AS successful_amount,
                    COALESCE(SUM(refund_amount), 0) AS refunded_amount
                FROM payments
                WHERE employer_id = %(employer_id)s
                  AND (%(start_date)s::timestamptz IS NULL OR initiated_at >= %(start_date)s)
                  AND (%(end_date)s::timestamptz IS NULL OR initiated_at <= %(end_date)s)
                """,
                {"employer_id": employer_id, "start_date": start_date, "end_date": end_date},
            )
            row = cursor.fetchone()
            if not row:
                return PaymentStats()
            return PaymentStats(
                total_payments=int(row["total_payments"]),
                successful_payments=int(row["successful_payments"]),
                failed_payments=int(row["failed_payments"]),
                total_amount=Decimal(str(row["total_amount"])),
                successful_amount=Decimal(str(row["successful_amount"])),
                refunded_amount=Decimal(str(row["refunded_amount"])),
            )

    # Subscriptions -------------------------------------------------------------

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
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE subscriptions
                SET status = %(status)s,
                    payment_id = %(payment_id)s,
                    signature = %(signature)s,
                    start_date = %(start_date)s,
                    end_date = %(end_date)s,
                    updated_at = NOW()
                WHERE order_id = %(order_id)s
                  AND employer_id = %(employer_id)s
                  AND status = ANY(%(allowed)s)
                RETURNING *
                """,
                {
                    "status": SubscriptionStatus.ACTIVE.value,
                    "payment_id": payment_id,
                    "signature": signature,
                    "start_date": start_date,
                    "end_date": end_date,
                    "order_id": order_id,
                    "employer_id": employer_id,
                    "allowed": _statuses(subscription_sources_for(SubscriptionStatus.ACTIVE)),
                },
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def fail_subscription(
        self,
        order_id: str,
        employer_id: str,
        *,
        payment_id: str,
        signature: str,
    ) -> Optional[SubscriptionRecord]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE subscriptions
                SET status = %(status)s,
                    payment_id = %(payment_id)s,
                    signature = %(signature)s,
                    updated_at = NOW()
                WHERE order_id = %(order_id)s
                  AND employer_id = %(employer_id)s
                  AND status = ANY(%(allowed)s)
                RETURNING *
                """,
                {
                    "status": SubscriptionStatus.FAILED.value,
                    "payment_id": payment_id,
                    "signature": signature,
                    "order_id": order_id,
                    "employer_id": employer_id,
                    "allowed": _statuses(subscription_sources_for(SubscriptionStatus.FAILED)),
                },
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None


__all__ = ["PostgresPaymentRepository"]
