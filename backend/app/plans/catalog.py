"""Plan catalog lookups backed by a static seed or PostgreSQL."""
from __future__ import annotations

from contextlib import contextmanager
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ..db import managed_connection
from .models import BillingPeriod, PlanDefinition, PlanId, PlanPrice


class PlanCatalog(Protocol):
    """Read-only source of plan definitions."""

    def get_plan(self, plan_id: str) -> Optional[PlanDefinition]:
        """Return the plan only when it is active and available."""

    def list_active_plans(self) -> Sequence[PlanDefinition]:
        ...


def _coerce_plan_id(plan_id: object) -> Optional[PlanId]:
    if isinstance(plan_id, PlanId):
        return plan_id
    try:
        return PlanId(str(plan_id).strip().lower())
    except ValueError:
        return None


def _sort_key(plan: PlanDefinition) -> tuple:
    return (plan.sort_order, plan.price.amount)


DEFAULT_PLANS: Dict[PlanId, PlanDefinition] = {
    PlanId.FREE: PlanDefinition(
        plan_id=PlanId.FREE,
        name="Free",
        description="Perfect for small businesses getting started",
        price=PlanPrice(amount=Decimal("0"), currency="INR", period=BillingPeriod.FOREVER.value, display_price="₹0"),
        job_posting_limit=1,
        featured_jobs_limit=0,
        sort_order=1,
    ),
    PlanId.BASIC: PlanDefinition(
        plan_id=PlanId.BASIC,
        name="Basic",
        description="Great for growing companies",
        price=PlanPrice(amount=Decimal("2499"), currency="INR", period=BillingPeriod.MONTHLY.value, display_price="₹2,499"),
        job_posting_limit=5,
        featured_jobs_limit=1,
        sort_order=2,
    ),
    PlanId.PREMIUM: PlanDefinition(
        plan_id=PlanId.PREMIUM,
        name="Premium",
        description="For established companies with high hiring needs",
        price=PlanPrice(amount=Decimal("6999"), currency="INR", period=BillingPeriod.MONTHLY.value, display_price="₹6,999"),
        job_posting_limit=None,
        featured_jobs_limit=5,
        sort_order=3,
    ),
    PlanId.ENTERPRISE: PlanDefinition(
        plan_id=PlanId.ENTERPRISE,
        name="Enterprise",
        description="Tailored solutions for large organizations",
        price=PlanPrice(amount=Decimal("0"), currency="INR", period=BillingPeriod.MONTHLY.value, display_price="Custom"),
        job_posting_limit=None,
        featured_jobs_limit=None,
        sort_order=4,
    ),
}


class StaticPlanCatalog:
    """In-process catalog, seeded with the default plans unless given others."""

    def __init__(self, plans: Optional[Iterable[PlanDefinition]] = None) -> None:
        source = DEFAULT_PLANS.values() if plans is None else plans
        self._plans: Dict[PlanId, PlanDefinition] = {plan.plan_id: plan for plan in source}

    def get_plan(self, plan_id: str) -> Optional[PlanDefinition]:
        key = _coerce_plan_id(plan_id)
        if key is None:
            return None
        plan = self._plans.get(key)
        if plan is None or not plan.is_purchasable:
            return None
        return plan

    def list_active_plans(self) -> List[PlanDefinition]:
        return sorted((plan for plan in self._plans.values() if plan.is_purchasable), key=_sort_key)


def _row_to_plan(row: dict) -> PlanDefinition:
    return PlanDefinition(
        plan_id=PlanId(row["plan_id"]),
        name=row["name"],
        description=row.get("description") or "",
        price=PlanPrice(
            amount=Decimal(str(row["price_amount"])),
            currency=row.get("price_currency") or "INR",
            period=row.get("price_period") or BillingPeriod.MONTHLY.value,
            display_price=row.get("display_price") or "",
        ),
        job_posting_limit=row.get("job_posting_limit"),
        featured_jobs_limit=row.get("featured_jobs_limit"),
        is_active=bool(row["is_active"]),
        is_available=bool(row["is_available"]),
        sort_order=int(row.get("sort_order") or 0),
    )


class PostgresPlanCatalog:
    """Catalog reading the ``pricing_plans`` table; never writes."""

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    @contextmanager
    def _cursor(self) -> Iterable[PgCursor]:
        with managed_connection(self._conn) as (connection, _managed):
            cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield cursor
            finally:
                cursor.close()

    def get_plan(self, plan_id: str) -> Optional[PlanDefinition]:
        key = _coerce_plan_id(plan_id)
        if key is None:
            return None
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM pricing_plans
                WHERE plan_id = %s AND is_active AND is_available
                LIMIT 1
                """,
                (key.value,),
            )
            row = cursor.fetchone()
            return _row_to_plan(row) if row else None

    def list_active_plans(self) -> List[PlanDefinition]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM pricing_plans
                WHERE is_active AND is_available
                ORDER BY sort_order ASC, price_amount ASC
                """
            )
            return [_row_to_plan(row) for row in cursor.fetchall() or []]


__all__ = ["DEFAULT_PLANS", "PlanCatalog", "PostgresPlanCatalog", "StaticPlanCatalog"]
