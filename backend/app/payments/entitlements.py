"""Entitlement window computation for verified plan purchases."""
from __future__ import annotations

import calendar
from datetime import datetime
from typing import Dict, Optional, Tuple

from ..plans.models import BillingPeriod, PlanDefinition
from .models import EntitlementUpdate

# Length of the entitlement window per period; ``None`` means unlimited.
# Every BillingPeriod member must have an entry here.
PERIOD_LENGTH_MONTHS: Dict[BillingPeriod, Optional[int]] = {
    BillingPeriod.MONTHLY: 1,
    BillingPeriod.YEARLY: 12,
    BillingPeriod.ONE_TIME: None,
    BillingPeriod.FOREVER: None,
}

UNRECOGNIZED_PERIOD_MONTHS: Optional[int] = None


def _add_months(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def entitlement_window(period: Optional[str], now: datetime) -> Tuple[datetime, Optional[datetime]]:
    """Return ``(start, end)`` for a billing period; an ``end`` of ``None`` is unlimited.

    Month arithmetic clamps to the last day of the target month, so a purchase
    made on 31 January ends on the last day of February.
    """

    parsed = BillingPeriod.parse(period)
    if parsed is None:
        months = UNRECOGNIZED_PERIOD_MONTHS
    else:
        months = PERIOD_LENGTH_MONTHS[parsed]
    if months is None:
        return now, None
    return now, _add_months(now, months)


def build_entitlement_update(plan: PlanDefinition, now: datetime) -> EntitlementUpdate:
    start, end = entitlement_window(plan.price.period, now)
    return EntitlementUpdate(
        subscription_plan=plan.plan_id,
        subscription_start_date=start,
        subscription_end_date=end,
        job_posting_limit=plan.job_posting_limit,
        featured_jobs_limit=plan.featured_jobs_limit if plan.featured_jobs_limit is not None else 0,
    )


__all__ = ["PERIOD_LENGTH_MONTHS", "build_entitlement_update", "entitlement_window"]
