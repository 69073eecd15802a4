"""Domain models for purchasable pricing plans."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Dict, Optional


class PlanId(str, Enum):
    """Canonical identifiers for employer pricing plans."""

    FREE = "free"
    BASIC = "basic"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"


class BillingPeriod(str, Enum):
    """Billing periods a plan can be sold for."""

    MONTHLY = "monthly"
    YEARLY = "yearly"
    ONE_TIME = "one-time"
    FOREVER = "forever"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["BillingPeriod"]:
        """Return the matching period, or ``None`` for unrecognized values."""

        if value is None:
            return None
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class PlanPrice:
    """Price of a plan in major currency units."""

    amount: Decimal
    currency: str = "INR"
    period: str = BillingPeriod.MONTHLY.value
    display_price: str = ""

    def minor_units(self) -> int:
        """Return the amount in minor units (e.g. paise), rounded half up."""

        return int((Decimal(self.amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class PlanDefinition:
    """Read-only description of a purchasable plan and the limits it grants."""

    plan_id: PlanId
    name: str
    price: PlanPrice
    description: str = ""
    job_posting_limit: Optional[int] = 1
    featured_jobs_limit: Optional[int] = 0
    is_active: bool = True
    is_available: bool = True
    sort_order: int = 0

    @property
    def is_purchasable(self) -> bool:
        return self.is_active and self.is_available

    @property
    def billing_period(self) -> Optional[BillingPeriod]:
        return BillingPeriod.parse(self.price.period)

    def summary(self) -> Dict[str, object]:
        """Serialize the plan's price and entitlements for API responses."""

        return {
            "planId": self.plan_id.value,
            "name": self.name,
            "amount": self.price.amount,
            "currency": self.price.currency,
            "period": self.price.period,
            "jobPostingLimit": self.job_posting_limit,
            "featuredJobsLimit": self.featured_jobs_limit,
        }
