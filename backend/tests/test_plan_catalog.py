from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

import pytest

from backend.app.plans import DEFAULT_PLANS, BillingPeriod, PlanId, PlanPrice, StaticPlanCatalog


@pytest.mark.parametrize("raw", ["basic", " BASIC ", PlanId.BASIC])
def test_get_plan_accepts_loose_identifiers(raw) -> None:
    plan = StaticPlanCatalog().get_plan(raw)

    assert plan is not None
    assert plan.plan_id == PlanId.BASIC


@pytest.mark.parametrize("raw", ["gold", "", "   "])
def test_get_plan_unknown_returns_none(raw: str) -> None:
    assert StaticPlanCatalog().get_plan(raw) is None


def test_inactive_or_unavailable_plans_are_hidden() -> None:
    catalog = StaticPlanCatalog(
        [
            replace(DEFAULT_PLANS[PlanId.BASIC], is_available=False),
            replace(DEFAULT_PLANS[PlanId.PREMIUM], is_active=False),
            DEFAULT_PLANS[PlanId.FREE],
        ]
    )

    assert catalog.get_plan("basic") is None
    assert catalog.get_plan("premium") is None
    assert [plan.plan_id for plan in catalog.list_active_plans()] == [PlanId.FREE]


def test_list_active_plans_orders_by_sort_order() -> None:
    plans = StaticPlanCatalog().list_active_plans()

    assert [plan.plan_id for plan in plans] == [PlanId.FREE, PlanId.BASIC, PlanId.PREMIUM, PlanId.ENTERPRISE]


@pytest.mark.parametrize(
    "amount, minor",
    [("2499", 249900), ("6999.50", 699950), ("0.005", 1), ("0", 0)],
)
def test_minor_units_round_half_up(amount: str, minor: int) -> None:
    assert PlanPrice(amount=Decimal(amount)).minor_units() == minor


def test_billing_period_parse() -> None:
    assert BillingPeriod.parse(" Yearly ") == BillingPeriod.YEARLY
    assert BillingPeriod.parse("weekly") is None
    assert BillingPeriod.parse(None) is None


def test_plan_summary() -> None:
    summary = DEFAULT_PLANS[PlanId.PREMIUM].summary()

    assert summary == {
        "planId": "premium",
        "name": "Premium",
        "amount": Decimal("6999"),
        "currency": "INR",
        "period": "monthly",
        "jobPostingLimit": None,
        "featuredJobsLimit": 5,
    }
