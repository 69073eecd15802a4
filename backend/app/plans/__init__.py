"""Pricing plan definitions and catalog lookups."""

from .catalog import DEFAULT_PLANS, PlanCatalog, PostgresPlanCatalog, StaticPlanCatalog
from .models import BillingPeriod, PlanDefinition, PlanId, PlanPrice

__all__ = [
    "DEFAULT_PLANS",
    "BillingPeriod",
    "PlanCatalog",
    "PlanDefinition",
    "PlanId",
    "PlanPrice",
    "PostgresPlanCatalog",
    "StaticPlanCatalog",
]
