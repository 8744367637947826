"""Subscription prices in sum. Payment itself is collected off-platform."""

from quiz_platform.core.models import SubscriptionPlan

CURRENCY: str = "UZS"
PLAN_PRICES: dict[SubscriptionPlan, int] = {
    SubscriptionPlan.FREE: 0,
    SubscriptionPlan.MONTHLY: 25_000,
    SubscriptionPlan.YEARLY: 50_000,
}
PLAN_DURATION_DAYS: dict[SubscriptionPlan, int | None] = {
    SubscriptionPlan.FREE: None,
    SubscriptionPlan.MONTHLY: 30,
    SubscriptionPlan.YEARLY: 365,
}
