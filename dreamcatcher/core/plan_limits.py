from typing import Dict, Optional, TypedDict

PLAN_FREE = "free"
PLAN_PREMIUM = "premium"
PLANS = (PLAN_FREE, PLAN_PREMIUM)

UNLIMITED = -1  # -1 means unlimited

# Metrics a client may report through /billing/usage/increment.
# dream_edit is counted but has no policy, so it is never restricted.
METRICS = ("dream_create", "dream_edit", "ai_analyze", "chat_message")


class MetricPolicy(TypedDict):
    limit: int
    period: str  # "month" or "day"


# Plan limits configuration. Changing a limit requires a redeploy.
PLAN_LIMITS: Dict[str, Dict[str, MetricPolicy]] = {
    PLAN_FREE: {
        "dream_create": {"limit": 10, "period": "month"},
        "ai_analyze": {"limit": 5, "period": "month"},
        "chat_message": {"limit": 10, "period": "day"},
    },
    PLAN_PREMIUM: {
        "dream_create": {"limit": UNLIMITED, "period": "month"},
        "ai_analyze": {"limit": UNLIMITED, "period": "month"},
        "chat_message": {"limit": UNLIMITED, "period": "day"},
    },
}

UPGRADE_HINT = "Upgrade to premium for unlimited access"

PRICING = {
    "monthly": {
        "price": 9.99,
        "currency": "USD",
        "interval": "month",
        "features": [
            "Unlimited dream entries",
            "Unlimited AI analysis",
            "Unlimited chat with Dream Analyst",
            "Advanced mood tracking",
            "Detailed statistics & insights",
            "Priority support",
        ],
    },
    "yearly": {
        "price": 99.99,
        "currency": "USD",
        "interval": "year",
        "savings": 17,  # percent vs. twelve monthly payments
        "features": [
            "Everything in Monthly",
            "17% savings",
            "Annual insights report",
            "Exclusive features",
        ],
    },
}


def get_metric_policy(plan: str, metric: str) -> Optional[MetricPolicy]:
    """Policy for a metric on a plan, or None when the metric is unrestricted."""
    return PLAN_LIMITS.get(plan, PLAN_LIMITS[PLAN_FREE]).get(metric)


def is_unlimited(limit: int) -> bool:
    return limit == UNLIMITED
