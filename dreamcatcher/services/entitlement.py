"""
Plan/trial resolution.

A user's right to premium can come from several places: a trial or manual
upgrade (users.trial_end), a Stripe subscription, an Apple receipt expiry
(user_subscriptions), or an open-ended manual grant (users.manual_premium).
The stored users.plan flag is written by each of those paths independently,
so it is re-derived here on every gated request:

    compute_entitlement()  pure, merges every source into one Entitlement
    resolve_plan()         applies it: clears a lapsed trial_end and
                           downgrades plan to free when nothing is left

The resolver only ever downgrades. Promotions come from the reconcilers and
the upgrade endpoint.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from sqlalchemy.orm import Session

from dreamcatcher.core.exceptions import NotFoundError
from dreamcatcher.core.plan_limits import PLAN_FREE, PLAN_PREMIUM
from dreamcatcher.models.user import User
from dreamcatcher.models.user_subscription import UserSubscription
from dreamcatcher.utils.periods import ensure_utc, utcnow

logger = logging.getLogger(__name__)

STRIPE_ACTIVE_STATUSES = ("active", "trialing")
STRIPE_INACTIVE_STATUSES = ("canceled", "unpaid", "past_due")

PROVIDER_STRIPE = "stripe"
PROVIDER_APPLE = "apple"
PROVIDER_MANUAL = "manual"


@dataclass(frozen=True)
class Free:
    plan = PLAN_FREE

    def to_dict(self) -> dict:
        return {"type": "free"}


@dataclass(frozen=True)
class TrialUntil:
    until: datetime
    plan = PLAN_PREMIUM

    def to_dict(self) -> dict:
        return {"type": "trial", "until": self.until.isoformat()}


@dataclass(frozen=True)
class SubscriptionActive:
    provider: str
    until: Optional[datetime] = None  # None: no known expiry
    plan = PLAN_PREMIUM

    def to_dict(self) -> dict:
        return {
            "type": "subscription",
            "provider": self.provider,
            "until": self.until.isoformat() if self.until else None,
        }


Entitlement = Union[Free, TrialUntil, SubscriptionActive]


@dataclass
class PlanState:
    plan: str
    trial_end: Optional[datetime]
    entitlement: Entitlement

    @property
    def is_premium(self) -> bool:
        return self.plan == PLAN_PREMIUM

    @property
    def trial_end_iso(self) -> Optional[str]:
        return self.trial_end.isoformat() if self.trial_end else None


def _has_provider_record(subscription: Optional[UserSubscription]) -> bool:
    if subscription is None:
        return False
    return bool(subscription.stripe_subscription_id or subscription.apple_expires_at)


def _lifetime(entitlement: Entitlement) -> datetime:
    until = getattr(entitlement, "until", None)
    return ensure_utc(until) if until is not None else datetime.max.replace(tzinfo=timezone.utc)


def compute_entitlement(
    user: User,
    subscription: Optional[UserSubscription],
    now: Optional[datetime] = None,
) -> Entitlement:
    """Merge trial, Stripe, Apple and manual sources into the longest-lived active entitlement."""
    now = ensure_utc(now) if now is not None else utcnow()

    if user.plan != PLAN_PREMIUM:
        return Free()

    candidates = []

    if user.manual_premium:
        candidates.append(SubscriptionActive(PROVIDER_MANUAL, None))

    trial_end = ensure_utc(user.trial_end)
    if trial_end is not None and trial_end >= now:
        candidates.append(TrialUntil(until=trial_end))

    if subscription is not None:
        if subscription.stripe_subscription_id and subscription.status in STRIPE_ACTIVE_STATUSES:
            candidates.append(
                SubscriptionActive(PROVIDER_STRIPE, ensure_utc(subscription.current_period_end))
            )
        apple_expires_at = ensure_utc(subscription.apple_expires_at)
        if apple_expires_at is not None and apple_expires_at > now:
            candidates.append(SubscriptionActive(PROVIDER_APPLE, apple_expires_at))

    if candidates:
        return max(candidates, key=_lifetime)

    # Premium with nothing recorded anywhere predates the manual_premium flag
    if trial_end is None and not _has_provider_record(subscription):
        return SubscriptionActive(PROVIDER_MANUAL, None)

    return Free()


def resolve_plan(user_id: int, db: Session, now: Optional[datetime] = None) -> PlanState:
    """
    Return the user's effective plan and trial_end, persisting any downgrade.

    - trial_end set and strictly in the past: trial_end is cleared.
    - no active entitlement source left: plan is written back as free.

    Raises NotFoundError for an unknown user. A failed write propagates.
    """
    now = ensure_utc(now) if now is not None else utcnow()

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")

    subscription = db.query(UserSubscription).filter(
        UserSubscription.user_id == user_id
    ).first()

    entitlement = compute_entitlement(user, subscription, now)
    changed = False

    trial_end = ensure_utc(user.trial_end)
    if trial_end is not None and trial_end < now:
        user.trial_end = None
        changed = True

    if user.plan != entitlement.plan:
        logger.info(
            "Downgrading user %s from %s to %s (trial_end=%s)",
            user_id, user.plan, entitlement.plan, trial_end,
        )
        user.plan = entitlement.plan
        changed = True

    if changed:
        db.commit()
        db.refresh(user)

    return PlanState(plan=user.plan, trial_end=ensure_utc(user.trial_end), entitlement=entitlement)
