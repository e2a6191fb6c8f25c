"""
Billing routes: plan status, manual upgrades, usage reporting, Stripe checkout
and webhooks, and App Store receipt verification.
"""
import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from dreamcatcher.core.exceptions import NotFoundError
from dreamcatcher.core.plan_limits import PLAN_FREE, PLAN_LIMITS, PLAN_PREMIUM, PRICING, get_metric_policy
from dreamcatcher.db.session import get_db
from dreamcatcher.dependencies.auth import get_current_user_id
from dreamcatcher.models.user import User
from dreamcatcher.schemas.billing import (
    AppleVerifyRequest,
    BillingStatusResponse,
    CancelRequest,
    CheckoutRequest,
    IncrementRequest,
    UpgradeRequest,
    UpgradeResponse,
)
from dreamcatcher.services import apple_receipts, stripe_billing
from dreamcatcher.services.entitlement import resolve_plan
from dreamcatcher.services.usage_counter import get_usage_snapshot, increment_usage
from dreamcatcher.utils.periods import MONTH, get_periods, period_key, utcnow

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_user(user_id: int, db: Session) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    return user


@router.get("/status", response_model=BillingStatusResponse)
def billing_status(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    """Current plan, trial end and usage. A lapsed trial is downgraded here as well."""
    plan_state = resolve_plan(user_id, db)
    return BillingStatusResponse(
        plan=plan_state.plan,
        trial_end=plan_state.trial_end_iso,
        period=period_key(MONTH),
        periods=get_periods(),
        usage=get_usage_snapshot(user_id, db),
        limits=PLAN_LIMITS.get(plan_state.plan, PLAN_LIMITS[PLAN_FREE]),
    )


@router.get("/pricing")
def pricing():
    return PRICING


@router.post("/upgrade", response_model=UpgradeResponse)
def upgrade(
    request: UpgradeRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    """
    Set the plan directly. trial_days > 0 gives premium until now + trial_days;
    premium with no trial_days is a grant that never lapses.
    """
    user = _get_user(user_id, db)
    trial_end = None
    if request.trial_days > 0:
        trial_end = utcnow() + timedelta(days=request.trial_days)

    user.plan = request.plan
    user.trial_end = trial_end
    user.manual_premium = request.plan == PLAN_PREMIUM and trial_end is None
    db.commit()
    logger.info("User %s set to %s (trial_end=%s)", user_id, request.plan, trial_end)

    return UpgradeResponse(
        ok=True,
        plan=request.plan,
        trial_end=trial_end.isoformat() if trial_end else None,
    )


@router.post("/usage/increment")
def usage_increment(
    request: IncrementRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    """Count one client-side action. Never rejected; limits are enforced by the gated routes."""
    policy = get_metric_policy(PLAN_FREE, request.metric)
    period = period_key(policy["period"] if policy else MONTH)
    count = increment_usage(user_id, request.metric, period, db)
    return {"metric": request.metric, "count": count}


@router.post("/apple/verify")
def apple_verify(
    request: AppleVerifyRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    return apple_receipts.apply_apple_receipt(user_id, request.receiptData, db)


@router.post("/checkout")
def create_checkout(
    request: CheckoutRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    user = _get_user(user_id, db)
    return stripe_billing.create_checkout_session(user, request.priceId, request.trialDays, db)


@router.post("/cancel")
def cancel(
    request: CancelRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    user = _get_user(user_id, db)
    return stripe_billing.cancel_subscription(user, request.immediately, db)


@router.post("/portal")
def billing_portal(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    user = _get_user(user_id, db)
    return stripe_billing.create_portal_session(user, db)


@router.post("/webhook")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Stripe webhook. Register this URL in the Stripe dashboard:
    https://your-backend.com/billing/webhook

    The signature is verified against the raw body before anything is written.
    """
    payload = await request.body()
    event = stripe_billing.construct_event(payload, request.headers.get("stripe-signature"))

    stripe_billing.handle_event(event, db)
    return {"received": True}
