"""
Stripe integration: checkout, cancellation, billing portal and webhook
reconciliation of users.plan against the Stripe subscription state.

Webhook handling is idempotent: replaying an event re-applies the same writes.
"""
import logging
from typing import Any, Optional

import stripe
from sqlalchemy.orm import Session

from dreamcatcher.core.config import settings
from dreamcatcher.core.exceptions import (
    NotFoundError,
    PaymentProviderError,
    ProviderNotConfiguredError,
    ValidationError,
    WebhookSignatureError,
)
from dreamcatcher.core.plan_limits import PLAN_FREE, PLAN_PREMIUM
from dreamcatcher.models.user import User
from dreamcatcher.models.user_subscription import UserSubscription
from dreamcatcher.services.entitlement import (
    PROVIDER_STRIPE,
    STRIPE_ACTIVE_STATUSES,
    STRIPE_INACTIVE_STATUSES,
    compute_entitlement,
)
from dreamcatcher.utils.periods import from_epoch_seconds

logger = logging.getLogger(__name__)

# Initialize Stripe
if settings.STRIPE_SECRET_KEY:
    stripe.api_key = settings.STRIPE_SECRET_KEY
else:
    logger.warning("STRIPE_SECRET_KEY is not set. Stripe functionality will be unavailable.")

SUBSCRIPTION_EVENTS = (
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
)


def _require_stripe() -> None:
    if not settings.STRIPE_SECRET_KEY:
        raise ProviderNotConfiguredError("Stripe is not configured")
    stripe.api_key = settings.STRIPE_SECRET_KEY


def _price_id_for(price: str) -> str:
    price_ids = {
        "monthly": settings.STRIPE_PRICE_ID_MONTHLY,
        "yearly": settings.STRIPE_PRICE_ID_YEARLY,
    }
    if price not in price_ids:
        raise ValidationError(f"Unknown price: {price}")
    price_id = price_ids[price]
    if not price_id:
        raise ProviderNotConfiguredError(f"Stripe price ID for {price} is not configured")
    return price_id


def _object_id(value: Any) -> Optional[str]:
    """Stripe fields may hold either an ID string or the expanded object."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if hasattr(value, "get"):
        return value.get("id")
    return getattr(value, "id", None)


def _as_dict(obj: Any) -> dict:
    """Plain dict view of a Stripe object (tests pass dicts straight through)."""
    if obj is None:
        return {}
    if isinstance(obj, dict) and not hasattr(obj, "to_dict"):
        return obj
    return obj.to_dict()


def _current_period_end(subscription) -> Optional[int]:
    # Newer API versions moved current_period_end onto the subscription items
    if subscription.get("current_period_end"):
        return subscription.get("current_period_end")
    items = (subscription.get("items") or {}).get("data") or []
    ends = [item.get("current_period_end") for item in items if item.get("current_period_end")]
    return max(ends) if ends else None


def _get_subscription_row(user_id: int, db: Session) -> Optional[UserSubscription]:
    return db.query(UserSubscription).filter(UserSubscription.user_id == user_id).first()


# ---------------------------------------------------------------------------
# Customer, checkout, cancel, portal
# ---------------------------------------------------------------------------

def ensure_customer(user: User, db: Session) -> str:
    """Return the user's Stripe customer ID, creating the customer on first use."""
    record = _get_subscription_row(user.id, db)
    if record and record.stripe_customer_id:
        return record.stripe_customer_id

    _require_stripe()
    try:
        customer = stripe.Customer.create(
            email=user.email,
            name=user.first_name,
            metadata={"userId": str(user.id), "user_id": str(user.id)},
        )
    except stripe.StripeError as e:
        logger.error("Stripe error creating customer for user %s: %s", user.id, e)
        raise PaymentProviderError(f"Failed to create Stripe customer: {e.user_message or e}")

    if record:
        record.stripe_customer_id = customer.id
    else:
        record = UserSubscription(
            user_id=user.id,
            provider=PROVIDER_STRIPE,
            stripe_customer_id=customer.id,
            status="incomplete",
        )
        db.add(record)
    db.commit()
    logger.info("Created Stripe customer %s for user %s", customer.id, user.id)
    return customer.id


def create_checkout_session(user: User, price: str, trial_days: int, db: Session) -> dict:
    """
    Create a Stripe Checkout Session for a premium subscription.
    Returns {"sessionId", "sessionUrl"}.
    """
    price_id = _price_id_for(price)
    customer_id = ensure_customer(user, db)

    subscription_data = {
        "metadata": {"user_id": str(user.id), "source": "dream_catcher_app"},
    }
    if trial_days > 0:
        subscription_data["trial_period_days"] = trial_days

    base_url = settings.APP_PUBLIC_URL.rstrip("/")
    try:
        session = stripe.checkout.Session.create(
            customer=customer_id,
            payment_method_types=["card"],
            line_items=[{"price": price_id, "quantity": 1}],
            mode="subscription",
            success_url=f"{base_url}/billing/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{base_url}/billing/cancel",
            client_reference_id=str(user.id),
            metadata={"user_id": str(user.id)},
            subscription_data=subscription_data,
            allow_promotion_codes=True,
            billing_address_collection="auto",
        )
    except stripe.StripeError as e:
        logger.error("Stripe error creating checkout session for user %s: %s", user.id, e)
        raise PaymentProviderError(f"Failed to create checkout session: {e.user_message or e}")

    logger.info("Created Stripe Checkout Session %s for user %s (%s)", session.id, user.id, price)
    return {"sessionId": session.id, "sessionUrl": session.url}


def cancel_subscription(user: User, immediately: bool, db: Session) -> dict:
    """Cancel now, or flag the subscription to end with the current period."""
    record = _get_subscription_row(user.id, db)
    if not record or not record.stripe_subscription_id:
        raise NotFoundError("No subscription found")

    _require_stripe()
    try:
        if immediately:
            subscription = stripe.Subscription.cancel(record.stripe_subscription_id)
        else:
            subscription = stripe.Subscription.modify(
                record.stripe_subscription_id,
                cancel_at_period_end=True,
            )
    except stripe.StripeError as e:
        logger.error("Stripe error canceling subscription %s: %s", record.stripe_subscription_id, e)
        raise PaymentProviderError(f"Failed to cancel subscription: {e.user_message or e}")

    subscription = _as_dict(subscription)
    apply_subscription(subscription, db)
    return {
        "ok": True,
        "status": subscription.get("status"),
        "cancel_at_period_end": bool(subscription.get("cancel_at_period_end")),
    }


def create_portal_session(user: User, db: Session) -> dict:
    record = _get_subscription_row(user.id, db)
    if not record or not record.stripe_customer_id:
        raise NotFoundError("No Stripe customer on file")

    _require_stripe()
    try:
        session = stripe.billing_portal.Session.create(
            customer=record.stripe_customer_id,
            return_url=f"{settings.APP_PUBLIC_URL.rstrip('/')}/billing",
        )
    except stripe.StripeError as e:
        logger.error("Stripe error creating portal session for user %s: %s", user.id, e)
        raise PaymentProviderError(f"Failed to create billing portal session: {e.user_message or e}")
    return {"url": session.url}


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------

def construct_event(payload: bytes, signature: Optional[str]):
    """Verify the Stripe-Signature header before anything is parsed or written."""
    if not settings.STRIPE_WEBHOOK_SECRET:
        logger.error("STRIPE_WEBHOOK_SECRET is not set; refusing webhook")
        raise ProviderNotConfiguredError("Webhook secret not configured")
    if not signature:
        logger.warning("Stripe webhook without stripe-signature header")
        raise WebhookSignatureError("Missing stripe-signature header")

    try:
        return stripe.Webhook.construct_event(payload, signature, settings.STRIPE_WEBHOOK_SECRET)
    except stripe.SignatureVerificationError as e:
        logger.warning("Stripe webhook signature verification failed: %s", e)
        raise WebhookSignatureError()
    except ValueError as e:
        logger.warning("Invalid Stripe webhook payload: %s", e)
        raise ValidationError("Invalid payload")


def handle_event(event, db: Session) -> bool:
    """Apply a verified event. Returns False for event types that are acknowledged but ignored."""
    event = _as_dict(event)
    event_type = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}
    logger.info("Processing Stripe webhook event %s (%s)", event.get("id"), event_type)

    if event_type in SUBSCRIPTION_EVENTS:
        apply_subscription(obj, db)
        return True
    if event_type == "checkout.session.completed":
        _link_checkout_session(obj, db)
        return True
    logger.info("Ignoring Stripe event type %s", event_type)
    return False


def _resolve_user(subscription, db: Session) -> Optional[User]:
    """
    Find the local user for a Stripe subscription, in priority order:
    1. subscription metadata user_id (set at checkout)
    2. the customer ID we stored when creating the customer
    3. the Stripe customer's own metadata
    """
    metadata = subscription.get("metadata") or {}
    raw_user_id = metadata.get("user_id") or metadata.get("userId")
    if raw_user_id is not None:
        try:
            user = db.query(User).filter(User.id == int(raw_user_id)).first()
        except (TypeError, ValueError):
            user = None
        if user:
            return user

    customer_id = _object_id(subscription.get("customer"))
    if not customer_id:
        return None

    record = db.query(UserSubscription).filter(
        UserSubscription.stripe_customer_id == customer_id
    ).first()
    if record:
        return db.query(User).filter(User.id == record.user_id).first()

    if not settings.STRIPE_SECRET_KEY:
        return None
    customer = _as_dict(stripe.Customer.retrieve(customer_id))
    customer_meta = customer.get("metadata") or {}
    raw_user_id = customer_meta.get("userId") or customer_meta.get("user_id")
    if raw_user_id is None:
        return None
    try:
        return db.query(User).filter(User.id == int(raw_user_id)).first()
    except (TypeError, ValueError):
        return None


def apply_subscription(subscription, db: Session) -> Optional[int]:
    """
    Reconcile one Stripe subscription object into users + user_subscriptions.

    active/trialing          -> premium, trial_end = trial_end or current_period_end
    canceled/unpaid/past_due -> free (unless an Apple expiry still covers the user)
    anything else            -> only the status is recorded

    Returns the affected user ID, or None when no user could be matched.
    """
    user = _resolve_user(subscription, db)
    subscription_id = subscription.get("id")
    if not user:
        logger.error("No user found for Stripe subscription %s (customer %s)",
                     subscription_id, _object_id(subscription.get("customer")))
        return None

    status = (subscription.get("status") or "").lower()
    trial_end = from_epoch_seconds(subscription.get("trial_end"))
    current_period_end = from_epoch_seconds(_current_period_end(subscription)) or trial_end

    record = _get_subscription_row(user.id, db)
    if not record:
        record = UserSubscription(user_id=user.id)
        db.add(record)
    record.provider = PROVIDER_STRIPE
    record.stripe_customer_id = _object_id(subscription.get("customer")) or record.stripe_customer_id
    record.stripe_subscription_id = subscription_id or record.stripe_subscription_id
    record.status = status or record.status
    record.current_period_end = current_period_end
    record.cancel_at_period_end = bool(subscription.get("cancel_at_period_end"))

    if status in STRIPE_ACTIVE_STATUSES:
        user.plan = PLAN_PREMIUM
        user.trial_end = trial_end or current_period_end
        logger.info("User %s upgraded to premium via Stripe subscription %s (%s)",
                    user.id, subscription_id, status)
    elif status in STRIPE_INACTIVE_STATUSES:
        user.trial_end = None
        remaining = compute_entitlement(user, record)
        user.plan = remaining.plan
        if user.plan == PLAN_FREE:
            logger.info("User %s downgraded to free - subscription %s status: %s",
                        user.id, subscription_id, status)
        else:
            logger.info("Stripe subscription %s for user %s is %s; still premium via %s",
                        subscription_id, user.id, status, remaining.to_dict())
    else:
        logger.info("Recorded Stripe subscription %s status %s for user %s",
                    subscription_id, status, user.id)

    db.commit()
    return user.id


def _link_checkout_session(session, db: Session) -> None:
    """Remember which customer/subscription a completed checkout belongs to."""
    raw_user_id = session.get("client_reference_id") or (session.get("metadata") or {}).get("user_id")
    customer_id = _object_id(session.get("customer"))
    if raw_user_id is None or not customer_id:
        return
    try:
        user_id = int(raw_user_id)
    except (TypeError, ValueError):
        return
    if not db.query(User.id).filter(User.id == user_id).first():
        return

    record = _get_subscription_row(user_id, db)
    if not record:
        record = UserSubscription(user_id=user_id, provider=PROVIDER_STRIPE, status="incomplete")
        db.add(record)
    record.stripe_customer_id = customer_id
    subscription_id = _object_id(session.get("subscription"))
    if subscription_id:
        record.stripe_subscription_id = subscription_id
    db.commit()
    logger.info("Linked checkout session %s to user %s (customer %s)", session.get("id"), user_id, customer_id)
