"""
App Store receipt verification.

The client posts the base64 receipt it got from StoreKit; we verify it with
Apple (production first, sandbox when Apple answers 21007) and grant premium
until the latest expiry found in the receipt.
"""
import logging
from datetime import datetime
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from dreamcatcher.core.config import settings
from dreamcatcher.core.exceptions import NotFoundError, PaymentProviderError, ProviderNotConfiguredError
from dreamcatcher.core.plan_limits import PLAN_PREMIUM
from dreamcatcher.models.user import User
from dreamcatcher.models.user_subscription import UserSubscription
from dreamcatcher.services.entitlement import PROVIDER_APPLE, compute_entitlement
from dreamcatcher.utils.periods import from_epoch_millis, utcnow

logger = logging.getLogger(__name__)

APPLE_TIMEOUT_SECONDS = 15.0
STATUS_OK = 0
STATUS_SANDBOX_RECEIPT = 21007  # sandbox receipt sent to production


def _http_client() -> httpx.Client:
    return httpx.Client(timeout=APPLE_TIMEOUT_SECONDS)


def _post_receipt(client: httpx.Client, url: str, payload: dict) -> dict:
    try:
        response = client.post(url, json=payload)
        response.raise_for_status()
        return response.json()
    except (httpx.RequestError, httpx.HTTPStatusError) as e:
        logger.error("Apple verifyReceipt request to %s failed: %s", url, e)
        raise PaymentProviderError("Could not reach Apple to verify the receipt")
    except ValueError as e:
        logger.error("Apple verifyReceipt returned invalid JSON: %s", e)
        raise PaymentProviderError("Invalid response from Apple")


def verify_receipt(receipt_data: str) -> dict:
    """Return Apple's verifyReceipt body. Raises PaymentProviderError unless status is 0."""
    if not settings.APPLE_SHARED_SECRET:
        raise ProviderNotConfiguredError("Apple in-app purchases are not configured")

    payload = {
        "receipt-data": receipt_data,
        "password": settings.APPLE_SHARED_SECRET,
        "exclude-old-transactions": True,
    }
    with _http_client() as client:
        body = _post_receipt(client, settings.APPLE_VERIFY_URL_PRODUCTION, payload)
        if body.get("status") == STATUS_SANDBOX_RECEIPT:
            logger.info("Sandbox receipt sent to production, retrying against sandbox")
            body = _post_receipt(client, settings.APPLE_VERIFY_URL_SANDBOX, payload)

    status = body.get("status")
    if status != STATUS_OK:
        logger.warning("Apple rejected receipt with status %s", status)
        raise PaymentProviderError(f"Apple receipt verification failed (status {status})")
    return body


def latest_expiry(body: dict) -> Optional[datetime]:
    """Latest expires_date_ms across latest_receipt_info and receipt.in_app."""
    transactions = list(body.get("latest_receipt_info") or [])
    transactions.extend((body.get("receipt") or {}).get("in_app") or [])

    latest = None
    for transaction in transactions:
        expires_at = from_epoch_millis(transaction.get("expires_date_ms"))
        if expires_at and (latest is None or expires_at > latest):
            latest = expires_at
    return latest


def _original_transaction_id(body: dict) -> Optional[str]:
    for transaction in body.get("latest_receipt_info") or []:
        if transaction.get("original_transaction_id"):
            return transaction["original_transaction_id"]
    for transaction in (body.get("receipt") or {}).get("in_app") or []:
        if transaction.get("original_transaction_id"):
            return transaction["original_transaction_id"]
    return None


def apply_apple_receipt(user_id: int, receipt_data: str, db: Session) -> dict:
    """
    Verify a receipt and record its expiry for the user. trial_end is never touched.

    A receipt with no expiry grants nothing and returns ok=False. A future expiry
    makes the user premium; a past one leaves whatever other source still applies.
    """
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")

    body = verify_receipt(receipt_data)
    expires_at = latest_expiry(body)

    if expires_at is None:
        logger.info("Apple receipt for user %s has no subscription expiry", user_id)
        return {"ok": False, "plan": user.plan, "expires_at": None}

    record = db.query(UserSubscription).filter(UserSubscription.user_id == user_id).first()
    if not record:
        record = UserSubscription(user_id=user_id)
        db.add(record)
    active = expires_at > utcnow()
    record.apple_expires_at = expires_at
    record.apple_original_transaction_id = _original_transaction_id(body) or record.apple_original_transaction_id
    if not record.stripe_subscription_id:
        # provider and status track the Stripe subscription when there is one
        record.provider = PROVIDER_APPLE
        record.status = "active" if active else "expired"

    if active:
        user.plan = PLAN_PREMIUM
        logger.info("User %s upgraded to premium via Apple until %s", user_id, expires_at.isoformat())
    else:
        user.plan = compute_entitlement(user, record).plan
        logger.info("Apple receipt for user %s expired at %s; plan is %s",
                    user_id, expires_at.isoformat(), user.plan)
    db.commit()
    return {"ok": True, "plan": user.plan, "expires_at": expires_at.isoformat()}
