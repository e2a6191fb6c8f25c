from datetime import datetime, timedelta

from dreamcatcher.models.user import User
from dreamcatcher.models.user_subscription import UserSubscription
from dreamcatcher.services.entitlement import resolve_plan
from dreamcatcher.utils.periods import get_periods, period_key, utcnow


def test_status_for_new_user(client, user):
    _, headers = user
    response = client.get("/billing/status", headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["plan"] == "free"
    assert body["trial_end"] is None
    assert body["period"] == period_key("month")
    assert isinstance(body["period"], str)
    assert body["periods"] == get_periods()
    assert body["usage"] == {"dream_create": 0, "ai_analyze": 0, "chat_message": 0}
    assert body["limits"]["dream_create"] == {"limit": 10, "period": "month"}


def test_status_reports_usage(client, user):
    _, headers = user
    client.post("/dreams", json={"content": "first"}, headers=headers)
    client.post("/dreams", json={"content": "second"}, headers=headers)
    client.post("/chat", json={"message": "hi"}, headers=headers)

    usage = client.get("/billing/status", headers=headers).json()["usage"]
    assert usage["dream_create"] == 2
    assert usage["chat_message"] == 1


def test_upgrade_with_trial_then_expiry(client, db_session, user):
    user_id, headers = user
    response = client.post("/billing/upgrade", json={"plan": "premium", "trial_days": 7}, headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["plan"] == "premium"
    trial_end = datetime.fromisoformat(body["trial_end"])
    assert timedelta(days=6, hours=23) < trial_end - utcnow() <= timedelta(days=7)

    status = client.get("/billing/status", headers=headers).json()
    assert status["plan"] == "premium"
    assert status["limits"]["dream_create"]["limit"] == -1

    eight_days_later = utcnow() + timedelta(days=8)
    state = resolve_plan(user_id, db_session, now=eight_days_later)
    assert state.plan == "free"
    assert state.trial_end is None

    user_row = db_session.query(User).filter(User.id == user_id).first()
    assert user_row.plan == "free"
    assert user_row.trial_end is None


def test_status_downgrades_lapsed_trial(client, db_session, user):
    user_id, headers = user
    user_row = db_session.query(User).filter(User.id == user_id).first()
    user_row.plan = "premium"
    user_row.trial_end = utcnow() - timedelta(days=1)
    db_session.commit()

    body = client.get("/billing/status", headers=headers).json()
    assert body["plan"] == "free"
    assert body["trial_end"] is None


def test_upgrade_without_trial_days_is_permanent(client, db_session, user):
    user_id, headers = user
    body = client.post("/billing/upgrade", json={"plan": "premium"}, headers=headers).json()
    assert body["trial_end"] is None

    state = resolve_plan(user_id, db_session, now=utcnow() + timedelta(days=365))
    assert state.plan == "premium"


def test_manual_grant_survives_a_lapsed_stripe_subscription(client, db_session, user):
    user_id, headers = user
    db_session.add(UserSubscription(
        user_id=user_id, provider="stripe", stripe_customer_id="cus_1",
        stripe_subscription_id="sub_1", status="canceled",
    ))
    db_session.commit()

    body = client.post("/billing/upgrade", json={"plan": "premium"}, headers=headers).json()
    assert body == {"ok": True, "plan": "premium", "trial_end": None}

    assert client.get("/billing/status", headers=headers).json()["plan"] == "premium"
    state = resolve_plan(user_id, db_session, now=utcnow() + timedelta(days=365))
    assert state.plan == "premium"


def test_manual_grant_survives_an_old_apple_expiry(client, db_session, user):
    user_id, headers = user
    db_session.add(UserSubscription(
        user_id=user_id, provider="apple", status="expired",
        apple_expires_at=utcnow() - timedelta(days=40),
    ))
    db_session.commit()

    client.post("/billing/upgrade", json={"plan": "premium"}, headers=headers)

    assert client.get("/billing/status", headers=headers).json()["plan"] == "premium"


def test_trial_upgrade_replaces_a_manual_grant(client, db_session, user):
    user_id, headers = user
    client.post("/billing/upgrade", json={"plan": "premium"}, headers=headers)
    client.post("/billing/upgrade", json={"plan": "premium", "trial_days": 2}, headers=headers)

    db_session.expire_all()
    assert db_session.query(User).filter(User.id == user_id).first().manual_premium is False
    state = resolve_plan(user_id, db_session, now=utcnow() + timedelta(days=3))
    assert state.plan == "free"


def test_downgrade_to_free(client, user):
    _, headers = user
    client.post("/billing/upgrade", json={"plan": "premium", "trial_days": 3}, headers=headers)
    body = client.post("/billing/upgrade", json={"plan": "free"}, headers=headers).json()
    assert body == {"ok": True, "plan": "free", "trial_end": None}


def test_upgrade_rejects_invalid_payload(client, user):
    _, headers = user
    response = client.post("/billing/upgrade", json={"plan": "premium", "trial_days": 15}, headers=headers)
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Invalid payload"
    assert body["code"] == "VALIDATION_ERROR"

    response = client.post("/billing/upgrade", json={"plan": "gold"}, headers=headers)
    assert response.status_code == 400


def test_usage_increment(client, user):
    _, headers = user
    first = client.post("/billing/usage/increment", json={"metric": "dream_edit"}, headers=headers)
    second = client.post("/billing/usage/increment", json={"metric": "dream_edit"}, headers=headers)
    assert first.json() == {"metric": "dream_edit", "count": 1}
    assert second.json() == {"metric": "dream_edit", "count": 2}


def test_usage_increment_uses_the_metric_period(client, user):
    _, headers = user
    client.post("/billing/usage/increment", json={"metric": "chat_message"}, headers=headers)
    usage = client.get("/billing/status", headers=headers).json()["usage"]
    assert usage["chat_message"] == 1


def test_usage_increment_rejects_unknown_metric(client, user):
    _, headers = user
    response = client.post("/billing/usage/increment", json={"metric": "mood_log"}, headers=headers)
    assert response.status_code == 400


def test_pricing_is_public(client):
    response = client.get("/billing/pricing")
    assert response.status_code == 200
    assert set(response.json()) == {"monthly", "yearly"}


def test_billing_requires_auth(client):
    response = client.get("/billing/status")
    assert response.status_code == 401

    response = client.get("/billing/status", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401
