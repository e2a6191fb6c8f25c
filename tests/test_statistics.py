from datetime import datetime, timedelta, timezone

from dreamcatcher.models.dream import Dream
from dreamcatcher.services.journal_stats import dream_statistics, monthly_dream_counts, recent_month_keys


def test_recent_month_keys_cross_the_year():
    now = datetime(2026, 2, 10, tzinfo=timezone.utc)
    assert recent_month_keys(4, now) == ["2025-11", "2025-12", "2026-01", "2026-02"]


def test_statistics_for_empty_journal(client, user):
    _, headers = user
    body = client.get("/statistics", headers=headers).json()
    assert body == {
        "totalDreams": 0,
        "monthlyDreams": [],
        "commonTags": [],
        "moodDistribution": [],
        "recurringThemes": [],
    }


def test_statistics(client, user):
    _, headers = user
    client.post("/dreams", json={"content": "Flying", "mood": "happy", "tags": ["flying", "sky"]}, headers=headers)
    client.post("/dreams", json={"content": "Flying again", "mood": "happy", "tags": ["flying"]}, headers=headers)
    client.post("/dreams", json={"content": "Teeth falling out", "mood": "anxious", "tags": ["teeth"]}, headers=headers)

    body = client.get("/statistics", headers=headers).json()
    assert body["totalDreams"] == 3
    assert body["commonTags"][0] == {"tag": "flying", "count": 2}
    assert body["moodDistribution"] == [{"mood": "happy", "count": 2}, {"mood": "anxious", "count": 1}]
    assert body["recurringThemes"] == [{"theme": "flying", "frequency": 2}]
    assert body["monthlyDreams"][0]["count"] == 3


def test_monthly_counts_include_empty_months(db_session, make_user):
    user_id, _ = make_user("monthly@example.com")
    now = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
    db_session.add_all([
        Dream(user_id=user_id, content="a", created_at=now),
        Dream(user_id=user_id, content="b", created_at=now - timedelta(days=62)),
        Dream(user_id=user_id, content="old", created_at=now - timedelta(days=400)),
    ])
    db_session.commit()

    rows = monthly_dream_counts(user_id, 3, db_session, now=now)

    assert rows == [
        {"month": "2026-08", "count": 1},
        {"month": "2026-09", "count": 0},
        {"month": "2026-10", "count": 1},
    ]
    stats = dream_statistics(user_id, db_session, now=now)
    assert stats["totalDreams"] == 3
    assert stats["monthlyDreams"] == [{"month": "2026-10", "count": 1}, {"month": "2026-08", "count": 1}]


def test_monthly_endpoint(client, user):
    _, headers = user
    client.post("/dreams", json={"content": "Tonight"}, headers=headers)

    rows = client.get("/statistics/monthly", params={"months": 2}, headers=headers).json()
    assert len(rows) == 2
    assert rows[-1]["count"] == 1


def test_tag_cloud(client, user):
    _, headers = user
    client.post("/dreams", json={"content": "x", "tags": ["water", "house"]}, headers=headers)
    client.post("/dreams", json={"content": "y", "tags": ["water"]}, headers=headers)

    body = client.get("/statistics/tags", headers=headers).json()
    assert body["userTags"] == [{"tag": "water", "count": 2}, {"tag": "house", "count": 1}]


def test_statistics_require_auth(client):
    assert client.get("/statistics").status_code == 401
