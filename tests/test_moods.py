from datetime import timedelta

from dreamcatcher.models.mood import MoodEntry
from dreamcatcher.services.journal_stats import mood_statistics
from dreamcatcher.utils.periods import utcnow


def test_log_mood(client, user):
    _, headers = user
    response = client.post("/moods", json={"mood": "Peaceful"}, headers=headers)
    assert response.status_code == 201
    body = response.json()
    assert body["mood"] == "Peaceful"
    assert body["dream_id"] is None


def test_log_mood_for_a_dream(client, user):
    _, headers = user
    dream = client.post("/dreams", json={"title": "Ocean", "content": "Swimming"}, headers=headers).json()

    response = client.post("/moods", json={"mood": "Happy", "dream_id": dream["id"]}, headers=headers)
    assert response.status_code == 201
    assert response.json()["dream_title"] == "Ocean"


def test_log_mood_for_someone_elses_dream(client, user, make_user):
    _, headers = user
    _, other_headers = make_user("other@example.com")
    dream = client.post("/dreams", json={"content": "Private"}, headers=other_headers).json()

    response = client.post("/moods", json={"mood": "Happy", "dream_id": dream["id"]}, headers=headers)
    assert response.status_code == 404


def test_unknown_mood_is_rejected(client, user):
    _, headers = user
    response = client.post("/moods", json={"mood": "Hangry"}, headers=headers)
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_mood_history_newest_first(client, user):
    _, headers = user
    dream = client.post("/dreams", json={"title": "Cliff", "content": "Falling"}, headers=headers).json()
    client.post("/moods", json={"mood": "Sad"}, headers=headers)
    client.post("/moods", json={"mood": "Scared", "dream_id": dream["id"]}, headers=headers)

    items = client.get("/moods", headers=headers).json()["items"]
    assert [item["mood"] for item in items] == ["Scared", "Sad"]
    assert items[0]["dream_title"] == "Cliff"

    limited = client.get("/moods", params={"limit": 1}, headers=headers).json()["items"]
    assert len(limited) == 1


def test_mood_history_is_per_user(client, user, make_user):
    _, headers = user
    _, other_headers = make_user("other@example.com")
    client.post("/moods", json={"mood": "Angry"}, headers=other_headers)

    assert client.get("/moods", headers=headers).json()["items"] == []


def test_deleting_a_dream_unlinks_its_moods(client, db_session, user):
    _, headers = user
    dream = client.post("/dreams", json={"content": "Gone soon"}, headers=headers).json()
    mood = client.post("/moods", json={"mood": "Neutral", "dream_id": dream["id"]}, headers=headers).json()

    client.delete(f"/dreams/{dream['id']}", headers=headers)

    db_session.expire_all()
    assert db_session.query(MoodEntry).filter(MoodEntry.id == mood["id"]).one().dream_id is None


def test_mood_stats(client, user):
    _, headers = user
    for mood in ("Happy", "Happy", "Anxious"):
        client.post("/moods", json={"mood": mood}, headers=headers)

    body = client.get("/moods/stats", headers=headers).json()
    assert body["moodDistribution"] == [{"mood": "Happy", "count": 2}, {"mood": "Anxious", "count": 1}]
    today = utcnow().strftime("%Y-%m-%d")
    assert {"date": today, "mood": "Happy", "count": 2} in body["moodTrends"]


def test_mood_trends_cover_the_last_thirty_days(db_session, make_user):
    user_id, _ = make_user("trends@example.com")
    now = utcnow()
    db_session.add_all([
        MoodEntry(user_id=user_id, mood="Sad", created_at=now - timedelta(days=45)),
        MoodEntry(user_id=user_id, mood="Curious", created_at=now - timedelta(days=2)),
    ])
    db_session.commit()

    stats = mood_statistics(user_id, db_session, now=now)

    assert {row["mood"] for row in stats["moodDistribution"]} == {"Sad", "Curious"}
    assert [row["mood"] for row in stats["moodTrends"]] == ["Curious"]
