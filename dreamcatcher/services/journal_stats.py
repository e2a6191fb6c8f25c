"""
Aggregates over a user's journal for the statistics and mood screens.

Grouping is done in Python over the user's rows rather than with
dialect-specific date and JSON functions, so the same code runs on SQLite and
Postgres. Journals are small enough per user for that.
"""
from collections import Counter
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from dreamcatcher.models.dream import Dream
from dreamcatcher.models.mood import MoodEntry
from dreamcatcher.utils.periods import ensure_utc, utcnow

MOOD_TREND_DAYS = 30


def split_tags(tags: Optional[str]) -> List[str]:
    return [tag.strip() for tag in (tags or "").split(",") if tag.strip()]


def recent_month_keys(months: int, now: Optional[datetime] = None) -> List[str]:
    """The last `months` YYYY-MM keys, oldest first, ending with the month of `now`."""
    current = ensure_utc(now) if now is not None else utcnow()
    year, month = current.year, current.month
    keys = []
    for _ in range(months):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


def ranked(counter: Counter, key: str, limit: Optional[int] = None) -> List[Dict]:
    return [{key: value, "count": count} for value, count in counter.most_common(limit)]


def tag_counts(user_id: int, db: Session) -> Counter:
    counts = Counter()
    for (tags,) in db.query(Dream.tags).filter(Dream.user_id == user_id, Dream.tags.isnot(None)):
        counts.update(split_tags(tags))
    return counts


def monthly_dream_counts(user_id: int, months: int, db: Session, now: Optional[datetime] = None) -> List[Dict]:
    """Dreams per month for the last `months` months, oldest first; months with no dreams are 0."""
    keys = recent_month_keys(months, now)
    counts = Counter()
    for (created_at,) in db.query(Dream.created_at).filter(Dream.user_id == user_id):
        created_at = ensure_utc(created_at)
        if created_at is not None:
            counts[created_at.strftime("%Y-%m")] += 1
    return [{"month": key, "count": counts.get(key, 0)} for key in keys]


def dream_statistics(user_id: int, db: Session, now: Optional[datetime] = None) -> Dict:
    total = db.query(func.count(Dream.id)).filter(Dream.user_id == user_id).scalar() or 0

    moods = Counter(
        mood for (mood,) in db.query(Dream.mood).filter(Dream.user_id == user_id, Dream.mood.isnot(None))
    )
    tags = tag_counts(user_id, db)
    recurring = Counter({tag: count for tag, count in tags.items() if count > 1})

    monthly = [row for row in monthly_dream_counts(user_id, 6, db, now) if row["count"]]
    return {
        "totalDreams": total,
        "monthlyDreams": list(reversed(monthly)),
        "commonTags": ranked(tags, "tag", 10),
        "moodDistribution": ranked(moods, "mood"),
        "recurringThemes": [
            {"theme": tag, "frequency": count} for tag, count in recurring.most_common(5)
        ],
    }


def mood_statistics(user_id: int, db: Session, now: Optional[datetime] = None) -> Dict:
    """Mood distribution overall, and per day over the last MOOD_TREND_DAYS days (newest first)."""
    now = ensure_utc(now) if now is not None else utcnow()
    cutoff = now - timedelta(days=MOOD_TREND_DAYS)

    distribution = Counter()
    trends = Counter()
    for mood, created_at in db.query(MoodEntry.mood, MoodEntry.created_at).filter(MoodEntry.user_id == user_id):
        distribution[mood] += 1
        created_at = ensure_utc(created_at)
        if created_at is not None and created_at >= cutoff:
            trends[(created_at.strftime("%Y-%m-%d"), mood)] += 1

    ordered = sorted(trends.items(), key=lambda item: (item[0][0], item[1]), reverse=True)
    return {
        "moodDistribution": ranked(distribution, "mood"),
        "moodTrends": [{"date": date, "mood": mood, "count": count} for (date, mood), count in ordered],
    }
