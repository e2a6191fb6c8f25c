"""
Usage counter store: per-user, per-metric, per-period integer counts.

check_usage() is read-only. increment_usage() is an unconditional upsert.
consume_usage() is the conditional form used by usage tickets: it only
increments while the count is below the limit, in a single UPDATE, so parallel
requests cannot push a counter past its limit.
"""
import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.sql import func

from dreamcatcher.core.plan_limits import PLAN_FREE, PLAN_LIMITS, is_unlimited
from dreamcatcher.models.usage_counter import UsageCounter
from dreamcatcher.utils.periods import MONTH, get_periods

logger = logging.getLogger(__name__)

# Attempts when a concurrent request inserts the same (user, metric, period) row first
_UPSERT_ATTEMPTS = 3


@dataclass
class UsageCheck:
    allowed: bool
    current: int
    limit: int
    remaining: int

    def to_dict(self) -> dict:
        return asdict(self)


def get_count(user_id: int, metric: str, period: str, db: Session) -> int:
    count = db.query(UsageCounter.count).filter(
        UsageCounter.user_id == user_id,
        UsageCounter.metric == metric,
        UsageCounter.period == period,
    ).scalar()
    return count or 0


def check_usage(user_id: int, metric: str, limit: int, period: str, db: Session) -> UsageCheck:
    """
    Compare the stored count for (user, metric, period) against a limit.
    Does not mutate anything; a missing row counts as zero.
    """
    current = get_count(user_id, metric, period, db)
    if is_unlimited(limit):
        return UsageCheck(allowed=True, current=current, limit=limit, remaining=-1)
    return UsageCheck(
        allowed=current < limit,
        current=current,
        limit=limit,
        remaining=max(0, limit - current),
    )


def increment_usage(user_id: int, metric: str, period: str, db: Session) -> int:
    """Increment the counter, creating it with count=1 on first use. Returns the new count."""
    return _upsert_increment(user_id, metric, period, db, limit=None)


def consume_usage(user_id: int, metric: str, limit: int, period: str, db: Session) -> Optional[int]:
    """
    Atomically increment only while count < limit.
    Returns the new count, or None when the limit was already reached.
    """
    if is_unlimited(limit):
        return increment_usage(user_id, metric, period, db)
    return _upsert_increment(user_id, metric, period, db, limit=limit)


def _upsert_increment(
    user_id: int,
    metric: str,
    period: str,
    db: Session,
    limit: Optional[int],
) -> Optional[int]:
    for attempt in range(_UPSERT_ATTEMPTS):
        stmt = (
            update(UsageCounter)
            .where(
                UsageCounter.user_id == user_id,
                UsageCounter.metric == metric,
                UsageCounter.period == period,
            )
            .values(count=UsageCounter.count + 1, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        if limit is not None:
            stmt = stmt.where(UsageCounter.count < limit)

        result = db.execute(stmt)
        if result.rowcount:
            db.commit()
            count = get_count(user_id, metric, period, db)
            logger.info("Usage %s/%s for user %s is now %s", metric, period, user_id, count)
            return count

        exists = db.query(UsageCounter.id).filter(
            UsageCounter.user_id == user_id,
            UsageCounter.metric == metric,
            UsageCounter.period == period,
        ).first()
        if exists is not None:
            # Row exists, so the guard refused: limit already reached
            db.rollback()
            logger.info("Usage %s/%s for user %s is at its limit of %s", metric, period, user_id, limit)
            return None

        if limit is not None and limit < 1:
            db.rollback()
            return None

        db.add(UsageCounter(user_id=user_id, metric=metric, period=period, count=1))
        try:
            db.commit()
        except IntegrityError:
            # Another request created the row between our UPDATE and INSERT
            db.rollback()
            logger.debug("Lost insert race for %s/%s user %s (attempt %s)", metric, period, user_id, attempt + 1)
            continue
        logger.info("Usage %s/%s for user %s started at 1", metric, period, user_id)
        return 1

    raise RuntimeError(f"Could not record usage for {metric}/{period} (user {user_id})")


def get_usage_snapshot(user_id: int, db: Session, now: Optional[datetime] = None) -> Dict[str, int]:
    """
    Counts for the current periods, keyed by metric.
    Metrics with a free-plan policy are read from their own period (chat_message
    is daily); any other metric is read from the current month.
    """
    periods = get_periods(now)
    month = periods[MONTH]
    usage: Dict[str, int] = {}

    rows = db.query(UsageCounter.metric, UsageCounter.count).filter(
        UsageCounter.user_id == user_id,
        UsageCounter.period == month,
    ).all()
    for metric, count in rows:
        usage[metric] = count

    for metric, policy in PLAN_LIMITS[PLAN_FREE].items():
        usage[metric] = get_count(user_id, metric, periods[policy["period"]], db)

    return usage
