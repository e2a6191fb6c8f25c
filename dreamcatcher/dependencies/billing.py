"""
Quota enforcement for metered routes.

    @router.post("/dreams")
    def create_dream(..., ticket: UsageTicket = Depends(require_quota("dream_create"))):
        ...do the work...
        ticket.commit()

The dependency resolves the caller's plan (downgrading lapsed trials), rejects
the request with 403 when the metric is used up, and otherwise hands the route
a single-use ticket. Usage is only consumed when the route commits the ticket,
so a request that fails midway is not counted.
"""
import logging
from typing import Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from dreamcatcher.core.exceptions import UsageLimitExceededError
from dreamcatcher.core.plan_limits import UNLIMITED, UPGRADE_HINT, get_metric_policy, is_unlimited
from dreamcatcher.db.session import get_db
from dreamcatcher.dependencies.auth import get_current_user_id
from dreamcatcher.services.entitlement import PlanState, resolve_plan
from dreamcatcher.services.usage_counter import check_usage, consume_usage
from dreamcatcher.utils.periods import period_key

logger = logging.getLogger(__name__)


class UsageTicket:
    """Permission to perform one metered operation. Settle it exactly once."""

    def __init__(
        self,
        user_id: int,
        metric: str,
        plan_state: PlanState,
        db: Session,
        limit: int = UNLIMITED,
        granularity: Optional[str] = None,
        period: Optional[str] = None,
        used: int = 0,
    ):
        self.user_id = user_id
        self.metric = metric
        self.plan_state = plan_state
        self.limit = limit
        self.granularity = granularity
        self.period = period
        self.used = used
        self._db = db
        self._settled = False

    @property
    def unlimited(self) -> bool:
        return is_unlimited(self.limit)

    @property
    def settled(self) -> bool:
        return self._settled

    @property
    def remaining(self) -> int:
        if self.unlimited:
            return UNLIMITED
        return max(0, self.limit - self.used)

    def _settle(self) -> None:
        if self._settled:
            raise RuntimeError(f"Usage ticket for {self.metric} already settled")
        self._settled = True

    def commit(self) -> Optional[int]:
        """
        Record one unit of usage. Returns the new count, or None when nothing
        was recorded: the metric is unlimited, or concurrent requests used up
        the quota after this ticket was issued. The counter never passes the limit.
        """
        self._settle()
        if self.unlimited:
            return None

        count = consume_usage(self.user_id, self.metric, self.limit, self.period, self._db)
        if count is None:
            logger.warning(
                "User %s completed %s after its %s quota filled up concurrently; not metered",
                self.user_id, self.metric, self.period,
            )
            self.used = self.limit
            return None
        self.used = count
        return count

    def discard(self) -> None:
        """Settle the ticket without consuming anything."""
        self._settle()

    def usage(self) -> dict:
        return {
            "metric": self.metric,
            "used": self.used,
            "limit": self.limit,
            "remaining": self.remaining,
            "period": self.granularity,
        }


def open_ticket(user_id: int, metric: str, db: Session) -> UsageTicket:
    """Resolve the plan and check the current count. Raises UsageLimitExceededError when denied."""
    plan_state = resolve_plan(user_id, db)
    policy = get_metric_policy(plan_state.plan, metric)

    if policy is None or is_unlimited(policy["limit"]):
        return UsageTicket(user_id, metric, plan_state, db)

    granularity = policy["period"]
    period = period_key(granularity)
    check = check_usage(user_id, metric, policy["limit"], period, db)
    if not check.allowed:
        logger.info(
            "User %s hit %s limit (%s/%s for %s)",
            user_id, metric, check.current, check.limit, period,
        )
        raise UsageLimitExceededError(metric, check.limit, check.current, granularity, UPGRADE_HINT)

    return UsageTicket(
        user_id,
        metric,
        plan_state,
        db,
        limit=check.limit,
        granularity=granularity,
        period=period,
        used=check.current,
    )


def require_quota(metric: str):
    """Build a dependency that gates a route on `metric`."""

    def dependency(
        user_id: int = Depends(get_current_user_id),
        db: Session = Depends(get_db),
    ):
        ticket = open_ticket(user_id, metric, db)
        yield ticket
        if not ticket.settled:
            logger.warning("Usage ticket for %s was never settled (user %s)", metric, user_id)

    return dependency
