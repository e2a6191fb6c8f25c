"""
Per-user usage counters keyed by metric and billing period.
Rows are created on the first increment of a period and never deleted; a new
period key simply starts at zero.
"""
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from dreamcatcher.db.base import Base


class UsageCounter(Base):
    __tablename__ = "usage_counters"
    __table_args__ = (
        UniqueConstraint("user_id", "metric", "period", name="uq_usage_counters_user_metric_period"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    metric = Column(String(64), nullable=False)
    period = Column(String(10), nullable=False)  # YYYY-MM or YYYY-MM-DD (UTC)
    count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
