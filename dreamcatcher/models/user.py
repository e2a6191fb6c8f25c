from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func, false
from dreamcatcher.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    first_name = Column(String, nullable=True)
    plan = Column(String, default="free", nullable=False)  # "free" or "premium"
    # Set by trials, manual upgrades and Stripe; cleared by the plan resolver once lapsed
    trial_end = Column(DateTime(timezone=True), nullable=True)
    # Open-ended premium from /billing/upgrade; only another upgrade call clears it
    manual_premium = Column(Boolean, default=False, server_default=false(), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
