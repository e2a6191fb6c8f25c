from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime
from sqlalchemy.sql import func
from dreamcatcher.db.base import Base


class Analysis(Base):
    """AI output kept for the journal: one-off dream analyses and chat replies."""

    __tablename__ = "analyses"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    dream_id = Column(Integer, ForeignKey("dreams.id", ondelete="SET NULL"), nullable=True)
    type = Column(String, nullable=False, default="immediate")  # "immediate" or "chat"
    prompt = Column(Text, nullable=False)
    response = Column(Text, nullable=False)
    model = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
