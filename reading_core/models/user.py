from sqlalchemy import Column, String, Integer, DateTime, Date
from sqlalchemy.sql import func
from reading_core.models.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, index=True)  # Auth provider user id
    name = Column(String, nullable=True)

    # Subscription: "free", "trial", "premium"
    tier = Column(String, default="free", nullable=False)
    tier_expires_at = Column(DateTime(timezone=True), nullable=True)

    language = Column(String, default="en")
    timezone = Column(String, default="UTC")

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class UsageCounter(Base):
    """Raw consumption counters. Limits and resets are derived on read."""

    __tablename__ = "usage_counters"

    user_id = Column(String, primary_key=True)

    ai_generated_lifetime = Column(Integer, default=0, nullable=False)
    ai_generated_today = Column(Integer, default=0, nullable=False)
    ai_last_reset_date = Column(Date, nullable=True)

    audio_this_month = Column(Integer, default=0, nullable=False)
    audio_last_reset_date = Column(Date, nullable=True)

    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
