import uuid
from sqlalchemy import Column, String, Integer, DateTime, Boolean, Float, JSON, Date, UniqueConstraint
from sqlalchemy.sql import func
from reading_core.models.base import Base


class Story(Base):
    __tablename__ = "stories"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String, nullable=False)
    # Eligible for the daily-free rotation
    is_daily_free = Column(Boolean, default=False, nullable=False)
    daily_order = Column(Integer, nullable=True)
    content_length = Column(Integer, default=0)
    categories = Column(JSON, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class PersonalizedStory(Base):
    __tablename__ = "personalized_stories"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=True)
    content_length = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class DailyStorySchedule(Base):
    __tablename__ = "daily_story_schedule"

    id = Column(Integer, primary_key=True, autoincrement=True)
    current_story_id = Column(String, nullable=True)
    last_rotation_date = Column(Date, nullable=True)
    rotation_interval_days = Column(Integer, default=1, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class UserStory(Base):
    """Per-user reading state of one story (catalog or personalized)."""

    __tablename__ = "user_stories"
    __table_args__ = (UniqueConstraint("user_id", "story_id", name="uq_user_story"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)
    story_id = Column(String, nullable=False)
    progress = Column(Float, default=0.0, nullable=False)
    is_favorite = Column(Boolean, default=False, nullable=False)
    completed = Column(Boolean, default=False, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
