import uuid
from sqlalchemy import Column, String, Integer, DateTime, Boolean, UniqueConstraint, Index
from sqlalchemy.sql import func
from reading_core.models.base import Base


class ReadingSession(Base):
    __tablename__ = "reading_sessions"
    __table_args__ = (Index("ix_reading_sessions_user_story", "user_id", "story_id"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)
    story_id = Column(String, nullable=False)
    is_personalized = Column(Boolean, default=False, nullable=False)

    started_at = Column(DateTime(timezone=True), nullable=False)
    ended_at = Column(DateTime(timezone=True), nullable=True)  # NULL while open
    last_seen_at = Column(DateTime(timezone=True), nullable=True)  # autosave heartbeat

    duration = Column(Integer, default=0, nullable=False)  # seconds, wall clock
    completed = Column(Boolean, default=False, nullable=False)
    close_reason = Column(String, nullable=True)  # unmount, background, navigation, superseded, abandoned

    created_at = Column(DateTime(timezone=True), server_default=func.now())


class UserAchievement(Base):
    __tablename__ = "user_achievements"
    __table_args__ = (UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)
    achievement_id = Column(String, nullable=False)
    unlocked_at = Column(DateTime(timezone=True), nullable=False)
