"""SQLAlchemy models for the TableQuest practice application."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, Float, JSON, ForeignKey, CheckConstraint, Index
from sqlalchemy.orm import relationship
from tablequest.db.database import Base


class Profile(Base):
    """A learner profile on this device."""
    __tablename__ = "profiles"

    id = Column(Text, primary_key=True)  # e.g. "profile_3f9a..."
    display_name = Column(Text, nullable=False)
    avatar_id = Column(Text, nullable=False, default="dragon")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_seen_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    total_stars = Column(Integer, nullable=False, default=0)

    # Learner preferences, upgraded on load (see services.profiles.upgrade_settings)
    settings = Column(JSON, nullable=True)
    settings_version = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("total_stars >= 0", name="ck_profile_stars"),
    )

    # Relationships
    topic_stats = relationship("TopicStat", back_populates="profile", cascade="all, delete-orphan")
    badges = relationship("ProfileBadge", back_populates="profile", cascade="all, delete-orphan")
    sessions = relationship("PracticeSessionRecord", back_populates="profile", cascade="all, delete-orphan")


class TopicStat(Base):
    """Cumulative per-profile per-table statistics."""
    __tablename__ = "topic_stats"

    profile_id = Column(Text, ForeignKey("profiles.id"), primary_key=True)
    topic = Column(Integer, primary_key=True)  # multiplication table, 1-10
    correct_count = Column(Integer, nullable=False, default=0)
    attempt_count = Column(Integer, nullable=False, default=0)
    mastery_tier = Column(Integer, nullable=False, default=1)
    last_session_at = Column(DateTime, nullable=True)
    mean_response_seconds = Column(Float, nullable=False, default=0.0)

    __table_args__ = (
        CheckConstraint("mastery_tier >= 1 AND mastery_tier <= 5", name="ck_topic_tier"),
        CheckConstraint("correct_count <= attempt_count", name="ck_topic_counts"),
    )

    profile = relationship("Profile", back_populates="topic_stats")


class ProfileBadge(Base):
    """A badge owned by a profile. The composite key keeps ownership a set."""
    __tablename__ = "profile_badges"

    profile_id = Column(Text, ForeignKey("profiles.id"), primary_key=True)
    badge_id = Column(String(64), primary_key=True)
    earned_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    profile = relationship("Profile", back_populates="badges")


class PracticeSessionRecord(Base):
    """A finished practice session."""
    __tablename__ = "practice_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    profile_id = Column(Text, ForeignKey("profiles.id"), nullable=False)
    mode = Column(Text, nullable=False)  # 'table', 'numbers', 'difficulty'
    topic = Column(Integer, nullable=True)
    chosen_numbers = Column(Text, nullable=True)  # comma separated, e.g. "3,7,8"
    tier = Column(Text, nullable=False)
    final_tier = Column(Text, nullable=False)
    question_count = Column(Integer, nullable=False)
    answered_count = Column(Integer, nullable=False, default=0)
    correct_count = Column(Integer, nullable=False, default=0)
    stars_earned = Column(Integer, nullable=False, default=0)
    success_percentage = Column(Integer, nullable=False, default=0)
    duration_seconds = Column(Integer, nullable=False, default=0)
    mean_response_seconds = Column(Float, nullable=False, default=0.0)
    started_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index('idx_profile_completed', 'profile_id', 'completed_at'),
    )

    profile = relationship("Profile", back_populates="sessions")


class AppState(Base):
    """Single-row table holding device-wide state such as the active profile."""
    __tablename__ = "app_state"

    id = Column(Integer, primary_key=True)
    active_profile_id = Column(Text, nullable=True)  # weak reference, no FK


class SchemaMigration(Base):
    """Applied schema migrations, one row per version."""
    __tablename__ = "schema_migrations"

    version = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False)
    applied_at = Column(DateTime, default=datetime.utcnow, nullable=False)
