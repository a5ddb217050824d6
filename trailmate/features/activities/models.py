"""
Activity-related database models.

Models:
- ProviderConnection: a user's link to one fitness data provider
- ActivityRecord: one normalized workout from any provider
- ActivityMetrics: per-user aggregate consumed by matching
"""

from sqlalchemy import (
    Column, String, DateTime, Integer, Float, Boolean, Text, JSON, UniqueConstraint,
)

from trailmate.models.base import Base
from trailmate.shared.clock import utcnow


class ProviderConnection(Base):
    """
    OAuth connection to a provider.

    Disconnecting sets is_active = False; records are kept but ignored by
    metrics aggregation.
    """

    __tablename__ = "provider_connections"
    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_provider_connections_user_provider"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=False, index=True)
    provider = Column(String(30), nullable=False)

    # OAuth tokens (should be encrypted in production)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=True)
    expires_at = Column(Integer, nullable=True)  # Unix timestamp

    is_active = Column(Boolean, nullable=False, default=True)
    last_sync_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<ProviderConnection user_id={self.user_id} provider={self.provider}>"


class ActivityRecord(Base):
    """
    One workout in canonical shape.

    Unique per (user_id, provider, provider_activity_id); re-syncing the same
    provider activity overwrites the row.
    """

    __tablename__ = "activity_records"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "provider", "provider_activity_id",
            name="uq_activity_records_user_provider_activity"
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=False, index=True)
    provider = Column(String(30), nullable=False)
    provider_activity_id = Column(String(64), nullable=False)

    activity_type = Column(String(50), nullable=False)  # running, cycling, ...
    name = Column(String(255), nullable=True)
    start_time = Column(DateTime, nullable=False, index=True)
    duration_seconds = Column(Integer, nullable=False)

    distance_meters = Column(Float, nullable=True)
    calories = Column(Float, nullable=True)
    steps = Column(Integer, nullable=True)
    heart_rate_avg = Column(Float, nullable=True)
    heart_rate_max = Column(Float, nullable=True)

    raw_data = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return (
            f"<ActivityRecord {self.provider}:{self.provider_activity_id} "
            f"user_id={self.user_id} type={self.activity_type}>"
        )


class ActivityMetrics(Base):
    """
    Aggregated activity profile, one row per user.

    Recomputed from the full record set on every sync; absent for users with
    no records.
    """

    __tablename__ = "activity_metrics"

    user_id = Column(String(36), primary_key=True)

    activity_level_score = Column(Float, nullable=False, default=0.0)  # 0-100
    preferred_activity_types = Column(JSON, nullable=False, default=list)  # most frequent first
    preferred_workout_times = Column(JSON, nullable=False, default=list)  # hours 0-23
    fitness_level = Column(String(20), nullable=False, default="intermediate")
    total_activities = Column(Integer, nullable=False, default=0)

    last_calculated_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    def __repr__(self):
        return (
            f"<ActivityMetrics user_id={self.user_id} "
            f"level={self.activity_level_score} fitness={self.fitness_level}>"
        )
