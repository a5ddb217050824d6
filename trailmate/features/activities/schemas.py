"""
Canonical activity shapes.

ActivityRecordData is what every provider normalizer must produce;
ActivityMetricsData is the matcher's input. Both are plain dataclasses so
matching and aggregation never depend on ORM state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from trailmate.shared.constants import FitnessLevel


@dataclass
class ActivityRecordData:
    """One workout, fully normalized."""
    user_id: str
    provider: str
    provider_activity_id: str
    activity_type: str
    start_time: datetime
    duration_seconds: int
    name: Optional[str] = None
    distance_meters: Optional[float] = None
    calories: Optional[float] = None
    steps: Optional[int] = None
    heart_rate_avg: Optional[float] = None
    heart_rate_max: Optional[float] = None
    raw_data: Optional[dict[str, Any]] = None

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.user_id, self.provider, self.provider_activity_id)

    def column_values(self) -> dict[str, Any]:
        """Values for the activity_records columns."""
        return {
            "user_id": self.user_id,
            "provider": self.provider,
            "provider_activity_id": self.provider_activity_id,
            "activity_type": self.activity_type,
            "name": self.name,
            "start_time": self.start_time,
            "duration_seconds": self.duration_seconds,
            "distance_meters": self.distance_meters,
            "calories": self.calories,
            "steps": self.steps,
            "heart_rate_avg": self.heart_rate_avg,
            "heart_rate_max": self.heart_rate_max,
            "raw_data": self.raw_data,
        }

    @classmethod
    def from_model(cls, row) -> "ActivityRecordData":
        return cls(
            user_id=row.user_id,
            provider=row.provider,
            provider_activity_id=row.provider_activity_id,
            activity_type=row.activity_type,
            start_time=row.start_time,
            duration_seconds=row.duration_seconds,
            name=row.name,
            distance_meters=row.distance_meters,
            calories=row.calories,
            steps=row.steps,
            heart_rate_avg=row.heart_rate_avg,
            heart_rate_max=row.heart_rate_max,
        )


@dataclass
class ActivityMetricsData:
    """A user's aggregated activity profile."""
    user_id: str
    activity_level_score: float
    preferred_activity_types: list[str] = field(default_factory=list)
    preferred_workout_times: list[int] = field(default_factory=list)
    fitness_level: FitnessLevel = FitnessLevel.INTERMEDIATE
    total_activities: int = 0
    last_calculated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, row) -> "ActivityMetricsData":
        return cls(
            user_id=row.user_id,
            activity_level_score=row.activity_level_score or 0.0,
            preferred_activity_types=list(row.preferred_activity_types or []),
            preferred_workout_times=list(row.preferred_workout_times or []),
            fitness_level=FitnessLevel.parse(row.fitness_level),
            total_activities=row.total_activities or 0,
            last_calculated_at=row.last_calculated_at,
        )

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "activity_level_score": self.activity_level_score,
            "preferred_activity_types": self.preferred_activity_types,
            "preferred_workout_times": self.preferred_workout_times,
            "fitness_level": self.fitness_level.value,
            "total_activities": self.total_activities,
            "last_calculated_at": (
                self.last_calculated_at.isoformat() if self.last_calculated_at else None
            ),
        }
