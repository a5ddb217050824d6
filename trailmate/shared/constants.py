"""
Shared constants for activity types, fitness tiers and time-of-day blocks.

Single source of truth for the vocabulary used by normalization,
aggregation and matching.
"""

from enum import Enum


class Provider(str, Enum):
    """Fitness data providers a user can connect."""
    STRAVA = "strava"
    GOOGLE_HEALTH = "google_health"
    APPLE_HEALTH = "apple_health"


class FitnessLevel(str, Enum):
    """Ordinal fitness tiers, lowest first."""
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    ELITE = "elite"

    @property
    def ordinal(self) -> int:
        return FITNESS_LEVEL_ORDER.index(self)

    @classmethod
    def parse(cls, value: "str | FitnessLevel | None") -> "FitnessLevel":
        """Parse a tier name; unknown or missing values become INTERMEDIATE."""
        if isinstance(value, FitnessLevel):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.INTERMEDIATE


FITNESS_LEVEL_ORDER: list[FitnessLevel] = [
    FitnessLevel.BEGINNER,
    FitnessLevel.INTERMEDIATE,
    FitnessLevel.ADVANCED,
    FitnessLevel.ELITE,
]


class TimeBlock(str, Enum):
    """Coarse time-of-day buckets used for schedule overlap."""
    EARLY_MORNING = "early_morning"
    LATE_MORNING = "late_morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"


def hour_to_time_block(hour: int) -> TimeBlock:
    """Map an hour of day (0-23) to its TimeBlock."""
    if 5 <= hour < 10:
        return TimeBlock.EARLY_MORNING
    if 10 <= hour < 14:
        return TimeBlock.LATE_MORNING
    if 14 <= hour < 18:
        return TimeBlock.AFTERNOON
    if 18 <= hour < 22:
        return TimeBlock.EVENING
    return TimeBlock.NIGHT


# Shared types in this set earn the activity-type bonus
CORE_OUTDOOR_ACTIVITIES: frozenset[str] = frozenset({
    "running",
    "cycling",
    "hiking",
    "walking",
    "climbing",
})


# Strava "type" / "sport_type" -> our lowercase activity tag
STRAVA_TYPE_TO_ACTIVITY: dict[str, str] = {
    "Run": "running",
    "TrailRun": "running",
    "VirtualRun": "running",
    "Ride": "cycling",
    "MountainBikeRide": "cycling",
    "GravelRide": "cycling",
    "EBikeRide": "cycling",
    "VirtualRide": "cycling",
    "Hike": "hiking",
    "Walk": "walking",
    "RockClimbing": "climbing",
    "Swim": "swimming",
    "Rowing": "rowing",
    "Kayaking": "kayaking",
    "NordicSki": "skiing",
    "AlpineSki": "skiing",
    "BackcountrySki": "skiing",
    "Snowshoe": "snowshoeing",
    "Yoga": "yoga",
    "WeightTraining": "strength",
    "Workout": "workout",
}
