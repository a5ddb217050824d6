"""
Compatibility Matcher

Scores how well two users' activity profiles fit together and ranks a
candidate pool for one target user. Pure: no I/O and no state between calls.

Factors and weights:
- activity level   0.35   (1 - |a - b| / 100) ** 0.5
- activity types   0.25   Jaccard + 0.2 bonus for a shared core outdoor type
- schedule         0.20   Jaccard over time-of-day blocks
- fitness level    0.15   1 - tier distance / 3
- location         0.05   1.0 until geolocation exists (pluggable scorer)
"""

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from trailmate.shared.constants import (
    CORE_OUTDOOR_ACTIVITIES,
    FITNESS_LEVEL_ORDER,
    FitnessLevel,
    hour_to_time_block,
)
from trailmate.features.activities.schemas import ActivityMetricsData


WEIGHTS: Mapping[str, float] = MappingProxyType({
    "activity_level": 0.35,
    "activity_type": 0.25,
    "schedule": 0.20,
    "fitness_level": 0.15,
    "location": 0.05,
})

# Neutral scores when one side has no data
EMPTY_ACTIVITY_TYPES_SCORE = 0.5
EMPTY_SCHEDULE_SCORE = 0.6
OUTDOOR_BONUS = 0.2


class NoMetrics(Exception):
    """Target user has no activity metrics to match against."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"No activity metrics for user {user_id}")


# =============================================================================
# Data Types
# =============================================================================

@dataclass
class Candidate:
    """A potential partner: identity, metrics (if any) and display data."""
    user_id: str
    metrics: Optional[ActivityMetricsData]
    profile: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ScoreBreakdown:
    activity_level: float
    activity_type: float
    schedule: float
    fitness_level: float
    location: float

    def to_dict(self) -> dict[str, float]:
        return {
            "activity_level": self.activity_level,
            "activity_type": self.activity_type,
            "schedule": self.schedule,
            "fitness_level": self.fitness_level,
            "location": self.location,
        }


@dataclass(frozen=True)
class CompatibilityScore:
    overall_score: float
    breakdown: ScoreBreakdown
    explanation: list[str]


@dataclass(frozen=True)
class Match:
    candidate: Candidate
    score: CompatibilityScore

    @property
    def candidate_id(self) -> str:
        return self.candidate.user_id

    def to_dict(self) -> dict:
        return {
            "candidate_id": self.candidate.user_id,
            "overall_score": self.score.overall_score,
            "breakdown": self.score.breakdown.to_dict(),
            "explanation": list(self.score.explanation),
            "profile": dict(self.candidate.profile),
        }


@dataclass
class MatchOptions:
    max_results: int = 20
    min_score: float = 0.3
    exclude_user_ids: Sequence[str] = ()
    preferred_activity_types: Optional[Sequence[str]] = None


LocationScorer = Callable[[ActivityMetricsData, Candidate], float]


def no_location_data(target: ActivityMetricsData, candidate: Candidate) -> float:
    return 1.0


# =============================================================================
# Subscores
# =============================================================================

def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def jaccard(a: set, b: set) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def activity_level_similarity(level_a: Optional[float], level_b: Optional[float]) -> float:
    a = clamp(level_a or 0.0, 0.0, 100.0)
    b = clamp(level_b or 0.0, 0.0, 100.0)
    similarity = 1 - abs(a - b) / 100
    # Square root favours close matches over linear distance
    return math.sqrt(similarity)


def activity_type_similarity(types_a: Iterable[str], types_b: Iterable[str]) -> float:
    a = {t.lower() for t in types_a or []}
    b = {t.lower() for t in types_b or []}
    if not a or not b:
        return EMPTY_ACTIVITY_TYPES_SCORE

    score = jaccard(a, b)
    if (a & b) & CORE_OUTDOOR_ACTIVITIES:
        score += OUTDOOR_BONUS
    return min(1.0, score)


def schedule_similarity(hours_a: Iterable[int], hours_b: Iterable[int]) -> float:
    blocks_a = {hour_to_time_block(h) for h in hours_a or []}
    blocks_b = {hour_to_time_block(h) for h in hours_b or []}
    if not blocks_a or not blocks_b:
        return EMPTY_SCHEDULE_SCORE
    return jaccard(blocks_a, blocks_b)


def fitness_level_similarity(level_a, level_b) -> float:
    """Unknown tiers count as intermediate."""
    a = FitnessLevel.parse(level_a).ordinal
    b = FitnessLevel.parse(level_b).ordinal
    return 1 - abs(a - b) / (len(FITNESS_LEVEL_ORDER) - 1)


def explain(breakdown: ScoreBreakdown) -> list[str]:
    """Short human-readable reasons, strongest factors first in fixed order."""
    reasons = []

    if breakdown.activity_level > 0.8:
        reasons.append("Very similar activity levels")
    elif breakdown.activity_level > 0.6:
        reasons.append("Compatible activity levels")
    elif breakdown.activity_level < 0.4:
        reasons.append("Different activity levels")

    if breakdown.activity_type > 0.7:
        reasons.append("Shared interests in activity types")
    elif breakdown.activity_type > 0.5:
        reasons.append("Some common activities")

    if breakdown.schedule > 0.7:
        reasons.append("Very similar workout schedules")
    elif breakdown.schedule > 0.5:
        reasons.append("Some schedule overlap")

    if breakdown.fitness_level > 0.8:
        reasons.append("Very similar fitness levels")

    return reasons or ["Basic compatibility"]


# =============================================================================
# Matcher
# =============================================================================

class CompatibilityMatcher:
    """
    Ranks candidates for a target user.

    Usage:
        matcher = CompatibilityMatcher()
        matches = matcher.find_matches(user_id, metrics, candidates, MatchOptions(max_results=10))
    """

    def __init__(self, location_scorer: LocationScorer = no_location_data):
        self.location_scorer = location_scorer

    def score(self, target: ActivityMetricsData, candidate: Candidate) -> CompatibilityScore:
        """Weighted compatibility between target metrics and a candidate with metrics."""
        other = candidate.metrics
        if other is None:
            raise NoMetrics(candidate.user_id)

        breakdown = ScoreBreakdown(
            activity_level=clamp(activity_level_similarity(
                target.activity_level_score, other.activity_level_score)),
            activity_type=clamp(activity_type_similarity(
                target.preferred_activity_types, other.preferred_activity_types)),
            schedule=clamp(schedule_similarity(
                target.preferred_workout_times, other.preferred_workout_times)),
            fitness_level=clamp(fitness_level_similarity(
                target.fitness_level, other.fitness_level)),
            location=clamp(self.location_scorer(target, candidate)),
        )

        weighted = math.fsum(
            WEIGHTS[factor] * value for factor, value in breakdown.to_dict().items()
        )
        return CompatibilityScore(
            overall_score=round(clamp(weighted), 2),
            breakdown=breakdown,
            explanation=explain(breakdown),
        )

    def find_matches(
        self,
        target_user_id: str,
        target_metrics: Optional[ActivityMetricsData],
        candidate_pool: Iterable[Candidate],
        options: Optional[MatchOptions] = None
    ) -> list[Match]:
        """
        Rank candidates for the target.

        Candidates without metrics, the target itself and excluded users are
        skipped. Ties are broken by candidate user id.

        Raises:
            NoMetrics: target_metrics is None
        """
        if target_metrics is None:
            raise NoMetrics(target_user_id)

        options = options or MatchOptions()
        excluded = set(options.exclude_user_ids) | {target_user_id}
        preferred = (
            {t.lower() for t in options.preferred_activity_types}
            if options.preferred_activity_types else None
        )

        matches = []
        for candidate in candidate_pool:
            if candidate.user_id in excluded or candidate.metrics is None:
                continue

            score = self.score(target_metrics, candidate)
            if score.overall_score < options.min_score:
                continue

            if preferred is not None:
                candidate_types = {t.lower() for t in candidate.metrics.preferred_activity_types}
                # Either a declared overlap or high computed affinity qualifies
                if not (candidate_types & preferred) and score.breakdown.activity_type <= 0.5:
                    continue

            matches.append(Match(candidate, score))

        matches.sort(key=lambda m: (-m.score.overall_score, m.candidate.user_id))
        return matches[:max(0, options.max_results)]


# =============================================================================
# Reporting Helpers
# =============================================================================

def activity_level_category(score: Optional[float]) -> str:
    """Bucket an activity level score for display."""
    score = score or 0
    if score >= 80:
        return "Very Active"
    if score >= 60:
        return "Active"
    if score >= 40:
        return "Moderate"
    if score >= 20:
        return "Light"
    return "Sedentary"


def matching_stats(pool: Iterable[ActivityMetricsData]) -> dict:
    """Distribution of activity levels, fitness tiers and activities in a pool."""
    stats = {
        "total_users": 0,
        "activity_level_distribution": {},
        "fitness_level_distribution": {},
        "popular_activities": {},
    }

    for metrics in pool:
        stats["total_users"] += 1

        category = activity_level_category(metrics.activity_level_score)
        levels = stats["activity_level_distribution"]
        levels[category] = levels.get(category, 0) + 1

        fitness = FitnessLevel.parse(metrics.fitness_level).value
        tiers = stats["fitness_level_distribution"]
        tiers[fitness] = tiers.get(fitness, 0) + 1

        activities = stats["popular_activities"]
        for activity in metrics.preferred_activity_types:
            activities[activity] = activities.get(activity, 0) + 1

    return stats
