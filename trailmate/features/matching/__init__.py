"""
Partner matching.

Usage:
    from trailmate.features.matching import CompatibilityMatcher, MatchOptions
"""

from .matcher import (
    WEIGHTS,
    NoMetrics,
    Candidate,
    ScoreBreakdown,
    CompatibilityScore,
    Match,
    MatchOptions,
    CompatibilityMatcher,
    activity_level_category,
    matching_stats,
)
from .service import MatchingService

__all__ = [
    "WEIGHTS",
    "NoMetrics",
    "Candidate",
    "ScoreBreakdown",
    "CompatibilityScore",
    "Match",
    "MatchOptions",
    "CompatibilityMatcher",
    "activity_level_category",
    "matching_stats",
    "MatchingService",
]
