"""
Tests for CompatibilityMatcher.
"""

import math
import random

import pytest

from trailmate.features.matching import (
    Candidate,
    CompatibilityMatcher,
    MatchOptions,
    NoMetrics,
    WEIGHTS,
)
from trailmate.features.matching.matcher import (
    activity_level_category,
    activity_level_similarity,
    activity_type_similarity,
    fitness_level_similarity,
    jaccard,
    matching_stats,
    schedule_similarity,
)
from trailmate.shared.constants import FitnessLevel


@pytest.fixture
def matcher():
    return CompatibilityMatcher()


@pytest.fixture
def target(metrics_factory):
    return metrics_factory("target")


def candidate(metrics_factory, user_id, **kwargs):
    return Candidate(user_id=user_id, metrics=metrics_factory(user_id, **kwargs))


# =============================================================================
# Subscores
# =============================================================================

class TestSubscores:

    def test_weights_sum_to_one(self):
        assert math.isclose(math.fsum(WEIGHTS.values()), 1.0)
        assert set(WEIGHTS) == {
            "activity_level", "activity_type", "schedule", "fitness_level", "location"
        }

    def test_weights_are_read_only(self):
        with pytest.raises(TypeError):
            WEIGHTS["location"] = 0.5

    def test_jaccard_bounds(self):
        assert jaccard({"a"}, {"a"}) == 1.0
        assert jaccard({"a"}, {"b"}) == 0.0
        assert jaccard(set(), set()) == 0.0
        assert jaccard({"a", "b"}, {"b", "c"}) == pytest.approx(1 / 3)

    def test_activity_level_uses_square_root(self):
        assert activity_level_similarity(50, 50) == 1.0
        assert activity_level_similarity(50, 14) == pytest.approx(0.8)
        assert activity_level_similarity(0, 100) == 0.0

    def test_activity_level_out_of_range_is_clamped(self):
        assert activity_level_similarity(150, 100) == 1.0
        assert activity_level_similarity(None, 0) == 1.0

    def test_activity_types_outdoor_bonus(self):
        score = activity_type_similarity(["running", "hiking"], ["running", "yoga"])
        assert score == pytest.approx(1 / 3 + 0.2)

    def test_activity_types_no_bonus_for_indoor_overlap(self):
        assert activity_type_similarity(["yoga", "swimming"], ["yoga"]) == pytest.approx(0.5)

    def test_activity_types_capped_at_one(self):
        assert activity_type_similarity(["running"], ["Running"]) == 1.0

    def test_activity_types_empty_side_is_neutral(self):
        assert activity_type_similarity([], ["running"]) == 0.5
        assert activity_type_similarity(["running"], []) == 0.5

    def test_schedule_compares_time_blocks(self):
        # 6 and 8 are both early morning
        assert schedule_similarity([6], [8]) == 1.0
        assert schedule_similarity([7], [19]) == 0.0
        assert schedule_similarity([7, 19], [8]) == 0.5

    def test_schedule_empty_side_is_neutral(self):
        assert schedule_similarity([], [7]) == 0.6

    def test_fitness_level_distance(self):
        assert fitness_level_similarity(FitnessLevel.BEGINNER, FitnessLevel.ELITE) == 0.0
        assert fitness_level_similarity("advanced", "advanced") == 1.0
        assert fitness_level_similarity("beginner", "intermediate") == pytest.approx(2 / 3)

    def test_unknown_fitness_counts_as_intermediate(self):
        assert fitness_level_similarity("couch", "intermediate") == 1.0


# =============================================================================
# Scoring
# =============================================================================

class TestScore:

    def test_identical_users_score_one(self, matcher, target, metrics_factory):
        result = matcher.score(target, candidate(metrics_factory, "twin"))

        assert result.overall_score == 1.0
        assert "Very similar activity levels" in result.explanation
        assert "Shared interests in activity types" in result.explanation
        assert "Very similar workout schedules" in result.explanation
        assert "Very similar fitness levels" in result.explanation

    def test_weighted_sum(self, matcher, metrics_factory):
        target = metrics_factory("target", level=50, types=["running"], hours=[7])
        other = candidate(
            metrics_factory, "other",
            level=0, types=["cycling"], hours=[19], fitness=FitnessLevel.BEGINNER,
        )

        result = matcher.score(target, other)

        # 0.35 * sqrt(0.5) + 0.15 * (2/3) + 0.05 * 1.0
        assert result.overall_score == 0.40
        assert result.breakdown.activity_type == 0.0
        assert result.breakdown.schedule == 0.0
        assert result.explanation == ["Compatible activity levels"]

    def test_dissimilar_users(self, matcher, metrics_factory):
        target = metrics_factory("target", level=0, types=["yoga"], hours=[7],
                                 fitness=FitnessLevel.BEGINNER)
        other = candidate(metrics_factory, "other", level=100, types=["running"], hours=[19],
                          fitness=FitnessLevel.ELITE)

        result = matcher.score(target, other)

        assert result.overall_score == 0.05
        assert result.explanation == ["Different activity levels"]

    def test_basic_compatibility_when_nothing_stands_out(self, matcher, metrics_factory):
        target = metrics_factory("target", level=75, types=[], hours=[7],
                                 fitness=FitnessLevel.BEGINNER)
        other = candidate(metrics_factory, "other", level=0, types=["running"], hours=[19],
                          fitness=FitnessLevel.ADVANCED)

        result = matcher.score(target, other)

        assert result.explanation == ["Basic compatibility"]

    def test_location_scorer_is_pluggable(self, target, metrics_factory):
        far_away = CompatibilityMatcher(location_scorer=lambda t, c: 0.0)
        result = far_away.score(target, candidate(metrics_factory, "twin"))
        assert result.overall_score == 0.95

    def test_location_score_is_clamped(self, target, metrics_factory):
        matcher = CompatibilityMatcher(location_scorer=lambda t, c: 5.0)
        result = matcher.score(target, candidate(metrics_factory, "twin"))
        assert result.breakdown.location == 1.0
        assert result.overall_score == 1.0

    def test_scores_stay_in_bounds(self, matcher, metrics_factory):
        rng = random.Random(7)
        types = ["running", "cycling", "hiking", "yoga", "swimming", "climbing"]
        tiers = list(FitnessLevel) + ["unknown"]

        def random_metrics(user_id):
            return metrics_factory(
                user_id,
                level=rng.uniform(-20, 130),
                types=rng.sample(types, rng.randint(0, 4)),
                hours=rng.sample(range(24), rng.randint(0, 5)),
                fitness=rng.choice(tiers),
            )

        for i in range(200):
            result = matcher.score(
                random_metrics("target"), Candidate(f"c{i}", random_metrics(f"c{i}"))
            )
            assert 0.0 <= result.overall_score <= 1.0
            assert all(0.0 <= v <= 1.0 for v in result.breakdown.to_dict().values())
            assert result.explanation


# =============================================================================
# Ranking
# =============================================================================

class TestFindMatches:

    def test_no_target_metrics_raises(self, matcher, metrics_factory):
        with pytest.raises(NoMetrics) as exc_info:
            matcher.find_matches("target", None, [candidate(metrics_factory, "a")])
        assert exc_info.value.user_id == "target"

    def test_candidates_without_metrics_are_skipped(self, matcher, target, metrics_factory):
        pool = [Candidate("ghost", None), candidate(metrics_factory, "real")]

        matches = matcher.find_matches("target", target, pool)

        assert [m.candidate_id for m in matches] == ["real"]

    def test_self_and_excluded_are_skipped(self, matcher, target, metrics_factory):
        pool = [
            candidate(metrics_factory, "target"),
            candidate(metrics_factory, "blocked"),
            candidate(metrics_factory, "ok"),
        ]

        matches = matcher.find_matches(
            "target", target, pool, MatchOptions(exclude_user_ids=["blocked"])
        )

        assert [m.candidate_id for m in matches] == ["ok"]

    def test_min_score_filters(self, matcher, metrics_factory):
        target = metrics_factory("target", level=0, types=["yoga"], hours=[7],
                                 fitness=FitnessLevel.BEGINNER)
        pool = [
            candidate(metrics_factory, "far", level=100, types=["running"], hours=[19],
                      fitness=FitnessLevel.ELITE),
            candidate(metrics_factory, "near", level=0, types=["yoga"], hours=[7],
                      fitness=FitnessLevel.BEGINNER),
        ]

        assert [m.candidate_id for m in matcher.find_matches("target", target, pool)] == ["near"]
        everything = matcher.find_matches("target", target, pool, MatchOptions(min_score=0.0))
        assert [m.candidate_id for m in everything] == ["near", "far"]

    def test_preferred_types_overlap_or_affinity(self, matcher, target, metrics_factory):
        pool = [
            candidate(metrics_factory, "cyclist", types=["cycling"]),
            candidate(metrics_factory, "same-taste", types=["running", "hiking"]),
            candidate(metrics_factory, "yogi", types=["yoga"]),
        ]

        matches = matcher.find_matches(
            "target", target, pool, MatchOptions(preferred_activity_types=["Cycling"])
        )

        assert {m.candidate_id for m in matches} == {"cyclist", "same-taste"}

    def test_sorted_by_score_then_user_id(self, matcher, target, metrics_factory):
        pool = [
            candidate(metrics_factory, "b"),
            candidate(metrics_factory, "weaker", level=10),
            candidate(metrics_factory, "c"),
            candidate(metrics_factory, "a"),
        ]

        matches = matcher.find_matches("target", target, pool)

        assert [m.candidate_id for m in matches] == ["a", "b", "c", "weaker"]
        scores = [m.score.overall_score for m in matches]
        assert scores == sorted(scores, reverse=True)

    def test_max_results(self, matcher, target, metrics_factory):
        pool = [candidate(metrics_factory, f"user-{i:02d}") for i in range(30)]

        matches = matcher.find_matches("target", target, pool, MatchOptions(max_results=5))

        assert [m.candidate_id for m in matches] == [f"user-{i:02d}" for i in range(5)]

    def test_deterministic_regardless_of_pool_order(self, matcher, target, metrics_factory):
        pool = [
            candidate(metrics_factory, f"user-{i}", level=40 + i % 3 * 10, hours=[7 + i % 2 * 12])
            for i in range(12)
        ]
        shuffled = list(pool)
        random.Random(3).shuffle(shuffled)

        first = [m.to_dict() for m in matcher.find_matches("target", target, pool)]
        second = [m.to_dict() for m in matcher.find_matches("target", target, shuffled)]

        assert first == second

    def test_match_to_dict(self, matcher, target, metrics_factory):
        pool = [Candidate("a", metrics_factory("a"), profile={"name": "Ann"})]

        match = matcher.find_matches("target", target, pool)[0].to_dict()

        assert match["candidate_id"] == "a"
        assert match["overall_score"] == 1.0
        assert match["profile"] == {"name": "Ann"}
        assert set(match["breakdown"]) == set(WEIGHTS)


# =============================================================================
# Reporting
# =============================================================================

class TestReporting:

    @pytest.mark.parametrize("score, category", [
        (95, "Very Active"),
        (80, "Very Active"),
        (65, "Active"),
        (40, "Moderate"),
        (20, "Light"),
        (5, "Sedentary"),
        (None, "Sedentary"),
    ])
    def test_activity_level_category(self, score, category):
        assert activity_level_category(score) == category

    def test_matching_stats(self, metrics_factory):
        pool = [
            metrics_factory("a", level=85, types=["running"], fitness=FitnessLevel.ELITE),
            metrics_factory("b", level=45, types=["running", "hiking"]),
            metrics_factory("c", level=42, types=["cycling"]),
        ]

        stats = matching_stats(pool)

        assert stats["total_users"] == 3
        assert stats["activity_level_distribution"] == {"Very Active": 1, "Moderate": 2}
        assert stats["fitness_level_distribution"] == {"elite": 1, "intermediate": 2}
        assert stats["popular_activities"] == {"running": 2, "hiking": 1, "cycling": 1}

    def test_matching_stats_empty(self):
        assert matching_stats([])["total_users"] == 0
