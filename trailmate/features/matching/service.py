"""
Matching service.

Loads metrics from the database and runs the CompatibilityMatcher. Makes
sure the target's metrics are not older than the target's latest successful
sync before matching.
"""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from trailmate.config import settings
from trailmate.features.activities import (
    ActivityMetricsData,
    ActivityMetricsRepository,
    MetricsAggregator,
    ProviderConnectionRepository,
)
from trailmate.shared.clock import Clock, utcnow
from .matcher import Candidate, CompatibilityMatcher, Match, MatchOptions, matching_stats

logger = logging.getLogger(__name__)


class MatchingService:
    """
    Find workout partners for a stored user.

    Usage:
        service = MatchingService(db, aggregator)
        matches = await service.find_matches(user_id, MatchOptions(max_results=10))
    """

    def __init__(
        self,
        db: AsyncSession,
        aggregator: MetricsAggregator,
        matcher: Optional[CompatibilityMatcher] = None,
        candidate_active_days: int = settings.candidate_active_days,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.aggregator = aggregator
        self.matcher = matcher or CompatibilityMatcher()
        self.candidate_active_days = candidate_active_days
        self.clock = clock
        self.metrics_repo = ActivityMetricsRepository(db)
        self.connection_repo = ProviderConnectionRepository(db)

    async def get_fresh_metrics(self, user_id: str) -> Optional[ActivityMetricsData]:
        """Target metrics, recomputed first if a newer sync exists."""
        metrics = await self.metrics_repo.get_for_user(user_id)
        last_sync = await self.connection_repo.latest_sync_at(user_id)

        stale = (
            last_sync is not None
            and (metrics is None or metrics.last_calculated_at is None
                 or metrics.last_calculated_at < last_sync)
        )
        if stale:
            logger.info(f"Metrics for user {user_id} predate last sync, recalculating")
            metrics = await self.aggregator.recompute(self.db, user_id)
        return metrics

    async def load_candidates(self, user_id: str, options: MatchOptions) -> list[Candidate]:
        active_since = self.clock() - timedelta(days=self.candidate_active_days)
        pool = await self.metrics_repo.get_candidates(
            exclude_user_ids=[user_id, *options.exclude_user_ids],
            active_since=active_since,
        )
        return [Candidate(user_id=m.user_id, metrics=m) for m in pool]

    async def find_matches(self, user_id: str, options: Optional[MatchOptions] = None) -> list[Match]:
        """
        Raises:
            NoMetrics: user has no activity metrics
        """
        options = options or MatchOptions()
        target = await self.get_fresh_metrics(user_id)
        candidates = await self.load_candidates(user_id, options)

        matches = self.matcher.find_matches(user_id, target, candidates, options)
        logger.info(
            f"Found {len(matches)} matches for user {user_id} "
            f"from {len(candidates)} candidates"
        )
        return matches

    async def get_stats(self) -> dict:
        pool = await self.metrics_repo.get_candidates(exclude_user_ids=[])
        return matching_stats(pool)
