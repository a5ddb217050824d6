"""
Partner Matching Routes

Endpoints:
- GET /matches/stats - Pool statistics
- GET /matches/{user_id} - Ranked workout partners for a user
- GET /matches/{user_id}/metrics - The user's activity metrics
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from trailmate.db.session import get_async_db
from trailmate.dependencies import get_metrics_aggregator
from trailmate.features.activities import MetricsAggregator
from trailmate.features.matching import MatchingService, MatchOptions, NoMetrics

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Schemas
# =============================================================================

class MatchResponse(BaseModel):
    candidate_id: str
    overall_score: float
    breakdown: dict[str, float]
    explanation: list[str]


class MatchListResponse(BaseModel):
    user_id: str
    matches: list[MatchResponse]


# =============================================================================
# Endpoints
# =============================================================================

@router.get("/matches/stats")
async def get_matching_stats(
    db: AsyncSession = Depends(get_async_db),
    aggregator: MetricsAggregator = Depends(get_metrics_aggregator),
):
    """Activity level, fitness tier and activity popularity across all users."""
    return await MatchingService(db, aggregator).get_stats()


@router.get("/matches/{user_id}", response_model=MatchListResponse)
async def get_matches(
    user_id: str,
    max_results: int = Query(default=20, ge=1, le=100),
    min_score: float = Query(default=0.3, ge=0.0, le=1.0),
    exclude: list[str] = Query(default=[]),
    activity_types: Optional[list[str]] = Query(default=None),
    db: AsyncSession = Depends(get_async_db),
    aggregator: MetricsAggregator = Depends(get_metrics_aggregator),
):
    """Find compatible workout partners."""
    options = MatchOptions(
        max_results=max_results,
        min_score=min_score,
        exclude_user_ids=exclude,
        preferred_activity_types=activity_types or None,
    )
    try:
        matches = await MatchingService(db, aggregator).find_matches(user_id, options)
    except NoMetrics:
        raise HTTPException(
            status_code=404,
            detail="No activity metrics yet. Connect a provider and sync first."
        )

    return MatchListResponse(
        user_id=user_id,
        matches=[MatchResponse(**m.to_dict()) for m in matches],
    )


@router.get("/matches/{user_id}/metrics")
async def get_metrics(
    user_id: str,
    db: AsyncSession = Depends(get_async_db),
    aggregator: MetricsAggregator = Depends(get_metrics_aggregator),
):
    metrics = await MatchingService(db, aggregator).get_fresh_metrics(user_id)
    if metrics is None:
        raise HTTPException(status_code=404, detail="No activity metrics")
    return metrics.to_dict()
