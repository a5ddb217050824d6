"""
Activity ingestion and aggregation.

Usage:
    from trailmate.features.activities import StravaNormalizer, MetricsAggregator

Models:
- ProviderConnection, ActivityRecord, ActivityMetrics
"""

from .models import ProviderConnection, ActivityRecord, ActivityMetrics
from .schemas import ActivityRecordData, ActivityMetricsData
from .normalizer import (
    ActivityNormalizer,
    StravaNormalizer,
    NormalizationError,
    normalize_batch,
    parse_timestamp,
)
from .repository import (
    ProviderConnectionRepository,
    ActivityRecordRepository,
    ActivityMetricsRepository,
)
from .aggregator import MetricsAggregator, compute_metrics

__all__ = [
    # Models
    "ProviderConnection",
    "ActivityRecord",
    "ActivityMetrics",
    # Schemas
    "ActivityRecordData",
    "ActivityMetricsData",
    # Normalization
    "ActivityNormalizer",
    "StravaNormalizer",
    "NormalizationError",
    "normalize_batch",
    "parse_timestamp",
    # Repositories
    "ProviderConnectionRepository",
    "ActivityRecordRepository",
    "ActivityMetricsRepository",
    # Aggregation
    "MetricsAggregator",
    "compute_metrics",
]
