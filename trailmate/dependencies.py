"""
Application-wide service instances.

The quota store, resolver and aggregator hold the locks and caches that
serialize work inside this process, so exactly one instance of each exists.
"""

from datetime import timedelta

from trailmate.config import settings
from trailmate.db.session import AsyncSessionLocal
from trailmate.features.activities import MetricsAggregator
from trailmate.features.quota import (
    CredentialConfig,
    CredentialResolver,
    RateLimitedGateway,
    SqlQuotaStore,
    make_assignment_lookup,
)
from trailmate.features.sync import StravaAdapter, SyncOrchestrator


quota_store = SqlQuotaStore(
    AsyncSessionLocal,
    window=timedelta(minutes=settings.quota_window_minutes),
)

credential_resolver = CredentialResolver(
    make_assignment_lookup(AsyncSessionLocal),
    default_config=CredentialConfig.fallback(settings),
)

gateway = RateLimitedGateway(
    quota_store,
    credential_resolver,
    max_attempts=settings.gateway_max_attempts,
    base_delay=settings.gateway_base_delay_seconds,
)

metrics_aggregator = MetricsAggregator(window_days=settings.metrics_window_days)

sync_orchestrator = SyncOrchestrator(
    AsyncSessionLocal,
    adapters={
        StravaAdapter.provider: StravaAdapter(gateway, session_factory=AsyncSessionLocal),
    },
    aggregator=metrics_aggregator,
)


def get_gateway() -> RateLimitedGateway:
    return gateway


def get_credential_resolver() -> CredentialResolver:
    return credential_resolver


def get_metrics_aggregator() -> MetricsAggregator:
    return metrics_aggregator


def get_sync_orchestrator() -> SyncOrchestrator:
    return sync_orchestrator
