"""
Provider synchronization.

Provides:
- SyncOrchestrator: concurrent, settle-all sync across providers
- StravaAdapter: Strava activity source using the rate-limited gateway
"""

from .orchestrator import (
    SyncOrchestrator,
    ProviderAdapter,
    ProviderSyncOutcome,
    SyncReport,
    SyncStatus,
    UnsupportedProvider,
)
from .strava import StravaAdapter

__all__ = [
    "SyncOrchestrator",
    "ProviderAdapter",
    "ProviderSyncOutcome",
    "SyncReport",
    "SyncStatus",
    "UnsupportedProvider",
    "StravaAdapter",
]
