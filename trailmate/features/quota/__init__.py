"""
Quota-aware access to the provider API.

Usage:
    from trailmate.features.quota import RateLimitedGateway, SqlQuotaStore

Components:
- QuotaStore: serialized per-credential request counters
- CredentialResolver: user -> assigned credential, with fallback
- RateLimitedGateway: budget enforcement and 429 retries around each call
"""

from .state import (
    CredentialConfig,
    QuotaState,
    QuotaDecision,
    QuotaUsage,
    FALLBACK_CREDENTIAL_ID,
)
from .store import QuotaStore, InMemoryQuotaStore, SqlQuotaStore
from .resolver import (
    CredentialResolver,
    CredentialResolution,
    ResolutionSource,
    FallbackReason,
)
from .repository import CredentialRepository, make_assignment_lookup
from .gateway import (
    RateLimitedGateway,
    GatewayError,
    RateLimited,
    UpstreamError,
)

__all__ = [
    # State
    "CredentialConfig",
    "QuotaState",
    "QuotaDecision",
    "QuotaUsage",
    "FALLBACK_CREDENTIAL_ID",
    # Stores
    "QuotaStore",
    "InMemoryQuotaStore",
    "SqlQuotaStore",
    # Resolution
    "CredentialResolver",
    "CredentialResolution",
    "ResolutionSource",
    "FallbackReason",
    "CredentialRepository",
    "make_assignment_lookup",
    # Gateway
    "RateLimitedGateway",
    "GatewayError",
    "RateLimited",
    "UpstreamError",
]
