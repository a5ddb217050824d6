"""
Credential resolution.

Maps an application user to the Strava credential their requests are billed
to. Resolution is an explicit ordered chain:

1. cached resolution for the user
2. assignment lookup (database)
3. the shared fallback credential

The result is tagged so callers can tell a configured credential from a
degraded one. Every fallback is logged and counted.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .repository import AssignmentLookup
from .state import CredentialConfig

logger = logging.getLogger(__name__)


class ResolutionSource(str, Enum):
    ASSIGNED = "assigned"
    FALLBACK = "fallback"


class FallbackReason(str, Enum):
    NO_USER = "no_user"
    NO_ASSIGNMENT = "no_assignment"
    INACTIVE_CONFIG = "inactive_config"
    LOOKUP_FAILED = "lookup_failed"


@dataclass(frozen=True)
class CredentialResolution:
    """A resolved credential and how it was obtained."""
    config: CredentialConfig
    source: ResolutionSource
    reason: Optional[FallbackReason] = None

    @classmethod
    def assigned(cls, config: CredentialConfig) -> "CredentialResolution":
        return cls(config, ResolutionSource.ASSIGNED)

    @classmethod
    def fallback(cls, config: CredentialConfig, reason: FallbackReason) -> "CredentialResolution":
        return cls(config, ResolutionSource.FALLBACK, reason)

    @property
    def is_fallback(self) -> bool:
        return self.source == ResolutionSource.FALLBACK


class CredentialResolver:
    """
    Resolve users to credentials with a per-user cache.

    Usage:
        resolver = CredentialResolver(make_assignment_lookup(AsyncSessionLocal), default)
        resolution = await resolver.resolve(user_id)
        resolver.clear_cache(user_id)  # after an admin reassignment
    """

    def __init__(self, lookup: AssignmentLookup, default_config: CredentialConfig):
        self.lookup = lookup
        self.default_config = default_config
        self._cache: dict[str, CredentialResolution] = {}
        self.fallback_count = 0

    async def resolve(self, user_id: Optional[str]) -> CredentialResolution:
        if not user_id:
            return self._fall_back(user_id, FallbackReason.NO_USER)

        cached = self._cache.get(user_id)
        if cached is not None:
            return cached

        try:
            config = await self.lookup(user_id)
        except Exception as e:
            # Transient failures are not cached; the next call retries the lookup
            logger.error(f"Credential lookup failed for user {user_id}: {e}")
            return self._fall_back(user_id, FallbackReason.LOOKUP_FAILED)

        if config is None:
            resolution = self._fall_back(user_id, FallbackReason.NO_ASSIGNMENT)
        elif not config.is_active:
            resolution = self._fall_back(user_id, FallbackReason.INACTIVE_CONFIG)
        else:
            resolution = CredentialResolution.assigned(config)

        self._cache[user_id] = resolution
        return resolution

    def _fall_back(self, user_id: Optional[str], reason: FallbackReason) -> CredentialResolution:
        self.fallback_count += 1
        logger.warning(
            f"Using fallback credential for user {user_id} ({reason.value})"
        )
        return CredentialResolution.fallback(self.default_config, reason)

    def clear_cache(self, user_id: Optional[str] = None) -> None:
        """Forget cached resolutions for one user, or for everyone."""
        if user_id is None:
            self._cache.clear()
            logger.info("Credential cache cleared for all users")
        else:
            self._cache.pop(user_id, None)
            logger.info(f"Credential cache cleared for user {user_id}")

    def cached_user_ids(self) -> list[str]:
        return list(self._cache)
