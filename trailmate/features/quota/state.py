"""
Quota value types.

CredentialConfig and QuotaState are plain dataclasses so the window
arithmetic can be exercised without a database. Stores persist QuotaState;
nothing else mutates it.
"""

import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional

DAY = timedelta(hours=24)

# Credential id used when a user has no usable assignment
FALLBACK_CREDENTIAL_ID = "fallback"


@dataclass(frozen=True)
class CredentialConfig:
    """One Strava application credential and its request budget."""
    id: str
    client_id: Optional[str]
    client_secret: Optional[str]
    daily_limit: int
    window_limit: int
    is_active: bool = True
    name: Optional[str] = None

    @classmethod
    def from_model(cls, row) -> "CredentialConfig":
        """Build from an ApiCredentialConfig row."""
        return cls(
            id=row.id,
            client_id=row.client_id,
            client_secret=row.client_secret,
            daily_limit=row.daily_limit,
            window_limit=row.window_limit,
            is_active=bool(row.is_active),
            name=row.name,
        )

    @classmethod
    def fallback(cls, settings) -> "CredentialConfig":
        """The shared default credential, configured from environment."""
        return cls(
            id=FALLBACK_CREDENTIAL_ID,
            client_id=settings.strava_client_id,
            client_secret=settings.strava_client_secret,
            daily_limit=settings.default_daily_limit,
            window_limit=settings.default_window_limit,
            name="fallback",
        )

    def __repr__(self):
        # Keep the secret out of logs
        return f"CredentialConfig(id={self.id!r}, window_limit={self.window_limit}, daily_limit={self.daily_limit})"


@dataclass
class QuotaDecision:
    """Outcome of trying to consume one request slot."""
    allowed: bool
    state: "QuotaState"
    retry_after_seconds: int = 0


@dataclass
class QuotaUsage:
    """Read-only usage snapshot for status displays."""
    credential_id: str
    window_used: int
    window_limit: int
    daily_used: int
    daily_limit: int
    window_resets_in_seconds: int
    is_throttled: bool
    retry_after_seconds: int

    @property
    def window_remaining(self) -> int:
        return max(0, self.window_limit - self.window_used)

    @property
    def daily_remaining(self) -> int:
        return max(0, self.daily_limit - self.daily_used)

    def to_dict(self) -> dict:
        return {
            "credential_id": self.credential_id,
            "window": {
                "used": self.window_used,
                "limit": self.window_limit,
                "remaining": self.window_remaining,
                "resets_in_seconds": self.window_resets_in_seconds,
            },
            "daily": {
                "used": self.daily_used,
                "limit": self.daily_limit,
                "remaining": self.daily_remaining,
            },
            "is_throttled": self.is_throttled,
            "retry_after_seconds": self.retry_after_seconds,
        }


def seconds_until(moment: Optional[datetime], now: datetime) -> int:
    """Whole seconds from now until moment, rounded up, never negative."""
    if moment is None:
        return 0
    return max(0, math.ceil((moment - now).total_seconds()))


@dataclass
class QuotaState:
    """Request counters and cool-down for one credential."""
    credential_id: str
    window_start: datetime
    daily_window_start: datetime
    window_requests: int = 0
    daily_requests: int = 0
    is_throttled: bool = False
    retry_after: Optional[datetime] = None
    last_request_at: Optional[datetime] = None

    @classmethod
    def fresh(cls, credential_id: str, now: datetime) -> "QuotaState":
        return cls(
            credential_id=credential_id,
            window_start=now,
            daily_window_start=now,
        )

    def copy(self) -> "QuotaState":
        return replace(self)

    def roll(self, now: datetime, window: timedelta) -> None:
        """
        Reset counters whose window has elapsed and lift an expired throttle.

        A counter resets exactly when now reaches its window start plus the
        window length; the new window starts at now.
        """
        if now >= self.window_start + window:
            self.window_requests = 0
            self.window_start = now

        if now >= self.daily_window_start + DAY:
            self.daily_requests = 0
            self.daily_window_start = now

        if self.is_throttled and (self.retry_after is None or now >= self.retry_after):
            self.is_throttled = False
            self.retry_after = None

    def throttle_until(self, moment: datetime) -> None:
        self.is_throttled = True
        # Never shorten an existing cool-down
        if self.retry_after is None or moment > self.retry_after:
            self.retry_after = moment

    def try_consume(
        self,
        config: CredentialConfig,
        now: datetime,
        window: timedelta
    ) -> QuotaDecision:
        """
        Check the budget and take one request slot if allowed.

        Mutates self; the caller is responsible for persisting it under the
        store's per-credential lock.
        """
        self.roll(now, window)

        if self.is_throttled:
            return QuotaDecision(False, self, seconds_until(self.retry_after, now))

        if self.window_requests >= config.window_limit:
            self.throttle_until(self.window_start + window)
            return QuotaDecision(False, self, seconds_until(self.retry_after, now))

        if self.daily_requests >= config.daily_limit:
            self.throttle_until(self.daily_window_start + DAY)
            return QuotaDecision(False, self, seconds_until(self.retry_after, now))

        self.window_requests += 1
        self.daily_requests += 1
        self.last_request_at = now
        return QuotaDecision(True, self)

    def usage(
        self,
        config: CredentialConfig,
        now: datetime,
        window: timedelta
    ) -> QuotaUsage:
        """Usage snapshot; rolls a copy so reading never mutates stored state."""
        view = self.copy()
        view.roll(now, window)
        return QuotaUsage(
            credential_id=view.credential_id,
            window_used=view.window_requests,
            window_limit=config.window_limit,
            daily_used=view.daily_requests,
            daily_limit=config.daily_limit,
            window_resets_in_seconds=seconds_until(view.window_start + window, now),
            is_throttled=view.is_throttled,
            retry_after_seconds=seconds_until(view.retry_after, now) if view.is_throttled else 0,
        )
