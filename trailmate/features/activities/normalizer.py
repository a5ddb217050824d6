"""
Provider payload normalization.

Each provider has one normalizer that turns a raw API payload into a fully
populated ActivityRecordData. Nothing downstream reads provider-specific
field names.
"""

import logging
from datetime import datetime
from typing import Any, Iterable, Optional, Protocol

from trailmate.shared.clock import as_naive_utc
from trailmate.shared.constants import Provider, STRAVA_TYPE_TO_ACTIVITY
from .schemas import ActivityRecordData

logger = logging.getLogger(__name__)


class NormalizationError(ValueError):
    """Payload is missing fields required for the canonical shape."""
    pass


class ActivityNormalizer(Protocol):
    provider: str

    def normalize(self, user_id: str, payload: dict[str, Any]) -> ActivityRecordData:
        ...


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 string (with optional trailing Z) to naive UTC."""
    if isinstance(value, datetime):
        return as_naive_utc(value)
    if not isinstance(value, str) or not value:
        raise NormalizationError(f"Invalid timestamp: {value!r}")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise NormalizationError(f"Invalid timestamp: {value!r}") from e
    return as_naive_utc(parsed)


def _optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class StravaNormalizer:
    """Strava /athlete/activities summary -> ActivityRecordData."""

    provider = Provider.STRAVA.value

    def normalize(self, user_id: str, payload: dict[str, Any]) -> ActivityRecordData:
        if not isinstance(payload, dict):
            raise NormalizationError(f"Expected an activity object, got {type(payload).__name__}")

        activity_id = payload.get("id")
        if activity_id is None:
            raise NormalizationError("Strava activity without id")

        strava_type = payload.get("sport_type") or payload.get("type") or "Workout"
        if not isinstance(strava_type, str):
            raise NormalizationError(f"Invalid activity type: {strava_type!r}")
        # moving_time excludes pauses; elapsed_time is the fallback for manual entries
        duration = payload.get("moving_time") or payload.get("elapsed_time") or 0
        try:
            duration_seconds = int(duration)
        except (TypeError, ValueError) as e:
            raise NormalizationError(f"Invalid duration: {duration!r}") from e

        return ActivityRecordData(
            user_id=user_id,
            provider=self.provider,
            provider_activity_id=str(activity_id),
            activity_type=strava_activity_type(strava_type),
            name=payload.get("name"),
            start_time=parse_timestamp(payload.get("start_date")),
            duration_seconds=duration_seconds,
            distance_meters=_optional_float(payload.get("distance")),
            calories=_optional_float(payload.get("calories")),
            steps=None,  # Strava does not report steps
            heart_rate_avg=_optional_float(payload.get("average_heartrate")),
            heart_rate_max=_optional_float(payload.get("max_heartrate")),
            raw_data=payload,
        )


def strava_activity_type(strava_type: str) -> str:
    """Map a Strava type name to our lowercase tag; unknown types are lowercased."""
    return STRAVA_TYPE_TO_ACTIVITY.get(strava_type, strava_type.lower())


def normalize_batch(
    normalizer: ActivityNormalizer,
    user_id: str,
    payloads: Iterable[dict[str, Any]]
) -> list[ActivityRecordData]:
    """Normalize many payloads, skipping (and logging) malformed ones."""
    records = []
    for payload in payloads:
        try:
            records.append(normalizer.normalize(user_id, payload))
        except NormalizationError as e:
            logger.warning(f"Skipping {normalizer.provider} activity for user {user_id}: {e}")
    return records
