"""
Strava activity adapter.

Fetches activity summaries through the RateLimitedGateway, one gateway call
per page. Expired access tokens are refreshed first, using the client
credentials of the user's resolved API config; the refresh call is billed
to that same credential.

Strava API Limits (per application credential):
- 100-200 requests per 15 minutes
- 1,000-2,000 requests per day
Pooling several credentials across users raises aggregate throughput; the
gateway bills every page to the user's assigned credential.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from trailmate.config import settings
from trailmate.features.activities import (
    ProviderConnection,
    ProviderConnectionRepository,
    StravaNormalizer,
)
from trailmate.features.quota import RateLimitedGateway, UpstreamError
from trailmate.shared.clock import Clock, utcnow
from trailmate.shared.constants import Provider

logger = logging.getLogger(__name__)


class StravaAdapter:
    """
    Strava data source for the sync orchestrator.

    Usage:
        adapter = StravaAdapter(gateway, session_factory=AsyncSessionLocal)
        raw = await adapter.fetch_activities(user_id, connection, after=last_sync)

    Without a session_factory, refreshed tokens are only set on the
    connection object passed in.
    """

    provider = Provider.STRAVA.value

    def __init__(
        self,
        gateway: RateLimitedGateway,
        api_url: str = settings.strava_api_url,
        per_page: int = settings.sync_per_page,
        max_pages: int = 10,
        timeout: float = settings.gateway_timeout_seconds,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        oauth_url: str = settings.strava_oauth_url,
        refresh_margin_seconds: int = settings.token_refresh_margin_seconds,
        clock: Clock = utcnow,
    ):
        self.gateway = gateway
        self.api_url = api_url.rstrip("/")
        self.per_page = min(per_page, 200)
        self.max_pages = max_pages
        self.timeout = timeout
        self.transport = transport
        self.session_factory = session_factory
        self.oauth_url = oauth_url
        self.refresh_margin_seconds = refresh_margin_seconds
        self.clock = clock
        self.normalizer = StravaNormalizer()

    async def fetch_activities(
        self,
        user_id: str,
        connection: ProviderConnection,
        after: Optional[datetime] = None
    ) -> list[dict[str, Any]]:
        """
        Fetch activity summaries newer than `after`, all pages.

        Raises:
            RateLimited: quota exhausted (pages fetched so far are discarded)
            UpstreamError: Strava error or malformed response
        """
        activities: list[dict[str, Any]] = []

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            access_token = await self.get_valid_token(client, user_id, connection)
            headers = {"Authorization": f"Bearer {access_token}"}

            for page in range(1, self.max_pages + 1):
                params = {"page": page, "per_page": self.per_page}
                if after:
                    params["after"] = int(_epoch(after))

                response = await self.gateway.invoke_for_user(
                    user_id,
                    lambda: client.get(
                        f"{self.api_url}/athlete/activities",
                        headers=headers,
                        params=params,
                    ),
                )
                batch = _parse_page(response)
                activities.extend(batch)

                if len(batch) < self.per_page:
                    break

        logger.info(f"Fetched {len(activities)} Strava activities for user {user_id}")
        return activities

    # -------------------------------------------------------------------------
    # Token Management
    # -------------------------------------------------------------------------

    def token_expired(self, connection: ProviderConnection) -> bool:
        """True if the access token expires within the refresh margin."""
        if connection.expires_at is None:
            return False
        return connection.expires_at < _epoch(self.clock()) + self.refresh_margin_seconds

    async def get_valid_token(
        self,
        client: httpx.AsyncClient,
        user_id: str,
        connection: ProviderConnection
    ) -> str:
        """Access token for the connection, refreshed first if it has expired."""
        if not self.token_expired(connection):
            return connection.access_token

        if not connection.refresh_token:
            logger.warning(f"Strava token for user {user_id} expired and no refresh token is stored")
            return connection.access_token

        logger.info(f"Refreshing Strava token for user {user_id}")
        credential = await self.gateway.resolve_credential(user_id)
        form = {
            "client_id": credential.client_id,
            "client_secret": credential.client_secret,
            "refresh_token": connection.refresh_token,
            "grant_type": "refresh_token",
        }
        response = await self.gateway.invoke(
            credential,
            lambda: client.post(self.oauth_url, data=form),
        )
        tokens = _parse_tokens(response)

        connection.access_token = tokens["access_token"]
        connection.refresh_token = tokens.get("refresh_token") or connection.refresh_token
        connection.expires_at = tokens.get("expires_at")

        if self.session_factory is not None:
            async with self.session_factory() as db:
                await ProviderConnectionRepository(db).save_tokens(
                    user_id,
                    self.provider,
                    connection.access_token,
                    connection.refresh_token,
                    connection.expires_at,
                )
                await db.commit()

        return connection.access_token


def _epoch(moment: datetime) -> float:
    """Naive datetimes are UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.timestamp()


def _parse_page(response: httpx.Response) -> list[dict[str, Any]]:
    try:
        data = response.json()
    except ValueError as e:
        raise UpstreamError(f"Malformed Strava response: {e}", response.status_code) from e
    if not isinstance(data, list):
        raise UpstreamError("Malformed Strava response: expected a list", response.status_code)
    return data


def _parse_tokens(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError as e:
        raise UpstreamError(f"Malformed Strava token response: {e}", response.status_code) from e
    if not isinstance(data, dict) or not data.get("access_token"):
        raise UpstreamError("Strava token response without access_token", response.status_code)
    return data
