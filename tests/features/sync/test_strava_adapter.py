"""
Tests for StravaAdapter using httpx.MockTransport.
"""

import json
from urllib.parse import parse_qs
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import httpx
import pytest

from trailmate.features.activities import (
    ActivityRecordRepository,
    MetricsAggregator,
    ProviderConnection,
    ProviderConnectionRepository,
)
from trailmate.features.quota import (
    CredentialConfig,
    CredentialResolver,
    InMemoryQuotaStore,
    RateLimited,
    RateLimitedGateway,
    UpstreamError,
)
from trailmate.features.sync import StravaAdapter, SyncOrchestrator, SyncStatus


API_URL = "https://strava.test/api/v3"


def activity(activity_id, start="2026-03-01T06:30:00Z"):
    return {
        "id": activity_id,
        "name": f"Run {activity_id}",
        "sport_type": "Run",
        "start_date": start,
        "moving_time": 1800,
        "distance": 5000.0,
    }


class StravaStub:
    """MockTransport handler serving pages of activities."""

    def __init__(self, activities=(), status_code=200, body=None):
        self.activities = list(activities)
        self.status_code = status_code
        self.body = body
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.body is not None:
            return httpx.Response(self.status_code, content=self.body)
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"message": "error"})

        page = int(request.url.params["page"])
        per_page = int(request.url.params["per_page"])
        chunk = self.activities[(page - 1) * per_page:page * per_page]
        return httpx.Response(200, json=chunk)


@pytest.fixture
def credential():
    return CredentialConfig(
        id="fallback", client_id="1", client_secret="s", daily_limit=1000, window_limit=10
    )


@pytest.fixture
def store(clock):
    return InMemoryQuotaStore(timedelta(minutes=15), clock)


@pytest.fixture
def gateway(store, credential, sleeper):
    resolver = CredentialResolver(AsyncMock(return_value=None), credential)
    return RateLimitedGateway(store, resolver, sleep=sleeper)


@pytest.fixture
def connection():
    return ProviderConnection(user_id="user-1", provider="strava", access_token="secret-token")


def make_adapter(gateway, stub, per_page=2, max_pages=10):
    return StravaAdapter(
        gateway,
        api_url=API_URL,
        per_page=per_page,
        max_pages=max_pages,
        transport=httpx.MockTransport(stub),
    )


class TestFetchActivities:

    async def test_paginates_until_short_page(self, gateway, store, connection):
        stub = StravaStub([activity(i) for i in range(5)])

        raw = await make_adapter(gateway, stub).fetch_activities("user-1", connection)

        assert [a["id"] for a in raw] == [0, 1, 2, 3, 4]
        assert [r.url.params["page"] for r in stub.requests] == ["1", "2", "3"]
        # One gateway call per page, billed to the resolved credential
        assert (await store.get_state("fallback")).window_requests == 3

    async def test_exact_multiple_needs_one_empty_page(self, gateway, connection):
        stub = StravaStub([activity(i) for i in range(4)])

        raw = await make_adapter(gateway, stub).fetch_activities("user-1", connection)

        assert len(raw) == 4
        assert len(stub.requests) == 3

    async def test_max_pages(self, gateway, connection):
        stub = StravaStub([activity(i) for i in range(20)])

        raw = await make_adapter(gateway, stub, max_pages=2).fetch_activities("user-1", connection)

        assert len(raw) == 4

    async def test_request_shape(self, gateway, connection):
        stub = StravaStub([])
        after = datetime(2026, 3, 1)

        await make_adapter(gateway, stub).fetch_activities("user-1", connection, after=after)

        request = stub.requests[0]
        assert request.url.path == "/api/v3/athlete/activities"
        assert request.headers["Authorization"] == "Bearer secret-token"
        assert request.url.params["per_page"] == "2"
        expected = int(datetime(2026, 3, 1, tzinfo=timezone.utc).timestamp())
        assert request.url.params["after"] == str(expected)

    async def test_no_after_param_without_cutoff(self, gateway, connection):
        stub = StravaStub([])

        await make_adapter(gateway, stub).fetch_activities("user-1", connection)

        assert "after" not in stub.requests[0].url.params


class TestErrors:

    async def test_malformed_json(self, gateway, connection):
        stub = StravaStub(body=b"<html>oops</html>")

        with pytest.raises(UpstreamError):
            await make_adapter(gateway, stub).fetch_activities("user-1", connection)

    async def test_non_list_body(self, gateway, connection):
        stub = StravaStub(body=json.dumps({"message": "unexpected"}).encode())

        with pytest.raises(UpstreamError):
            await make_adapter(gateway, stub).fetch_activities("user-1", connection)

    async def test_unauthorized(self, gateway, connection):
        stub = StravaStub(status_code=401)

        with pytest.raises(UpstreamError) as exc_info:
            await make_adapter(gateway, stub).fetch_activities("user-1", connection)

        assert exc_info.value.status_code == 401

    async def test_persistent_429_is_rate_limited(self, gateway, sleeper, connection):
        stub = StravaStub(status_code=429)

        with pytest.raises(RateLimited):
            await make_adapter(gateway, stub).fetch_activities("user-1", connection)

        assert len(stub.requests) == 3
        assert sleeper.delays == [1.0, 2.0]


class TestEndToEnd:

    async def test_sync_user_with_strava(self, session_factory, gateway, clock):
        async with session_factory() as db:
            db.add(ProviderConnection(user_id="user-1", provider="strava", access_token="tok"))
            await db.commit()

        start = (clock() - timedelta(days=2)).strftime("%Y-%m-%dT%H:%M:%SZ")
        stub = StravaStub([activity(i, start=start) for i in range(3)] + [{"name": "no id"}])
        orchestrator = SyncOrchestrator(
            session_factory,
            {"strava": make_adapter(gateway, stub, per_page=30)},
            aggregator=MetricsAggregator(clock=clock),
            clock=clock,
        )

        report = await orchestrator.sync_user("user-1")

        assert report.outcomes["strava"].status == SyncStatus.SUCCESS
        assert report.outcomes["strava"].activities_synced == 3
        async with session_factory() as db:
            records = await ActivityRecordRepository(db).get_for_metrics("user-1")
        assert {r.activity_type for r in records} == {"running"}
        assert {r.provider_activity_id for r in records} == {"0", "1", "2"}


class TokenStub:
    """Serves the token endpoint and records the bearer sent for activity pages."""

    def __init__(self, token_status=200):
        self.token_status = token_status
        self.token_forms: list[dict] = []
        self.bearers: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/oauth/token":
            self.token_forms.append(
                {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
            )
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"message": "Bad Request"})
            return httpx.Response(200, json={
                "token_type": "Bearer",
                "access_token": "fresh-token",
                "refresh_token": "fresh-refresh",
                "expires_at": 1900000000,
                "expires_in": 21600,
            })
        self.bearers.append(request.headers["Authorization"])
        return httpx.Response(200, json=[])


class TestTokenRefresh:

    @pytest.fixture
    def assigned(self):
        return CredentialConfig(
            id="cfg-pool-1", client_id="4242", client_secret="pool-secret",
            daily_limit=1000, window_limit=10,
        )

    @pytest.fixture
    def pooled_gateway(self, store, credential, assigned, sleeper):
        lookup = AsyncMock(return_value=assigned)
        return RateLimitedGateway(store, CredentialResolver(lookup, credential), sleep=sleeper)

    def make_adapter(self, gateway, stub, clock, session_factory=None):
        return StravaAdapter(
            gateway,
            api_url=API_URL,
            oauth_url="https://strava.test/oauth/token",
            transport=httpx.MockTransport(stub),
            session_factory=session_factory,
            clock=clock,
        )

    async def expired_connection(self, session_factory, clock):
        expired_at = int(clock().replace(tzinfo=timezone.utc).timestamp()) - 60
        async with session_factory() as db:
            db.add(ProviderConnection(
                user_id="user-1", provider="strava", access_token="stale-token",
                refresh_token="old-refresh", expires_at=expired_at,
            ))
            await db.commit()
            return await ProviderConnectionRepository(db).get_for_provider("user-1", "strava")

    async def test_expired_token_refreshed_with_assigned_credential(
        self, session_factory, pooled_gateway, store, clock
    ):
        connection = await self.expired_connection(session_factory, clock)
        stub = TokenStub()

        await self.make_adapter(pooled_gateway, stub, clock, session_factory).fetch_activities(
            "user-1", connection
        )

        assert stub.token_forms == [{
            "client_id": "4242",
            "client_secret": "pool-secret",
            "refresh_token": "old-refresh",
            "grant_type": "refresh_token",
        }]
        assert stub.bearers == ["Bearer fresh-token"]
        # Refresh and page both billed to the assigned credential
        assert (await store.get_state("cfg-pool-1")).window_requests == 2

        async with session_factory() as db:
            stored = await ProviderConnectionRepository(db).get_for_provider("user-1", "strava")
        assert stored.access_token == "fresh-token"
        assert stored.refresh_token == "fresh-refresh"
        assert stored.expires_at == 1900000000

    async def test_token_near_expiry_is_refreshed(self, pooled_gateway, clock):
        soon = int(clock().replace(tzinfo=timezone.utc).timestamp()) + 120
        connection = ProviderConnection(
            user_id="user-1", provider="strava", access_token="stale-token",
            refresh_token="old-refresh", expires_at=soon,
        )
        stub = TokenStub()

        await self.make_adapter(pooled_gateway, stub, clock).fetch_activities("user-1", connection)

        assert len(stub.token_forms) == 1
        assert connection.access_token == "fresh-token"

    async def test_valid_token_is_not_refreshed(self, pooled_gateway, clock):
        later = int(clock().replace(tzinfo=timezone.utc).timestamp()) + 3600
        connection = ProviderConnection(
            user_id="user-1", provider="strava", access_token="good-token",
            refresh_token="r", expires_at=later,
        )
        stub = TokenStub()

        await self.make_adapter(pooled_gateway, stub, clock).fetch_activities("user-1", connection)

        assert stub.token_forms == []
        assert stub.bearers == ["Bearer good-token"]

    async def test_rejected_refresh_is_upstream_error(self, session_factory, pooled_gateway, clock):
        connection = await self.expired_connection(session_factory, clock)
        stub = TokenStub(token_status=400)

        with pytest.raises(UpstreamError) as exc_info:
            await self.make_adapter(pooled_gateway, stub, clock, session_factory).fetch_activities(
                "user-1", connection
            )

        assert exc_info.value.status_code == 400
        assert stub.bearers == []

    async def test_sync_after_expiry_succeeds(self, session_factory, pooled_gateway, clock):
        await self.expired_connection(session_factory, clock)
        orchestrator = SyncOrchestrator(
            session_factory,
            {"strava": self.make_adapter(pooled_gateway, TokenStub(), clock, session_factory)},
            aggregator=MetricsAggregator(clock=clock),
            clock=clock,
        )

        report = await orchestrator.sync_user("user-1")

        assert report.outcomes["strava"].status == SyncStatus.SUCCESS
