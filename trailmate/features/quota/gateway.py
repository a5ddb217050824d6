"""
Rate-limited gateway for outbound provider API calls.

Every Strava request goes through RateLimitedGateway.invoke:

1. take a slot from the QuotaStore (refuse locally when the window or day
   budget is spent, without touching the network)
2. dispatch the request
3. on HTTP 429, wait (Retry-After header, else exponential backoff) and try
   again with a fresh slot, up to `max_attempts` in total
4. any other failure surfaces as UpstreamError without retry

Quota is consumed per attempt and never refunded, so failed requests still
count against the budget.
"""

import asyncio
import logging
import math
from typing import Awaitable, Callable, Optional

import httpx

from .resolver import CredentialResolver
from .state import CredentialConfig, QuotaUsage
from .store import QuotaStore

logger = logging.getLogger(__name__)

RequestFn = Callable[[], Awaitable[httpx.Response]]
Sleeper = Callable[[float], Awaitable[None]]


# =============================================================================
# Exceptions
# =============================================================================

class GatewayError(Exception):
    """Base gateway error."""
    pass


class RateLimited(GatewayError):
    """Local budget exhausted or provider throttling persisted past retries."""

    def __init__(self, retry_after_seconds: int, credential_id: Optional[str] = None):
        self.retry_after_seconds = retry_after_seconds
        self.credential_id = credential_id
        super().__init__(f"Rate limited. Try again in {retry_after_seconds} seconds")


class UpstreamError(GatewayError):
    """Provider returned a non-throttling error, or the transport failed."""

    def __init__(self, cause: object, status_code: Optional[int] = None):
        self.cause = cause
        self.status_code = status_code
        if status_code is not None:
            message = f"Upstream error {status_code}: {cause}"
        else:
            message = f"Upstream error: {cause}"
        super().__init__(message)


# =============================================================================
# Gateway
# =============================================================================

class RateLimitedGateway:
    """
    Quota-enforcing broker for provider API calls.

    Usage:
        gateway = RateLimitedGateway(store, resolver)
        response = await gateway.invoke_for_user(
            user_id,
            lambda: client.get(url, headers=headers),
        )
    """

    def __init__(
        self,
        store: QuotaStore,
        resolver: Optional[CredentialResolver] = None,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        sleep: Sleeper = asyncio.sleep,
    ):
        self.store = store
        self.resolver = resolver
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.sleep = sleep

    async def invoke(self, credential: CredentialConfig, request_fn: RequestFn) -> httpx.Response:
        """
        Send `request_fn` billed to `credential`.

        Raises:
            RateLimited: local budget exhausted, or provider kept returning 429
            UpstreamError: any other provider or transport failure
        """
        delay = self.base_delay

        for attempt in range(self.max_attempts):
            decision = await self.store.consume(credential)
            if not decision.allowed:
                raise RateLimited(decision.retry_after_seconds, credential.id)

            response = await self._dispatch(request_fn)

            if response.status_code == 429:
                delay = self._retry_delay(response, attempt)
                if attempt < self.max_attempts - 1:
                    logger.info(
                        f"Provider throttled credential {credential.id}, retrying in "
                        f"{delay:.1f}s (attempt {attempt + 1}/{self.max_attempts})"
                    )
                    # No quota lock is held while waiting
                    await self.sleep(delay)
                continue

            if response.status_code >= 400:
                raise UpstreamError(_error_detail(response), response.status_code)

            return response

        await self.store.mark_throttled(credential.id, delay)
        raise RateLimited(math.ceil(delay), credential.id)

    async def invoke_for_user(self, user_id: Optional[str], request_fn: RequestFn) -> httpx.Response:
        """Resolve the user's credential (falling back to the default) and invoke."""
        credential = await self.resolve_credential(user_id)
        return await self.invoke(credential, request_fn)

    async def resolve_credential(self, user_id: Optional[str]) -> CredentialConfig:
        if self.resolver is None:
            raise RuntimeError("Gateway has no CredentialResolver configured")
        resolution = await self.resolver.resolve(user_id)
        return resolution.config

    async def get_usage(self, credential: CredentialConfig) -> QuotaUsage:
        return await self.store.get_usage(credential)

    async def _dispatch(self, request_fn: RequestFn) -> httpx.Response:
        # Shielded: if the caller is cancelled the request still completes, so
        # the consumed slot always corresponds to a request that was sent
        task = asyncio.ensure_future(request_fn())
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            task.add_done_callback(_log_abandoned_result)
            raise
        except httpx.HTTPError as e:
            raise UpstreamError(e) from e

    def _retry_delay(self, response: httpx.Response, attempt: int) -> float:
        header = response.headers.get("Retry-After")
        if header:
            try:
                return max(0.0, float(header))
            except ValueError:
                logger.debug(f"Ignoring non-numeric Retry-After header: {header!r}")
        return self.base_delay * (2 ** attempt)


def _log_abandoned_result(task: "asyncio.Future[httpx.Response]") -> None:
    """Retrieve the outcome of a request whose caller was cancelled."""
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.warning(f"Request abandoned by a cancelled caller failed: {error!r}")


def _error_detail(response: httpx.Response) -> str:
    text = response.text
    return text[:200] if text else response.reason_phrase
