"""
Quota Routes

Endpoints:
- GET /quota/{user_id} - Rate limit usage for the user's credential
- POST /admin/credentials/cache/clear - Drop cached credential resolutions
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from trailmate.dependencies import get_credential_resolver, get_gateway
from trailmate.features.quota import CredentialResolver, RateLimitedGateway

router = APIRouter()


@router.get("/quota/{user_id}")
async def get_quota(
    user_id: str,
    gateway: RateLimitedGateway = Depends(get_gateway),
    resolver: CredentialResolver = Depends(get_credential_resolver),
):
    resolution = await resolver.resolve(user_id)
    usage = await gateway.get_usage(resolution.config)
    return {
        **usage.to_dict(),
        "source": resolution.source.value,
        "fallback_reason": resolution.reason.value if resolution.reason else None,
    }


@router.post("/admin/credentials/cache/clear")
async def clear_credential_cache(
    user_id: Optional[str] = Query(default=None, description="Omit to clear every user"),
    resolver: CredentialResolver = Depends(get_credential_resolver),
):
    """Call after reassigning credentials."""
    resolver.clear_cache(user_id)
    return {"cleared": user_id or "all"}
