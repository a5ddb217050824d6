"""
Sync Routes

Endpoints:
- POST /sync/{user_id} - Sync all connected providers
- DELETE /sync/{user_id}/{provider} - Disconnect a provider
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from trailmate.dependencies import get_sync_orchestrator
from trailmate.features.sync import SyncOrchestrator

router = APIRouter()


@router.post("/sync/{user_id}")
async def sync_user(
    user_id: str,
    force_refresh: bool = Query(default=False),
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    """
    Sync every active provider connection.

    Always 200: per-provider failures are reported in the body.
    """
    report = await orchestrator.sync_user(user_id, force_refresh=force_refresh)
    return report.to_dict()


@router.delete("/sync/{user_id}/{provider}")
async def disconnect_provider(
    user_id: str,
    provider: str,
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    if not await orchestrator.disconnect(user_id, provider):
        raise HTTPException(status_code=404, detail="No active connection")
    return {"user_id": user_id, "provider": provider, "disconnected": True}
