"""
API Router v1

Combines all route modules.
"""

from fastapi import APIRouter

from trailmate.api.v1.routes import matches, sync, quota

api_router = APIRouter()

api_router.include_router(matches.router, tags=["Matching"])
api_router.include_router(sync.router, tags=["Sync"])
api_router.include_router(quota.router, tags=["Quota"])
