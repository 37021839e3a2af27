"""
Ambitionly - Sync API
=====================

Manual sync and app lifecycle notifications.
"""

from typing import Optional

from fastapi import APIRouter

from ambitionly.api.deps import EngineDep
from ambitionly.core.schemas import AppStateChange, SyncRequest, SyncResponse

router = APIRouter(tags=["Sync"])


@router.post("/sync", response_model=SyncResponse, summary="Push local state now")
async def sync_now(engine: EngineDep, data: Optional[SyncRequest] = None) -> SyncResponse:
    """
    Push to the account store. ``pushed`` is false when the session is not
    eligible or the push failed; failures never surface as errors.
    """
    force = data.force if data else False
    return SyncResponse(pushed=await engine.sync_now(force=force))


@router.post("/app-state", response_model=SyncResponse, summary="Report app state change")
async def app_state(data: AppStateChange, engine: EngineDep) -> SyncResponse:
    """Resuming from background may trigger a push."""
    return SyncResponse(pushed=await engine.on_app_state_change(data.state))
