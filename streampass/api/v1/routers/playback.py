"""
StreamPass · Playback
=====================

Endpoints (viewer identity from the trusted `x-user-id` header)
---------------------------------------------------------------
- POST /playback/resolve : Decide entitlement, take a device slot for rentals,
                           and return the source to play with an access token
- POST /playback/release : Free the device slot held by a session

Refusals come back as problem+json with a stable `code`:
`NOT_ENTITLED` (403), `DEVICE_LIMIT_EXCEEDED` (409), `NO_ELIGIBLE_SOURCE` (404),
`UPSTREAM_UNAVAILABLE` (503).
"""

from __future__ import annotations

from typing import Dict

from fastapi import APIRouter, Depends, Response

from streampass.api.deps import get_playback_facade, get_viewer_id
from streampass.schemas.playback import PlaybackDescriptor, ReleasePlaybackInput, ResolvePlaybackInput
from streampass.services.playback import PlaybackResolutionFacade

router = APIRouter(tags=["Playback"])


@router.post("/playback/resolve", response_model=PlaybackDescriptor, summary="Resolve playback")
async def resolve_playback(
    payload: ResolvePlaybackInput,
    response: Response,
    viewer_id: str = Depends(get_viewer_id),
    facade: PlaybackResolutionFacade = Depends(get_playback_facade),
) -> PlaybackDescriptor:
    descriptor = await facade.resolve_playback(
        viewer_id,
        payload.content_id,
        payload.device,
        device_session_id=payload.device_session_id,
        quality_hint=payload.quality,
        episode_id=payload.episode_id,
    )
    response.headers["Cache-Control"] = "no-store"
    return descriptor


@router.post("/playback/release", summary="Release a device slot")
async def release_playback(
    payload: ReleasePlaybackInput,
    viewer_id: str = Depends(get_viewer_id),
    facade: PlaybackResolutionFacade = Depends(get_playback_facade),
) -> Dict[str, bool]:
    released = await facade.release_playback(viewer_id, payload.content_id, payload.device_session_id)
    return {"released": released}
