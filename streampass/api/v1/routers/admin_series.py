"""
StreamPass · Admin Series Access
================================

Endpoints (admin role via the trusted `x-user-role` header)
-----------------------------------------------------------
- POST /admin/series/{series_id}/access : Change a series' access tier and
                                          cascade it to every episode

Errors
------
- `CASCADE_IN_PROGRESS` (409): another change for the series is running
- `CASCADE_INCOMPLETE` (503): partially applied; re-send the same request
- `POLICY_INVALID` (422): e.g. moving to `rent` without rental terms
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path, Response

from streampass.api.deps import get_cascade_coordinator, require_admin
from streampass.schemas.playback import CascadeResult, CascadeTierInput
from streampass.services.access_cascade import AccessCascadeCoordinator

router = APIRouter(tags=["Admin Series"])


@router.post(
    "/admin/series/{series_id}/access",
    response_model=CascadeResult,
    summary="Cascade a series access tier",
)
async def change_series_access(
    payload: CascadeTierInput,
    response: Response,
    series_id: str = Path(..., min_length=1, max_length=128),
    _admin: str = Depends(require_admin),
    coordinator: AccessCascadeCoordinator = Depends(get_cascade_coordinator),
) -> CascadeResult:
    result = await coordinator.cascade_tier_change(series_id, payload.tier)
    response.headers["Cache-Control"] = "no-store"
    return result
