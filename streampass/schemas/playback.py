from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, constr

from streampass.schemas.enums import AccessTier, DeviceKind, EntitlementBasis, Quality, SourceKind


class PlaybackDescriptor(BaseModel):
    """What the client should request next to begin playback."""

    model_config = ConfigDict(frozen=True)

    kind: SourceKind
    url: str
    quality: Optional[Quality] = None
    basis: EntitlementBasis
    remaining_days: Optional[int] = None
    source_id: str
    server_label: str = ""
    access_token: Optional[str] = None
    expires_at: Optional[int] = Field(None, description="Epoch seconds when access_token stops being valid")


class ResolvePlaybackInput(BaseModel):
    content_id: constr(strip_whitespace=True, min_length=1, max_length=128)
    episode_id: Optional[constr(strip_whitespace=True, min_length=1, max_length=128)] = None
    device: DeviceKind
    quality: Optional[Quality] = None
    device_session_id: constr(strip_whitespace=True, min_length=2, max_length=128)


class ReleasePlaybackInput(BaseModel):
    content_id: constr(strip_whitespace=True, min_length=1, max_length=128)
    device_session_id: constr(strip_whitespace=True, min_length=2, max_length=128)


class CascadeTierInput(BaseModel):
    tier: AccessTier


class CascadeResult(BaseModel):
    """Outcome of a completed tier cascade. Counts cover this run only."""

    series_id: str
    tier: AccessTier
    episodes_updated: int = 0
    episodes_unchanged: int = 0
    parent_updated: bool = False

    @computed_field  # type: ignore[misc]
    @property
    def updated_count(self) -> int:
        return self.episodes_updated + int(self.parent_updated)
