from __future__ import annotations

"""
Policy model: access tiers, rental terms, video sources, viewer commerce state.

These are plain data definitions. Validation here is the write-time gate used
by the content-editing workflow (`CatalogRepository.save_policy` /
`save_sources`), so the playback-time services can assume well-formed input.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from streampass.core.config import settings
from streampass.core.exceptions import PolicyValidationError
from streampass.schemas.enums import (
    AccessTier,
    EntitlementBasis,
    PaymentStatus,
    Quality,
    SourceKind,
    SourcePermission,
)


class ContentPolicy(BaseModel):
    """Access policy of one content item (movie, series, anime, or episode override)."""

    model_config = ConfigDict(frozen=True)

    content_id: str
    tier: AccessTier = AccessTier.FREE
    rental_price: Optional[Decimal] = None
    rental_period_days: Optional[int] = None
    rental_max_devices: int = Field(default_factory=lambda: settings.RENTAL_DEFAULT_MAX_DEVICES, ge=1)
    exclude_from_plan: bool = False

    @field_validator("rental_max_devices", mode="before")
    @classmethod
    def _default_max_devices(cls, v):
        return settings.RENTAL_DEFAULT_MAX_DEVICES if v is None else v

    @model_validator(mode="after")
    def _check_tier_rules(self) -> "ContentPolicy":
        if self.tier is AccessTier.FREE and self.exclude_from_plan:
            raise ValueError("free content cannot be excluded from the plan")
        if self.tier is AccessTier.RENT:
            if self.rental_price is None or self.rental_price <= 0:
                raise ValueError("rent tier requires rental_price > 0")
            if self.rental_period_days is None or self.rental_period_days < 1:
                raise ValueError("rent tier requires rental_period_days >= 1")
        return self

    def with_tier(self, tier: AccessTier) -> "ContentPolicy":
        """Copy carrying an episode-level tier override (rental terms stay the parent's)."""
        return self.model_copy(update={"tier": tier})


class VideoSource(BaseModel):
    """One playable source of a title or episode, in catalog order."""

    model_config = ConfigDict(frozen=True)

    id: str
    server_label: str = ""
    required_tier: AccessTier = AccessTier.FREE
    permission: SourcePermission = SourcePermission.WEB_AND_MOBILE
    kind: SourceKind
    url: Optional[str] = None
    quality_urls: Dict[Quality, str] = Field(default_factory=dict)
    default_quality: Quality = Quality.P720
    is_default: bool = False

    @model_validator(mode="after")
    def _check_locator(self) -> "VideoSource":
        if self.kind in (SourceKind.IFRAME, SourceKind.HLS) and not (self.url or "").strip():
            raise ValueError(f"{self.kind.value} source requires a url")
        return self


def validate_source_list(sources: Iterable[VideoSource]) -> list[VideoSource]:
    """
    Enforce list-level invariants before sources are stored.

    - at most one `is_default=True`
    - unique source ids
    """
    items = list(sources)
    defaults = [s.id for s in items if s.is_default]
    if len(defaults) > 1:
        raise PolicyValidationError(
            "At most one video source may be marked default",
            details={"default_source_ids": defaults},
        )
    seen: set[str] = set()
    for s in items:
        if s.id in seen:
            raise PolicyValidationError("Duplicate video source id", details={"source_id": s.id})
        seen.add(s.id)
    return items


def as_utc(dt: datetime) -> datetime:
    """Attach UTC to a naive datetime; aware values pass through unchanged."""
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


class SubscriptionState(BaseModel):
    model_config = ConfigDict(frozen=True)

    active: bool = False
    expires_at: Optional[datetime] = None

    @field_validator("expires_at")
    @classmethod
    def _expires_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return None if v is None else as_utc(v)


class RentalRecord(BaseModel):
    """
    A purchased rental. `max_devices` is copied from the policy at purchase and
    never changes afterwards; live device sessions are tracked by the ledger.
    Expired records are kept for history.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    viewer_id: str
    content_id: str
    starts_at: datetime
    ends_at: datetime
    payment_status: PaymentStatus = PaymentStatus.PENDING
    max_devices: int = Field(1, ge=1)
    rental_price: Optional[Decimal] = None

    @field_validator("starts_at", "ends_at")
    @classmethod
    def _window_utc(cls, v: datetime) -> datetime:
        return as_utc(v)

    def is_active(self, now: datetime) -> bool:
        return self.payment_status is PaymentStatus.COMPLETED and as_utc(now) < self.ends_at


class EpisodeRef(BaseModel):
    """An episode of a series as seen by the access cascade."""

    model_config = ConfigDict(frozen=True)

    episode_id: str
    season_number: int
    episode_number: int
    tier: Optional[AccessTier] = None


class Entitlement(BaseModel):
    """Computed verdict; never persisted."""

    model_config = ConfigDict(frozen=True)

    granted: bool
    basis: EntitlementBasis = EntitlementBasis.NONE
    granted_tier: Optional[AccessTier] = None
    rental_record_id: Optional[str] = None
    remaining_days: Optional[int] = None

    @classmethod
    def denied(cls) -> "Entitlement":
        return cls(granted=False, basis=EntitlementBasis.NONE)


__all__ = [
    "as_utc",
    "ContentPolicy",
    "VideoSource",
    "validate_source_list",
    "SubscriptionState",
    "RentalRecord",
    "EpisodeRef",
    "Entitlement",
]
