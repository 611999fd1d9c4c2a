from __future__ import annotations

"""
Central enum definitions used across StreamPass.

Design notes
------------
• All enums subclass `str, PyEnum` for JSON-friendly serialization.
• VALUE STRINGS are **stable** once deployed (DB enums depend on them).
• `AccessTier` carries an explicit rank; compare tiers with `rank`, never by
  string order.
"""

from enum import Enum as PyEnum
from typing import List


# ──────────────────────────────────────────────────────────────
# Access & commerce
# ──────────────────────────────────────────────────────────────
class AccessTier(str, PyEnum):
    """Commercial tier of a title, episode, or video source (Free < Rent < Vip)."""
    FREE = "free"
    RENT = "rent"
    VIP = "vip"

    @property
    def rank(self) -> int:
        return _TIER_RANK[self]

    def covers(self, required: "AccessTier") -> bool:
        """True when a grant at this tier may use something requiring `required`."""
        return self.rank >= required.rank


_TIER_RANK = {AccessTier.FREE: 0, AccessTier.RENT: 1, AccessTier.VIP: 2}


class EntitlementBasis(str, PyEnum):
    """Why a viewer may (or may not) play a title."""
    FREE = "free"
    SUBSCRIPTION = "subscription"
    RENTAL = "rental"
    NONE = "none"


class PaymentStatus(str, PyEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class ContentType(str, PyEnum):
    MOVIE = "movie"
    SERIES = "series"
    ANIME = "anime"


# ──────────────────────────────────────────────────────────────
# Sources & devices
# ──────────────────────────────────────────────────────────────
class SourcePermission(str, PyEnum):
    """Which client platforms may use a source."""
    WEB_AND_MOBILE = "web_and_mobile"
    WEB_ONLY = "web_only"
    MOBILE_ONLY = "mobile_only"

    def allows(self, device: "DeviceKind") -> bool:
        if self is SourcePermission.WEB_AND_MOBILE:
            return True
        if self is SourcePermission.WEB_ONLY:
            return device is DeviceKind.WEB
        return device is DeviceKind.MOBILE


class SourceKind(str, PyEnum):
    """Playback mechanism of a source."""
    IFRAME = "iframe"
    MP4 = "mp4"
    HLS = "hls"


class DeviceKind(str, PyEnum):
    WEB = "web"
    MOBILE = "mobile"


class Quality(str, PyEnum):
    """Progressive MP4 quality rungs, lowest first."""
    P480 = "480p"
    P720 = "720p"
    P1080 = "1080p"

    @classmethod
    def ladder(cls) -> List["Quality"]:
        return [cls.P480, cls.P720, cls.P1080]


__all__ = [
    "AccessTier",
    "EntitlementBasis",
    "PaymentStatus",
    "ContentType",
    "SourcePermission",
    "SourceKind",
    "DeviceKind",
    "Quality",
]
