from __future__ import annotations

"""
Video source resolution.

Pick one playable variant from a content item's ordered source list for a
granted entitlement and a requesting device.

Steps
-----
1. **Eligibility**: keep sources whose `required_tier` the grant covers and
   whose permission admits the device. Nothing left → `NoEligibleSource`.
2. **Selection**: the eligible source marked default; otherwise the first
   eligible HLS, then iframe, then MP4 source in list order.
3. **Quality** (MP4 only): the hint if offered, else the source's default
   quality, else the nearest rung on 480p/720p/1080p, preferring the lower
   rung on ties. An MP4 source with no quality URLs is dropped and selection
   runs again on what remains.

The resolver never falls back to a source above the granted tier.
"""

import logging
from typing import Iterable, List, Optional, Tuple

from streampass.core.exceptions import NoEligibleSource, NotEntitled
from streampass.schemas.enums import DeviceKind, Quality, SourceKind
from streampass.schemas.playback import PlaybackDescriptor
from streampass.schemas.policy import Entitlement, VideoSource, validate_source_list

logger = logging.getLogger(__name__)

# Adaptive and embedded playback before fixed-quality files.
_KIND_RANK = {SourceKind.HLS: 0, SourceKind.IFRAME: 1, SourceKind.MP4: 2}

_Candidate = Tuple[int, VideoSource]


def resolve_quality(
    available: Iterable[Quality],
    hint: Optional[Quality],
    default: Quality,
) -> Optional[Quality]:
    """Choose an MP4 quality from the rungs a source offers; None if it offers none."""
    offered = set(available)
    if not offered:
        return None
    if hint is not None and hint in offered:
        return hint
    if default in offered:
        return default

    ladder = Quality.ladder()
    target = ladder.index(hint if hint is not None else default)
    for distance in range(1, len(ladder)):
        for idx in (target - distance, target + distance):
            if 0 <= idx < len(ladder) and ladder[idx] in offered:
                return ladder[idx]
    return None


class SourceResolver:
    def resolve(
        self,
        sources: Iterable[VideoSource],
        entitlement: Entitlement,
        device: DeviceKind,
        quality_hint: Optional[Quality] = None,
    ) -> PlaybackDescriptor:
        if not entitlement.granted or entitlement.granted_tier is None:
            raise NotEntitled()
        granted_tier = entitlement.granted_tier

        items = validate_source_list(sources)
        candidates: List[_Candidate] = [
            (idx, s)
            for idx, s in enumerate(items)
            if granted_tier.covers(s.required_tier) and s.permission.allows(device)
        ]

        while candidates:
            position, source = self._select(candidates)
            descriptor = self._describe(source, entitlement, quality_hint)
            if descriptor is not None:
                return descriptor
            logger.warning("Source %s (%s) has no quality urls; skipping", source.id, source.server_label)
            candidates = [c for c in candidates if c[0] != position]

        raise NoEligibleSource(
            details={
                "device": device.value,
                "granted_tier": granted_tier.value,
                "source_count": len(items),
            }
        )

    @staticmethod
    def _select(candidates: List[_Candidate]) -> _Candidate:
        for candidate in candidates:
            if candidate[1].is_default:
                return candidate
        return min(candidates, key=lambda c: (_KIND_RANK[c[1].kind], c[0]))

    @staticmethod
    def _describe(
        source: VideoSource,
        entitlement: Entitlement,
        quality_hint: Optional[Quality],
    ) -> Optional[PlaybackDescriptor]:
        quality: Optional[Quality] = None
        if source.kind is SourceKind.MP4:
            quality = resolve_quality(source.quality_urls.keys(), quality_hint, source.default_quality)
            if quality is None:
                return None
            url = source.quality_urls[quality]
        else:
            url = source.url or ""

        return PlaybackDescriptor(
            kind=source.kind,
            url=url,
            quality=quality,
            basis=entitlement.basis,
            remaining_days=entitlement.remaining_days,
            source_id=source.id,
            server_label=source.server_label,
        )


__all__ = ["SourceResolver", "resolve_quality"]
