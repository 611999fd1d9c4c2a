from __future__ import annotations

"""
Playback resolution
===================

The one public engine operation: resolve playback for (viewer, content, device,
quality hint, device session).

Pipeline
--------
1. Load the effective policy, the viewer's subscription, and their rental.
2. Evaluate the entitlement; refuse with `NotEntitled` when nothing grants it.
3. On a rental basis, admit the device session against the rental's cap.
4. Resolve a source for the granted tier and device.
5. Sign the descriptor with a short-lived access token.

Every stage's failure is terminal and propagates; nothing is retried here. If
step 4 fails after step 3 took a *new* slot, that slot is released before the
error propagates. A re-admitted session is left as it was.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from streampass.core.exceptions import AppException, NoEligibleSource, NotEntitled
from streampass.repositories.catalog import CatalogRepositoryProtocol
from streampass.repositories.commerce import CommerceRepositoryProtocol
from streampass.schemas.enums import DeviceKind, EntitlementBasis, Quality
from streampass.schemas.playback import PlaybackDescriptor
from streampass.services.device_ledger import AdmitResult, DeviceSessionLedger
from streampass.services.entitlements import EntitlementEvaluator, utcnow
from streampass.services.signing import issue_playback_token
from streampass.services.source_resolver import SourceResolver

logger = logging.getLogger(__name__)


class PlaybackResolutionFacade:
    def __init__(
        self,
        catalog: CatalogRepositoryProtocol,
        commerce: CommerceRepositoryProtocol,
        ledger: DeviceSessionLedger,
        *,
        evaluator: Optional[EntitlementEvaluator] = None,
        resolver: Optional[SourceResolver] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._catalog = catalog
        self._commerce = commerce
        self._ledger = ledger
        self._evaluator = evaluator or EntitlementEvaluator(clock)
        self._resolver = resolver or SourceResolver()
        self._clock = clock

    async def resolve_playback(
        self,
        viewer_id: str,
        content_id: str,
        device: DeviceKind,
        *,
        device_session_id: str,
        quality_hint: Optional[Quality] = None,
        episode_id: Optional[str] = None,
    ) -> PlaybackDescriptor:
        now = self._clock()

        # ── [Step 1] External reads ──────────────────────────────
        policy = await self._catalog.get_policy(content_id, episode_id)
        if policy is None:
            raise NoEligibleSource(
                "Content not found",
                details={"content_id": content_id, "episode_id": episode_id},
            )
        subscription = await self._commerce.get_subscription(viewer_id)
        rental = await self._commerce.get_rental(viewer_id, content_id)

        # ── [Step 2] Entitlement ─────────────────────────────────
        entitlement = self._evaluator.evaluate(policy, subscription, rental, now=now)
        if not entitlement.granted:
            logger.info("Playback refused viewer=%s content=%s tier=%s", viewer_id, content_id, policy.tier.value)
            raise NotEntitled(details={"content_id": content_id, "tier": policy.tier.value})

        # ── [Step 3] Device slot (rentals only) ──────────────────
        admission: Optional[AdmitResult] = None
        if entitlement.basis is EntitlementBasis.RENTAL and rental is not None:
            admission = await self._ledger.admit(rental, device_session_id, now=now)

        # ── [Step 4] Source, then [Step 5] access token ──────────
        try:
            sources = await self._catalog.list_sources(content_id, episode_id)
            descriptor = self._resolver.resolve(sources, entitlement, device, quality_hint)
            token = issue_playback_token(
                viewer_id=viewer_id,
                content_id=content_id,
                episode_id=episode_id,
                source_id=descriptor.source_id,
                now=now.timestamp(),
            )
        except AppException:
            if admission is not None and admission.newly_admitted and rental is not None:
                await self._release_quietly(rental, device_session_id)
            raise
        logger.info(
            "Playback resolved viewer=%s content=%s episode=%s basis=%s kind=%s quality=%s",
            viewer_id,
            content_id,
            episode_id,
            entitlement.basis.value,
            descriptor.kind.value,
            descriptor.quality.value if descriptor.quality else "-",
        )
        return descriptor.model_copy(update={"access_token": token.token, "expires_at": token.expires_at})

    async def release_playback(self, viewer_id: str, content_id: str, device_session_id: str) -> bool:
        """Free a device slot held against the viewer's rental of `content_id`."""
        rental = await self._commerce.get_rental(viewer_id, content_id)
        if rental is None:
            return False
        return await self._ledger.release(rental, device_session_id)

    async def _release_quietly(self, rental, device_session_id: str) -> None:
        # The resolution error is what the caller needs to see.
        try:
            await self._ledger.release(rental, device_session_id)
        except AppException:
            logger.exception("Could not release device slot rental=%s", rental.id)


__all__ = ["PlaybackResolutionFacade"]
