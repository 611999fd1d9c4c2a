from __future__ import annotations

"""
Access cascade
==============

Propagates a series' new access tier to every episode of every season, then to
the series itself.

Rules
-----
• One cascade per series at a time: a per-series Redis lock is taken without
  waiting; a second request gets `CascadeInProgress`.
• Episodes are written first and the parent last, so the series only reports
  the new tier once every descendant carries it.
• Rows already at the target tier are skipped, so re-running the same cascade
  after a failure finishes the remaining rows and is otherwise a no-op.
• A store failure part-way raises `CascadeIncomplete` with the number of rows
  written in this run. Nothing is rolled back; the caller retries.
"""

import logging
from typing import Optional

from pydantic import ValidationError
from redis.exceptions import RedisError

from streampass.core.config import settings
from streampass.core.exceptions import (
    CascadeIncomplete,
    CascadeInProgress,
    PolicyValidationError,
    UpstreamUnavailable,
)
from streampass.core.redis_client import RedisClient, redis_wrapper
from streampass.repositories.base import STORE_ERRORS
from streampass.repositories.catalog import CatalogRepositoryProtocol
from streampass.schemas.enums import AccessTier
from streampass.schemas.playback import CascadeResult
from streampass.schemas.policy import ContentPolicy

logger = logging.getLogger(__name__)


def _check_target(policy: ContentPolicy, tier: AccessTier) -> None:
    data = policy.model_dump()
    data["tier"] = tier
    if tier is AccessTier.FREE:
        data["exclude_from_plan"] = False
    try:
        ContentPolicy.model_validate(data)
    except ValidationError as e:
        raise PolicyValidationError(
            f"Cannot move content to tier '{tier.value}'",
            details={"content_id": policy.content_id, "errors": [err["msg"] for err in e.errors()]},
        ) from e


class AccessCascadeCoordinator:
    def __init__(
        self,
        catalog: CatalogRepositoryProtocol,
        *,
        redis: RedisClient = redis_wrapper,
        lock_timeout: Optional[int] = None,
    ) -> None:
        self._catalog = catalog
        self._redis = redis
        self._lock_timeout = lock_timeout or settings.CASCADE_LOCK_TIMEOUT_SECONDS

    @staticmethod
    def lock_name(series_id: str) -> str:
        return settings.redis_key("cascade", series_id, "lock")

    async def cascade_tier_change(self, series_id: str, new_tier: AccessTier) -> CascadeResult:
        entered = False
        try:
            async with self._redis.lock(
                self.lock_name(series_id),
                timeout=self._lock_timeout,
                blocking_timeout=0,
            ):
                entered = True
                return await self._apply(series_id, new_tier)
        except TimeoutError as e:
            if entered:
                raise
            logger.info("Cascade already running series=%s", series_id)
            raise CascadeInProgress(series_id=series_id) from e
        except RedisError as e:
            if entered:
                raise
            raise UpstreamUnavailable("Lock store unavailable", details={"store": "redis"}) from e

    async def _apply(self, series_id: str, new_tier: AccessTier) -> CascadeResult:
        policy = await self._catalog.get_policy(series_id)
        if policy is None:
            raise PolicyValidationError("Unknown series", details={"series_id": series_id})
        _check_target(policy, new_tier)

        episodes = await self._catalog.list_series_episodes(series_id)
        updated = unchanged = 0
        try:
            for ep in episodes:
                if ep.tier is new_tier:
                    unchanged += 1
                elif await self._catalog.set_episode_tier(ep.episode_id, new_tier):
                    updated += 1
                else:
                    unchanged += 1
            parent_updated = await self._catalog.set_content_tier(series_id, new_tier)
        except (UpstreamUnavailable, *STORE_ERRORS) as e:
            logger.error(
                "Cascade incomplete series=%s tier=%s updated=%s of %s episodes",
                series_id, new_tier.value, updated, len(episodes),
            )
            raise CascadeIncomplete(series_id=series_id, updated_count=updated) from e

        result = CascadeResult(
            series_id=series_id,
            tier=new_tier,
            episodes_updated=updated,
            episodes_unchanged=unchanged,
            parent_updated=parent_updated,
        )
        logger.info(
            "Cascade applied series=%s tier=%s episodes_updated=%s unchanged=%s parent_updated=%s",
            series_id, new_tier.value, updated, unchanged, parent_updated,
        )
        return result


__all__ = ["AccessCascadeCoordinator"]
