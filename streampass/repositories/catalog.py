from __future__ import annotations

"""Catalog repository: access policies, video sources, and series structure.

Provides an interface plus an in-memory implementation (default; used by
tests) and a SQLAlchemy implementation over the `titles` / `seasons` /
`episodes` / `video_sources` tables.

Reads return validated `streampass.schemas.policy` models. Writes are the
content-editing workflow's entry point, so policy and source-list validation
happens here, before anything reaches the playback resolver.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from streampass.core.config import settings
from streampass.core.exceptions import PolicyValidationError, UpstreamUnavailable
from streampass.db.models import Episode, Season, Title
from streampass.db.models import VideoSource as VideoSourceRow
from streampass.db.session import get_session_maker, transactional_async_session
from streampass.repositories.base import import_string, store_call
from streampass.schemas.enums import AccessTier
from streampass.schemas.policy import (
    ContentPolicy,
    EpisodeRef,
    VideoSource,
    validate_source_list,
)

logger = logging.getLogger(__name__)


class CatalogRepositoryProtocol:
    async def get_policy(self, content_id: str, episode_id: Optional[str] = None) -> Optional[ContentPolicy]:
        """Effective policy; an episode's own tier wins over its series' tier."""
        raise NotImplementedError

    async def list_sources(self, content_id: str, episode_id: Optional[str] = None) -> List[VideoSource]:
        raise NotImplementedError

    async def list_series_episodes(self, series_id: str) -> List[EpisodeRef]:
        raise NotImplementedError

    async def set_episode_tier(self, episode_id: str, tier: AccessTier) -> bool:
        """Write one episode's tier. Returns False when it already had it."""
        raise NotImplementedError

    async def set_content_tier(self, content_id: str, tier: AccessTier) -> bool:
        raise NotImplementedError

    async def save_policy(self, policy: ContentPolicy) -> ContentPolicy:
        raise NotImplementedError

    async def save_sources(
        self,
        content_id: str,
        sources: Iterable[VideoSource],
        *,
        episode_id: Optional[str] = None,
    ) -> List[VideoSource]:
        raise NotImplementedError


def _tier_change(policy: ContentPolicy, tier: AccessTier) -> ContentPolicy:
    # Free content is never excluded from the plan.
    update_fields = {"tier": tier}
    if tier is AccessTier.FREE:
        update_fields["exclude_from_plan"] = False
    return policy.model_copy(update=update_fields)


# ──────────────────────────────────────────────────────────────
# 🧠 In-memory implementation
# ──────────────────────────────────────────────────────────────
@dataclass
class _MemoryEpisode:
    id: str
    series_id: str
    season_number: int
    episode_number: int
    tier: Optional[AccessTier] = None


class MemoryCatalogRepository(CatalogRepositoryProtocol):
    """
    Dict-backed catalog.

    Test hooks:
      - `unavailable = True` makes every call raise `UpstreamUnavailable`.
      - `fail_writes_after(n)` lets `n` more writes succeed, then fails the rest
        until `heal()` is called.
    """

    def __init__(self) -> None:
        self._policies: Dict[str, ContentPolicy] = {}
        self._episodes: Dict[str, _MemoryEpisode] = {}
        self._sources: Dict[Tuple[str, Optional[str]], List[VideoSource]] = {}
        self._write_budget: Optional[int] = None
        self.unavailable = False

    # Helpers
    def fail_writes_after(self, n: int) -> None:
        self._write_budget = n

    def heal(self) -> None:
        self._write_budget = None
        self.unavailable = False

    def add_policy(self, policy: ContentPolicy) -> ContentPolicy:
        self._policies[policy.content_id] = policy
        return policy

    def add_sources(
        self,
        content_id: str,
        sources: Iterable[VideoSource],
        *,
        episode_id: Optional[str] = None,
    ) -> List[VideoSource]:
        items = validate_source_list(sources)
        self._sources[(content_id, episode_id)] = items
        return list(items)

    def add_episode(
        self,
        series_id: str,
        *,
        episode_id: str,
        season_number: int,
        episode_number: int,
        tier: Optional[AccessTier] = None,
    ) -> EpisodeRef:
        self._episodes[episode_id] = _MemoryEpisode(
            id=episode_id,
            series_id=series_id,
            season_number=season_number,
            episode_number=episode_number,
            tier=tier,
        )
        return self._ref(self._episodes[episode_id])

    def _check_available(self) -> None:
        if self.unavailable:
            raise UpstreamUnavailable("Catalog store unavailable", details={"store": "catalog"})

    def _spend_write(self) -> None:
        self._check_available()
        if self._write_budget is None:
            return
        if self._write_budget <= 0:
            raise UpstreamUnavailable("Catalog store unavailable", details={"store": "catalog"})
        self._write_budget -= 1

    @staticmethod
    def _ref(ep: _MemoryEpisode) -> EpisodeRef:
        return EpisodeRef(
            episode_id=ep.id,
            season_number=ep.season_number,
            episode_number=ep.episode_number,
            tier=ep.tier,
        )

    # Interface
    async def get_policy(self, content_id: str, episode_id: Optional[str] = None) -> Optional[ContentPolicy]:
        self._check_available()
        policy = self._policies.get(content_id)
        if policy is None or episode_id is None:
            return policy
        ep = self._episodes.get(episode_id)
        if ep is None or ep.series_id != content_id:
            return None
        if ep.tier is not None and ep.tier is not policy.tier:
            return policy.with_tier(ep.tier)
        return policy

    async def list_sources(self, content_id: str, episode_id: Optional[str] = None) -> List[VideoSource]:
        self._check_available()
        return list(self._sources.get((content_id, episode_id), []))

    async def list_series_episodes(self, series_id: str) -> List[EpisodeRef]:
        self._check_available()
        eps = [e for e in self._episodes.values() if e.series_id == series_id]
        eps.sort(key=lambda e: (e.season_number, e.episode_number))
        return [self._ref(e) for e in eps]

    async def set_episode_tier(self, episode_id: str, tier: AccessTier) -> bool:
        ep = self._episodes.get(episode_id)
        if ep is None or ep.tier is tier:
            return False
        self._spend_write()
        ep.tier = tier
        return True

    async def set_content_tier(self, content_id: str, tier: AccessTier) -> bool:
        policy = self._policies.get(content_id)
        if policy is None or policy.tier is tier:
            return False
        self._spend_write()
        self._policies[content_id] = _tier_change(policy, tier)
        return True

    async def save_policy(self, policy: ContentPolicy) -> ContentPolicy:
        self._spend_write()
        self._policies[policy.content_id] = policy
        return policy

    async def save_sources(
        self,
        content_id: str,
        sources: Iterable[VideoSource],
        *,
        episode_id: Optional[str] = None,
    ) -> List[VideoSource]:
        items = validate_source_list(sources)
        self._spend_write()
        self._sources[(content_id, episode_id)] = items
        return list(items)


# ──────────────────────────────────────────────────────────────
# 🗄️ SQLAlchemy implementation
# ──────────────────────────────────────────────────────────────
class SqlCatalogRepository(CatalogRepositoryProtocol):
    """Catalog over PostgreSQL (or any async SQLAlchemy engine).

    Every write runs in its own short transaction, so a failure part-way
    through a multi-row change leaves the rows already written committed.
    """

    def __init__(self, session_maker: Optional[async_sessionmaker[AsyncSession]] = None) -> None:
        self._session_maker = session_maker

    @property
    def session_maker(self) -> async_sessionmaker[AsyncSession]:
        if self._session_maker is None:
            self._session_maker = get_session_maker()
        return self._session_maker

    @staticmethod
    def _policy_from_row(title: Title) -> ContentPolicy:
        return ContentPolicy(
            content_id=title.id,
            tier=title.access_tier,
            rental_price=title.rental_price,
            rental_period_days=title.rental_period_days,
            rental_max_devices=title.rental_max_devices,
            exclude_from_plan=title.exclude_from_plan,
        )

    @staticmethod
    def _source_from_row(row: VideoSourceRow) -> VideoSource:
        return VideoSource(
            id=row.id,
            server_label=row.server_label or "",
            required_tier=row.required_tier,
            permission=row.permission,
            kind=row.kind,
            url=row.url,
            quality_urls=row.quality_urls or {},
            default_quality=row.default_quality,
            is_default=bool(row.is_default),
        )

    async def get_policy(self, content_id: str, episode_id: Optional[str] = None) -> Optional[ContentPolicy]:
        async with store_call("catalog", "get_policy"):
            async with self.session_maker() as session:
                title = await session.get(Title, content_id)
                if title is None:
                    return None
                policy = self._policy_from_row(title)
                if episode_id is None:
                    return policy
                ep = await session.get(Episode, episode_id)
                if ep is None or ep.title_id != content_id:
                    return None
                if ep.access_tier is not None and ep.access_tier is not policy.tier:
                    return policy.with_tier(ep.access_tier)
                return policy

    async def list_sources(self, content_id: str, episode_id: Optional[str] = None) -> List[VideoSource]:
        if episode_id is not None:
            owner = VideoSourceRow.episode_id == episode_id
        else:
            owner = VideoSourceRow.title_id == content_id
        stmt = select(VideoSourceRow).where(owner).order_by(VideoSourceRow.position, VideoSourceRow.id)
        async with store_call("catalog", "list_sources"):
            async with self.session_maker() as session:
                rows = (await session.execute(stmt)).scalars().all()
        return [self._source_from_row(r) for r in rows]

    async def list_series_episodes(self, series_id: str) -> List[EpisodeRef]:
        stmt = (
            select(Episode.id, Season.season_number, Episode.episode_number, Episode.access_tier)
            .join(Season, Episode.season_id == Season.id)
            .where(Episode.title_id == series_id)
            .order_by(Season.season_number, Episode.episode_number)
        )
        async with store_call("catalog", "list_series_episodes"):
            async with self.session_maker() as session:
                rows = (await session.execute(stmt)).all()
        return [
            EpisodeRef(episode_id=r[0], season_number=r[1], episode_number=r[2], tier=r[3])
            for r in rows
        ]

    async def set_episode_tier(self, episode_id: str, tier: AccessTier) -> bool:
        stmt = (
            update(Episode)
            .where(
                Episode.id == episode_id,
                or_(Episode.access_tier.is_(None), Episode.access_tier != tier),
            )
            .values(access_tier=tier)
            .execution_options(synchronize_session=False)
        )
        async with store_call("catalog", "set_episode_tier"):
            async with transactional_async_session(self.session_maker) as session:
                result = await session.execute(stmt)
        return (result.rowcount or 0) > 0

    async def set_content_tier(self, content_id: str, tier: AccessTier) -> bool:
        values = {"access_tier": tier}
        if tier is AccessTier.FREE:
            values["exclude_from_plan"] = False
        stmt = (
            update(Title)
            .where(Title.id == content_id, Title.access_tier != tier)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with store_call("catalog", "set_content_tier"):
            async with transactional_async_session(self.session_maker) as session:
                result = await session.execute(stmt)
        return (result.rowcount or 0) > 0

    async def save_policy(self, policy: ContentPolicy) -> ContentPolicy:
        async with store_call("catalog", "save_policy"):
            async with transactional_async_session(self.session_maker) as session:
                title = await session.get(Title, policy.content_id)
                if title is None:
                    raise PolicyValidationError(
                        "Unknown content item",
                        details={"content_id": policy.content_id},
                    )
                title.access_tier = policy.tier
                title.rental_price = policy.rental_price
                title.rental_period_days = policy.rental_period_days
                title.rental_max_devices = policy.rental_max_devices
                title.exclude_from_plan = policy.exclude_from_plan
        return policy

    async def save_sources(
        self,
        content_id: str,
        sources: Iterable[VideoSource],
        *,
        episode_id: Optional[str] = None,
    ) -> List[VideoSource]:
        items = validate_source_list(sources)
        if episode_id is not None:
            owner = VideoSourceRow.episode_id == episode_id
        else:
            owner = VideoSourceRow.title_id == content_id
        async with store_call("catalog", "save_sources"):
            async with transactional_async_session(self.session_maker) as session:
                await session.execute(delete(VideoSourceRow).where(owner))
                for position, s in enumerate(items):
                    session.add(
                        VideoSourceRow(
                            id=s.id,
                            title_id=None if episode_id is not None else content_id,
                            episode_id=episode_id,
                            position=position,
                            server_label=s.server_label,
                            required_tier=s.required_tier,
                            permission=s.permission,
                            kind=s.kind,
                            url=s.url,
                            quality_urls={q.value: u for q, u in s.quality_urls.items()} or None,
                            default_quality=s.default_quality,
                            is_default=s.is_default,
                        )
                    )
        return list(items)


# ──────────────────────────────────────────────────────────────
# 🏭 Factory
# ──────────────────────────────────────────────────────────────
_memory_catalog: Optional[MemoryCatalogRepository] = None


def get_catalog_repository() -> CatalogRepositoryProtocol:
    global _memory_catalog
    impl_path = settings.CATALOG_REPOSITORY_IMPL
    if impl_path:
        cls = import_string(impl_path, setting="CATALOG_REPOSITORY_IMPL")
        return cls()  # type: ignore
    if _memory_catalog is None:
        _memory_catalog = MemoryCatalogRepository()
    return _memory_catalog


__all__ = [
    "CatalogRepositoryProtocol",
    "MemoryCatalogRepository",
    "SqlCatalogRepository",
    "get_catalog_repository",
]
