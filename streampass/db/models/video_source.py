from __future__ import annotations

"""
🎞️ StreamPass · VideoSource
==========================

One playable source attached either to a title (movies) or to an episode.

Conventions
-----------
• `position` keeps the editor's list order; the resolver's fallback ranking
  tie-breaks on it.
• `url` is used by iframe/hls sources; `quality_urls` maps `480p|720p|1080p`
  to a progressive file for mp4 sources.
• A partial unique index allows at most one default source per owner.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    text,
)
from sqlalchemy.orm import relationship

from streampass.db.base_class import Base, TimestampMixin, UUIDPKMixin
from streampass.schemas.enums import AccessTier, Quality, SourceKind, SourcePermission


class VideoSource(UUIDPKMixin, TimestampMixin, Base):
    __tablename__ = "video_sources"

    title_id = Column(String(36), ForeignKey("titles.id", ondelete="CASCADE"), nullable=True, index=True)
    episode_id = Column(String(36), ForeignKey("episodes.id", ondelete="CASCADE"), nullable=True, index=True)
    position = Column(Integer, nullable=False, server_default=text("0"))

    server_label = Column(String(128), nullable=False, server_default=text("''"))
    required_tier = Column(SAEnum(AccessTier, name="access_tier"), nullable=False, server_default=text("'FREE'"))
    permission = Column(
        SAEnum(SourcePermission, name="source_permission"),
        nullable=False,
        server_default=text("'WEB_AND_MOBILE'"),
    )
    kind = Column(SAEnum(SourceKind, name="source_kind"), nullable=False)
    url = Column(String(2048), nullable=True)
    quality_urls = Column(JSON, nullable=True)
    default_quality = Column(SAEnum(Quality, name="source_quality"), nullable=False, server_default=text("'P720'"))
    is_default = Column(Boolean, nullable=False, server_default=text("false"))

    __table_args__ = (
        CheckConstraint(
            "(title_id IS NOT NULL) <> (episode_id IS NOT NULL)",
            name="exactly_one_owner",
        ),
        Index(
            "uq_video_sources_default_title",
            "title_id",
            unique=True,
            postgresql_where=text("is_default = true AND title_id IS NOT NULL"),
            sqlite_where=text("is_default = 1 AND title_id IS NOT NULL"),
        ),
        Index(
            "uq_video_sources_default_episode",
            "episode_id",
            unique=True,
            postgresql_where=text("is_default = true AND episode_id IS NOT NULL"),
            sqlite_where=text("is_default = 1 AND episode_id IS NOT NULL"),
        ),
        Index("ix_video_sources_owner_position", "title_id", "episode_id", "position"),
    )

    title = relationship("Title", back_populates="video_sources", lazy="noload", foreign_keys=[title_id])
    episode = relationship("Episode", back_populates="video_sources", lazy="noload", foreign_keys=[episode_id])
