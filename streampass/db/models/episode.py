from __future__ import annotations

"""
🎬 StreamPass · Episode
======================

A single episode within a season of a series title.

• `title_id` is denormalized from the season so the access cascade can update
  every episode of a series with one indexed predicate.
• `access_tier` is an optional per-episode override; NULL means "inherit the
  series tier". The cascade writes it explicitly so all episodes read back the
  new tier.
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from streampass.db.base_class import Base, TimestampMixin, UUIDPKMixin
from streampass.schemas.enums import AccessTier


class Episode(UUIDPKMixin, TimestampMixin, Base):
    __tablename__ = "episodes"

    season_id = Column(
        String(36),
        ForeignKey("seasons.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title_id = Column(
        String(36),
        ForeignKey("titles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        doc="Denormalized parent series.",
    )
    episode_number = Column(Integer, nullable=False)
    name = Column(String(255), nullable=True)
    access_tier = Column(SAEnum(AccessTier, name="access_tier"), nullable=True)

    __table_args__ = (
        UniqueConstraint("season_id", "episode_number", name="uq_episodes_season_epnum"),
        CheckConstraint("episode_number >= 0", name="episode_number_ge_0"),
        Index("ix_episodes_title_tier", "title_id", "access_tier"),
    )

    season = relationship("Season", back_populates="episodes", lazy="noload")
    video_sources = relationship(
        "VideoSource",
        back_populates="episode",
        lazy="noload",
        passive_deletes=True,
        primaryjoin="VideoSource.episode_id == Episode.id",
        foreign_keys="[VideoSource.episode_id]",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Episode id={self.id} season_id={self.season_id} E{self.episode_number} tier={self.access_tier}>"
