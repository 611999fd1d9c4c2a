from __future__ import annotations

from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from streampass.db.base_class import Base, TimestampMixin, UUIDPKMixin


class Season(UUIDPKMixin, TimestampMixin, Base):
    """A season of a series title; episodes hang off it."""

    __tablename__ = "seasons"

    title_id = Column(
        String(36),
        ForeignKey("titles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    season_number = Column(Integer, nullable=False)
    name = Column(String(255), nullable=True)

    __table_args__ = (
        UniqueConstraint("title_id", "season_number", name="uq_seasons_title_num"),
        CheckConstraint("season_number >= 0", name="season_number_ge_0"),
    )

    title = relationship("Title", back_populates="seasons", lazy="noload")
    episodes = relationship(
        "Episode",
        back_populates="season",
        lazy="selectin",
        passive_deletes=True,
        order_by="Episode.episode_number",
    )
