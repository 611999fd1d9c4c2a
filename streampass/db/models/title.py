# streampass/db/models/title.py
from __future__ import annotations

"""
🎬 StreamPass · Title Model
==========================

Catalog entity for a **movie**, **series**, or **anime** together with its
commercial access policy.

Policy columns
--------------
• `access_tier`         free / rent / vip
• `rental_price`        > 0 when tier is rent
• `rental_period_days`  >= 1 when tier is rent
• `rental_max_devices`  >= 1, copied onto each rental at purchase
• `exclude_from_plan`   vip subscription alone does not grant access

The rent-tier rules are mirrored as CHECK constraints so rows written outside
the repository still honour them.

Relationships
-------------
• `seasons`        ↔ Season.title
• `video_sources`  ↔ VideoSource.title
• `rentals`        ↔ Rental.title
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Enum as SAEnum,
    Index,
    Integer,
    Numeric,
    String,
    text,
)
from sqlalchemy.orm import relationship

from streampass.db.base_class import Base, TimestampMixin, UUIDPKMixin
from streampass.schemas.enums import AccessTier, ContentType


class Title(UUIDPKMixin, TimestampMixin, Base):
    """Movie, series, or anime with its access policy."""

    __tablename__ = "titles"

    # ─────────────── Classification ───────────────
    type = Column(SAEnum(ContentType, name="content_type"), nullable=False, index=True)
    name = Column(String(255), nullable=False)

    # ─────────────── Access policy ───────────────
    access_tier = Column(
        SAEnum(AccessTier, name="access_tier"),
        nullable=False,
        server_default=text("'FREE'"),
        index=True,
    )
    rental_price = Column(Numeric(10, 2), nullable=True)
    rental_period_days = Column(Integer, nullable=True)
    rental_max_devices = Column(Integer, nullable=False, server_default=text("1"))
    exclude_from_plan = Column(Boolean, nullable=False, server_default=text("false"))

    __table_args__ = (
        CheckConstraint("rental_max_devices >= 1", name="rental_max_devices_ge_1"),
        CheckConstraint(
            "access_tier <> 'FREE' OR exclude_from_plan = false",
            name="free_not_excluded",
        ),
        CheckConstraint(
            "access_tier <> 'RENT' OR (rental_price > 0 AND rental_period_days >= 1)",
            name="rent_terms_present",
        ),
        Index("ix_titles_type_tier", "type", "access_tier"),
    )

    # ── Relationships ─────────────────────────────────────────
    seasons = relationship(
        "Season",
        back_populates="title",
        lazy="noload",
        passive_deletes=True,
        order_by="Season.season_number",
    )
    video_sources = relationship(
        "VideoSource",
        back_populates="title",
        lazy="noload",
        passive_deletes=True,
        primaryjoin="VideoSource.title_id == Title.id",
        foreign_keys="[VideoSource.title_id]",
    )
    rentals = relationship("Rental", back_populates="title", lazy="noload", passive_deletes=True)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Title id={self.id} type={self.type} tier={self.access_tier}>"
