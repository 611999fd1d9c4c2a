from __future__ import annotations

"""
💳 StreamPass · Subscriptions & Rentals
======================================

Viewer-scoped commercial state read by the entitlement evaluator.

• `Subscription`: plan membership with an end date; the newest active row wins.
• `Rental`: one purchase of a title by a viewer. `max_devices` is copied from
  the title at purchase time and never updated. Expired rentals are retained
  for history; nothing deletes them on expiry.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    text,
)
from sqlalchemy.orm import relationship

from streampass.db.base_class import Base, TimestampMixin, UUIDPKMixin
from streampass.schemas.enums import PaymentStatus


class Subscription(UUIDPKMixin, TimestampMixin, Base):
    __tablename__ = "subscriptions"

    viewer_id = Column(String(64), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, server_default=text("true"))
    payment_status = Column(
        SAEnum(PaymentStatus, name="payment_status"),
        nullable=False,
        server_default=text("'PENDING'"),
    )
    starts_at = Column(DateTime(timezone=True), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint("ends_at > starts_at", name="ends_after_starts"),
        Index("ix_subscriptions_viewer_active_end", "viewer_id", "is_active", "ends_at"),
    )


class Rental(UUIDPKMixin, TimestampMixin, Base):
    __tablename__ = "rentals"

    viewer_id = Column(String(64), nullable=False, index=True)
    title_id = Column(String(36), ForeignKey("titles.id", ondelete="CASCADE"), nullable=False, index=True)
    starts_at = Column(DateTime(timezone=True), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=False)
    payment_status = Column(
        SAEnum(PaymentStatus, name="payment_status"),
        nullable=False,
        server_default=text("'PENDING'"),
    )
    max_devices = Column(Integer, nullable=False, server_default=text("1"))
    rental_price = Column(Numeric(10, 2), nullable=True)

    __table_args__ = (
        CheckConstraint("ends_at > starts_at", name="ends_after_starts"),
        CheckConstraint("max_devices >= 1", name="max_devices_ge_1"),
        Index("ix_rentals_viewer_title_end", "viewer_id", "title_id", "ends_at"),
    )

    title = relationship("Title", back_populates="rentals", lazy="noload")
