# streampass/db/base.py
"""
StreamPass · SQLAlchemy Base registry
=====================================

Import all ORM models so their tables are registered on `Base.metadata`.
Alembic autogeneration and relationship string resolution rely on it.

Keep this file import-only; no runtime logic.
"""

from streampass.db.base_class import Base

# ───────────────────────────────────────────────────────────────
# Catalog: Titles, Structure, Sources
# ───────────────────────────────────────────────────────────────
from streampass.db.models.title import Title
from streampass.db.models.season import Season
from streampass.db.models.episode import Episode
from streampass.db.models.video_source import VideoSource

# ───────────────────────────────────────────────────────────────
# Commerce: Subscriptions, Rentals
# ───────────────────────────────────────────────────────────────
from streampass.db.models.commerce import Rental, Subscription

__all__ = [
    "Base",
    "Title",
    "Season",
    "Episode",
    "VideoSource",
    "Subscription",
    "Rental",
]
