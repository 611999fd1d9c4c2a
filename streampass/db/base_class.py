# streampass/db/base_class.py
from __future__ import annotations

"""
# StreamPass · SQLAlchemy Base & Mixins

SQLAlchemy 2.0 declarative **Base** with:
- Global **naming conventions** (Alembic-friendly)
- Automatic **snake_case `__tablename__`** (models may override)
- `TimestampMixin`: `created_at` / `updated_at` (UTC, server-side)

Ids are string UUIDs so the same models run on PostgreSQL and on SQLite in tests.
"""

import re
from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, MetaData, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


def _to_snake(name: str) -> str:
    s1 = re.sub("(.)([A-Z][a-z]+)", r"\1_\2", name)
    return re.sub("([a-z0-9])([A-Z])", r"\1_\2", s1).lower()


def new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    """Global declarative base for StreamPass models."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    @declared_attr.directive
    def __tablename__(cls) -> str:  # type: ignore[override]
        return _to_snake(cls.__name__)

    def __repr__(self) -> str:  # pragma: no cover
        attrs: list[str] = []
        for key in ("id", "name", "title_id", "viewer_id"):
            if key in self.__dict__:
                attrs.append(f"{key}={self.__dict__[key]!r}")
        return f"{self.__class__.__name__}({', '.join(attrs)})"


class UUIDPKMixin:
    """String UUID primary key generated client-side."""
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)


class TimestampMixin:
    """
    Server-side timestamps (UTC).
    - `created_at`: set once at insert
    - `updated_at`: set at insert and auto-updated on change
    """
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


__all__ = ["Base", "UUIDPKMixin", "TimestampMixin", "NAMING_CONVENTION", "new_id"]
